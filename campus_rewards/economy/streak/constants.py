DEFAULT_CAMPUS_TIMEZONE = "Asia/Manila"
STREAK_CAP = 5
EARNING_ROLES = frozenset(
    {
        "student",
        "employee",
        "canteen_admin",
        "finance_admin",
        "sa_admin",
        "super_admin",
        "admin",
    }
)
