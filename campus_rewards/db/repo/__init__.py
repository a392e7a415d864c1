from campus_rewards.db.repo.audit_events_repo import AuditEventsRepo
from campus_rewards.db.repo.point_transactions_repo import PointTransactionsRepo
from campus_rewards.db.repo.redemptions_repo import RedemptionsRepo
from campus_rewards.db.repo.rewards_repo import RewardsRepo
from campus_rewards.db.repo.streak_repo import StreakRepo
from campus_rewards.db.repo.users_repo import UsersRepo

__all__ = [
    "AuditEventsRepo",
    "PointTransactionsRepo",
    "RedemptionsRepo",
    "RewardsRepo",
    "StreakRepo",
    "UsersRepo",
]
