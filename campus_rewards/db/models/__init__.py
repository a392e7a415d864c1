from campus_rewards.db.models.audit_events import AuditEvent
from campus_rewards.db.models.point_transactions import PointTransaction
from campus_rewards.db.models.redemptions import Redemption
from campus_rewards.db.models.rewards import Reward
from campus_rewards.db.models.streak_state import StreakState
from campus_rewards.db.models.users import User

__all__ = [
    "AuditEvent",
    "PointTransaction",
    "Redemption",
    "Reward",
    "StreakState",
    "User",
]
