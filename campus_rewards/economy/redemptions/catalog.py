from __future__ import annotations

from datetime import datetime

from campus_rewards.db.models.rewards import Reward
from campus_rewards.db.models.users import User
from campus_rewards.economy.redemptions.errors import (
    RedemptionInsufficientBalanceError,
    RedemptionNotEligibleError,
    RewardNotAvailableError,
    RewardOutOfStockError,
)

REDEEMING_ROLES = frozenset({"student", "employee"})


def ensure_user_can_redeem(user: User) -> None:
    if user.is_banned:
        raise RedemptionNotEligibleError("Banned users cannot redeem rewards")
    if user.role not in REDEEMING_ROLES:
        raise RedemptionNotEligibleError("Only students and employees can redeem rewards", role=user.role)


def ensure_reward_redeemable(reward: Reward | None, *, now_utc: datetime) -> Reward:
    if reward is None or not reward.is_active:
        raise RewardNotAvailableError
    if reward.valid_from is not None and now_utc < reward.valid_from:
        raise RewardNotAvailableError("Reward is not yet available", valid_from=reward.valid_from)
    if reward.valid_until is not None and now_utc > reward.valid_until:
        raise RewardNotAvailableError("Reward is no longer available", valid_until=reward.valid_until)
    if reward.remaining_quantity is not None and reward.remaining_quantity <= 0:
        raise RewardOutOfStockError
    return reward


def ensure_balance_covers(user: User, reward: Reward) -> None:
    if user.points_balance < reward.point_cost:
        raise RedemptionInsufficientBalanceError(
            required=reward.point_cost,
            available=user.points_balance,
        )
