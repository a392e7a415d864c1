from __future__ import annotations

from datetime import datetime

from campus_rewards.db.models.redemptions import Redemption
from campus_rewards.economy.redemptions.errors import (
    RedemptionAlreadyVerifiedError,
    RedemptionCancelledError,
    RedemptionError,
    RedemptionExpiredError,
    RedemptionOverdueError,
)
from campus_rewards.economy.redemptions.types import RedemptionStatus

ALLOWED_TRANSITIONS: dict[RedemptionStatus, frozenset[RedemptionStatus]] = {
    RedemptionStatus.PENDING: frozenset(
        {RedemptionStatus.VERIFIED, RedemptionStatus.CANCELLED, RedemptionStatus.EXPIRED}
    ),
    RedemptionStatus.VERIFIED: frozenset(),
    RedemptionStatus.CANCELLED: frozenset(),
    RedemptionStatus.EXPIRED: frozenset(),
}


def can_transition(current: RedemptionStatus, target: RedemptionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def is_overdue(redemption: Redemption, *, now_utc: datetime) -> bool:
    return redemption.expires_at is not None and redemption.expires_at <= now_utc


def ensure_pending_and_current(redemption: Redemption, *, now_utc: datetime) -> None:
    """Expiry is checked before status so an overdue pending record is reported as expired."""
    status = RedemptionStatus(redemption.status)
    if status == RedemptionStatus.PENDING:
        if is_overdue(redemption, now_utc=now_utc):
            raise RedemptionOverdueError(
                redemption_id=redemption.id,
                expires_at=redemption.expires_at,
            )
        return
    raise terminal_state_error(redemption)


def terminal_state_error(redemption: Redemption) -> RedemptionError:
    status = RedemptionStatus(redemption.status)
    if status == RedemptionStatus.VERIFIED:
        return RedemptionAlreadyVerifiedError(
            verified_at=redemption.verified_at,
            verified_by=redemption.verified_by,
        )
    if status == RedemptionStatus.CANCELLED:
        return RedemptionCancelledError(cancelled_at=redemption.cancelled_at)
    if status == RedemptionStatus.EXPIRED:
        return RedemptionExpiredError(expires_at=redemption.expires_at)
    raise ValueError(f"redemption {redemption.id} is not in a terminal state")
