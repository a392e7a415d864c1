from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class RedemptionErrorKind(str, Enum):
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    OUT_OF_STOCK = "OutOfStock"
    REWARD_NOT_AVAILABLE = "RewardNotAvailable"
    NOT_FOUND = "NotFound"
    ALREADY_VERIFIED = "AlreadyVerified"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"
    SIGNATURE_INVALID = "SignatureInvalid"
    TAMPERED_PAYLOAD = "TamperedPayload"
    MALFORMED_TOKEN = "MalformedToken"
    INVALID_STATE = "InvalidState"
    NOT_ELIGIBLE = "NotEligible"
    IDEMPOTENCY_CONFLICT = "IdempotencyConflict"
    UNAVAILABLE = "Unavailable"

    @property
    def error_code(self) -> str:
        snake = "".join(f"_{char}" if char.isupper() else char for char in self.value)
        return f"E{snake.upper()}"


class RedemptionError(Exception):
    kind: ClassVar[RedemptionErrorKind]
    default_message: ClassVar[str]

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class RedemptionUserNotFoundError(RedemptionError):
    kind = RedemptionErrorKind.NOT_FOUND
    default_message = "User not found"


class RedemptionNotEligibleError(RedemptionError):
    kind = RedemptionErrorKind.NOT_ELIGIBLE
    default_message = "User is not eligible to redeem rewards"


class RewardNotAvailableError(RedemptionError):
    kind = RedemptionErrorKind.REWARD_NOT_AVAILABLE
    default_message = "Reward not found or unavailable"


class RewardOutOfStockError(RedemptionError):
    kind = RedemptionErrorKind.OUT_OF_STOCK
    default_message = "Reward is out of stock"


class RedemptionInsufficientBalanceError(RedemptionError):
    kind = RedemptionErrorKind.INSUFFICIENT_BALANCE
    default_message = "Insufficient points"


class RedemptionIdempotencyConflictError(RedemptionError):
    kind = RedemptionErrorKind.IDEMPOTENCY_CONFLICT
    default_message = "Idempotency key was already used for a different redemption"


class RedemptionNotFoundError(RedemptionError):
    kind = RedemptionErrorKind.NOT_FOUND
    default_message = "Redemption not found"


class RedemptionAlreadyVerifiedError(RedemptionError):
    kind = RedemptionErrorKind.ALREADY_VERIFIED
    default_message = "Redemption already verified"


class RedemptionCancelledError(RedemptionError):
    kind = RedemptionErrorKind.CANCELLED
    default_message = "Redemption was cancelled"


class RedemptionExpiredError(RedemptionError):
    kind = RedemptionErrorKind.EXPIRED
    default_message = "Redemption has expired"


class RedemptionOverdueError(RedemptionExpiredError):
    """Still ``pending`` in storage but past ``expires_at``; must be flipped to expired."""

    def __init__(self, *, redemption_id: Any, expires_at: Any) -> None:
        super().__init__(redemption_id=str(redemption_id), expires_at=expires_at)
        self.redemption_id = redemption_id


class RedemptionInvalidStateError(RedemptionError):
    kind = RedemptionErrorKind.INVALID_STATE
    default_message = "Redemption is not pending"
