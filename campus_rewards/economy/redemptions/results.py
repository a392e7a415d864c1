from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar, Union

from campus_rewards.economy.ledger.errors import (
    InsufficientBalanceError,
    LedgerError,
    LedgerReferenceConflictError,
    LedgerUserNotFoundError,
)
from campus_rewards.economy.redemptions.errors import RedemptionError, RedemptionErrorKind

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T
    ok: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class Failure:
    kind: RedemptionErrorKind
    message: str
    security_flagged: bool = False
    details: dict[str, Any] = field(default_factory=dict)
    ok: ClassVar[bool] = False

    @property
    def error_code(self) -> str:
        return self.kind.error_code


Outcome = Union[Success[T], Failure]

UNAVAILABLE_MESSAGE = "Service temporarily unavailable, please retry"


def failure_from_error(exc: RedemptionError | LedgerError) -> Failure:
    if isinstance(exc, RedemptionError):
        return Failure(kind=exc.kind, message=exc.message, details=dict(exc.details))
    if isinstance(exc, InsufficientBalanceError):
        return Failure(
            kind=RedemptionErrorKind.INSUFFICIENT_BALANCE,
            message="Insufficient points",
            details={"required": exc.required, "available": exc.available},
        )
    if isinstance(exc, LedgerUserNotFoundError):
        return Failure(kind=RedemptionErrorKind.NOT_FOUND, message="User not found")
    if isinstance(exc, LedgerReferenceConflictError):
        return Failure(
            kind=RedemptionErrorKind.IDEMPOTENCY_CONFLICT,
            message="Ledger reference already used for a different posting",
        )
    return Failure(kind=RedemptionErrorKind.UNAVAILABLE, message=UNAVAILABLE_MESSAGE)


def unavailable() -> Failure:
    return Failure(kind=RedemptionErrorKind.UNAVAILABLE, message=UNAVAILABLE_MESSAGE)
