from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class RedemptionStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class VerificationChannel(str, Enum):
    SECURE_TOKEN = "secure_token"
    MANUAL = "manual"


@dataclass(slots=True)
class RedemptionCreated:
    redemption_id: UUID
    redemption_code: str
    reward_id: int
    points_spent: int
    expires_at: datetime | None
    points_balance: int
    idempotent_replay: bool


@dataclass(slots=True)
class IssuedToken:
    redemption_id: UUID
    token: str
    scan_url: str
    issued_at: datetime
    token_expires_at: datetime


@dataclass(slots=True)
class RedemptionReceipt:
    redemption_id: UUID
    redemption_code: str
    user_id: int
    user_display_name: str | None
    reward_id: int
    reward_name: str | None
    points_spent: int
    verified_at: datetime | None
    verified_by: str | None


@dataclass(slots=True)
class CancellationResult:
    redemption_id: UUID
    refunded_points: int
    points_balance: int
    stock_restored: bool


@dataclass(slots=True)
class VerificationResponse:
    success: bool
    security_validated: bool
    security_flagged: bool
    message: str
    error_kind: str | None = None
    error_code: str | None = None
    redemption: RedemptionReceipt | None = None
    verified_at: datetime | None = None


@dataclass(slots=True)
class RedemptionSummary:
    redemption_id: UUID
    redemption_code: str
    status: RedemptionStatus
    user_id: int
    user_display_name: str | None
    reward_id: int
    reward_name: str
    reward_category: str
    points_spent: int
    created_at: datetime
    expires_at: datetime | None
    verified_at: datetime | None
    verified_by: str | None
    cancelled_at: datetime | None


@dataclass(slots=True)
class RedemptionPage:
    items: list[RedemptionSummary]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit
