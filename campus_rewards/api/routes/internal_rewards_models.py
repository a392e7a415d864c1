from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class RedemptionCreateRequest(BaseModel):
    user_id: int = Field(gt=0)
    reward_id: int = Field(gt=0)
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=96)


class RedemptionCreateResponse(BaseModel):
    redemption_id: UUID
    code: str
    reward_id: int
    points_spent: int
    expires_at: datetime | None = None
    points_balance: int
    idempotent_replay: bool


class TokenIssueRequest(BaseModel):
    user_id: int = Field(gt=0)


class TokenIssueResponse(BaseModel):
    redemption_id: UUID
    token: str
    scan_url: str
    issued_at: datetime
    token_expires_at: datetime


class VerificationRequest(BaseModel):
    input: str = Field(max_length=4096)
    verified_by: str | None = Field(default=None, max_length=64)
    terminal_id: str | None = Field(default=None, max_length=64)


class VerifiedRedemption(BaseModel):
    id: UUID
    code: str
    user: str | None = None
    user_id: int
    reward: str | None = None
    reward_id: int
    points_spent: int
    verified_at: datetime | None = None


class VerificationResponseModel(BaseModel):
    success: bool
    security_validated: bool
    security_flagged: bool
    error_code: str | None = None
    message: str
    verified_at: datetime | None = None
    redemption: VerifiedRedemption | None = None


class RedemptionListItem(BaseModel):
    id: UUID
    code: str
    status: str
    user_id: int
    user: str | None = None
    reward_id: int
    reward: str
    reward_category: str
    points_spent: int
    created_at: datetime
    expires_at: datetime | None = None
    verified_at: datetime | None = None
    verified_by: str | None = None
    cancelled_at: datetime | None = None


class RedemptionPagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class RedemptionListResponse(BaseModel):
    redemptions: list[RedemptionListItem]
    pagination: RedemptionPagination


class CancellationRequest(BaseModel):
    redemption_id: UUID
    actor_id: str | None = Field(default=None, max_length=64)


class CancellationResponse(BaseModel):
    redemption_id: UUID
    refunded_points: int
    points_balance: int
    stock_restored: bool


class DailyAwardRequest(BaseModel):
    user_id: int = Field(gt=0)


class DailyAwardResponse(BaseModel):
    user_id: int
    local_date: date
    eligible: bool
    points_awarded: int = Field(ge=0)
    current_streak: int = Field(ge=0)
    longest_streak: int = Field(ge=0)
    points_balance: int = Field(ge=0)
    idempotent_replay: bool


class LedgerReconciliationResponse(BaseModel):
    user_id: int
    points_balance: int
    ledger_sum: int
    drift: int
    is_consistent: bool
