from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from campus_rewards.economy.redemptions.errors import RedemptionErrorKind
from campus_rewards.economy.redemptions.results import Failure
from campus_rewards.economy.redemptions.service import DEFAULT_PAGE_SIZE
from campus_rewards.economy.redemptions.types import RedemptionStatus, RedemptionSummary, VerificationResponse
from campus_rewards.services.wiring import get_components

from .internal_rewards_helpers import (
    FAILURE_HTTP_STATUS,
    _assert_internal_access,
    raise_for_failure,
)
from .internal_rewards_models import (
    CancellationRequest,
    CancellationResponse,
    RedemptionCreateRequest,
    RedemptionCreateResponse,
    RedemptionListItem,
    RedemptionListResponse,
    RedemptionPagination,
    TokenIssueRequest,
    TokenIssueResponse,
    VerificationRequest,
    VerificationResponseModel,
    VerifiedRedemption,
)

router = APIRouter(tags=["internal", "redemptions"])
logger = structlog.get_logger(__name__)


def _verification_as_response(result: VerificationResponse) -> VerificationResponseModel:
    redemption = None
    if result.redemption is not None:
        receipt = result.redemption
        redemption = VerifiedRedemption(
            id=receipt.redemption_id,
            code=receipt.redemption_code,
            user=receipt.user_display_name,
            user_id=receipt.user_id,
            reward=receipt.reward_name,
            reward_id=receipt.reward_id,
            points_spent=receipt.points_spent,
            verified_at=receipt.verified_at,
        )
    return VerificationResponseModel(
        success=result.success,
        security_validated=result.security_validated,
        security_flagged=result.security_flagged,
        error_code=result.error_code,
        message=result.message,
        verified_at=result.verified_at,
        redemption=redemption,
    )


def _as_list_item(summary: RedemptionSummary) -> RedemptionListItem:
    return RedemptionListItem(
        id=summary.redemption_id,
        code=summary.redemption_code,
        status=summary.status.value,
        user_id=summary.user_id,
        user=summary.user_display_name,
        reward_id=summary.reward_id,
        reward=summary.reward_name,
        reward_category=summary.reward_category,
        points_spent=summary.points_spent,
        created_at=summary.created_at,
        expires_at=summary.expires_at,
        verified_at=summary.verified_at,
        verified_by=summary.verified_by,
        cancelled_at=summary.cancelled_at,
    )


def _verification_status_code(result: VerificationResponse) -> int:
    if result.success or result.error_kind is None:
        return 200
    return FAILURE_HTTP_STATUS.get(RedemptionErrorKind(result.error_kind), 400)


@router.post("/internal/redemptions", response_model=RedemptionCreateResponse)
async def create_redemption(
    payload: RedemptionCreateRequest,
    request: Request,
) -> RedemptionCreateResponse:
    _assert_internal_access(request)
    outcome = await get_components().redemptions.create(
        user_id=payload.user_id,
        reward_id=payload.reward_id,
        idempotency_key=payload.idempotency_key,
    )
    if isinstance(outcome, Failure):
        raise_for_failure(outcome)
    created = outcome.value
    return RedemptionCreateResponse(
        redemption_id=created.redemption_id,
        code=created.redemption_code,
        reward_id=created.reward_id,
        points_spent=created.points_spent,
        expires_at=created.expires_at,
        points_balance=created.points_balance,
        idempotent_replay=created.idempotent_replay,
    )


@router.get("/internal/redemptions", response_model=RedemptionListResponse)
async def list_redemptions(
    request: Request,
    status: str | None = Query(default=None, min_length=1, max_length=16),
    user_id: int | None = Query(default=None, gt=0),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1),
) -> RedemptionListResponse:
    _assert_internal_access(request)
    status_filter: RedemptionStatus | None = None
    if status is not None:
        try:
            status_filter = RedemptionStatus(status.strip().lower())
        except ValueError:
            raise HTTPException(status_code=422, detail={"code": "E_REDEMPTION_STATUS_INVALID"}) from None

    outcome = await get_components().redemptions.list_redemptions(
        status=status_filter,
        user_id=user_id,
        page=page,
        limit=limit,
    )
    if isinstance(outcome, Failure):
        raise_for_failure(outcome)
    listing = outcome.value
    return RedemptionListResponse(
        redemptions=[_as_list_item(summary) for summary in listing.items],
        pagination=RedemptionPagination(
            page=listing.page,
            limit=listing.limit,
            total=listing.total,
            total_pages=listing.total_pages,
        ),
    )


@router.post("/internal/redemptions/verify", response_model=VerificationResponseModel)
async def verify_redemption(payload: VerificationRequest, request: Request) -> JSONResponse:
    _assert_internal_access(request, terminal_id=payload.terminal_id)
    result = await get_components().gateway.verify_scan(
        payload.input,
        verified_by=payload.verified_by,
    )
    body = _verification_as_response(result)
    return JSONResponse(
        status_code=_verification_status_code(result),
        content=jsonable_encoder(body),
    )


@router.post("/internal/redemptions/cancel", response_model=CancellationResponse)
async def cancel_redemption(payload: CancellationRequest, request: Request) -> CancellationResponse:
    _assert_internal_access(request)
    outcome = await get_components().redemptions.cancel(
        redemption_id=payload.redemption_id,
        actor_id=payload.actor_id,
    )
    if isinstance(outcome, Failure):
        raise_for_failure(outcome)
    cancelled = outcome.value
    return CancellationResponse(
        redemption_id=cancelled.redemption_id,
        refunded_points=cancelled.refunded_points,
        points_balance=cancelled.points_balance,
        stock_restored=cancelled.stock_restored,
    )


@router.post("/internal/redemptions/{redemption_id}/token", response_model=TokenIssueResponse)
async def issue_redemption_token(
    redemption_id: UUID,
    payload: TokenIssueRequest,
    request: Request,
) -> TokenIssueResponse:
    _assert_internal_access(request)
    outcome = await get_components().redemptions.issue_token(
        redemption_id=redemption_id,
        user_id=payload.user_id,
    )
    if isinstance(outcome, Failure):
        raise_for_failure(outcome)
    issued = outcome.value
    return TokenIssueResponse(
        redemption_id=issued.redemption_id,
        token=issued.token,
        scan_url=issued.scan_url,
        issued_at=issued.issued_at,
        token_expires_at=issued.token_expires_at,
    )
