from __future__ import annotations

from typing import Any

import structlog
from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder

from campus_rewards.core.config import get_settings
from campus_rewards.core.logging import bind_scan_context
from campus_rewards.economy.redemptions.errors import RedemptionErrorKind
from campus_rewards.economy.redemptions.results import Failure
from campus_rewards.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

logger = structlog.get_logger(__name__)

FAILURE_HTTP_STATUS: dict[RedemptionErrorKind, int] = {
    RedemptionErrorKind.NOT_FOUND: 404,
    RedemptionErrorKind.NOT_ELIGIBLE: 403,
    RedemptionErrorKind.INSUFFICIENT_BALANCE: 422,
    RedemptionErrorKind.REWARD_NOT_AVAILABLE: 422,
    RedemptionErrorKind.OUT_OF_STOCK: 409,
    RedemptionErrorKind.ALREADY_VERIFIED: 409,
    RedemptionErrorKind.INVALID_STATE: 409,
    RedemptionErrorKind.IDEMPOTENCY_CONFLICT: 409,
    RedemptionErrorKind.CANCELLED: 410,
    RedemptionErrorKind.EXPIRED: 410,
    RedemptionErrorKind.SIGNATURE_INVALID: 400,
    RedemptionErrorKind.TAMPERED_PAYLOAD: 400,
    RedemptionErrorKind.MALFORMED_TOKEN: 400,
    RedemptionErrorKind.UNAVAILABLE: 503,
}


def _assert_internal_access(request: Request, *, terminal_id: str | None = None) -> str | None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=getattr(settings, "internal_api_trusted_proxies", ""),
    )
    bind_scan_context(terminal_id=terminal_id, client_ip=client_ip)

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_rewards_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("internal_rewards_auth_failed", reason="invalid_credentials", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})
    return client_ip


def status_for_failure(failure: Failure) -> int:
    return FAILURE_HTTP_STATUS.get(failure.kind, 400)


def raise_for_failure(failure: Failure) -> None:
    detail: dict[str, Any] = {"code": failure.error_code, "message": failure.message}
    if failure.details:
        detail["details"] = jsonable_encoder(failure.details)
    raise HTTPException(status_code=status_for_failure(failure), detail=detail)
