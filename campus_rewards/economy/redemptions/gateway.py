from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog

from campus_rewards.db.storage import RewardsStorage, StorageError
from campus_rewards.economy.redemptions.errors import RedemptionErrorKind
from campus_rewards.economy.redemptions.results import Failure, unavailable
from campus_rewards.economy.redemptions.scan_input import (
    ManualLookupKind,
    classify_manual_entry,
    extract_candidate,
)
from campus_rewards.economy.redemptions.service import ENTITY_TYPE, RedemptionService
from campus_rewards.economy.redemptions.types import VerificationChannel, VerificationResponse
from campus_rewards.services.audit import AuditRecord, AuditSink
from campus_rewards.services.secure_tokens import SecureTokenService, TokenStatus

logger = structlog.get_logger(__name__)

VERIFIED_MESSAGE = "Redemption verified successfully"

_SECURITY_FAILURES: dict[TokenStatus, tuple[RedemptionErrorKind, str]] = {
    TokenStatus.SIGNATURE_INVALID: (
        RedemptionErrorKind.SIGNATURE_INVALID,
        "QR code signature is invalid",
    ),
    TokenStatus.TAMPERED: (
        RedemptionErrorKind.TAMPERED_PAYLOAD,
        "QR code payload has been tampered with",
    ),
    TokenStatus.EXPIRED: (
        RedemptionErrorKind.EXPIRED,
        "QR code has expired, ask the holder to refresh it",
    ),
}


class VerificationGateway:
    """Point-of-sale entry: turns raw scanner or keyboard input into a verification.

    Classification is ordered. A well-formed token that fails its signature,
    payload or lifetime check ends the request as a security failure; only
    input that is not a token at all falls back to id or code lookup.
    """

    def __init__(
        self,
        *,
        tokens: SecureTokenService,
        redemptions: RedemptionService,
        storage: RewardsStorage,
        audit: AuditSink,
    ) -> None:
        self._tokens = tokens
        self._redemptions = redemptions
        self._storage = storage
        self._audit = audit

    async def verify_scan(
        self,
        raw_input: str,
        *,
        verified_by: str | None = None,
        now_utc: datetime | None = None,
    ) -> VerificationResponse:
        now_utc = now_utc or datetime.now(timezone.utc)
        candidate = extract_candidate(raw_input)
        if not candidate.value:
            failure = Failure(
                kind=RedemptionErrorKind.NOT_FOUND,
                message="Redemption ID, code, or QR code is required",
            )
            await self._emit_gateway_failure(failure, entity_id=None, actor_id=verified_by, now_utc=now_utc)
            return _failure_response(failure, security_validated=False)

        verification = self._tokens.verify(candidate.value, now_utc=now_utc)
        if verification.ok and verification.payload is not None:
            return await self._settle(
                verification.payload.redemption_id,
                channel=VerificationChannel.SECURE_TOKEN,
                verified_by=verified_by,
                now_utc=now_utc,
            )

        if verification.status in _SECURITY_FAILURES:
            kind, message = _SECURITY_FAILURES[verification.status]
            entity_id = str(verification.payload.redemption_id) if verification.payload else None
            failure = Failure(
                kind=kind,
                message=message,
                security_flagged=True,
                details={"reason": verification.reason, "from_url": candidate.from_url},
            )
            logger.warning(
                "redemption_scan_security_failure",
                error_kind=kind.value,
                reason=verification.reason,
                redemption_id=entity_id,
            )
            await self._emit_gateway_failure(failure, entity_id=entity_id, actor_id=verified_by, now_utc=now_utc)
            return _failure_response(failure, security_validated=False)

        lookup = classify_manual_entry(candidate.value)
        redemption_id: UUID | None = lookup.redemption_id
        if lookup.kind == ManualLookupKind.BY_CODE and lookup.redemption_code:
            try:
                async with self._storage.transaction() as tx:
                    redemption = await tx.get_redemption_by_code(lookup.redemption_code)
            except StorageError:
                logger.exception("redemption_code_lookup_failed")
                return _failure_response(unavailable(), security_validated=False)
            redemption_id = redemption.id if redemption is not None else None

        if redemption_id is None:
            failure = Failure(kind=RedemptionErrorKind.NOT_FOUND, message="Redemption not found")
            await self._emit_gateway_failure(failure, entity_id=None, actor_id=verified_by, now_utc=now_utc)
            return _failure_response(failure, security_validated=False)

        return await self._settle(
            redemption_id,
            channel=VerificationChannel.MANUAL,
            verified_by=verified_by,
            now_utc=now_utc,
        )

    async def _settle(
        self,
        redemption_id: UUID,
        *,
        channel: VerificationChannel,
        verified_by: str | None,
        now_utc: datetime,
    ) -> VerificationResponse:
        security_validated = channel == VerificationChannel.SECURE_TOKEN
        outcome = await self._redemptions.verify(
            redemption_id=redemption_id,
            verified_by=verified_by,
            channel=channel,
            now_utc=now_utc,
        )
        if isinstance(outcome, Failure):
            return _failure_response(outcome, security_validated=security_validated)
        receipt = outcome.value
        return VerificationResponse(
            success=True,
            security_validated=security_validated,
            security_flagged=False,
            message=VERIFIED_MESSAGE,
            redemption=receipt,
            verified_at=receipt.verified_at,
        )

    async def _emit_gateway_failure(
        self,
        failure: Failure,
        *,
        entity_id: str | None,
        actor_id: str | None,
        now_utc: datetime,
    ) -> None:
        await self._audit.emit(
            AuditRecord(
                action="redemption_verify",
                outcome=failure.kind.value,
                entity_type=ENTITY_TYPE,
                entity_id=entity_id,
                actor_id=actor_id,
                security_flagged=failure.security_flagged,
                payload={"error_kind": failure.kind.value, **failure.details},
                occurred_at=now_utc,
            )
        )


def _failure_response(failure: Failure, *, security_validated: bool) -> VerificationResponse:
    verified_at = failure.details.get("verified_at")
    return VerificationResponse(
        success=False,
        security_validated=security_validated,
        security_flagged=failure.security_flagged,
        message=failure.message,
        error_kind=failure.kind.value,
        error_code=failure.error_code,
        verified_at=verified_at if isinstance(verified_at, datetime) else None,
    )
