from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode
from uuid import UUID, uuid4

import structlog

from campus_rewards.core.redemption_codes import generate_redemption_code
from campus_rewards.db.models.redemptions import Redemption
from campus_rewards.db.storage import (
    RedemptionListRow,
    RewardsStorage,
    RewardsTransaction,
    StorageConflictError,
    StorageError,
)
from campus_rewards.economy.ledger.errors import LedgerError
from campus_rewards.economy.ledger.service import PointLedger
from campus_rewards.economy.ledger.types import TransactionType
from campus_rewards.economy.redemptions.catalog import (
    ensure_balance_covers,
    ensure_reward_redeemable,
    ensure_user_can_redeem,
)
from campus_rewards.economy.redemptions.errors import (
    RedemptionError,
    RedemptionIdempotencyConflictError,
    RedemptionInvalidStateError,
    RedemptionNotFoundError,
    RedemptionOverdueError,
    RedemptionUserNotFoundError,
    RewardOutOfStockError,
)
from campus_rewards.economy.redemptions.results import (
    Failure,
    Outcome,
    Success,
    failure_from_error,
    unavailable,
)
from campus_rewards.economy.redemptions.state_machine import (
    can_transition,
    ensure_pending_and_current,
    is_overdue,
    terminal_state_error,
)
from campus_rewards.economy.redemptions.types import (
    CancellationResult,
    IssuedToken,
    RedemptionCreated,
    RedemptionPage,
    RedemptionReceipt,
    RedemptionStatus,
    RedemptionSummary,
    VerificationChannel,
)
from campus_rewards.services.audit import AuditRecord, AuditSink
from campus_rewards.services.secure_tokens import SecureTokenService, truncate_to_token_precision

logger = structlog.get_logger(__name__)

DEFAULT_REDEMPTION_TTL = timedelta(days=7)
CREATE_CONFLICT_RETRIES = 1
EXPIRY_SWEEP_BATCH_SIZE = 500
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

ENTITY_TYPE = "reward_redemption"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(details: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in details.items()
        if value is not None
    }


def _summary(row: RedemptionListRow) -> RedemptionSummary:
    redemption = row.redemption
    return RedemptionSummary(
        redemption_id=redemption.id,
        redemption_code=redemption.redemption_code,
        status=RedemptionStatus(redemption.status),
        user_id=redemption.user_id,
        user_display_name=row.user_display_name,
        reward_id=redemption.reward_id,
        reward_name=row.reward_name,
        reward_category=row.reward_category,
        points_spent=redemption.points_spent,
        created_at=redemption.created_at,
        expires_at=redemption.expires_at,
        verified_at=redemption.verified_at,
        verified_by=redemption.verified_by,
        cancelled_at=redemption.cancelled_at,
    )


def debit_reference(redemption_id: UUID) -> str:
    return f"redemption:{redemption_id}:debit"


def refund_reference(redemption_id: UUID) -> str:
    return f"redemption:{redemption_id}:refund"


class RedemptionService:
    """Lifecycle of a reward redemption: pending, then verified, cancelled or expired.

    Domain errors are raised inside a unit of work so it rolls back, and are
    turned into ``Failure`` results at this boundary. Every terminal outcome is
    reported to the audit sink after the unit of work has finished.
    """

    def __init__(
        self,
        *,
        storage: RewardsStorage,
        tokens: SecureTokenService,
        audit: AuditSink,
        redemption_ttl: timedelta = DEFAULT_REDEMPTION_TTL,
        scan_base_url: str = "",
    ) -> None:
        self._storage = storage
        self._tokens = tokens
        self._audit = audit
        self._redemption_ttl = redemption_ttl
        self._scan_base_url = scan_base_url

    async def create(
        self,
        *,
        user_id: int,
        reward_id: int,
        idempotency_key: str | None = None,
        now_utc: datetime | None = None,
    ) -> Outcome[RedemptionCreated]:
        now_utc = now_utc or _utcnow()
        try:
            created = await self._create_with_retry(
                user_id=user_id,
                reward_id=reward_id,
                idempotency_key=idempotency_key,
                now_utc=now_utc,
            )
        except (RedemptionError, LedgerError) as exc:
            failure = failure_from_error(exc)
            await self._emit(
                action="redemption_create",
                failure=failure,
                entity_id=None,
                actor_id=str(user_id),
                now_utc=now_utc,
                payload={"reward_id": reward_id},
            )
            return failure
        except StorageError:
            logger.exception("redemption_create_storage_failed", user_id=user_id, reward_id=reward_id)
            return unavailable()

        if not created.idempotent_replay:
            logger.info(
                "redemption_created",
                redemption_id=str(created.redemption_id),
                user_id=user_id,
                reward_id=reward_id,
                points_spent=created.points_spent,
            )
            await self._emit(
                action="redemption_create",
                failure=None,
                entity_id=str(created.redemption_id),
                actor_id=str(user_id),
                now_utc=now_utc,
                payload={
                    "reward_id": reward_id,
                    "points_spent": created.points_spent,
                    "redemption_code": created.redemption_code,
                },
            )
        return Success(created)

    async def _create_with_retry(
        self,
        *,
        user_id: int,
        reward_id: int,
        idempotency_key: str | None,
        now_utc: datetime,
    ) -> RedemptionCreated:
        attempt = 0
        while True:
            try:
                async with self._storage.transaction() as tx:
                    return await self._create_in_tx(
                        tx,
                        user_id=user_id,
                        reward_id=reward_id,
                        idempotency_key=idempotency_key,
                        now_utc=now_utc,
                    )
            except StorageConflictError:
                # A concurrent request with the same idempotency key, or a
                # redemption code collision. The retry replays or regenerates.
                if attempt >= CREATE_CONFLICT_RETRIES:
                    raise
                attempt += 1
                logger.info("redemption_create_conflict_retry", user_id=user_id, attempt=attempt)

    async def _create_in_tx(
        self,
        tx: RewardsTransaction,
        *,
        user_id: int,
        reward_id: int,
        idempotency_key: str | None,
        now_utc: datetime,
    ) -> RedemptionCreated:
        if idempotency_key is not None:
            existing = await tx.get_redemption_by_idempotency_key(idempotency_key)
            if existing is not None:
                if existing.user_id != user_id or existing.reward_id != reward_id:
                    raise RedemptionIdempotencyConflictError
                owner = await tx.get_user(user_id)
                return RedemptionCreated(
                    redemption_id=existing.id,
                    redemption_code=existing.redemption_code,
                    reward_id=existing.reward_id,
                    points_spent=existing.points_spent,
                    expires_at=existing.expires_at,
                    points_balance=owner.points_balance if owner is not None else 0,
                    idempotent_replay=True,
                )

        user = await tx.get_user(user_id)
        if user is None:
            raise RedemptionUserNotFoundError
        ensure_user_can_redeem(user)
        reward = ensure_reward_redeemable(await tx.get_reward(reward_id), now_utc=now_utc)
        ensure_balance_covers(user, reward)

        redemption = await tx.add_redemption(
            Redemption(
                id=uuid4(),
                user_id=user.id,
                reward_id=reward.id,
                points_spent=reward.point_cost,
                redemption_code=generate_redemption_code(),
                status=RedemptionStatus.PENDING.value,
                idempotency_key=idempotency_key,
                created_at=now_utc,
                expires_at=now_utc + self._redemption_ttl,
                updated_at=now_utc,
            )
        )
        posting = await PointLedger.debit(
            tx,
            user_id=user.id,
            amount=reward.point_cost,
            reference=debit_reference(redemption.id),
            now_utc=now_utc,
            redemption_id=redemption.id,
            description=f"Redeemed: {reward.name}",
        )
        if not await tx.take_reward_stock(reward_id=reward.id, now_utc=now_utc):
            raise RewardOutOfStockError

        return RedemptionCreated(
            redemption_id=redemption.id,
            redemption_code=redemption.redemption_code,
            reward_id=reward.id,
            points_spent=redemption.points_spent,
            expires_at=redemption.expires_at,
            points_balance=posting.balance_after,
            idempotent_replay=False,
        )

    async def issue_token(
        self,
        *,
        redemption_id: UUID,
        user_id: int | None = None,
        now_utc: datetime | None = None,
    ) -> Outcome[IssuedToken]:
        now_utc = now_utc or _utcnow()
        try:
            async with self._storage.transaction() as tx:
                redemption = await tx.get_redemption(redemption_id)
                if redemption is None or (user_id is not None and redemption.user_id != user_id):
                    raise RedemptionNotFoundError
                ensure_pending_and_current(redemption, now_utc=now_utc)
        except RedemptionOverdueError as exc:
            return await self._expire_and_fail(exc, now_utc=now_utc)
        except RedemptionError as exc:
            return failure_from_error(exc)
        except StorageError:
            logger.exception("redemption_token_storage_failed", redemption_id=str(redemption_id))
            return unavailable()

        issued_at = truncate_to_token_precision(now_utc)
        token = self._tokens.sign(redemption_id, issued_at)
        return Success(
            IssuedToken(
                redemption_id=redemption_id,
                token=token,
                scan_url=self.build_scan_url(token),
                issued_at=issued_at,
                token_expires_at=self._tokens.expires_at(issued_at),
            )
        )

    def build_scan_url(self, token: str) -> str:
        if not self._scan_base_url:
            return token
        separator = "&" if "?" in self._scan_base_url else "?"
        return f"{self._scan_base_url}{separator}{urlencode({'qr': token})}"

    async def verify(
        self,
        *,
        redemption_id: UUID,
        verified_by: str | None = None,
        channel: VerificationChannel = VerificationChannel.MANUAL,
        now_utc: datetime | None = None,
    ) -> Outcome[RedemptionReceipt]:
        now_utc = now_utc or _utcnow()
        audit_payload = {"channel": channel.value}
        try:
            async with self._storage.transaction() as tx:
                receipt = await self._verify_in_tx(
                    tx,
                    redemption_id=redemption_id,
                    verified_by=verified_by,
                    now_utc=now_utc,
                )
        except RedemptionOverdueError as exc:
            failure = await self._expire_and_fail(exc, now_utc=now_utc)
        except RedemptionError as exc:
            failure = failure_from_error(exc)
        except StorageError:
            logger.exception("redemption_verify_storage_failed", redemption_id=str(redemption_id))
            return unavailable()
        else:
            logger.info(
                "redemption_verified",
                redemption_id=str(redemption_id),
                verified_by=verified_by,
                channel=channel.value,
            )
            await self._emit(
                action="redemption_verify",
                failure=None,
                entity_id=str(redemption_id),
                actor_id=verified_by,
                now_utc=now_utc,
                payload={
                    **audit_payload,
                    "user_id": receipt.user_id,
                    "reward_id": receipt.reward_id,
                    "points_spent": receipt.points_spent,
                },
            )
            return Success(receipt)

        await self._emit(
            action="redemption_verify",
            failure=failure,
            entity_id=str(redemption_id),
            actor_id=verified_by,
            now_utc=now_utc,
            payload=audit_payload,
        )
        return failure

    async def _verify_in_tx(
        self,
        tx: RewardsTransaction,
        *,
        redemption_id: UUID,
        verified_by: str | None,
        now_utc: datetime,
    ) -> RedemptionReceipt:
        redemption = await tx.get_redemption(redemption_id)
        if redemption is None:
            raise RedemptionNotFoundError
        ensure_pending_and_current(redemption, now_utc=now_utc)

        transitioned = await tx.transition_redemption(
            redemption_id=redemption.id,
            from_status=RedemptionStatus.PENDING.value,
            to_status=RedemptionStatus.VERIFIED.value,
            now_utc=now_utc,
            require_unexpired=True,
            verified_by=verified_by,
        )
        current = await tx.get_redemption(redemption.id)
        if current is None:
            raise RedemptionNotFoundError
        if not transitioned:
            # Lost the compare-and-set: report whatever the winner left behind.
            ensure_pending_and_current(current, now_utc=now_utc)
            raise RedemptionInvalidStateError(current_status=current.status)

        user = await tx.get_user(current.user_id)
        reward = await tx.get_reward(current.reward_id)
        return RedemptionReceipt(
            redemption_id=current.id,
            redemption_code=current.redemption_code,
            user_id=current.user_id,
            user_display_name=user.display_name if user is not None else None,
            reward_id=current.reward_id,
            reward_name=reward.name if reward is not None else None,
            points_spent=current.points_spent,
            verified_at=current.verified_at,
            verified_by=current.verified_by,
        )

    async def cancel(
        self,
        *,
        redemption_id: UUID,
        actor_id: str | None = None,
        now_utc: datetime | None = None,
    ) -> Outcome[CancellationResult]:
        now_utc = now_utc or _utcnow()
        try:
            async with self._storage.transaction() as tx:
                result = await self._cancel_in_tx(tx, redemption_id=redemption_id, now_utc=now_utc)
        except RedemptionOverdueError as exc:
            failure = await self._expire_and_fail(exc, now_utc=now_utc)
        except (RedemptionError, LedgerError) as exc:
            failure = failure_from_error(exc)
        except StorageError:
            logger.exception("redemption_cancel_storage_failed", redemption_id=str(redemption_id))
            return unavailable()
        else:
            logger.info(
                "redemption_cancelled",
                redemption_id=str(redemption_id),
                refunded_points=result.refunded_points,
                stock_restored=result.stock_restored,
            )
            await self._emit(
                action="redemption_cancel",
                failure=None,
                entity_id=str(redemption_id),
                actor_id=actor_id,
                now_utc=now_utc,
                payload={"refunded_points": result.refunded_points},
            )
            return Success(result)

        await self._emit(
            action="redemption_cancel",
            failure=failure,
            entity_id=str(redemption_id),
            actor_id=actor_id,
            now_utc=now_utc,
        )
        return failure

    async def _cancel_in_tx(
        self,
        tx: RewardsTransaction,
        *,
        redemption_id: UUID,
        now_utc: datetime,
    ) -> CancellationResult:
        redemption = await tx.get_redemption(redemption_id)
        if redemption is None:
            raise RedemptionNotFoundError
        if redemption.status == RedemptionStatus.PENDING.value and is_overdue(redemption, now_utc=now_utc):
            raise RedemptionOverdueError(redemption_id=redemption.id, expires_at=redemption.expires_at)
        if not can_transition(RedemptionStatus(redemption.status), RedemptionStatus.CANCELLED):
            raise RedemptionInvalidStateError(current_status=redemption.status)

        transitioned = await tx.transition_redemption(
            redemption_id=redemption.id,
            from_status=RedemptionStatus.PENDING.value,
            to_status=RedemptionStatus.CANCELLED.value,
            now_utc=now_utc,
            require_unexpired=True,
        )
        if not transitioned:
            current = await tx.get_redemption(redemption.id)
            if current is not None and current.status == RedemptionStatus.PENDING.value:
                raise RedemptionOverdueError(redemption_id=current.id, expires_at=current.expires_at)
            raise RedemptionInvalidStateError(
                current_status=current.status if current is not None else None
            )

        posting = await PointLedger.credit(
            tx,
            user_id=redemption.user_id,
            amount=redemption.points_spent,
            reference=refund_reference(redemption.id),
            now_utc=now_utc,
            transaction_type=TransactionType.REFUND_CREDIT,
            redemption_id=redemption.id,
            description="Refund for cancelled redemption",
        )
        stock_restored = await tx.return_reward_stock(reward_id=redemption.reward_id, now_utc=now_utc)
        return CancellationResult(
            redemption_id=redemption.id,
            refunded_points=redemption.points_spent,
            points_balance=posting.balance_after,
            stock_restored=stock_restored,
        )

    async def expire_overdue(
        self,
        *,
        now_utc: datetime | None = None,
        batch_size: int = EXPIRY_SWEEP_BATCH_SIZE,
    ) -> int:
        now_utc = now_utc or _utcnow()
        async with self._storage.transaction() as tx:
            expired_ids = await tx.expire_overdue_redemptions(now_utc=now_utc, limit=batch_size)

        for expired_id in expired_ids:
            await self._audit.emit(
                AuditRecord(
                    action="redemption_expire",
                    outcome="expired",
                    entity_type=ENTITY_TYPE,
                    entity_id=str(expired_id),
                    occurred_at=now_utc,
                    payload={"source": "sweep"},
                )
            )
        return len(expired_ids)

    async def list_redemptions(
        self,
        *,
        status: RedemptionStatus | None = None,
        user_id: int | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Outcome[RedemptionPage]:
        """Newest first. Oversized pages are clamped to MAX_PAGE_SIZE rather than rejected."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        status_filter = status.value if status is not None else None
        try:
            async with self._storage.transaction() as tx:
                rows, total = await tx.list_redemptions(
                    status=status_filter,
                    user_id=user_id,
                    limit=limit,
                    offset=(page - 1) * limit,
                )
        except StorageError:
            logger.exception("redemption_list_storage_failed", status=status_filter, user_id=user_id)
            return unavailable()
        return Success(
            RedemptionPage(
                items=[_summary(row) for row in rows],
                page=page,
                limit=limit,
                total=total,
            )
        )

    async def _expire_and_fail(self, exc: RedemptionOverdueError, *, now_utc: datetime) -> Failure:
        """Persists the lazy pending->expired flip in its own unit of work."""
        try:
            async with self._storage.transaction() as tx:
                flipped = await tx.transition_redemption(
                    redemption_id=exc.redemption_id,
                    from_status=RedemptionStatus.PENDING.value,
                    to_status=RedemptionStatus.EXPIRED.value,
                    now_utc=now_utc,
                    require_unexpired=False,
                )
                if not flipped:
                    current = await tx.get_redemption(exc.redemption_id)
                    if current is not None and current.status != RedemptionStatus.EXPIRED.value:
                        return failure_from_error(terminal_state_error(current))
        except StorageError:
            logger.exception("redemption_expire_flip_failed", redemption_id=str(exc.redemption_id))
        else:
            if flipped:
                logger.info("redemption_expired_on_access", redemption_id=str(exc.redemption_id))
        return failure_from_error(exc)

    async def _emit(
        self,
        *,
        action: str,
        failure: Failure | None,
        entity_id: str | None,
        actor_id: str | None,
        now_utc: datetime,
        payload: dict[str, Any] | None = None,
    ) -> None:
        record_payload = dict(payload or {})
        if failure is not None:
            record_payload["error_kind"] = failure.kind.value
            record_payload.update(_jsonable(failure.details))
        await self._audit.emit(
            AuditRecord(
                action=action,
                outcome="success" if failure is None else failure.kind.value,
                entity_type=ENTITY_TYPE,
                entity_id=entity_id,
                actor_id=actor_id,
                security_flagged=failure.security_flagged if failure is not None else False,
                payload=record_payload,
                occurred_at=now_utc,
            )
        )
