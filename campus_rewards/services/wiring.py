from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from campus_rewards.core.config import Settings, get_settings
from campus_rewards.db.session import SessionLocal
from campus_rewards.db.storage import RewardsStorage, SqlRewardsStorage
from campus_rewards.economy.redemptions.gateway import VerificationGateway
from campus_rewards.economy.redemptions.service import RedemptionService
from campus_rewards.services.audit import AuditSink, StorageAuditSink
from campus_rewards.services.secure_tokens import SecureTokenService


@dataclass(frozen=True, slots=True)
class RewardsComponents:
    settings: Settings
    storage: RewardsStorage
    tokens: SecureTokenService
    audit: AuditSink
    redemptions: RedemptionService
    gateway: VerificationGateway


def build_components(
    *,
    settings: Settings,
    storage: RewardsStorage,
    audit: AuditSink | None = None,
) -> RewardsComponents:
    tokens = SecureTokenService.from_settings(settings)
    sink = audit if audit is not None else StorageAuditSink(storage)
    redemptions = RedemptionService(
        storage=storage,
        tokens=tokens,
        audit=sink,
        redemption_ttl=timedelta(days=settings.redemption_ttl_days),
        scan_base_url=settings.scan_base_url,
    )
    gateway = VerificationGateway(
        tokens=tokens,
        redemptions=redemptions,
        storage=storage,
        audit=sink,
    )
    return RewardsComponents(
        settings=settings,
        storage=storage,
        tokens=tokens,
        audit=sink,
        redemptions=redemptions,
        gateway=gateway,
    )


@lru_cache(maxsize=1)
def get_components() -> RewardsComponents:
    return build_components(settings=get_settings(), storage=SqlRewardsStorage(SessionLocal))
