from __future__ import annotations

from datetime import timedelta

import pytest

from campus_rewards.economy.redemptions.gateway import VerificationGateway
from campus_rewards.economy.redemptions.service import RedemptionService
from campus_rewards.services.secure_tokens import SecureTokenService
from tests.fakes import InMemoryRewardsStorage, RecordingAuditSink

TEST_TOKEN_SECRET = "economy-tests-secret-0123456789abcdef"


@pytest.fixture
def storage() -> InMemoryRewardsStorage:
    return InMemoryRewardsStorage()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def tokens() -> SecureTokenService:
    return SecureTokenService(TEST_TOKEN_SECRET, ttl=timedelta(minutes=5))


@pytest.fixture
def redemption_service(
    storage: InMemoryRewardsStorage,
    tokens: SecureTokenService,
    audit_sink: RecordingAuditSink,
) -> RedemptionService:
    return RedemptionService(
        storage=storage,
        tokens=tokens,
        audit=audit_sink,
        redemption_ttl=timedelta(days=7),
        scan_base_url="https://rewards.campus.test/scan",
    )


@pytest.fixture
def gateway(
    storage: InMemoryRewardsStorage,
    tokens: SecureTokenService,
    audit_sink: RecordingAuditSink,
    redemption_service: RedemptionService,
) -> VerificationGateway:
    return VerificationGateway(
        tokens=tokens,
        redemptions=redemption_service,
        storage=storage,
        audit=audit_sink,
    )
