from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from campus_rewards.api.routes import internal_points, internal_redemptions, internal_rewards_helpers
from campus_rewards.core.config import Settings
from campus_rewards.main import app
from campus_rewards.services.wiring import build_components
from tests.api.rewards_api_support import INTERNAL_TOKEN, RewardsApi
from tests.fakes import InMemoryRewardsStorage, RecordingAuditSink


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        INTERNAL_API_TOKEN=INTERNAL_TOKEN,
        INTERNAL_API_ALLOWLIST="127.0.0.1/32",
        SCAN_BASE_URL="https://rewards.campus.test/scan",
        CAMPUS_TIMEZONE="Asia/Manila",
    )


@pytest.fixture
def rewards_api(monkeypatch, api_settings: Settings) -> RewardsApi:
    storage = InMemoryRewardsStorage()
    audit = RecordingAuditSink()
    components = build_components(settings=api_settings, storage=storage, audit=audit)

    monkeypatch.setattr(internal_rewards_helpers, "get_settings", lambda: api_settings)
    # TestClient reports its peer as "testclient", which is not an address.
    monkeypatch.setattr(internal_rewards_helpers, "extract_client_ip", lambda request, **_: "127.0.0.1")
    monkeypatch.setattr(internal_redemptions, "get_components", lambda: components)
    monkeypatch.setattr(internal_points, "get_components", lambda: components)

    return RewardsApi(client=TestClient(app), storage=storage, audit=audit, components=components)
