from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from campus_rewards.api.routes import internal_rewards_helpers
from campus_rewards.main import app

PROTECTED_ROUTES = [
    ("post", "/internal/redemptions", {"user_id": 1, "reward_id": 1}),
    ("get", "/internal/redemptions", None),
    ("post", "/internal/redemptions/verify", {"input": "RDM-7KQ2M9XA"}),
    ("post", "/internal/redemptions/cancel", {"redemption_id": "6f1c2a8e-4b8d-4c7e-9f0a-1b2c3d4e5f60"}),
    ("post", "/internal/redemptions/6f1c2a8e-4b8d-4c7e-9f0a-1b2c3d4e5f60/token", {"user_id": 1}),
    ("post", "/internal/points/daily-award", {"user_id": 1}),
    ("get", "/internal/points/1/reconciliation", None),
]


def _patch_settings(monkeypatch, *, allowlist: str) -> None:
    monkeypatch.setattr(
        internal_rewards_helpers,
        "get_settings",
        lambda: SimpleNamespace(
            internal_api_token="internal-secret",
            internal_api_allowlist=allowlist,
            internal_api_trusted_proxies="",
        ),
    )


@pytest.mark.parametrize(("method", "path", "body"), PROTECTED_ROUTES)
def test_internal_rewards_rejects_missing_token(monkeypatch, method: str, path: str, body) -> None:
    _patch_settings(monkeypatch, allowlist="127.0.0.1/32")
    monkeypatch.setattr(internal_rewards_helpers, "extract_client_ip", lambda request, **_: "127.0.0.1")

    client = TestClient(app)
    response = client.request(method, path, json=body)

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_rewards_rejects_wrong_token(monkeypatch) -> None:
    _patch_settings(monkeypatch, allowlist="127.0.0.1/32")
    monkeypatch.setattr(internal_rewards_helpers, "extract_client_ip", lambda request, **_: "127.0.0.1")

    client = TestClient(app)
    response = client.post(
        "/internal/redemptions/verify",
        json={"input": "RDM-7KQ2M9XA"},
        headers={"X-Internal-Token": "not-the-secret"},
    )

    assert response.status_code == 403


def test_internal_rewards_rejects_disallowed_ip(monkeypatch) -> None:
    _patch_settings(monkeypatch, allowlist="192.168.0.0/16")
    monkeypatch.setattr(internal_rewards_helpers, "extract_client_ip", lambda request, **_: "10.0.0.25")

    client = TestClient(app)
    response = client.post(
        "/internal/redemptions/verify",
        json={"input": "RDM-7KQ2M9XA"},
        headers={"X-Internal-Token": "internal-secret", "X-Forwarded-For": "192.168.1.5"},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_spoofed_forwarded_for_is_ignored_without_trusted_proxy(monkeypatch) -> None:
    _patch_settings(monkeypatch, allowlist="192.168.0.0/16")

    client = TestClient(app)
    response = client.post(
        "/internal/redemptions/verify",
        json={"input": "RDM-7KQ2M9XA"},
        headers={"X-Internal-Token": "internal-secret", "X-Forwarded-For": "192.168.1.5"},
    )

    assert response.status_code == 403
