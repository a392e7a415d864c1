from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from tests.api.rewards_api_support import AUTH_HEADERS, RewardsApi


def _seed(api: RewardsApi, *, points: int = 100, stock: int | None = 3) -> None:
    api.storage.add_user(1, points=points, display_name="Ada")
    api.storage.add_reward(10, point_cost=40, remaining_quantity=stock, name="Coffee")


def _create(api: RewardsApi, **extra) -> dict:
    response = api.client.post(
        "/internal/redemptions",
        json={"user_id": 1, "reward_id": 10, **extra},
        headers=AUTH_HEADERS,
    )
    assert response.status_code == 200, response.text
    return response.json()


def test_create_redemption_returns_code_and_balance(rewards_api: RewardsApi) -> None:
    _seed(rewards_api)

    body = _create(rewards_api, idempotency_key="kiosk-1:req-1")

    assert body["code"].startswith("RDM-")
    assert body["points_spent"] == 40
    assert body["points_balance"] == 60
    assert body["idempotent_replay"] is False
    assert rewards_api.storage.rewards[10].remaining_quantity == 2

    replay = _create(rewards_api, idempotency_key="kiosk-1:req-1")
    assert replay["redemption_id"] == body["redemption_id"]
    assert replay["idempotent_replay"] is True


def test_create_redemption_maps_domain_failures(rewards_api: RewardsApi) -> None:
    _seed(rewards_api, points=10, stock=0)
    rewards_api.storage.add_reward(11, point_cost=40)

    out_of_stock = rewards_api.client.post(
        "/internal/redemptions",
        json={"user_id": 1, "reward_id": 10},
        headers=AUTH_HEADERS,
    )
    insufficient = rewards_api.client.post(
        "/internal/redemptions",
        json={"user_id": 1, "reward_id": 11},
        headers=AUTH_HEADERS,
    )
    missing_user = rewards_api.client.post(
        "/internal/redemptions",
        json={"user_id": 2, "reward_id": 11},
        headers=AUTH_HEADERS,
    )

    assert out_of_stock.status_code == 409
    assert out_of_stock.json()["detail"]["code"] == "E_OUT_OF_STOCK"
    assert insufficient.status_code == 422
    assert insufficient.json()["detail"] == {
        "code": "E_INSUFFICIENT_BALANCE",
        "message": "Insufficient points",
        "details": {"required": 40, "available": 10},
    }
    assert missing_user.status_code == 404


def test_create_redemption_validates_payload(rewards_api: RewardsApi) -> None:
    response = rewards_api.client.post(
        "/internal/redemptions",
        json={"user_id": 0, "reward_id": 10},
        headers=AUTH_HEADERS,
    )

    assert response.status_code == 422


def test_issued_token_scan_verifies_once(rewards_api: RewardsApi) -> None:
    _seed(rewards_api)
    created = _create(rewards_api)

    issued = rewards_api.client.post(
        f"/internal/redemptions/{created['redemption_id']}/token",
        json={"user_id": 1},
        headers=AUTH_HEADERS,
    )
    assert issued.status_code == 200
    scan_url = issued.json()["scan_url"]
    assert scan_url.startswith("https://rewards.campus.test/scan?qr=")

    first = rewards_api.client.post(
        "/internal/redemptions/verify",
        json={"input": scan_url, "verified_by": "till-1", "terminal_id": "canteen-1"},
        headers=AUTH_HEADERS,
    )
    second = rewards_api.client.post(
        "/internal/redemptions/verify",
        json={"input": created["code"], "verified_by": "till-2"},
        headers=AUTH_HEADERS,
    )

    assert first.status_code == 200
    first_body = first.json()
    assert first_body["success"] is True
    assert first_body["security_validated"] is True
    assert first_body["redemption"]["code"] == created["code"]
    assert first_body["redemption"]["user"] == "Ada"
    assert first_body["redemption"]["reward"] == "Coffee"

    assert second.status_code == 409
    second_body = second.json()
    assert second_body["success"] is False
    assert second_body["error_code"] == "E_ALREADY_VERIFIED"
    assert second_body["verified_at"] == first_body["verified_at"]


def test_forged_token_is_rejected_as_security_failure(rewards_api: RewardsApi) -> None:
    _seed(rewards_api)
    created = _create(rewards_api)
    issued_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    token = rewards_api.components.tokens.sign(uuid4(), issued_at)
    payload_segment, _ = token.split(".")
    _, other_mac = rewards_api.components.tokens.sign(uuid4(), issued_at).split(".")

    response = rewards_api.client.post(
        "/internal/redemptions/verify",
        json={"input": f"{payload_segment}.{other_mac}"},
        headers=AUTH_HEADERS,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["security_flagged"] is True
    assert body["error_code"] == "E_SIGNATURE_INVALID"
    assert rewards_api.storage.redemptions[UUID(created["redemption_id"])].status == "pending"
    assert len(rewards_api.audit.flagged()) == 1


def test_unknown_manual_entry_is_not_found(rewards_api: RewardsApi) -> None:
    response = rewards_api.client.post(
        "/internal/redemptions/verify",
        json={"input": "RDM-ZZZZZZZZ"},
        headers=AUTH_HEADERS,
    )

    assert response.status_code == 404
    assert response.json()["error_code"] == "E_NOT_FOUND"


def test_cancel_refunds_and_second_cancel_conflicts(rewards_api: RewardsApi) -> None:
    _seed(rewards_api)
    created = _create(rewards_api)

    cancelled = rewards_api.client.post(
        "/internal/redemptions/cancel",
        json={"redemption_id": created["redemption_id"], "actor_id": "desk"},
        headers=AUTH_HEADERS,
    )
    again = rewards_api.client.post(
        "/internal/redemptions/cancel",
        json={"redemption_id": created["redemption_id"]},
        headers=AUTH_HEADERS,
    )

    assert cancelled.status_code == 200
    assert cancelled.json()["refunded_points"] == 40
    assert cancelled.json()["points_balance"] == 100
    assert cancelled.json()["stock_restored"] is True
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "E_INVALID_STATE"


def test_token_for_cancelled_redemption_is_gone(rewards_api: RewardsApi) -> None:
    _seed(rewards_api)
    created = _create(rewards_api)
    rewards_api.client.post(
        "/internal/redemptions/cancel",
        json={"redemption_id": created["redemption_id"]},
        headers=AUTH_HEADERS,
    )

    response = rewards_api.client.post(
        f"/internal/redemptions/{created['redemption_id']}/token",
        json={"user_id": 1},
        headers=AUTH_HEADERS,
    )

    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "E_CANCELLED"


def test_list_redemptions_filters_and_pages(rewards_api: RewardsApi) -> None:
    _seed(rewards_api, points=200, stock=None)
    rewards_api.storage.add_user(2, points=100, display_name="Grace")
    first = _create(rewards_api)
    second = _create(rewards_api)
    rewards_api.client.post(
        "/internal/redemptions",
        json={"user_id": 2, "reward_id": 10},
        headers=AUTH_HEADERS,
    )
    cancelled = rewards_api.client.post(
        "/internal/redemptions/cancel",
        json={"redemption_id": first["redemption_id"]},
        headers=AUTH_HEADERS,
    )
    assert cancelled.status_code == 200

    everything = rewards_api.client.get("/internal/redemptions", headers=AUTH_HEADERS)
    own_pending = rewards_api.client.get(
        "/internal/redemptions",
        params={"user_id": 1, "status": "PENDING"},
        headers=AUTH_HEADERS,
    )
    paged = rewards_api.client.get(
        "/internal/redemptions",
        params={"page": 2, "limit": 2},
        headers=AUTH_HEADERS,
    )

    assert everything.status_code == 200
    assert everything.json()["pagination"] == {"page": 1, "limit": 20, "total": 3, "total_pages": 1}
    assert {item["user"] for item in everything.json()["redemptions"]} == {"Ada", "Grace"}
    assert own_pending.status_code == 200
    own_items = own_pending.json()["redemptions"]
    assert [item["id"] for item in own_items] == [second["redemption_id"]]
    assert own_items[0]["reward"] == "Coffee"
    assert own_items[0]["status"] == "pending"
    assert paged.json()["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
    assert len(paged.json()["redemptions"]) == 1


def test_list_redemptions_caps_limit_and_rejects_unknown_status(rewards_api: RewardsApi) -> None:
    capped = rewards_api.client.get(
        "/internal/redemptions",
        params={"limit": 500},
        headers=AUTH_HEADERS,
    )
    unknown_status = rewards_api.client.get(
        "/internal/redemptions",
        params={"status": "refunded"},
        headers=AUTH_HEADERS,
    )
    bad_page = rewards_api.client.get(
        "/internal/redemptions",
        params={"page": 0},
        headers=AUTH_HEADERS,
    )

    assert capped.status_code == 200
    assert capped.json()["pagination"]["limit"] == 100
    assert capped.json()["redemptions"] == []
    assert unknown_status.status_code == 422
    assert unknown_status.json() == {"detail": {"code": "E_REDEMPTION_STATUS_INVALID"}}
    assert bad_page.status_code == 422


def test_list_redemptions_storage_failure_is_503(rewards_api: RewardsApi) -> None:
    rewards_api.storage.fail_on.add("list_redemptions")

    response = rewards_api.client.get("/internal/redemptions", headers=AUTH_HEADERS)

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "E_UNAVAILABLE"
