from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from sqlalchemy import func, select

from campus_rewards.db.models.redemptions import Redemption
from campus_rewards.db.repo import AuditEventsRepo
from campus_rewards.db.session import SessionLocal
from campus_rewards.economy.redemptions.results import Success
from tests.integration.rewards_fixtures import UTC, _build_services, _create_reward, _create_user


@pytest.mark.asyncio
async def test_parallel_scans_of_one_token_verify_exactly_once() -> None:
    await _create_user(1, points=100)
    await _create_reward(10, point_cost=40, remaining_quantity=5)
    _, service, gateway = _build_services()
    now_utc = datetime.now(UTC)

    created = await service.create(user_id=1, reward_id=10, now_utc=now_utc)
    assert isinstance(created, Success)
    issued = await service.issue_token(redemption_id=created.value.redemption_id, now_utc=now_utc)
    assert isinstance(issued, Success)

    responses = await asyncio.gather(
        *(
            gateway.verify_scan(issued.value.scan_url, verified_by=f"till-{index}", now_utc=now_utc)
            for index in range(8)
        )
    )

    losers = [response for response in responses if not response.success]
    assert sum(1 for response in responses if response.success) == 1
    assert len(losers) == 7
    assert {response.error_code for response in losers} == {"E_ALREADY_VERIFIED"}

    async with SessionLocal() as session:
        redemption = await session.get(Redemption, created.value.redemption_id)
        events = await AuditEventsRepo.list_for_entity(
            session,
            entity_type="reward_redemption",
            entity_id=str(created.value.redemption_id),
        )
    verify_events = [event for event in events if event.action == "redemption_verify"]

    assert redemption is not None
    assert redemption.status == "verified"
    assert redemption.verified_by is not None
    assert all(response.verified_at == redemption.verified_at for response in losers)
    assert len(verify_events) == 8
    assert [event.outcome for event in verify_events].count("success") == 1


@pytest.mark.asyncio
async def test_parallel_creates_never_oversell_stock() -> None:
    for user_id in range(1, 7):
        await _create_user(user_id, points=50)
    await _create_reward(10, point_cost=30, remaining_quantity=2)
    _, service, _ = _build_services()
    now_utc = datetime.now(UTC)

    outcomes = await asyncio.gather(
        *(service.create(user_id=user_id, reward_id=10, now_utc=now_utc) for user_id in range(1, 7))
    )

    assert sum(1 for outcome in outcomes if isinstance(outcome, Success)) == 2
    async with SessionLocal() as session:
        redemptions = await session.scalar(select(func.count()).select_from(Redemption))
    assert redemptions == 2
