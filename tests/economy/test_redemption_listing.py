from __future__ import annotations

from uuid import UUID

import pytest

from campus_rewards.economy.redemptions.errors import RedemptionErrorKind
from campus_rewards.economy.redemptions.results import Failure, Success
from campus_rewards.economy.redemptions.service import MAX_PAGE_SIZE, RedemptionService
from campus_rewards.economy.redemptions.types import RedemptionPage, RedemptionStatus
from tests.fakes import InMemoryRewardsStorage, at


async def _seed_history(storage: InMemoryRewardsStorage, service: RedemptionService) -> list[UUID]:
    storage.add_user(1, points=500, display_name="Ada")
    storage.add_user(2, points=500, display_name="Grace")
    storage.add_reward(10, point_cost=20, name="Coffee")
    created = []
    for hour, user_id in enumerate([1, 2, 1, 1, 2]):
        outcome = await service.create(user_id=user_id, reward_id=10, now_utc=at(hour))
        assert isinstance(outcome, Success)
        created.append(outcome.value.redemption_id)
    return created


async def _page(service: RedemptionService, **filters) -> RedemptionPage:
    outcome = await service.list_redemptions(**filters)
    assert isinstance(outcome, Success), outcome
    return outcome.value


@pytest.mark.asyncio
async def test_listing_is_newest_first_with_user_and_reward_summaries(
    storage: InMemoryRewardsStorage,
    redemption_service: RedemptionService,
) -> None:
    created = await _seed_history(storage, redemption_service)

    listing = await _page(redemption_service)

    assert [item.redemption_id for item in listing.items] == list(reversed(created))
    assert listing.total == 5
    assert listing.total_pages == 1
    newest = listing.items[0]
    assert newest.user_display_name == "Grace"
    assert newest.reward_name == "Coffee"
    assert newest.reward_category == "food"
    assert newest.status == RedemptionStatus.PENDING
    assert newest.created_at == at(4)


@pytest.mark.asyncio
async def test_listing_filters_by_user_and_status(
    storage: InMemoryRewardsStorage,
    redemption_service: RedemptionService,
) -> None:
    created = await _seed_history(storage, redemption_service)
    verified = await redemption_service.verify(redemption_id=created[0], now_utc=at(6))
    cancelled = await redemption_service.cancel(redemption_id=created[2], now_utc=at(6))
    assert verified.ok and cancelled.ok

    own = await _page(redemption_service, user_id=1)
    own_pending = await _page(redemption_service, user_id=1, status=RedemptionStatus.PENDING)
    all_verified = await _page(redemption_service, status=RedemptionStatus.VERIFIED)

    assert [item.redemption_id for item in own.items] == [created[3], created[2], created[0]]
    assert [item.redemption_id for item in own_pending.items] == [created[3]]
    assert [item.redemption_id for item in all_verified.items] == [created[0]]
    assert all_verified.items[0].verified_at == at(6)


@pytest.mark.asyncio
async def test_listing_pages_through_results(
    storage: InMemoryRewardsStorage,
    redemption_service: RedemptionService,
) -> None:
    created = await _seed_history(storage, redemption_service)

    first = await _page(redemption_service, page=1, limit=2)
    third = await _page(redemption_service, page=3, limit=2)
    beyond = await _page(redemption_service, page=4, limit=2)

    assert [item.redemption_id for item in first.items] == [created[4], created[3]]
    assert [item.redemption_id for item in third.items] == [created[0]]
    assert beyond.items == []
    assert first.total == third.total == beyond.total == 5
    assert first.total_pages == 3


@pytest.mark.asyncio
async def test_listing_clamps_page_and_limit(
    storage: InMemoryRewardsStorage,
    redemption_service: RedemptionService,
) -> None:
    await _seed_history(storage, redemption_service)

    oversized = await _page(redemption_service, limit=MAX_PAGE_SIZE * 10)
    undersized = await _page(redemption_service, page=0, limit=0)

    assert oversized.limit == MAX_PAGE_SIZE
    assert len(oversized.items) == 5
    assert undersized.page == 1
    assert undersized.limit == 1
    assert undersized.total_pages == 5


@pytest.mark.asyncio
async def test_empty_listing_has_no_pages(redemption_service: RedemptionService) -> None:
    listing = await _page(redemption_service, user_id=42)

    assert listing.items == []
    assert listing.total == 0
    assert listing.total_pages == 0


@pytest.mark.asyncio
async def test_listing_storage_failure_is_unavailable(
    storage: InMemoryRewardsStorage,
    redemption_service: RedemptionService,
) -> None:
    storage.fail_on.add("list_redemptions")

    outcome = await redemption_service.list_redemptions()

    assert isinstance(outcome, Failure)
    assert outcome.kind == RedemptionErrorKind.UNAVAILABLE
