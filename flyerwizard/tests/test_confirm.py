"""
Commit workflow tests — confirm_wizard against SQLite + FakeRedis.

Sessions are started through WizardService and the request transaction is committed
before confirming, as it would be at the end of the start request.
"""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import func, select, update

from flyerwizard import cache
from flyerwizard.errors import (
    ConflictError,
    IdempotencyConflictError,
    SessionExpiredError,
    SessionNotActiveError,
    SessionNotFoundError,
    StaleSuggestionsError,
)
from flyerwizard.models.flyer import FlyerORM
from flyerwizard.models.offer_snapshot import SNAPSHOT_REASON_WIZARD_MIGRATION, OfferSnapshotORM
from flyerwizard.models.product import ProductORM
from flyerwizard.models.shopping_list import ShoppingListItemORM, ShoppingListORM
from flyerwizard.search.service import ProductSearchService
from flyerwizard.tests.factories import OTHER_USER_ID, USER_ID
from flyerwizard.time_utils import utcnow
from flyerwizard.wizard.confirm import confirm_wizard
from flyerwizard.wizard.schemas import DecisionAction, WizardStatus
from flyerwizard.wizard.service import WizardService


@pytest.fixture
def service(fake_redis, session_factory) -> WizardService:
    return WizardService(fake_redis, ProductSearchService(session_factory), max_stores=2)


async def _start(service, db, list_id: int, user_id: int = USER_ID):
    session = await service.start_wizard(db, list_id, user_id)
    await db.commit()
    return session


async def _snapshot_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(OfferSnapshotORM))).scalar_one()


async def _item(session_factory, item_id: int):
    async with session_factory() as session:
        return await session.get(ShoppingListItemORM, item_id)


async def _expire(session_factory, model, row_id: int) -> None:
    async with session_factory() as session:
        await session.execute(
            update(model).where(model.id == row_id).values(valid_to=utcnow() - timedelta(hours=1))
        )
        await session.commit()


# ===========================================================================
# TEST GROUP 1: successful commit
# ===========================================================================

@pytest.mark.asyncio
async def test_confirm_applies_accepted_suggestions(service, db, catalog, fake_redis, session_factory) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])

    result = await confirm_wizard(db, fake_redis, session.id)

    assert result.items_updated == 2
    assert result.items_skipped == 1
    assert result.items_deleted == 0
    assert result.store_count == 1
    assert result.total_estimated_price == pytest.approx(2.49)
    assert len(result.offer_snapshot_ids) == 2
    assert result.summary == "2 replaced and 1 kept for manual search"

    milk = await _item(session_factory, catalog.items["milk"])
    assert milk.linked_product_id == catalog.products["milk_maxima"]
    assert milk.store_id == catalog.stores["maxima"]
    assert milk.estimated_price == pytest.approx(1.09)
    assert milk.availability_status == "available"

    coffee = await _item(session_factory, catalog.items["coffee"])
    assert coffee.linked_product_id == catalog.products["coffee_old"]

    async with session_factory() as check:
        snapshots = (await check.execute(select(OfferSnapshotORM))).scalars().all()
        shopping_list = await check.get(ShoppingListORM, catalog.list_id)
    assert {s.flyer_product_id for s in snapshots} == {
        catalog.products["milk_maxima"],
        catalog.products["bread_maxima"],
    }
    assert all(s.snapshot_reason == SNAPSHOT_REASON_WIZARD_MIGRATION and not s.estimated for s in snapshots)
    milk_snapshot = next(s for s in snapshots if s.shopping_list_item_id == catalog.items["milk"])
    assert (milk_snapshot.size_value, milk_snapshot.size_unit) == (1.0, "l")
    assert shopping_list.is_locked is False

    assert await cache.get_wizard_session(fake_redis, session.id) is None
    assert await cache.get_list_session(fake_redis, catalog.list_id) is None


@pytest.mark.asyncio
async def test_remove_deletes_item_and_skip_leaves_it(service, db, catalog, fake_redis, session_factory) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.decide_item(session.id, catalog.items["milk"], DecisionAction.REMOVE)
    await service.decide_item(session.id, catalog.items["bread"], DecisionAction.SKIP)

    result = await confirm_wizard(db, fake_redis, session.id)

    assert (result.items_deleted, result.items_skipped, result.items_updated) == (1, 1, 0)
    assert result.offer_snapshot_ids == []
    assert await _item(session_factory, catalog.items["milk"]) is None
    assert await _item(session_factory, catalog.items["bread"]) is not None


# ===========================================================================
# TEST GROUP 2: idempotency
# ===========================================================================

@pytest.mark.asyncio
async def test_same_key_twice_writes_once(service, db, catalog, fake_redis, session_factory) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])

    first = await confirm_wizard(db, fake_redis, session.id, idempotency_key="confirm-1")
    second = await confirm_wizard(db, fake_redis, session.id, idempotency_key="confirm-1")

    assert second == first
    assert await _snapshot_count(session_factory) == 2


@pytest.mark.asyncio
async def test_key_reused_for_other_session_conflicts(service, db, catalog, fake_redis) -> None:
    first = await _start(service, db, catalog.list_id)
    await confirm_wizard(db, fake_redis, first.id, idempotency_key="confirm-1")

    other = await _start(service, db, catalog.other_user_list_id, OTHER_USER_ID)
    with pytest.raises(IdempotencyConflictError):
        await confirm_wizard(db, fake_redis, other.id, idempotency_key="confirm-1")


@pytest.mark.asyncio
async def test_confirm_without_key_after_completion_is_not_found(service, db, catalog, fake_redis) -> None:
    session = await _start(service, db, catalog.list_id)
    await confirm_wizard(db, fake_redis, session.id)

    with pytest.raises(SessionNotFoundError):
        await confirm_wizard(db, fake_redis, session.id)


# ===========================================================================
# TEST GROUP 3: revalidation and atomicity
# ===========================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("expire", ["product", "flyer"])
async def test_stale_offer_blocks_every_write(
    service, db, catalog, fake_redis, session_factory, expire
) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])
    await service.decide_item(session.id, catalog.items["coffee"], DecisionAction.REMOVE)
    if expire == "product":
        await _expire(session_factory, ProductORM, catalog.products["bread_maxima"])
    else:
        await _expire(session_factory, FlyerORM, catalog.flyers["maxima"])

    with pytest.raises(StaleSuggestionsError) as exc_info:
        await confirm_wizard(db, fake_redis, session.id)

    assert catalog.products["bread_maxima"] in exc_info.value.stale_product_ids
    assert await _snapshot_count(session_factory) == 0
    assert await _item(session_factory, catalog.items["coffee"]) is not None
    milk = await _item(session_factory, catalog.items["milk"])
    assert milk.linked_product_id == catalog.products["milk_old"]

    still_there = await cache.get_wizard_session(fake_redis, session.id)
    assert still_there.status == WizardStatus.ACTIVE
    assert len(still_there.decisions) == 3


@pytest.mark.asyncio
async def test_deleted_offer_is_stale(service, db, catalog, fake_redis, session_factory) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.decide_item(
        session.id, catalog.items["milk"], DecisionAction.REPLACE, catalog.products["milk_iki"]
    )
    async with session_factory() as other:
        await other.delete(await other.get(ProductORM, catalog.products["milk_iki"]))
        await other.commit()

    with pytest.raises(StaleSuggestionsError):
        await confirm_wizard(db, fake_redis, session.id)


@pytest.mark.asyncio
async def test_missing_item_rolls_back(service, db, catalog, fake_redis, session_factory) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.decide_item(session.id, catalog.items["milk"], DecisionAction.REPLACE, catalog.products["milk_iki"])
    await service.decide_item(session.id, catalog.items["bread"], DecisionAction.REMOVE)
    async with session_factory() as other:
        await other.delete(await other.get(ShoppingListItemORM, catalog.items["bread"]))
        await other.commit()

    with pytest.raises(ConflictError):
        await confirm_wizard(db, fake_redis, session.id)

    assert await _snapshot_count(session_factory) == 0
    milk = await _item(session_factory, catalog.items["milk"])
    assert milk.linked_product_id == catalog.products["milk_old"]
    assert (await cache.get_wizard_session(fake_redis, session.id)) is not None


# ===========================================================================
# TEST GROUP 4: session state
# ===========================================================================

@pytest.mark.asyncio
async def test_unknown_session(db, fake_redis) -> None:
    with pytest.raises(SessionNotFoundError):
        await confirm_wizard(db, fake_redis, "missing")


@pytest.mark.asyncio
async def test_expired_session_is_deleted(service, db, catalog, fake_redis) -> None:
    session = await _start(service, db, catalog.list_id)
    session.expires_at = utcnow() - timedelta(seconds=1)
    await fake_redis.setex(cache.make_session_key(session.id), 60, session.model_dump_json())

    with pytest.raises(SessionExpiredError):
        await confirm_wizard(db, fake_redis, session.id)
    assert cache.make_session_key(session.id) not in fake_redis.store


@pytest.mark.asyncio
async def test_completed_session_is_not_active(service, db, catalog, fake_redis) -> None:
    session = await _start(service, db, catalog.list_id)
    session.status = WizardStatus.COMPLETED
    await cache.save_wizard_session(fake_redis, session)

    with pytest.raises(SessionNotActiveError):
        await confirm_wizard(db, fake_redis, session.id)


# ===========================================================================
# TEST GROUP 5: retries after a partial finalize, concurrent confirms
# ===========================================================================

@pytest.mark.asyncio
async def test_retry_with_key_after_failed_session_delete_writes_once(
    service, db, catalog, fake_redis, session_factory, monkeypatch
) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])
    monkeypatch.setattr(fake_redis, "delete", AsyncMock(side_effect=RedisConnectionError("down")))

    first = await confirm_wizard(db, fake_redis, session.id, idempotency_key="key-1")
    assert cache.make_session_key(session.id) in fake_redis.store

    monkeypatch.undo()
    retried = await confirm_wizard(db, fake_redis, session.id, idempotency_key="key-1")

    assert retried == first
    assert await _snapshot_count(session_factory) == len(first.offer_snapshot_ids) == 2


@pytest.mark.asyncio
async def test_retry_without_key_returns_cached_result_and_cleans_up(
    service, db, catalog, fake_redis, session_factory, monkeypatch
) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])
    monkeypatch.setattr(fake_redis, "delete", AsyncMock(side_effect=RedisConnectionError("down")))
    first = await confirm_wizard(db, fake_redis, session.id)

    monkeypatch.undo()
    retried = await confirm_wizard(db, fake_redis, session.id)

    assert retried == first
    assert await _snapshot_count(session_factory) == 2
    assert cache.make_session_key(session.id) not in fake_redis.store
    assert await cache.get_list_session(fake_redis, catalog.list_id) is None


@pytest.mark.asyncio
async def test_retry_after_every_cache_write_failed_is_rejected_by_list_lock(
    service, db, catalog, fake_redis, session_factory, monkeypatch
) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])
    monkeypatch.setattr(fake_redis, "delete", AsyncMock(side_effect=RedisConnectionError("down")))
    monkeypatch.setattr(fake_redis, "setex", AsyncMock(side_effect=RedisConnectionError("down")))
    await confirm_wizard(db, fake_redis, session.id, idempotency_key="key-1")

    monkeypatch.undo()
    with pytest.raises(ConflictError):
        await confirm_wizard(db, fake_redis, session.id, idempotency_key="key-1")

    assert await _snapshot_count(session_factory) == 2


@pytest.mark.asyncio
async def test_second_of_two_overlapping_confirms_is_rejected(
    service, db, catalog, fake_redis, session_factory
) -> None:
    """The second request loaded the session before the first one finished caching."""
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])
    session_key = cache.make_session_key(session.id)
    loaded_by_second = fake_redis.store[session_key]

    await confirm_wizard(db, fake_redis, session.id)
    fake_redis.store[session_key] = loaded_by_second
    del fake_redis.store[cache.make_result_key(session.id)]

    with pytest.raises(ConflictError):
        await confirm_wizard(db, fake_redis, session.id)

    assert await _snapshot_count(session_factory) == 2
    milk = await _item(session_factory, catalog.items["milk"])
    assert milk.linked_product_id == catalog.products["milk_maxima"]


@pytest.mark.asyncio
async def test_confirm_after_cancel_is_rejected(service, db, catalog, fake_redis, session_factory) -> None:
    session = await _start(service, db, catalog.list_id)
    await service.apply_bulk_decisions(session.id, [])
    loaded = fake_redis.store[cache.make_session_key(session.id)]
    await service.cancel_wizard(db, session.id)
    await db.commit()
    fake_redis.store[cache.make_session_key(session.id)] = loaded

    with pytest.raises(ConflictError):
        await confirm_wizard(db, fake_redis, session.id)
    assert await _snapshot_count(session_factory) == 0
