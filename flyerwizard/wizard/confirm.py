"""
confirm.py — Commit workflow for the migration wizard.

confirm_wizard applies every decision of an ACTIVE session to the shopping list in one
database transaction:

  1. Idempotency   key → session id; a replay returns the cached result, no writes
  2. Load          absent → SessionNotFoundError, not ACTIVE → SessionNotActiveError,
                   past expires_at → deleted, SessionExpiredError
  3. Revalidate    every REPLACE offer must still exist, and both it and its flyer must have
                   valid_to >= now.
                   Any stale offer → StaleSuggestionsError before a single write; the session
                   stays ACTIVE so the user can pick again. Price drift is not staleness.
  4. Transact      the shopping list row is locked FOR UPDATE and must still carry the wizard
                   lock flag (already confirmed or cancelled → ConflictError). Then item-id
                   order: REPLACE → offer snapshot + item re-point, REMOVE → delete,
                   SKIP → nothing. The lock flag is cleared in the same transaction.
  5. Finalize      result and idempotency key cached for 24h, then the session deleted.

Steps 1-3 never write. Any failure in step 4 rolls the transaction back and leaves the
cached session untouched. Cache failures in step 5 happen after the commit and are logged
only: the list is already migrated. Each finalize write is attempted on its own, and an
ACTIVE session that already has a cached result counts as committed, so a retry after a
partial finalize returns that result. The lock flag check in step 4 lets only one of two
concurrent confirms of a session commit.
"""
import logging
import time
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flyerwizard import cache, store
from flyerwizard.errors import (
    ConflictError,
    IdempotencyConflictError,
    SessionExpiredError,
    SessionNotActiveError,
    SessionNotFoundError,
    StaleSuggestionsError,
    WizardError,
    WizardInternalError,
)
from flyerwizard.metrics import (
    wizard_latency_ms,
    wizard_revalidation_errors_total,
    wizard_sessions_total,
)
from flyerwizard.time_utils import as_utc, utcnow
from flyerwizard.wizard.explanation import generate_bulk_explanation
from flyerwizard.wizard.schemas import (
    ConfirmWizardResult,
    DecisionAction,
    WizardSession,
    WizardStatus,
)

logger = logging.getLogger(__name__)


async def confirm_wizard(
    db: AsyncSession,
    redis: aioredis.Redis,
    session_id: str,
    idempotency_key: Optional[str] = None,
) -> ConfirmWizardResult:
    started = time.perf_counter()

    if idempotency_key:
        cached = await _replay(redis, session_id, idempotency_key)
        if cached is not None:
            return cached

    session = await _load_for_confirm(redis, session_id)

    committed = await cache.get_confirm_result(redis, session_id)
    if committed is not None:
        logger.warning("Session already committed, finishing cleanup session_id=%s", session_id)
        await _finalize(redis, session, committed, idempotency_key)
        return committed

    await _revalidate(db, session)

    try:
        await _claim_list(db, session)
        result = await _apply_decisions(db, session)
        await store.set_list_locked(db, session.shopping_list_id, False)
        await db.commit()
    except WizardError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Confirm transaction failed session_id=%s", session_id, exc_info=True)
        raise WizardInternalError(f"Failed to apply wizard decisions: {exc}") from exc

    session.status = WizardStatus.COMPLETED
    await _finalize(redis, session, result, idempotency_key)

    wizard_sessions_total.labels(status="completed").inc()
    wizard_latency_ms.labels(operation="confirm").observe((time.perf_counter() - started) * 1000)
    logger.info(
        "Wizard confirmed session_id=%s updated=%d deleted=%d skipped=%d snapshots=%d stores=%d",
        session_id,
        result.items_updated,
        result.items_deleted,
        result.items_skipped,
        len(result.offer_snapshot_ids),
        result.store_count,
    )
    return result


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

async def _replay(
    redis: aioredis.Redis, session_id: str, idempotency_key: str
) -> Optional[ConfirmWizardResult]:
    bound_session_id = await cache.get_idempotency_key(redis, idempotency_key)
    if bound_session_id is None:
        return None
    if bound_session_id != session_id:
        raise IdempotencyConflictError(idempotency_key)

    result = await cache.get_confirm_result(redis, session_id)
    if result is None:
        # Key outlived its cached result; fall through to a normal load, which will 404
        logger.warning("Idempotency key without cached result session_id=%s", session_id)
        return None
    logger.info("Idempotent confirm replay session_id=%s", session_id)
    return result


async def _load_for_confirm(redis: aioredis.Redis, session_id: str) -> WizardSession:
    try:
        raw = await redis.get(cache.make_session_key(session_id))
    except RedisError as exc:
        raise WizardInternalError(f"Failed to load wizard session: {exc}") from exc
    if raw is None:
        raise SessionNotFoundError(session_id)

    session = WizardSession.model_validate_json(raw)
    if session.status != WizardStatus.ACTIVE:
        raise SessionNotActiveError(session_id, session.status.value)
    if session.is_expired(utcnow()):
        await cache.delete_wizard_session(redis, session_id)
        raise SessionExpiredError(session_id)
    return session


async def _revalidate(db: AsyncSession, session: WizardSession) -> None:
    """Raise StaleSuggestionsError listing every REPLACE offer that is gone or expired."""
    now = utcnow()
    stale: list[int] = []

    for item_id in sorted(session.decisions):
        decision = session.decisions[item_id]
        if decision.action != DecisionAction.REPLACE:
            continue

        product = await store.get_product(db, decision.suggestion_id)
        if product is None:
            wizard_revalidation_errors_total.labels(error_type="product_not_found").inc()
            stale.append(decision.suggestion_id)
            continue

        flyer = await store.get_flyer(db, product.flyer_id)
        if flyer is None:
            wizard_revalidation_errors_total.labels(error_type="flyer_not_found").inc()
            stale.append(decision.suggestion_id)
            continue

        if as_utc(flyer.valid_to) < now or as_utc(product.valid_to) < now:
            wizard_revalidation_errors_total.labels(error_type="offer_expired").inc()
            stale.append(decision.suggestion_id)

    if stale:
        logger.warning(
            "Revalidation failed session_id=%s stale_offers=%s", session.id, stale
        )
        raise StaleSuggestionsError(stale)


async def _claim_list(db: AsyncSession, session: WizardSession) -> None:
    shopping_list = await store.get_shopping_list_for_update(db, session.shopping_list_id)
    if shopping_list is None:
        raise ConflictError(f"Shopping list {session.shopping_list_id} no longer exists")
    if not shopping_list.is_locked:
        logger.warning(
            "List no longer locked at confirm session_id=%s list_id=%s",
            session.id,
            session.shopping_list_id,
        )
        raise ConflictError(
            f"Shopping list {session.shopping_list_id} was already confirmed or cancelled"
        )


async def _apply_decisions(db: AsyncSession, session: WizardSession) -> ConfirmWizardResult:
    now = utcnow()
    result = ConfirmWizardResult(session_id=session.id)
    stores_used: set[int] = set()

    for item_id in sorted(session.decisions):
        decision = session.decisions[item_id]

        if decision.action == DecisionAction.SKIP:
            result.items_skipped += 1
            continue

        item = await store.get_item(db, item_id)
        if item is None or item.shopping_list_id != session.shopping_list_id:
            raise ConflictError(f"Shopping list item {item_id} no longer exists")

        if decision.action == DecisionAction.REMOVE:
            await store.delete_item(db, item)
            result.items_deleted += 1
            continue

        product = await store.get_product(db, decision.suggestion_id)
        if product is None:
            raise StaleSuggestionsError([decision.suggestion_id])
        snapshot_id = await store.create_offer_snapshot(db, item_id, product)
        await store.apply_replacement(db, item, product, now)

        result.items_updated += 1
        result.offer_snapshot_ids.append(snapshot_id)
        result.total_estimated_price += product.current_price
        stores_used.add(product.store_id)

    result.store_count = len(stores_used)
    result.summary = generate_bulk_explanation(
        total=len(session.expired_items),
        replaced=result.items_updated,
        kept=result.items_skipped,
        removed=result.items_deleted,
    )
    return result


async def _finalize(
    redis: aioredis.Redis,
    session: WizardSession,
    result: ConfirmWizardResult,
    idempotency_key: Optional[str],
) -> None:
    # Result and key first: while they are missing a retry cannot tell the commit happened
    try:
        await cache.save_confirm_result(redis, result)
    except WizardInternalError:
        logger.warning("Caching confirm result failed session_id=%s", session.id, exc_info=True)

    if idempotency_key:
        try:
            await cache.save_idempotency_key(redis, idempotency_key, session.id)
        except WizardInternalError:
            logger.warning("Saving idempotency key failed session_id=%s", session.id, exc_info=True)

    try:
        await cache.delete_wizard_session(redis, session.id)
        if await cache.get_list_session(redis, session.shopping_list_id) == session.id:
            await cache.clear_list_session(redis, session.shopping_list_id)
    except WizardInternalError:
        logger.warning("Post-commit session cleanup failed session_id=%s", session.id, exc_info=True)
