"""
service.py — WizardService: session orchestration for the migration wizard.

Lifecycle:
  start_wizard          → ACTIVE session cached in Redis for 30 minutes, list locked
  decide_item           → one decision recorded (last write wins)
  apply_bulk_decisions  → many decisions, all validated before any is applied
  confirm_wizard        → decisions committed (see confirm.py), session COMPLETED and deleted
  cancel_wizard         → session deleted, list unlocked

The service holds no per-session state: every call reads the session from Redis, mutates
the value and writes it back. Database access goes through store.py with the caller's
AsyncSession.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import AbstractSet, Iterable, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from flyerwizard import cache, store
from flyerwizard.config import settings
from flyerwizard.errors import (
    ListLockedError,
    NoExpiredItemsError,
    RateLimitExceededError,
    SessionNotActiveError,
    SessionNotFoundError,
    ShoppingListNotFoundError,
    WizardValidationError,
)
from flyerwizard.metrics import (
    wizard_acceptance_rate_total,
    wizard_items_flagged_total,
    wizard_latency_ms,
    wizard_selected_store_count,
    wizard_sessions_total,
)
from flyerwizard.search.schemas import ProductHit
from flyerwizard.time_utils import utcnow
from flyerwizard.wizard import confirm
from flyerwizard.wizard.explanation import generate_explanation
from flyerwizard.wizard.schemas import (
    ConfirmWizardResult,
    Decision,
    DecideItemRequest,
    DecisionAction,
    ExpiredItemsCheck,
    StoreSelection,
    Suggestion,
    WizardItem,
    WizardSession,
    WizardStatus,
)
from flyerwizard.wizard.scoring import ScoringWeights, rank_suggestions
from flyerwizard.wizard.search import SearchBackend, find_alternatives
from flyerwizard.wizard.store_selection import (
    StoreSelectionResult,
    clamp_max_stores,
    select_optimal_stores,
)
from flyerwizard.wizard.units import normalize_unit, parse_unit_size

logger = logging.getLogger(__name__)


def weights_from_settings() -> ScoringWeights:
    return ScoringWeights(
        brand=settings.scoring_weight_brand,
        store=settings.scoring_weight_store,
        size=settings.scoring_weight_size,
        price=settings.scoring_weight_price,
    )


def hit_to_suggestion(hit: ProductHit) -> Suggestion:
    """Unscored suggestion from a search hit; rank_suggestions fills score fields."""
    size_value, size_unit = parse_unit_size(hit.unit_size)
    return Suggestion(
        flyer_product_id=hit.id,
        product_master_id=hit.product_master_id,
        product_name=hit.name,
        brand=hit.brand,
        store_id=hit.store_id,
        store_name=hit.store_name,
        price=hit.current_price,
        unit=normalize_unit(hit.unit_type),
        size_value=size_value,
        size_unit=size_unit,
        valid_from=hit.valid_from,
        valid_to=hit.valid_to,
    )


def build_store_selections(
    items: Iterable[WizardItem], selection: StoreSelectionResult
) -> dict[int, StoreSelection]:
    """
    Per selected store: how many items it covers, what they cost there (cheapest offer
    per item) and how much cheaper that is than the expired offers.
    """
    by_id = {item.item_id: item for item in items}
    selections: dict[int, StoreSelection] = {}

    for store_id in selection.selected_stores:
        store_name = ""
        total_price = 0.0
        savings = 0.0
        covered = selection.item_coverage.get(store_id, [])
        for item_id in covered:
            item = by_id[item_id]
            cheapest = min(
                (s for s in item.suggestions if s.store_id == store_id),
                key=lambda s: (s.price, s.flyer_product_id),
            )
            store_name = cheapest.store_name
            total_price += cheapest.price
            savings += max(0.0, item.original_price - cheapest.price)
        selections[store_id] = StoreSelection(
            store_id=store_id,
            store_name=store_name,
            item_count=len(covered),
            total_price=round(total_price, 2),
            savings=round(savings, 2),
        )
    return selections


class WizardService:
    """
    Attributes:
        redis:           redis.asyncio client (app.state.redis)
        search_service:  anything with `async search(SearchRequest) -> SearchResponse`
        weights:         scoring weights, defaults from settings
        max_stores:      store cap for selection and REPLACE decisions, clamped to [1, 2]
        dataset_version: stamped on every new session
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        search_service: SearchBackend,
        weights: Optional[ScoringWeights] = None,
        max_stores: Optional[int] = None,
        dataset_version: Optional[int] = None,
    ) -> None:
        self.redis = redis
        self.search_service = search_service
        self.weights = weights or weights_from_settings()
        self.max_stores = clamp_max_stores(
            max_stores if max_stores is not None else settings.wizard_max_stores
        )
        self.dataset_version = (
            dataset_version if dataset_version is not None else settings.wizard_dataset_version
        )

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start_wizard(
        self, db: AsyncSession, shopping_list_id: int, user_id: int
    ) -> WizardSession:
        started = time.perf_counter()
        logger.info("Starting wizard list_id=%s user_id=%s", shopping_list_id, user_id)

        shopping_list = await store.get_shopping_list(db, shopping_list_id)
        if shopping_list is None or shopping_list.user_id != user_id:
            raise ShoppingListNotFoundError(shopping_list_id)

        holder = await self._live_list_session(shopping_list_id)
        if holder is not None:
            raise ListLockedError(shopping_list_id)
        if shopping_list.is_locked:
            logger.warning("Taking over stale wizard lock list_id=%s", shopping_list_id)

        allowed = await cache.check_start_rate_limit(
            self.redis, user_id, settings.wizard_start_rate_limit
        )
        if not allowed:
            raise RateLimitExceededError(
                f"Too many wizard sessions started, limit is {settings.wizard_start_rate_limit} per hour"
            )

        now = utcnow()
        items = await store.get_expired_items(db, shopping_list_id, now)
        if not items:
            raise NoExpiredItemsError(shopping_list_id)
        wizard_items_flagged_total.inc(len(items))

        preferred = await store.get_preferred_store_ids(db, user_id)
        await self._attach_suggestions(items, preferred)

        selection = select_optimal_stores(
            {item.item_id: item.suggestions for item in items}, self.max_stores
        )
        session = WizardSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            shopping_list_id=shopping_list_id,
            status=WizardStatus.ACTIVE,
            dataset_version=self.dataset_version,
            expired_items=items,
            current_item_index=0,
            selected_stores=build_store_selections(items, selection),
            decisions={},
            started_at=now,
            expires_at=now + timedelta(seconds=settings.wizard_session_ttl_seconds),
            last_updated_at=now,
        )

        await cache.save_wizard_session(self.redis, session)
        await cache.set_list_session(self.redis, shopping_list_id, session.id)
        await store.set_list_locked(db, shopping_list_id, True)

        wizard_sessions_total.labels(status="started").inc()
        wizard_selected_store_count.observe(len(selection.selected_stores))
        wizard_latency_ms.labels(operation="start").observe((time.perf_counter() - started) * 1000)
        logger.info(
            "Wizard session created session_id=%s list_id=%s items=%d stores=%s coverage=%.0f%%",
            session.id,
            shopping_list_id,
            len(items),
            selection.selected_stores,
            selection.coverage_percent,
        )
        return session

    async def _attach_suggestions(
        self, items: list[WizardItem], preferred_store_ids: AbstractSet[int]
    ) -> None:
        """Search all items concurrently, then rank and explain each item's candidates."""
        results = await asyncio.gather(
            *(
                find_alternatives(self.search_service, item.product_name, item.brand, item.item_id)
                for item in items
            )
        )
        for item, hits in zip(items, results):
            ranked = rank_suggestions(
                (hit_to_suggestion(hit) for hit in hits),
                item,
                preferred_store_ids,
                self.weights,
            )
            for suggestion in ranked:
                suggestion.explanation = generate_explanation(
                    suggestion, item, suggestion.store_id in preferred_store_ids
                )
            item.suggestions = ranked

    async def _live_list_session(self, shopping_list_id: int) -> Optional[WizardSession]:
        session_id = await cache.get_list_session(self.redis, shopping_list_id)
        if session_id is None:
            return None
        session = await cache.get_wizard_session(self.redis, session_id)
        if session is None or session.status != WizardStatus.ACTIVE:
            return None
        return session

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_session(self, session_id: str) -> WizardSession:
        session = await cache.get_wizard_session(self.redis, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def check_expired_items(
        self, db: AsyncSession, shopping_list_id: int
    ) -> ExpiredItemsCheck:
        if await store.get_shopping_list(db, shopping_list_id) is None:
            raise ShoppingListNotFoundError(shopping_list_id)

        items = await store.get_expired_items(db, shopping_list_id, utcnow())
        count = len(items)
        return ExpiredItemsCheck(
            shopping_list_id=shopping_list_id,
            has_expired_items=count > 0,
            expired_count=count,
            items=items,
            suggested_action=(
                f"Start wizard to migrate {count} expired items" if count else "No expired items found"
            ),
            has_active_session=await self._live_list_session(shopping_list_id) is not None,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def decide_item(
        self,
        session_id: str,
        item_id: int,
        action: DecisionAction,
        suggestion_id: Optional[int] = None,
    ) -> WizardSession:
        session = await self._load_active(session_id)
        now = utcnow()

        decisions = dict(session.decisions)
        decisions[item_id] = self._validate_decision(session, item_id, action, suggestion_id, now)
        self._check_store_cap(session, decisions)

        await self._save_decisions(session, decisions, now)
        wizard_acceptance_rate_total.labels(decision=action.value).inc()
        logger.info(
            "Decision recorded session_id=%s item_id=%s action=%s", session_id, item_id, action.value
        )
        return session

    async def apply_bulk_decisions(
        self, session_id: str, requests: list[DecideItemRequest]
    ) -> WizardSession:
        """
        Apply many decisions at once. Either every entry is valid and all are recorded,
        or nothing changes. An empty list accepts each item's top suggestion from a
        selected store and skips items without one.
        """
        session = await self._load_active(session_id)
        now = utcnow()

        if requests:
            decisions = dict(session.decisions)
            for request in requests:
                decisions[request.item_id] = self._validate_decision(
                    session, request.item_id, request.action, request.suggestion_id, now
                )
            applied = [request.action for request in requests]
        else:
            decisions = self._top_suggestion_decisions(session, now)
            applied = [decision.action for decision in decisions.values()]
        self._check_store_cap(session, decisions)

        await self._save_decisions(session, decisions, now)
        for action in applied:
            wizard_acceptance_rate_total.labels(decision=action.value).inc()
        logger.info("Bulk decisions recorded session_id=%s count=%d", session_id, len(applied))
        return session

    def _validate_decision(
        self,
        session: WizardSession,
        item_id: int,
        action: DecisionAction,
        suggestion_id: Optional[int],
        now: datetime,
    ) -> Decision:
        item = session.find_item(item_id)
        if item is None:
            raise WizardValidationError(
                f"Item {item_id} is not part of wizard session '{session.id}'", field="item_id"
            )

        if action != DecisionAction.REPLACE:
            return Decision(action=action, suggestion_id=None, decided_at=now)

        if suggestion_id is None:
            raise WizardValidationError("REPLACE requires a suggestion_id", field="suggestion_id")
        if item.find_suggestion(suggestion_id) is None:
            raise WizardValidationError(
                f"Suggestion {suggestion_id} is not offered for item {item_id}",
                field="suggestion_id",
            )
        return Decision(action=action, suggestion_id=suggestion_id, decided_at=now)

    def _check_store_cap(self, session: WizardSession, decisions: dict[int, Decision]) -> None:
        stores: set[int] = set()
        for item_id, decision in decisions.items():
            if decision.action != DecisionAction.REPLACE:
                continue
            suggestion = session.find_item(item_id).find_suggestion(decision.suggestion_id)
            stores.add(suggestion.store_id)
        if len(stores) > self.max_stores:
            raise WizardValidationError(
                f"Replacements would span {len(stores)} stores, maximum is {self.max_stores}",
                field="suggestion_id",
            )

    def _top_suggestion_decisions(
        self, session: WizardSession, now: datetime
    ) -> dict[int, Decision]:
        selected = set(session.selected_stores)
        decisions: dict[int, Decision] = {}
        for item in session.expired_items:
            top = next((s for s in item.suggestions if s.store_id in selected), None)
            if top is None:
                decisions[item.item_id] = Decision(action=DecisionAction.SKIP, decided_at=now)
            else:
                decisions[item.item_id] = Decision(
                    action=DecisionAction.REPLACE,
                    suggestion_id=top.flyer_product_id,
                    decided_at=now,
                )
        return decisions

    async def _save_decisions(
        self, session: WizardSession, decisions: dict[int, Decision], now: datetime
    ) -> None:
        session.decisions = decisions
        session.current_item_index = session.first_undecided_index()
        session.last_updated_at = now
        await cache.save_wizard_session(self.redis, session)
        await cache.set_list_session(self.redis, session.shopping_list_id, session.id)

    async def _load_active(self, session_id: str) -> WizardSession:
        session = await self.get_session(session_id)
        if session.status != WizardStatus.ACTIVE:
            raise SessionNotActiveError(session_id, session.status.value)
        return session

    # ------------------------------------------------------------------
    # Finish
    # ------------------------------------------------------------------

    async def confirm_wizard(
        self,
        db: AsyncSession,
        session_id: str,
        idempotency_key: Optional[str] = None,
    ) -> ConfirmWizardResult:
        return await confirm.confirm_wizard(db, self.redis, session_id, idempotency_key)

    async def cancel_wizard(self, db: AsyncSession, session_id: str) -> bool:
        """
        Discard a session and unlock its list. Cancelling an unknown or already
        finished session is a no-op. Returns whether a live session was cancelled.
        """
        session = await cache.get_wizard_session(self.redis, session_id)
        if session is None:
            logger.info("Cancel for unknown session session_id=%s", session_id)
            return False

        await cache.delete_wizard_session(self.redis, session_id)
        if await cache.get_list_session(self.redis, session.shopping_list_id) == session_id:
            await cache.clear_list_session(self.redis, session.shopping_list_id)
        await store.set_list_locked(db, session.shopping_list_id, False)

        wizard_sessions_total.labels(status="cancelled").inc()
        logger.info("Wizard cancelled session_id=%s list_id=%s", session_id, session.shopping_list_id)
        return True
