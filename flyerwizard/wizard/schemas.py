"""
schemas.py — Migration wizard Pydantic v2 data contracts.

Defines:
  - WizardStatus, DecisionAction enums
  - StoreInfo, ScoreBreakdown, Suggestion, WizardItem   (per-item snapshot + ranked candidates)
  - StoreSelection, Decision, WizardProgress, WizardSession   (the cached unit of work)
  - ConfirmWizardResult, ExpiredItemsCheck   (workflow outputs)
  - DecideItemRequest, BulkDecisionsRequest, StartWizardRequest   (HTTP bodies)

WizardSession is a value aggregate: items, suggestions and decisions are owned by the
session and reference each other only by id (item_id, flyer_product_id). It round-trips
through Redis as JSON — dict keys come back as strings and are coerced to int on validation.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class WizardStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class DecisionAction(str, Enum):
    REPLACE = "REPLACE"
    SKIP = "SKIP"
    REMOVE = "REMOVE"


# ---------------------------------------------------------------------------
# Items and suggestions
# ---------------------------------------------------------------------------

class StoreInfo(BaseModel):
    store_id: int
    store_name: str


class ScoreBreakdown(BaseModel):
    """Weighted component scores. total_score is their sum."""
    brand_score: float = 0.0
    store_score: float = 0.0
    size_score: float = 0.0
    price_score: float = 0.0
    total_score: float = 0.0


class Suggestion(BaseModel):
    """
    A ranked replacement offer for one expired item.

    flyer_product_id doubles as the suggestion id a REPLACE decision must reference.
    Created once at session start; never re-scored against live data afterwards.
    """
    flyer_product_id: int
    product_master_id: Optional[int] = None
    product_name: str
    brand: Optional[str] = None
    store_id: int
    store_name: str
    price: float
    unit: Optional[str] = None
    size_value: Optional[float] = None
    size_unit: Optional[str] = None
    score: float = 0.0
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    price_difference: float = 0.0     # suggestion.price - original.price
    explanation: str = ""
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class WizardItem(BaseModel):
    """Snapshot of one expired shopping-list entry, captured once at session start."""
    item_id: int
    product_name: str
    brand: Optional[str] = None
    original_price: float = 0.0
    quantity: float = 1
    expiry_date: Optional[datetime] = None
    original_store: Optional[StoreInfo] = None
    unit: Optional[str] = None          # unit type of the expired offer, used for size scoring
    suggestions: List[Suggestion] = Field(default_factory=list)

    def find_suggestion(self, flyer_product_id: int) -> Optional[Suggestion]:
        for suggestion in self.suggestions:
            if suggestion.flyer_product_id == flyer_product_id:
                return suggestion
        return None


# ---------------------------------------------------------------------------
# Session aggregate
# ---------------------------------------------------------------------------

class StoreSelection(BaseModel):
    store_id: int
    store_name: str
    item_count: int = 0
    total_price: float = 0.0
    savings: float = 0.0


class Decision(BaseModel):
    action: DecisionAction
    suggestion_id: Optional[int] = None
    decided_at: Optional[datetime] = None


class WizardProgress(BaseModel):
    current_item: int
    total_items: int
    items_migrated: int
    items_skipped: int
    items_removed: int
    percent_complete: float


class WizardSession(BaseModel):
    id: str
    user_id: int
    shopping_list_id: int
    status: WizardStatus = WizardStatus.ACTIVE
    dataset_version: int = 1
    expired_items: List[WizardItem] = Field(default_factory=list)
    current_item_index: int = 0
    selected_stores: Dict[int, StoreSelection] = Field(default_factory=dict)
    decisions: Dict[int, Decision] = Field(default_factory=dict)
    started_at: datetime
    expires_at: datetime
    last_updated_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def find_item(self, item_id: int) -> Optional[WizardItem]:
        for item in self.expired_items:
            if item.item_id == item_id:
                return item
        return None

    def first_undecided_index(self) -> int:
        """Index of the first item without a decision; len(items) once all are decided."""
        for index, item in enumerate(self.expired_items):
            if item.item_id not in self.decisions:
                return index
        return len(self.expired_items)

    def progress(self) -> WizardProgress:
        counts = {action: 0 for action in DecisionAction}
        for decision in self.decisions.values():
            counts[decision.action] += 1

        total = len(self.expired_items)
        percent = len(self.decisions) / total * 100.0 if total else 0.0
        return WizardProgress(
            current_item=self.current_item_index,
            total_items=total,
            items_migrated=counts[DecisionAction.REPLACE],
            items_skipped=counts[DecisionAction.SKIP],
            items_removed=counts[DecisionAction.REMOVE],
            percent_complete=percent,
        )


# ---------------------------------------------------------------------------
# Commit result
# ---------------------------------------------------------------------------

class ConfirmWizardResult(BaseModel):
    session_id: str
    items_updated: int = 0
    items_deleted: int = 0
    items_skipped: int = 0
    offer_snapshot_ids: List[int] = Field(default_factory=list)
    store_count: int = 0
    total_estimated_price: float = 0.0
    summary: str = ""


class ExpiredItemsCheck(BaseModel):
    """Pre-wizard check of a shopping list. items carry no suggestions."""
    shopping_list_id: int
    has_expired_items: bool
    expired_count: int
    items: List[WizardItem] = Field(default_factory=list)
    suggested_action: str
    has_active_session: bool = False


# ---------------------------------------------------------------------------
# HTTP request bodies
# ---------------------------------------------------------------------------

class StartWizardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    shopping_list_id: int
    user_id: int


class DecideItemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_id: int
    action: DecisionAction
    suggestion_id: Optional[int] = None


class BulkDecisionsRequest(BaseModel):
    """An empty decisions list accepts the top suggestion for every item."""
    model_config = ConfigDict(extra="forbid")

    decisions: List[DecideItemRequest] = Field(default_factory=list)
