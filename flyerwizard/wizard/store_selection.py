"""
Greedy store coverage for the migration wizard.

Given each expired item's candidate suggestions, choose at most two stores that together
cover the most items, preferring the cheaper store when coverage ties. Pure function.

Per store:
  coverage  = set of items it has at least one suggestion for
  price     = sum of every suggestion it offers, across all items
Greedy loop (max_stores times): pick the store adding the most uncovered items,
ties → lower price → lower store id; stop when the best store adds nothing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from flyerwizard.wizard.schemas import Suggestion

MAX_STORES_LIMIT = 2


@dataclass
class StoreSelectionResult:
    selected_stores: list[int] = field(default_factory=list)      # selection order
    item_coverage: dict[int, list[int]] = field(default_factory=dict)  # store_id -> item ids
    store_prices: dict[int, float] = field(default_factory=dict)   # store_id -> aggregate price
    uncovered_items: list[int] = field(default_factory=list)
    covered_count: int = 0
    total_items: int = 0
    coverage_percent: float = 0.0
    total_price: float = 0.0
    explanation: str = ""


def clamp_max_stores(max_stores: int) -> int:
    return max(1, min(max_stores, MAX_STORES_LIMIT))


def select_optimal_stores(
    suggestions_by_item: Mapping[int, Sequence[Suggestion]],
    max_stores: int = MAX_STORES_LIMIT,
) -> StoreSelectionResult:
    max_stores = clamp_max_stores(max_stores)

    store_items: dict[int, set[int]] = {}
    store_price: dict[int, float] = {}
    for item_id in sorted(suggestions_by_item):
        for suggestion in suggestions_by_item[item_id]:
            store_items.setdefault(suggestion.store_id, set()).add(item_id)
            store_price[suggestion.store_id] = store_price.get(suggestion.store_id, 0.0) + suggestion.price

    selected: list[int] = []
    covered: set[int] = set()
    candidates = set(store_items)

    while len(selected) < max_stores and candidates:
        best = min(
            candidates,
            key=lambda sid: (-len(store_items[sid] - covered), store_price[sid], sid),
        )
        if not store_items[best] - covered:
            break
        selected.append(best)
        covered |= store_items[best]
        candidates.discard(best)

    item_coverage: dict[int, list[int]] = {store_id: [] for store_id in selected}
    uncovered: list[int] = []
    for item_id in sorted(suggestions_by_item):
        owner = next((sid for sid in selected if item_id in store_items[sid]), None)
        if owner is None:
            uncovered.append(item_id)
        else:
            item_coverage[owner].append(item_id)

    total_items = len(suggestions_by_item)
    coverage_percent = len(covered) / total_items * 100.0 if total_items else 0.0

    return StoreSelectionResult(
        selected_stores=selected,
        item_coverage=item_coverage,
        store_prices={sid: store_price[sid] for sid in selected},
        uncovered_items=uncovered,
        covered_count=len(covered),
        total_items=total_items,
        coverage_percent=coverage_percent,
        total_price=sum(store_price[sid] for sid in selected),
        explanation=_explain(selected, total_items, len(covered)),
    )


def _explain(selected: list[int], total_items: int, covered: int) -> str:
    if not selected:
        return "No stores selected - no available alternatives"
    noun = "store" if len(selected) == 1 else "stores"
    return f"Selected {len(selected)} {noun} covering {covered} of {total_items} items"
