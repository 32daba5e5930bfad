"""
Suggestion scoring and ranking for the migration wizard.
Pure functions. No I/O, no clock, no randomness.

Score = brand + store + size + price, each component a fraction of its weight:
  brand  1.0 iff both brands present and identical (case-sensitive), else 0.0
  store  1.0 for a preferred store, 0.5 otherwise
  size   0.5 if either unit unknown, 0.0 on unit mismatch, 0.8 on unit match
         (magnitudes are not compared: every same-unit match scores 0.8)
  price  0.5 neutral if either price is zero/unknown;
         cheaper:  0.5 + 0.5 * (orig - sugg) / orig
         pricier:  0.5 - min(0.5, 0.5 * (sugg - orig) / orig)

With default weights the attainable range is [0, 7.0].
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Iterable, Optional

from flyerwizard.wizard.schemas import ScoreBreakdown, Suggestion, WizardItem
from flyerwizard.wizard.units import normalize_unit

SIZE_UNKNOWN = 0.5
SIZE_UNIT_MISMATCH = 0.0
SIZE_UNIT_MATCH = 0.8
PRICE_NEUTRAL = 0.5
STORE_NOT_PREFERRED = 0.5


@dataclass(frozen=True)
class ScoringWeights:
    brand: float = 3.0
    store: float = 2.0
    size: float = 1.0
    price: float = 1.0

    @property
    def max_score(self) -> float:
        return self.brand + self.store + self.size + self.price


DEFAULT_WEIGHTS = ScoringWeights()


def _brand_component(suggestion: Suggestion, original: WizardItem) -> float:
    if suggestion.brand is None or original.brand is None:
        return 0.0
    return 1.0 if suggestion.brand == original.brand else 0.0


def _store_component(suggestion: Suggestion, preferred_store_ids: AbstractSet[int]) -> float:
    return 1.0 if suggestion.store_id in preferred_store_ids else STORE_NOT_PREFERRED


def _size_component(suggestion: Suggestion, original: WizardItem) -> float:
    suggested_unit = normalize_unit(suggestion.size_unit or suggestion.unit)
    original_unit = normalize_unit(original.unit)
    if suggested_unit is None or original_unit is None:
        return SIZE_UNKNOWN
    if suggested_unit != original_unit:
        return SIZE_UNIT_MISMATCH
    return SIZE_UNIT_MATCH


def _price_component(suggested_price: float, original_price: float) -> float:
    if not original_price or not suggested_price:
        return PRICE_NEUTRAL

    if suggested_price <= original_price:
        saving = (original_price - suggested_price) / original_price
        return 0.5 + saving * 0.5

    markup = (suggested_price - original_price) / original_price
    return 0.5 - min(markup * 0.5, 0.5)


def score_breakdown(
    suggestion: Suggestion,
    original: WizardItem,
    preferred_store_ids: AbstractSet[int],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ScoreBreakdown:
    """Weighted per-component scores; total_score is brand + store + size + price."""
    brand = weights.brand * _brand_component(suggestion, original)
    store = weights.store * _store_component(suggestion, preferred_store_ids)
    size = weights.size * _size_component(suggestion, original)
    price = weights.price * _price_component(suggestion.price, original.original_price)
    return ScoreBreakdown(
        brand_score=brand,
        store_score=store,
        size_score=size,
        price_score=price,
        total_score=brand + store + size + price,
    )


def score_suggestion(
    suggestion: Suggestion,
    original: WizardItem,
    preferred_store_ids: AbstractSet[int],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """Total deterministic score for one suggestion against the expired item it replaces."""
    return score_breakdown(suggestion, original, preferred_store_ids, weights).total_score


def rank_suggestions(
    suggestions: Iterable[Suggestion],
    original: WizardItem,
    preferred_store_ids: Optional[AbstractSet[int]] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> list[Suggestion]:
    """
    Score every suggestion in place and return them in a total order:
      1. total score descending
      2. price_difference ascending (cheaper wins ties)
      3. flyer_product_id ascending (final tie-break, makes repeated ranking reproducible)
    """
    preferred = preferred_store_ids or frozenset()
    ranked = list(suggestions)
    for suggestion in ranked:
        breakdown = score_breakdown(suggestion, original, preferred, weights)
        suggestion.score_breakdown = breakdown
        suggestion.score = breakdown.total_score
        suggestion.price_difference = suggestion.price - original.original_price

    ranked.sort(key=lambda s: (-s.score, s.price_difference, s.flyer_product_id))
    return ranked
