"""
Human-readable explanation strings for wizard suggestions and outcomes.

Examples:
  "Same brand, similar size, €0.50 cheaper, at your preferred store"
  "Different brand, 12% more expensive (€1.20)"
  "2 replaced, 1 kept for manual search and 1 removed"
"""
from __future__ import annotations

from flyerwizard.wizard.schemas import Suggestion, WizardItem
from flyerwizard.wizard.units import normalize_unit

SAME_PRICE_TOLERANCE = 0.01


def price_explanation(original_price: float, suggested_price: float) -> str:
    """Price comparison text; empty when either price is unknown."""
    if not original_price or not suggested_price:
        return ""

    diff = suggested_price - original_price
    if abs(diff) < SAME_PRICE_TOLERANCE:
        return "same price"

    if diff < 0:
        saving = -diff
        if saving < 1.0:
            return f"€{saving:.2f} cheaper"
        percent = saving / original_price * 100
        return f"{percent:.0f}% cheaper (€{saving:.2f})"

    if diff > 1.0:
        percent = diff / original_price * 100
        return f"{percent:.0f}% more expensive (€{diff:.2f})"
    return f"€{diff:.2f} more expensive"


def generate_explanation(
    suggestion: Suggestion,
    original: WizardItem,
    is_preferred_store: bool,
) -> str:
    parts: list[str] = []

    brand_match = False
    if suggestion.brand is not None and original.brand is not None:
        brand_match = suggestion.brand == original.brand
        parts.append("Same brand" if brand_match else "Different brand")
    else:
        parts.append("Similar product")

    suggested_unit = normalize_unit(suggestion.size_unit or suggestion.unit)
    original_unit = normalize_unit(original.unit)
    if suggested_unit is not None and original_unit is not None:
        parts.append("similar size" if suggested_unit == original_unit else "different size")

    price_text = price_explanation(original.original_price, suggestion.price)
    if price_text:
        parts.append(price_text)

    if is_preferred_store and brand_match:
        parts.append("at your preferred store")

    return ", ".join(parts)


def generate_bulk_explanation(total: int, replaced: int, kept: int, removed: int) -> str:
    """Summary of a confirmed wizard session's outcome."""
    if total and replaced == total:
        return f"All {total} items replaced with suggested alternatives"

    parts: list[str] = []
    if replaced:
        parts.append(f"{replaced} replaced")
    if kept:
        parts.append(f"{kept} kept for manual search")
    if removed:
        parts.append(f"{removed} removed")

    if not parts:
        return "No changes applied"
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]
