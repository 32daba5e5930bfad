"""
Package size parsing for flyer offers.

Offers carry the printed size as free text ("1,5 l", "500 g", "2x125g", "10 vnt.").
parse_unit_size splits it into a numeric value and a normalized unit so suggestions
and offer snapshots get size_value / size_unit. Multipacks are multiplied out.
"""
from __future__ import annotations

import re
from typing import Optional

_SIZE_RE = re.compile(
    r"^\s*(?:(?P<count>\d+)\s*[x×]\s*)?(?P<value>\d+(?:[.,]\d+)?)\s*(?P<unit>[^\d\s]+\.?)\s*$",
    re.IGNORECASE,
)

# Printed spellings → canonical unit
_UNIT_ALIASES = {
    "l": "l",
    "ltr": "l",
    "ml": "ml",
    "cl": "cl",
    "g": "g",
    "gr": "g",
    "kg": "kg",
    "vnt": "vnt",
    "vnt.": "vnt",
    "pak": "pak",
    "pak.": "pak",
    "pcs": "vnt",
}


def parse_unit_size(unit_size: Optional[str]) -> tuple[Optional[float], Optional[str]]:
    """
    Return (value, unit) for a printed size, or (None, None) if it cannot be parsed.

    >>> parse_unit_size("1,5 l")
    (1.5, 'l')
    >>> parse_unit_size("2x125g")
    (250.0, 'g')
    """
    if not unit_size:
        return None, None

    match = _SIZE_RE.match(unit_size)
    if match is None:
        return None, None

    unit = _UNIT_ALIASES.get(match.group("unit").lower())
    if unit is None:
        return None, None

    value = float(match.group("value").replace(",", "."))
    if match.group("count"):
        value *= int(match.group("count"))
    return value, unit


def normalize_unit(unit: Optional[str]) -> Optional[str]:
    """
    Canonical spelling of a unit label ("L" → "l", "Ltr" → "l", "VNT." → "vnt").
    Unknown labels are lowercased so equal labels still compare equal.
    """
    if unit is None:
        return None
    key = unit.strip().lower()
    if not key:
        return None
    return _UNIT_ALIASES.get(key, key)
