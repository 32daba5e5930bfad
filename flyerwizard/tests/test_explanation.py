"""Explanation text and package size parsing tests."""
from __future__ import annotations

import pytest

from flyerwizard.wizard.explanation import (
    generate_bulk_explanation,
    generate_explanation,
    price_explanation,
)
from flyerwizard.wizard.schemas import Suggestion, WizardItem
from flyerwizard.wizard.units import normalize_unit, parse_unit_size


@pytest.mark.parametrize(
    "original, suggested, expected",
    [
        (2.00, 2.005, "same price"),
        (2.00, 1.50, "€0.50 cheaper"),
        (10.00, 7.50, "25% cheaper (€2.50)"),
        (2.00, 2.40, "€0.40 more expensive"),
        (5.00, 6.50, "30% more expensive (€1.50)"),
        (0.0, 1.00, ""),
    ],
)
def test_price_explanation(original: float, suggested: float, expected: str) -> None:
    assert price_explanation(original, suggested) == expected


def test_generate_explanation_same_brand_preferred_store() -> None:
    item = WizardItem(item_id=1, product_name="Pienas", brand="Dvaro", original_price=1.29, unit="l")
    suggestion = Suggestion(
        flyer_product_id=5, product_name="Pienas", brand="Dvaro", store_id=1, store_name="IKI",
        price=1.19, unit="L", size_value=1.0, size_unit="l",
    )
    assert generate_explanation(suggestion, item, True) == (
        "Same brand, similar size, €0.10 cheaper, at your preferred store"
    )


def test_generate_explanation_without_brands() -> None:
    item = WizardItem(item_id=1, product_name="Obuoliai", original_price=1.00)
    suggestion = Suggestion(
        flyer_product_id=5, product_name="Obuoliai", store_id=2, store_name="Rimi", price=1.00,
    )
    assert generate_explanation(suggestion, item, True) == "Similar product, same price"


@pytest.mark.parametrize(
    "counts, expected",
    [
        ((3, 3, 0, 0), "All 3 items replaced with suggested alternatives"),
        ((3, 2, 1, 0), "2 replaced and 1 kept for manual search"),
        ((4, 2, 1, 1), "2 replaced, 1 kept for manual search and 1 removed"),
        ((2, 0, 0, 2), "2 removed"),
        ((0, 0, 0, 0), "No changes applied"),
    ],
)
def test_generate_bulk_explanation(counts: tuple, expected: str) -> None:
    assert generate_bulk_explanation(*counts) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1,5 l", (1.5, "l")),
        ("500 g", (500.0, "g")),
        ("2x125g", (250.0, "g")),
        ("10 vnt.", (10.0, "vnt")),
        ("1 kg", (1.0, "kg")),
        ("large", (None, None)),
        (None, (None, None)),
        ("", (None, None)),
    ],
)
def test_parse_unit_size(text, expected) -> None:
    assert parse_unit_size(text) == expected


@pytest.mark.parametrize(
    "label, expected",
    [("L", "l"), ("Ltr", "l"), (" kg ", "kg"), ("VNT.", "vnt"), ("Dėž", "dėž"), ("", None), (None, None)],
)
def test_normalize_unit(label, expected) -> None:
    assert normalize_unit(label) == expected


def test_generate_explanation_matches_unit_case_insensitively() -> None:
    item = WizardItem(item_id=1, product_name="Pienas", original_price=1.29, unit="l")
    suggestion = Suggestion(
        flyer_product_id=5, product_name="Pienas", store_id=2, store_name="Rimi", price=1.29, unit="L",
    )
    assert "similar size" in generate_explanation(suggestion, item, False)
