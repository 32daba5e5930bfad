"""
Two-pass alternative search tests — search backend mocked with AsyncMock.
"""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from flyerwizard.search.schemas import ProductHit, SearchResponse, SearchResult
from flyerwizard.wizard.search import BRAND_PASS_LIMIT, NAME_PASS_LIMIT, find_alternatives

_VALID_TO = datetime(2030, 1, 1, tzinfo=timezone.utc)


def _hit(product_id: int, brand=None) -> ProductHit:
    return ProductHit(
        id=product_id,
        name="Pienas",
        brand=brand,
        store_id=1,
        store_name="IKI",
        flyer_id=1,
        current_price=1.0,
        valid_from=_VALID_TO,
        valid_to=_VALID_TO,
    )


def _response(*hits: ProductHit) -> SearchResponse:
    return SearchResponse(
        results=[SearchResult(product=hit, score=1.0, match_type="fuzzy") for hit in hits],
        query_time_ms=1.0,
    )


@pytest.mark.asyncio
async def test_brand_pass_first_then_name_pass_deduplicated() -> None:
    backend = AsyncMock()
    backend.search.side_effect = [
        _response(_hit(1, "Dvaro"), _hit(2, "Dvaro")),
        _response(_hit(2, "Dvaro"), _hit(3, "Rokiškio"), _hit(4)),
    ]

    hits = await find_alternatives(backend, "Pienas", "Dvaro", item_id=9)

    assert [hit.id for hit in hits] == [1, 2, 3, 4]
    first, second = (call.args[0] for call in backend.search.await_args_list)
    assert first.query == "Dvaro Pienas"
    assert first.limit == BRAND_PASS_LIMIT
    assert first.prefer_fuzzy is True
    assert second.query == "Pienas"
    assert second.limit == NAME_PASS_LIMIT


@pytest.mark.asyncio
async def test_no_brand_runs_name_pass_only() -> None:
    backend = AsyncMock()
    backend.search.return_value = _response(_hit(5))

    hits = await find_alternatives(backend, "Obuoliai", None)

    assert [hit.id for hit in hits] == [5]
    backend.search.assert_awaited_once()
    assert backend.search.await_args.args[0].query == "Obuoliai"


@pytest.mark.asyncio
async def test_brand_pass_failure_keeps_name_pass_results() -> None:
    backend = AsyncMock()
    backend.search.side_effect = [RuntimeError("search down"), _response(_hit(7))]

    hits = await find_alternatives(backend, "Pienas", "Dvaro")

    assert [hit.id for hit in hits] == [7]


@pytest.mark.asyncio
async def test_name_pass_failure_keeps_brand_pass_results() -> None:
    backend = AsyncMock()
    backend.search.side_effect = [_response(_hit(1, "Dvaro")), RuntimeError("timeout")]

    hits = await find_alternatives(backend, "Pienas", "Dvaro")

    assert [hit.id for hit in hits] == [1]


@pytest.mark.asyncio
async def test_both_passes_failing_returns_empty() -> None:
    backend = AsyncMock()
    backend.search.side_effect = RuntimeError("search down")

    assert await find_alternatives(backend, "Pienas", "Dvaro") == []
