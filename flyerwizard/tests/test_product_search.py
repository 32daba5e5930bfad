"""
ProductSearchService tests against the seeded SQLite catalogue.

Only currently valid offers may be returned; ranking assertions are kept to membership
and exact-phrase precedence since BM25 scores depend on corpus statistics.
"""
from __future__ import annotations

import pytest

from flyerwizard.search.schemas import SearchRequest
from flyerwizard.search.service import ProductSearchService, escape_like, tokenize


def test_tokenize_lowercases_and_splits_punctuation() -> None:
    assert tokenize("Pienas 2,5% DVARO") == ["pienas", "2", "5", "dvaro"]
    assert tokenize("  ") == []


@pytest.mark.asyncio
async def test_search_excludes_expired_offers(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)
    response = await service.search(SearchRequest(query="Pienas", limit=20, prefer_fuzzy=True))

    ids = {result.product.id for result in response.results}
    assert ids == {catalog.products["milk_iki"], catalog.products["milk_maxima"]}
    assert catalog.products["milk_old"] not in ids


@pytest.mark.asyncio
async def test_exact_mode_requires_every_token(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)

    exact = await service.search(SearchRequest(query="Dvaro Pienas", prefer_fuzzy=False))
    fuzzy = await service.search(SearchRequest(query="Dvaro Pienas", prefer_fuzzy=True))

    assert [r.product.id for r in exact.results] == [catalog.products["milk_iki"]]
    assert {r.product.id for r in fuzzy.results} == {
        catalog.products["milk_iki"],
        catalog.products["milk_maxima"],
    }


@pytest.mark.asyncio
async def test_exact_phrase_match_ranks_first(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)
    response = await service.search(
        SearchRequest(query="Vilniaus duona Juoda duona", prefer_fuzzy=True)
    )

    assert response.results[0].product.id == catalog.products["bread_maxima"]
    assert response.results[0].match_type == "exact"
    assert {r.product.id for r in response.results} >= {catalog.products["bread_rimi"]}


@pytest.mark.asyncio
async def test_store_filter_and_pagination(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)

    filtered = await service.search(
        SearchRequest(query="duona", store_ids=[catalog.stores["rimi"]], prefer_fuzzy=True)
    )
    assert [r.product.id for r in filtered.results] == [catalog.products["bread_rimi"]]

    first_page = await service.search(SearchRequest(query="duona", limit=1, prefer_fuzzy=True))
    second_page = await service.search(SearchRequest(query="duona", limit=1, offset=1, prefer_fuzzy=True))
    assert len(first_page.results) == len(second_page.results) == 1
    assert first_page.results[0].product.id != second_page.results[0].product.id


@pytest.mark.asyncio
async def test_hit_carries_store_name_and_aware_dates(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)
    response = await service.search(SearchRequest(query="Obuoliai", prefer_fuzzy=True))

    hit = response.results[0].product
    assert hit.store_name == "Rimi"
    assert hit.unit_size == "1 kg"
    assert hit.valid_to.tzinfo is not None


@pytest.mark.asyncio
async def test_blank_query_returns_nothing(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)
    response = await service.search(SearchRequest(query="   "))
    assert response.results == []


def test_escape_like_neutralizes_wildcards() -> None:
    assert escape_like("pien_s") == "pien\\_s"
    assert escape_like("50%") == "50\\%"
    assert escape_like("a\\b") == "a\\\\b"
    assert escape_like("pienas") == "pienas"


@pytest.mark.asyncio
async def test_underscore_in_query_is_literal(session_factory, catalog) -> None:
    service = ProductSearchService(session_factory)
    response = await service.search(SearchRequest(query="pien_s", prefer_fuzzy=False))
    assert response.results == []
