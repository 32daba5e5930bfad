"""
Two-pass alternative search for expired shopping list items.

Pass 1: brand + name (only when the expired item has a brand), limit 20, fuzzy
Pass 2: name only, always, limit 30, fuzzy
Merge:  all Pass 1 hits first, then Pass 2 hits not already seen (by product id),
        so same-brand alternatives are never pushed out by the broader query.

Search failures never fail the wizard: a failed pass is logged and skipped, and an
item whose both passes failed simply gets no suggestions.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from flyerwizard.metrics import wizard_suggestions_returned
from flyerwizard.search.schemas import ProductHit, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)

BRAND_PASS_LIMIT = 20
NAME_PASS_LIMIT = 30


class SearchBackend(Protocol):
    async def search(self, request: SearchRequest) -> SearchResponse: ...


async def _run_pass(
    search_service: SearchBackend, query: str, limit: int, label: str, item_id: Optional[int]
) -> Optional[SearchResponse]:
    request = SearchRequest(query=query, store_ids=None, limit=limit, offset=0, prefer_fuzzy=True)
    try:
        response = await search_service.search(request)
    except Exception:
        logger.error("%s search failed item_id=%s", label, item_id, exc_info=True)
        return None
    logger.info(
        "%s results item_id=%s count=%d query_time_ms=%.1f",
        label, item_id, len(response.results), response.query_time_ms,
    )
    return response


async def find_alternatives(
    search_service: SearchBackend,
    product_name: str,
    brand: Optional[str] = None,
    item_id: Optional[int] = None,
) -> list[ProductHit]:
    """Deduplicated replacement candidates for one expired item, brand matches first."""
    seen: set[int] = set()
    hits: list[ProductHit] = []
    pass1_count = pass2_count = 0

    if brand:
        response = await _run_pass(
            search_service, f"{brand} {product_name}", BRAND_PASS_LIMIT, "pass 1 (brand+name)", item_id
        )
        if response is not None:
            for result in response.results:
                if result.product.id not in seen:
                    seen.add(result.product.id)
                    hits.append(result.product)
                    pass1_count += 1

    response = await _run_pass(search_service, product_name, NAME_PASS_LIMIT, "pass 2 (name)", item_id)
    if response is not None:
        for result in response.results:
            if result.product.id not in seen:
                seen.add(result.product.id)
                hits.append(result.product)
                pass2_count += 1

    has_same_brand = bool(brand) and any(hit.brand == brand for hit in hits)
    wizard_suggestions_returned.labels(has_same_brand=str(has_same_brand).lower()).observe(len(hits))

    logger.info(
        "Two-pass search completed item_id=%s total=%d pass1_unique=%d pass2_unique=%d same_brand=%s",
        item_id, len(hits), pass1_count, pass2_count, has_same_brand,
    )
    return hits
