"""
service.py — ProductSearchService: token prefilter in SQL + BM25 ranking in memory.

Retrieval strategy:
  - Prefilter: currently valid offers (valid_to >= now) whose name or brand contains
    the query tokens (ALL tokens in exact mode, ANY token when prefer_fuzzy=True),
    capped at settings.search_candidate_pool rows
  - Rank:     BM25Okapi over "brand name" token lists of the prefiltered rows
  - Order:    exact-phrase matches first, then BM25 score desc, then product id asc,
              then offset/limit
  - match_type is "exact" when the whole normalized query appears in the offer text

Each call opens its own AsyncSession from the injected factory, so several searches can
run concurrently (the wizard fans out one per expired item).
"""
import logging
import re
import time
from typing import Optional

from rank_bm25 import BM25Okapi
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flyerwizard.config import settings
from flyerwizard.models.product import ProductORM
from flyerwizard.models.store import StoreORM
from flyerwizard.search.schemas import ProductHit, SearchRequest, SearchResponse, SearchResult
from flyerwizard.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens. Used for both the query and the indexed offer text."""
    return _TOKEN_RE.findall(text.lower())


def escape_like(token: str) -> str:
    """Escape LIKE wildcards so a token only matches itself. Pair with escape='\\'."""
    return token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _offer_text(product: ProductORM) -> str:
    return f"{product.brand or ''} {product.name}".strip()


class ProductSearchService:
    """
    Search over the products table.

    Attributes:
        session_factory: async_sessionmaker producing AsyncSession instances
        candidate_pool:  max rows fetched for BM25 ranking per query
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        candidate_pool: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.candidate_pool = candidate_pool or settings.search_candidate_pool

    async def search(self, request: SearchRequest) -> SearchResponse:
        started = time.perf_counter()
        tokens = tokenize(request.query)
        if not tokens:
            return SearchResponse(results=[], query_time_ms=0.0)

        rows = await self._fetch_candidates(request, tokens)
        results = self._rank(rows, tokens, request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "Product search tokens=%d candidates=%d returned=%d fuzzy=%s time_ms=%.1f",
            len(tokens), len(rows), len(results), request.prefer_fuzzy, elapsed_ms,
        )
        return SearchResponse(results=results, query_time_ms=elapsed_ms)

    async def _fetch_candidates(
        self, request: SearchRequest, tokens: list[str]
    ) -> list[tuple[ProductORM, str]]:
        haystack = func.lower(func.coalesce(ProductORM.brand, "") + " " + ProductORM.name)
        token_clauses = [haystack.like(f"%{escape_like(token)}%", escape="\\") for token in tokens]
        match_clause = or_(*token_clauses) if request.prefer_fuzzy else and_(*token_clauses)

        stmt = (
            select(ProductORM, StoreORM.name)
            .join(StoreORM, StoreORM.id == ProductORM.store_id)
            .where(ProductORM.valid_to >= utcnow())
            .where(match_clause)
            .order_by(ProductORM.id.asc())
            .limit(self.candidate_pool)
        )
        if request.store_ids:
            stmt = stmt.where(ProductORM.store_id.in_(request.store_ids))

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [(product, store_name) for product, store_name in result.all()]

    def _rank(
        self,
        rows: list[tuple[ProductORM, str]],
        tokens: list[str],
        request: SearchRequest,
    ) -> list[SearchResult]:
        if not rows:
            return []

        corpus = [tokenize(_offer_text(product)) for product, _ in rows]
        bm25 = BM25Okapi(corpus)
        scores = bm25.get_scores(tokens)
        phrase = " ".join(tokens)

        scored = []
        for (product, store_name), doc_tokens, score in zip(rows, corpus, scores):
            match_type = "exact" if phrase in " ".join(doc_tokens) else "fuzzy"
            scored.append((float(score), product, store_name, match_type))

        # Exact phrase matches first, then BM25, then id for a stable order
        scored.sort(key=lambda row: (row[3] != "exact", -row[0], row[1].id))
        window = scored[request.offset: request.offset + request.limit]
        return [
            SearchResult(
                product=_to_hit(product, store_name),
                score=score,
                match_type=match_type,
            )
            for score, product, store_name, match_type in window
        ]


def _to_hit(product: ProductORM, store_name: str) -> ProductHit:
    return ProductHit(
        id=product.id,
        name=product.name,
        brand=product.brand,
        store_id=product.store_id,
        store_name=store_name,
        flyer_id=product.flyer_id,
        product_master_id=product.product_master_id,
        current_price=product.current_price,
        unit_type=product.unit_type,
        unit_size=product.unit_size,
        valid_from=as_utc(product.valid_from),
        valid_to=as_utc(product.valid_to),
    )
