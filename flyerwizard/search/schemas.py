"""
schemas.py — Product search request/response contracts.

The wizard consumes search only through these types; any engine that accepts a
SearchRequest and returns a SearchResponse can stand behind ProductSearchService.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str
    store_ids: Optional[List[int]] = None    # None = all stores
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    prefer_fuzzy: bool = False


class ProductHit(BaseModel):
    """A currently valid flyer offer, flattened with its store name."""
    id: int
    name: str
    brand: Optional[str] = None
    store_id: int
    store_name: str
    flyer_id: int
    product_master_id: Optional[int] = None
    current_price: float
    unit_type: Optional[str] = None
    unit_size: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class SearchResult(BaseModel):
    product: ProductHit
    score: float
    match_type: Literal["exact", "fuzzy"]


class SearchResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    query_time_ms: float = 0.0
