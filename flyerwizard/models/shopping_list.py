"""
models/shopping_list.py — SQLAlchemy ORM models for shopping lists and their items.

Tables: shopping_lists, shopping_list_items

shopping_lists.is_locked is the application-level lock raised while a migration wizard
session is in flight; ordinary list edits must check it. It is cleared on confirm or cancel.

shopping_list_items.origin distinguishes flyer-sourced items ('flyer', linked to a products
row) from free text ('free_text'). Only flyer items can expire.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flyerwizard.database import Base

ORIGIN_FLYER = "flyer"
ORIGIN_FREE_TEXT = "free_text"


class ShoppingListORM(Base):
    __tablename__ = "shopping_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_locked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True while a migration wizard session is active for this list",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


class ShoppingListItemORM(Base):
    __tablename__ = "shopping_list_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopping_list_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("shopping_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    origin: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ORIGIN_FREE_TEXT,
        comment="'flyer' (linked to an offer) or 'free_text'",
    )

    # --- Product linking ---
    linked_product_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )
    product_master_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    store_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("stores.id", ondelete="SET NULL"),
        nullable=True,
    )
    flyer_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("flyers.id", ondelete="SET NULL"),
        nullable=True,
    )

    # --- Price / availability ---
    estimated_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    availability_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unknown")
    availability_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
