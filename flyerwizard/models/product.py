"""
models/product.py — SQLAlchemy ORM model for flyer offers ("flyer products").

Table: products
One row per offer printed in a flyer. Wizard suggestions reference these rows by id
(flyer_product_id); shopping list items link to them via linked_product_id.
"""
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flyerwizard.database import Base


class ProductORM(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    flyer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("flyers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    store_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_master_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Canonical product this offer was matched to, if any",
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    current_price: Mapped[float] = mapped_column(Float, nullable=False)
    unit_type: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Pricing unit: 'L', 'kg', 'vnt', ...",
    )
    unit_size: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Raw package size text as printed, e.g. '1,5 l' or '500 g'",
    )
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
