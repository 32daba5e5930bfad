"""
models/offer_snapshot.py — SQLAlchemy ORM model for immutable offer audit records.

Table: offer_snapshots
Written by the wizard confirm step, one row per REPLACE decision, inside the commit
transaction. Product fields are denormalized so the record survives offer deletion.
Rows are never updated after insert.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flyerwizard.database import Base

SNAPSHOT_REASON_WIZARD_MIGRATION = "wizard_migration"


class OfferSnapshotORM(Base):
    __tablename__ = "offer_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shopping_list_item_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("shopping_list_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Product references. No FK on flyer_product_id; offers are archived independently
    flyer_product_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    product_master_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    store_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("stores.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Offer as it was at snapshot time
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)
    size_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    size_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    estimated: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Always false for wizard snapshots — actual flyer prices only",
    )
    snapshot_reason: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=SNAPSHOT_REASON_WIZARD_MIGRATION,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
