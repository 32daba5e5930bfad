"""
models/flyer.py — SQLAlchemy ORM model for weekly store flyers.

Table: flyers
A flyer's valid_to bounds every offer printed in it. Wizard revalidation treats an offer
whose flyer has passed valid_to as stale.
"""
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flyerwizard.database import Base


class FlyerORM(Base):
    __tablename__ = "flyers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Last moment any offer in this flyer is honoured",
    )
