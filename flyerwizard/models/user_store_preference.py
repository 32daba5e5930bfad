"""
models/user_store_preference.py — stores a user has marked as preferred.

Table: user_store_preferences
Presence of a (user_id, store_id) row means preferred; there is no "neutral" state.
"""
from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from flyerwizard.database import Base


class UserStorePreferenceORM(Base):
    __tablename__ = "user_store_preferences"
    __table_args__ = (UniqueConstraint("user_id", "store_id", name="uq_user_store_preference"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    store_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
    )
