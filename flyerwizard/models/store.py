"""
models/store.py — SQLAlchemy ORM model for retail chains publishing flyers.

Table: stores
"""
from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flyerwizard.database import Base


class StoreORM(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Short stable identifier, e.g. 'iki' or 'maxima'",
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
