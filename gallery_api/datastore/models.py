"""
Persistent store models (SQLAlchemy 2.0 declarative mapping).
"""

from sqlalchemy import Float, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""

    pass


class KeyValueDB(Base):
    """Key-value rows with optional expiry, backing the persistent cache tier."""

    __tablename__ = "gallery_api_store"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(
        String(500), unique=True, nullable=False, index=True
    )
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    stored_at: Mapped[float] = mapped_column(Float, nullable=False)
    # Unix timestamp; NULL means the entry never expires
    expires_at: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<KeyValue(key={self.key[:50]}, expires_at={self.expires_at})>"
