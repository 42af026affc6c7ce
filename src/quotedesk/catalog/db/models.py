"""SQLAlchemy ORM models for the catalog database.

Tables:
- publishers: Publisher names, unique per tenant
- books: Catalog entries
- book_pricing: One price quote per (book, source)
- import_templates: Saved header mappings for spreadsheet imports
"""

import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class Publisher(Base):
    """Publisher model. Names are stored trimmed and upper-cased."""

    __tablename__ = "publishers"
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_publisher_tenant_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)

    books: Mapped[list["Book"]] = relationship("Book", back_populates="publisher")

    def __repr__(self) -> str:
        return f"<Publisher(id={self.id}, name='{self.name}')>"


class Book(Base):
    """Book model - one catalog entry per real-world book."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Core fields
    title: Mapped[Optional[str]] = mapped_column(String(500), index=True)
    title_key: Mapped[Optional[str]] = mapped_column(String(500), index=True)  # casefolded
    author: Mapped[Optional[str]] = mapped_column(String(500))
    edition: Mapped[Optional[str]] = mapped_column(String(100))
    year: Mapped[Optional[int]] = mapped_column(Integer)

    # Identifiers (lookup order: isbn, other_code, title + publisher)
    isbn: Mapped[Optional[str]] = mapped_column(String(13), index=True)
    other_code: Mapped[Optional[str]] = mapped_column(String(100), index=True)

    publisher_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("publishers.id"), index=True
    )

    # Metadata
    classification: Mapped[Optional[str]] = mapped_column(String(300))
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[Optional[str]] = mapped_column(Text)  # JSON array

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    publisher: Mapped[Optional[Publisher]] = relationship("Publisher", back_populates="books")
    pricing: Mapped[list["BookPricing"]] = relationship(
        "BookPricing", back_populates="book", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', isbn='{self.isbn}')>"

    def get_tags(self) -> list[str]:
        """Get tags as list."""
        if self.tags:
            return json.loads(self.tags)
        return []

    def set_tags(self, tags: list[str]) -> None:
        """Set tags from list."""
        self.tags = json.dumps(tags) if tags else None


class BookPricing(Base):
    """A price quote for a book from one source."""

    __tablename__ = "book_pricing"
    __table_args__ = (UniqueConstraint("book_id", "source", name="uq_pricing_book_source"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(300), nullable=False)

    rate: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    discount: Mapped[float] = mapped_column(Float, nullable=False, default=0)  # Percent
    stock: Mapped[Optional[int]] = mapped_column(Integer)
    binding_type: Mapped[Optional[str]] = mapped_column(String(50))

    last_updated: Mapped[str] = mapped_column(String(32), default=utc_now)
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)

    book: Mapped[Book] = relationship("Book", back_populates="pricing")

    def __repr__(self) -> str:
        return (
            f"<BookPricing(book_id={self.book_id}, source='{self.source}', "
            f"rate={self.rate} {self.currency})>"
        )


class ImportTemplate(Base):
    """Saved header -> field mapping, matched by header fingerprint."""

    __tablename__ = "import_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    mapping: Mapped[str] = mapped_column(Text, nullable=False)  # JSON dict
    expected_headers: Mapped[str] = mapped_column(Text, nullable=False)  # JSON array
    fingerprint: Mapped[str] = mapped_column(String(40), nullable=False, index=True)

    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    last_used_at: Mapped[Optional[str]] = mapped_column(String(32))

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<ImportTemplate(id={self.id}, name='{self.name}', uses={self.usage_count})>"

    def get_mapping(self) -> dict[str, str]:
        """Get mapping as dict."""
        return json.loads(self.mapping) if self.mapping else {}

    def set_mapping(self, mapping: dict[str, str]) -> None:
        """Set mapping from dict."""
        self.mapping = json.dumps(mapping)

    def get_expected_headers(self) -> list[str]:
        """Get expected headers as list."""
        return json.loads(self.expected_headers) if self.expected_headers else []

    def set_expected_headers(self, headers: list[str]) -> None:
        """Set expected headers from list."""
        self.expected_headers = json.dumps(headers)
