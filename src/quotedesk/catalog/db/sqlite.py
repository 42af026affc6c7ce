"""SQLite database operations.

Handles database connection, session management, and the tenant-scoped
lookups and writes the import pipeline depends on.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, Book, BookPricing, Publisher, utc_now
from .schemas import BookCreate, PricingCreate

logger = logging.getLogger(__name__)

# Columns update_pricing() is allowed to touch
PRICING_UPDATE_FIELDS = ("rate", "discount", "currency", "stock", "binding_type")


def normalize_publisher_name(name: str) -> str:
    """Publisher names are compared and stored trimmed and upper-cased."""
    return " ".join(str(name).split()).upper()



def title_key(title: Optional[str]) -> Optional[str]:
    """Case-folded title used for title lookups.

    SQLite's lower() only folds ASCII, so the folded form is computed here
    and stored next to the title.
    """
    if title is None or not str(title).strip():
        return None
    return str(title).strip().casefold()


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     QUOTEDESK_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "QUOTEDESK_DB_PATH",
                str(Path.home() / ".quotedesk" / "catalog.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Publisher Operations
    # ========================================================================

    def get_publisher_by_name(self, tenant_id: str, name: str) -> Optional[Publisher]:
        """Find a publisher by its normalized name within a tenant."""
        if not name or not name.strip():
            return None
        clean_name = normalize_publisher_name(name)
        with self.get_session() as s:
            stmt = select(Publisher).where(
                Publisher.tenant_id == tenant_id,
                Publisher.name == clean_name,
            )
            publisher = s.execute(stmt).scalar_one_or_none()
            if publisher:
                s.expunge(publisher)
            return publisher

    def create_publisher(self, tenant_id: str, name: str) -> Publisher:
        """Create a publisher. Raises IntegrityError if the name is taken."""
        with self.get_session() as s:
            publisher = Publisher(tenant_id=tenant_id, name=normalize_publisher_name(name))
            s.add(publisher)
            s.flush()
            s.expunge(publisher)
            return publisher

    def get_or_create_publisher(self, tenant_id: str, name: str) -> Publisher:
        """Fetch a publisher by name, creating it if absent.

        A concurrent import may create the same name between the lookup and
        the insert; the unique constraint rejects the second insert and the
        existing row is fetched instead.
        """
        if not name or not str(name).strip():
            raise ValueError("Publisher name is required and must be a non-empty string.")

        existing = self.get_publisher_by_name(tenant_id, name)
        if existing:
            return existing

        try:
            return self.create_publisher(tenant_id, name)
        except IntegrityError:
            logger.info("Publisher %r created concurrently, re-fetching", name)
            existing = self.get_publisher_by_name(tenant_id, name)
            if existing is None:
                raise
            return existing

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(
        self, tenant_id: str, book: BookCreate, publisher_id: Optional[str] = None
    ) -> Book:
        """Create a new book record."""
        with self.get_session() as s:
            db_book = Book(
                tenant_id=tenant_id,
                title=book.title,
                title_key=title_key(book.title),
                author=book.author,
                edition=book.edition,
                year=book.year,
                isbn=book.isbn,
                other_code=book.other_code,
                publisher_id=publisher_id,
                classification=book.classification,
                remarks=book.remarks,
            )
            db_book.set_tags(book.tags)
            s.add(db_book)
            s.flush()
            s.expunge(db_book)
            return db_book

    def get_book(self, book_id: str) -> Optional[Book]:
        """Get a book by ID."""
        with self.get_session() as s:
            book = s.get(Book, book_id)
            if book:
                s.expunge(book)
            return book

    def find_book_by_isbn(self, tenant_id: str, isbn: str) -> Optional[Book]:
        """Get the first book with this ISBN in the tenant."""
        return self._find_first_book(tenant_id, Book.isbn == isbn)

    def find_book_by_other_code(self, tenant_id: str, other_code: str) -> Optional[Book]:
        """Get the first book with this alternate code in the tenant."""
        return self._find_first_book(tenant_id, Book.other_code == other_code)

    def find_book_by_title(
        self, tenant_id: str, title: str, publisher_id: str
    ) -> Optional[Book]:
        """Get a book by case-insensitive exact title under a publisher."""
        key = title_key(title)
        if key is None:
            return None
        return self._find_first_book(
            tenant_id,
            Book.title_key == key,
            Book.publisher_id == publisher_id,
        )

    def _find_first_book(self, tenant_id: str, *criteria) -> Optional[Book]:
        with self.get_session() as s:
            stmt = (
                select(Book)
                .where(Book.tenant_id == tenant_id, *criteria)
                .order_by(Book.created_at)
                .limit(1)
            )
            book = s.execute(stmt).scalars().first()
            if book:
                s.expunge(book)
            return book

    def delete_book(self, book_id: str) -> bool:
        """Delete a book and its pricing records. Returns False if not found."""
        with self.get_session() as s:
            book = s.get(Book, book_id)
            if not book:
                return False
            s.delete(book)
            return True

    def count_books(self, tenant_id: str) -> int:
        """Count books in a tenant."""
        with self.get_session() as s:
            stmt = select(func.count()).select_from(Book).where(Book.tenant_id == tenant_id)
            return s.execute(stmt).scalar_one()

    # ========================================================================
    # Pricing Operations
    # ========================================================================

    def find_pricing(self, tenant_id: str, book_id: str, source: str) -> Optional[BookPricing]:
        """Get the pricing record for a (book, source) pair."""
        with self.get_session() as s:
            stmt = select(BookPricing).where(
                BookPricing.tenant_id == tenant_id,
                BookPricing.book_id == book_id,
                BookPricing.source == source,
            )
            pricing = s.execute(stmt).scalar_one_or_none()
            if pricing:
                s.expunge(pricing)
            return pricing

    def create_pricing(
        self, tenant_id: str, book_id: str, pricing: PricingCreate
    ) -> BookPricing:
        """Create a pricing record for a book."""
        with self.get_session() as s:
            db_pricing = BookPricing(
                tenant_id=tenant_id,
                book_id=book_id,
                source=pricing.source,
                rate=pricing.rate if pricing.rate is not None else 0,
                currency=pricing.currency,
                discount=pricing.discount,
                stock=pricing.stock,
                binding_type=pricing.binding_type,
            )
            s.add(db_pricing)
            s.flush()
            s.expunge(db_pricing)
            return db_pricing

    def update_pricing(self, pricing_id: str, **fields) -> Optional[BookPricing]:
        """Update selected columns of a pricing record by id."""
        unknown = set(fields) - set(PRICING_UPDATE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update pricing fields: {', '.join(sorted(unknown))}")

        with self.get_session() as s:
            pricing = s.get(BookPricing, pricing_id)
            if not pricing:
                return None
            for field, value in fields.items():
                setattr(pricing, field, value)
            pricing.last_updated = utc_now()
            s.flush()
            s.expunge(pricing)
            return pricing

    def get_pricing_for_book(self, book_id: str) -> list[BookPricing]:
        """Get all pricing records of a book."""
        with self.get_session() as s:
            stmt = (
                select(BookPricing)
                .where(BookPricing.book_id == book_id)
                .order_by(BookPricing.created_at)
            )
            records = list(s.execute(stmt).scalars().all())
            for record in records:
                s.expunge(record)
            return records


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
