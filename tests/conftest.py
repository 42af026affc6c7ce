"""Pytest configuration and shared fixtures.

This module provides fixtures for testing the quotedesk importer,
including temporary databases, catalog sample data and spreadsheet
builders.
"""

import logging
from pathlib import Path
from typing import Callable, Generator, Optional

import pandas as pd
import pytest

from quotedesk.catalog.config import reset_config
from quotedesk.catalog.db.models import Book, Publisher
from quotedesk.catalog.db.schemas import BookCreate, PricingCreate
from quotedesk.catalog.db.sqlite import Database, reset_db

TENANT = "tenant-a"


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Point every test at its own database and log directory."""
    reset_db()
    reset_config()

    monkeypatch.setenv("QUOTEDESK_DB_PATH", str(tmp_path / "catalog.db"))
    monkeypatch.setenv("QUOTEDESK_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("QUOTEDESK_TENANT_ID", TENANT)
    monkeypatch.setenv("QUOTEDESK_DEFAULT_CURRENCY", "INR")
    monkeypatch.setenv("QUOTEDESK_AUDIT_FORMAT", "json")

    yield

    reset_db()
    reset_config()


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    """Undo handlers installed by setup_logging (the CLI calls it on every run)."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    """Audit log directory of the current test."""
    return tmp_path / "logs"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db(tmp_path: Path) -> Database:
    """Create a test database instance."""
    database = Database(str(tmp_path / "test.db"))
    database.create_tables()
    return database


@pytest.fixture
def memory_db() -> Database:
    """In-memory database for quick store tests."""
    database = Database(":memory:")
    database.create_tables()
    return database


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def make_book(db: Database) -> Callable[..., Book]:
    """Factory creating a catalog book, optionally with publisher and pricing."""

    def _make_book(
        title: str = "Book A",
        isbn: Optional[str] = None,
        other_code: Optional[str] = None,
        publisher: Optional[str] = None,
        source: Optional[str] = None,
        rate: float = 10.0,
        discount: float = 0,
        currency: str = "USD",
        stock: Optional[int] = None,
        tenant_id: str = TENANT,
    ) -> Book:
        publisher_id = None
        if publisher:
            publisher_id = db.get_or_create_publisher(tenant_id, publisher).id
        book = db.create_book(
            tenant_id,
            BookCreate(title=title, author="Auth", isbn=isbn, other_code=other_code),
            publisher_id,
        )
        if source:
            db.create_pricing(
                tenant_id,
                book.id,
                PricingCreate(
                    source=source,
                    rate=rate,
                    discount=discount,
                    currency=currency,
                    stock=stock,
                ),
            )
        return book

    return _make_book


@pytest.fixture
def publisher(db: Database) -> Publisher:
    """A publisher in the test tenant."""
    return db.get_or_create_publisher(TENANT, "Penguin Books")


# ============================================================================
# Spreadsheet Fixtures
# ============================================================================


@pytest.fixture
def make_sheet(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a spreadsheet with the given header row and rows.

    The extension of ``name`` picks the format (.xlsx or .csv).
    """

    def _make_sheet(
        headers: list[str],
        rows: list[list[str]],
        name: str = "books.xlsx",
    ) -> Path:
        path = tmp_path / name
        df = pd.DataFrame(rows, columns=headers, dtype=str)
        if path.suffix == ".csv":
            df.to_csv(path, index=False)
        else:
            df.to_excel(path, index=False)
        return path

    return _make_sheet


@pytest.fixture
def standard_headers() -> list[str]:
    """Header row every dictionary entry understands."""
    return ["ISBN", "Title", "Author", "Price", "Currency"]
