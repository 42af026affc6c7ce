"""Database module for the catalog store."""

from .models import Book, BookPricing, ImportTemplate, Publisher
from .schemas import (
    BookCreate,
    ImportTemplateCreate,
    ImportTemplateResponse,
    ImportTemplateUpdate,
    ImportType,
    MatchStatus,
    PricingAction,
    PricingCreate,
)
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Book",
    "BookPricing",
    "ImportTemplate",
    "Publisher",
    "BookCreate",
    "PricingCreate",
    "ImportTemplateCreate",
    "ImportTemplateUpdate",
    "ImportTemplateResponse",
    "ImportType",
    "MatchStatus",
    "PricingAction",
    "Database",
    "get_db",
    "reset_db",
]
