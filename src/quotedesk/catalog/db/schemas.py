"""Pydantic schemas for data validation.

These schemas describe the catalog records (books, pricing, publishers,
import templates) and the enums shared by the import pipeline.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class MatchStatus(str, Enum):
    """Relationship of an incoming row to the existing catalog."""

    NEW = "NEW"
    DUPLICATE = "DUPLICATE"
    CONFLICT = "CONFLICT"


class PricingAction(str, Enum):
    """What to do with the pricing record of a matched book."""

    ADD_PRICE = "ADD_PRICE"
    UPDATE_PRICE = "UPDATE_PRICE"
    NO_CHANGE = "NO_CHANGE"


class MatchedBy(str, Enum):
    """Identity key that located an existing book."""

    ISBN = "isbn"
    OTHER_CODE = "other_code"
    TITLE_PUBLISHER = "title_publisher"


class ImportType(str, Enum):
    """Kind of spreadsheet being imported."""

    GENERAL = "general"  # Full book info with optional pricing
    PRICE_LIST = "price_list"  # Rate is mandatory
    STOCK_FEED = "stock_feed"  # Stock is mandatory


# ============================================================================
# Catalog Schemas
# ============================================================================


class BookCreate(BaseModel):
    """Normalized book data from one import row."""

    title: Optional[str] = None
    author: Optional[str] = None
    edition: Optional[str] = None
    year: Optional[int] = None
    isbn: Optional[str] = Field(None, max_length=13)
    other_code: Optional[str] = None
    classification: Optional[str] = None
    remarks: Optional[str] = None
    binding_type: Optional[str] = Field(None, description="Paperback, Hardcover, etc.")
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v) -> list[str]:
        """Accept comma-separated tag strings."""
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return list(v)


class PricingCreate(BaseModel):
    """Normalized pricing data from one import row."""

    source: str = Field(..., min_length=1, description="Vendor, file or feed label")
    rate: Optional[float] = None
    currency: str = Field(..., min_length=1)
    discount: float = 0
    stock: Optional[int] = None
    binding_type: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        """Currency codes are stored upper-cased."""
        return str(v).strip().upper() if v is not None else v


# ============================================================================
# Import Template Schemas
# ============================================================================


class ImportTemplateCreate(BaseModel):
    """Schema for saving a reusable header mapping."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    mapping: dict[str, str] = Field(..., description="Spreadsheet header -> domain field")
    expected_headers: list[str] = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Template name must not be blank")
        return v


class ImportTemplateUpdate(BaseModel):
    """Schema for updating a template. All fields optional."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    mapping: Optional[dict[str, str]] = None
    expected_headers: Optional[list[str]] = None


class ImportTemplateResponse(BaseModel):
    """Template as returned to callers."""

    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    mapping: dict[str, str]
    expected_headers: list[str]
    fingerprint: str
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
