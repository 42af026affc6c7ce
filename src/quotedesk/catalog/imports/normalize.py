"""Row normalization.

Turns one raw spreadsheet row plus a header mapping into typed book,
pricing and publisher data.
"""

from dataclasses import dataclass, field
from typing import Optional

from ..db.schemas import BookCreate, ImportType, PricingCreate
from .errors import RowSkipped
from .headers import PRICING_FIELDS, PUBLISHER_FIELDS
from .isbn import clean_isbn, is_valid_isbn

DEFAULT_CURRENCY = "INR"


@dataclass
class NormalizedRow:
    """Typed data extracted from one spreadsheet row."""

    book_data: dict = field(default_factory=dict)
    pricing_data: dict = field(default_factory=dict)
    publisher_data: dict = field(default_factory=dict)

    @property
    def title(self) -> Optional[str]:
        return self.book_data.get("title")

    @property
    def isbn(self) -> Optional[str]:
        return self.book_data.get("isbn")

    @property
    def publisher_name(self) -> Optional[str]:
        return self.publisher_data.get("publisher_name")

    def to_book_create(self) -> BookCreate:
        """Convert to BookCreate schema."""
        return BookCreate(**self.book_data)

    def to_pricing_create(self) -> PricingCreate:
        """Convert to PricingCreate schema.

        Binding type is a book column in the sheet but is stored per quote.
        """
        return PricingCreate(
            binding_type=self.book_data.get("binding_type"),
            **self.pricing_data,
        )


def _parse_int(value: Optional[str]) -> Optional[int]:
    """Parse integer value."""
    if not value:
        return None
    try:
        # Excel often stores whole numbers as "2019.0"
        return int(float(value.replace(",", "")))
    except (ValueError, TypeError, OverflowError):
        return None


def _parse_float(value: Optional[str]) -> Optional[float]:
    """Parse float value."""
    if not value:
        return None
    try:
        number = float(value.replace(",", ""))
    except (ValueError, TypeError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def normalize_row(
    row: dict,
    mapping: dict[str, str],
    source_label: str,
    default_currency: str = DEFAULT_CURRENCY,
) -> NormalizedRow:
    """Sort a raw row into book, pricing and publisher buckets.

    Only mapped headers with a non-empty value are read. ``year``, ``rate``
    and ``stock`` become numbers or are dropped when unparseable;
    ``discount`` falls back to 0. An ISBN is cleaned and dropped if its
    checksum fails. ``source`` defaults to the batch label and ``currency``
    to ``default_currency``.

    Args:
        row: Header -> raw cell value
        mapping: Header -> catalog field
        source_label: Batch label used when the row names no source
        default_currency: Currency used when the row names none

    Returns:
        NormalizedRow with the three buckets filled in
    """
    result = NormalizedRow()

    for header, target in mapping.items():
        raw = row.get(header)
        if raw is None:
            continue
        value = str(raw).strip()
        if not value:
            continue

        if target in PRICING_FIELDS:
            result.pricing_data[target] = value
        elif target in PUBLISHER_FIELDS:
            result.publisher_data[target] = value
        else:
            result.book_data[target] = value

    book = result.book_data
    pricing = result.pricing_data

    if "isbn" in book:
        book["isbn"] = clean_isbn(book["isbn"]) if is_valid_isbn(book["isbn"]) else None
    if "year" in book:
        book["year"] = _parse_int(book["year"])

    if "rate" in pricing:
        pricing["rate"] = _parse_float(pricing["rate"])
    if "stock" in pricing:
        pricing["stock"] = _parse_int(pricing["stock"])
    pricing["discount"] = _parse_float(pricing.get("discount")) or 0

    if not pricing.get("source"):
        pricing["source"] = source_label
    if not pricing.get("currency"):
        pricing["currency"] = default_currency
    pricing["currency"] = pricing["currency"].upper()

    # Parsed fields that failed are absent, not null
    for bucket in (book, pricing):
        for key in [k for k, v in bucket.items() if v is None]:
            del bucket[key]

    return result


def check_importable(
    normalized: NormalizedRow, import_type: ImportType = ImportType.GENERAL
) -> None:
    """Raise RowSkipped if the row cannot be imported as this import type."""
    if not normalized.title and not normalized.isbn:
        raise RowSkipped("Missing both title and ISBN")
    if import_type == ImportType.PRICE_LIST and normalized.pricing_data.get("rate") is None:
        raise RowSkipped("Missing rate for price list import")
    if import_type == ImportType.STOCK_FEED and normalized.pricing_data.get("stock") is None:
        raise RowSkipped("Missing stock for stock feed import")
