"""Spreadsheet header to catalog field mapping.

Two lookup tables drive the mapping:
1. HEADER_MAP: exact, case-sensitive header names (binding)
2. FUZZY_MAP: case-insensitive aliases, with a fuzzy fallback (suggestions only)

Both are plain data; extend them without touching the matching code.
"""

from dataclasses import dataclass, field
from typing import Optional

from thefuzz import fuzz, process

from .errors import MappingError

# Exact header -> field
HEADER_MAP: dict[str, str] = {
    # Book fields
    "ISBN": "isbn",
    "Non ISBN": "other_code",
    "Other Code": "other_code",
    "Title": "title",
    "Author": "author",
    "EDITION": "edition",
    "Edition": "edition",
    "Year": "year",
    "Publisher": "publisher_name",
    "Binding Type": "binding_type",
    "Sub_Subject": "classification",
    "Subject": "remarks",
    "Classification": "classification",
    "Remarks": "remarks",
    "Tags": "tags",
    # Pricing fields
    "Price": "rate",
    "Rate": "rate",
    "Curr": "currency",
    "Currency": "currency",
    "Discount": "discount",
    "Source": "source",
    "Stock": "stock",
    "Qty": "stock",
    "Quantity": "stock",
}

# Lower-cased alias -> field, used for suggestions only
FUZZY_MAP: dict[str, str] = {
    "book title": "title",
    "book name": "title",
    "name": "title",
    "writer": "author",
    "book author": "author",
    "cost": "rate",
    "amount": "rate",
    "price": "rate",
    "usd": "currency",
    "inr": "currency",
    "rs": "currency",
    "rupees": "currency",
    "dollars": "currency",
    "publisher": "publisher_name",
    "publishing house": "publisher_name",
    "category": "classification",
    "subject": "classification",
    "type": "binding_type",
    "binding": "binding_type",
    "hardcover": "binding_type",
    "paperback": "binding_type",
    "notes": "remarks",
    "comment": "remarks",
    "description": "remarks",
    "isbn no": "isbn",
    "isbn number": "isbn",
    "qty": "stock",
    "quantity": "stock",
}

# Minimum thefuzz token-sort score for a fuzzy suggestion
SUGGESTION_THRESHOLD = 90

# Field buckets used by the row normalizer
PRICING_FIELDS = frozenset({"rate", "currency", "discount", "source", "stock"})
PUBLISHER_FIELDS = frozenset({"publisher_name"})
BOOK_FIELDS = frozenset(
    {
        "isbn",
        "other_code",
        "title",
        "author",
        "edition",
        "year",
        "binding_type",
        "classification",
        "remarks",
        "tags",
    }
)

REQUIRED_BOOK_FIELDS = ("title", "author")
REQUIRED_PRICING_FIELDS = ("rate", "currency")


@dataclass(frozen=True)
class FieldInfo:
    """An importable catalog field."""

    key: str
    label: str
    category: str  # book, publisher or pricing
    required: bool = False


DB_FIELDS: tuple[FieldInfo, ...] = (
    FieldInfo("isbn", "ISBN Code", "book"),
    FieldInfo("other_code", "Other Code (non-ISBN)", "book"),
    FieldInfo("title", "Book Title", "book", required=True),
    FieldInfo("author", "Author Name", "book", required=True),
    FieldInfo("edition", "Edition", "book"),
    FieldInfo("year", "Publish Year", "book"),
    FieldInfo("binding_type", "Binding Type", "book"),
    FieldInfo("classification", "Classification", "book"),
    FieldInfo("remarks", "Remarks", "book"),
    FieldInfo("tags", "Tags (comma separated)", "book"),
    FieldInfo("publisher_name", "Publisher Name", "publisher"),
    FieldInfo("rate", "Price/Rate", "pricing", required=True),
    FieldInfo("currency", "Currency (USD/INR)", "pricing", required=True),
    FieldInfo("discount", "Discount %", "pricing"),
    FieldInfo("source", "Source / Vendor", "pricing"),
    FieldInfo("stock", "Stock Quantity", "pricing"),
)

KNOWN_FIELDS = frozenset(f.key for f in DB_FIELDS)


@dataclass
class HeaderSuggestion:
    """Result of mapping a header row against the dictionaries."""

    headers: list[str] = field(default_factory=list)
    mapping: dict[str, str] = field(default_factory=dict)
    suggestions: dict[str, str] = field(default_factory=dict)
    unmapped: list[str] = field(default_factory=list)


@dataclass
class MappingValidationResult:
    """Coverage of the required fields by a mapping."""

    missing_book_fields: list[str] = field(default_factory=list)
    missing_pricing_fields: list[str] = field(default_factory=list)
    mapped_book_fields: list[str] = field(default_factory=list)
    mapped_pricing_fields: list[str] = field(default_factory=list)
    unknown_fields: list[str] = field(default_factory=list)
    missing_headers: list[str] = field(default_factory=list)

    @property
    def has_required_book_fields(self) -> bool:
        return not self.missing_book_fields

    @property
    def has_required_pricing_fields(self) -> bool:
        return not self.missing_pricing_fields

    @property
    def is_valid(self) -> bool:
        """True when the mapping is usable and covers every required field."""
        return (
            self.has_required_book_fields
            and self.has_required_pricing_fields
            and not self.unknown_fields
            and not self.missing_headers
        )

    def to_dict(self) -> dict:
        return {
            "has_required_book_fields": self.has_required_book_fields,
            "has_required_pricing_fields": self.has_required_pricing_fields,
            "missing_book_fields": self.missing_book_fields,
            "missing_pricing_fields": self.missing_pricing_fields,
            "mapped_fields": {
                "book": self.mapped_book_fields,
                "pricing": self.mapped_pricing_fields,
            },
            "unknown_fields": self.unknown_fields,
            "missing_headers": self.missing_headers,
        }


def available_fields() -> list[dict]:
    """List the importable fields as plain dicts."""
    return [
        {"key": f.key, "label": f.label, "category": f.category, "required": f.required}
        for f in DB_FIELDS
    ]


def suggest_field(header: str) -> Optional[str]:
    """Suggest a field for a header the exact dictionary does not know.

    Tries a case-insensitive alias lookup first, then the closest alias by
    token-sort ratio if it scores at least SUGGESTION_THRESHOLD.
    """
    lower = " ".join(header.lower().split())
    if not lower:
        return None
    if lower in FUZZY_MAP:
        return FUZZY_MAP[lower]

    best = process.extractOne(
        lower,
        list(FUZZY_MAP),
        scorer=fuzz.token_sort_ratio,
        score_cutoff=SUGGESTION_THRESHOLD,
    )
    if best:
        return FUZZY_MAP[best[0]]
    return None


def suggest_mapping(headers: list[str]) -> HeaderSuggestion:
    """Map a header row using the exact dictionary.

    Headers without an exact match get a non-binding suggestion when one
    exists; the rest are reported as unmapped. Blank headers are dropped.

    Example:
        >>> result = suggest_mapping(["ISBN", "Book Name", "Shelf"])
        >>> result.mapping, result.suggestions, result.unmapped
        ({'ISBN': 'isbn'}, {'Book Name': 'title'}, ['Shelf'])
    """
    result = HeaderSuggestion()

    for raw in headers:
        if raw is None:
            continue
        header = str(raw).strip()
        if not header:
            continue
        result.headers.append(header)

        if header in HEADER_MAP:
            result.mapping[header] = HEADER_MAP[header]
            continue

        suggestion = suggest_field(header)
        if suggestion:
            result.suggestions[header] = suggestion
        else:
            result.unmapped.append(header)

    return result


def validate_mapping_fields(
    headers: list[str], mapping: dict[str, str]
) -> MappingValidationResult:
    """Check which required book and pricing fields a mapping covers."""
    present = {str(h).strip() for h in headers if h is not None}
    fields = list(mapping.values())

    result = MappingValidationResult(
        mapped_book_fields=[f for f in fields if f in BOOK_FIELDS or f in PUBLISHER_FIELDS],
        mapped_pricing_fields=[f for f in fields if f in PRICING_FIELDS],
        unknown_fields=sorted({f for f in fields if f not in KNOWN_FIELDS}),
        missing_headers=[h for h in mapping if h.strip() not in present],
    )
    result.missing_book_fields = [
        f for f in REQUIRED_BOOK_FIELDS if f not in result.mapped_book_fields
    ]
    result.missing_pricing_fields = [
        f for f in REQUIRED_PRICING_FIELDS if f not in result.mapped_pricing_fields
    ]
    return result


def check_mapping(headers: list[str], mapping: dict[str, str]) -> None:
    """Raise MappingError if a mapping cannot be applied to these headers."""
    if not mapping:
        raise MappingError("No spreadsheet column could be mapped to a catalog field")

    result = validate_mapping_fields(headers, mapping)
    if result.unknown_fields:
        raise MappingError(f"Unknown target fields: {', '.join(result.unknown_fields)}")
    if result.missing_headers:
        raise MappingError(
            f"Mapped headers not found in file: {', '.join(result.missing_headers)}"
        )
