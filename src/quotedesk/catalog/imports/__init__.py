"""Bulk spreadsheet import for the book catalog.

Supports .xlsx, .xls and .csv sheets with arbitrary header rows, saved
header-mapping templates, and NEW / DUPLICATE / CONFLICT classification of
every row against the existing catalog.
"""

from .errors import (
    CatalogImportError,
    ConfigurationError,
    MappingError,
    PricingSaveError,
    RowSkipped,
    SpreadsheetError,
)
from .headers import available_fields, suggest_mapping, validate_mapping_fields
from .identity import Classification, IdentityResolver
from .isbn import clean_isbn, is_valid_isbn
from .normalize import NormalizedRow, check_importable, normalize_row
from .orchestrator import (
    BookImporter,
    CancellationToken,
    ImportOptions,
    MappingValidation,
    check_book_status,
    run_import,
    validate_mapping,
)
from .pricing import PricingDecision, PricingReconciler
from .report import ImportReport, write_audit_log
from .templates import TemplateManager, fingerprint, match_template

__all__ = [
    "CatalogImportError",
    "ConfigurationError",
    "MappingError",
    "PricingSaveError",
    "RowSkipped",
    "SpreadsheetError",
    "available_fields",
    "suggest_mapping",
    "validate_mapping_fields",
    "Classification",
    "IdentityResolver",
    "clean_isbn",
    "is_valid_isbn",
    "NormalizedRow",
    "check_importable",
    "normalize_row",
    "BookImporter",
    "CancellationToken",
    "ImportOptions",
    "MappingValidation",
    "check_book_status",
    "run_import",
    "validate_mapping",
    "PricingDecision",
    "PricingReconciler",
    "ImportReport",
    "write_audit_log",
    "TemplateManager",
    "fingerprint",
    "match_template",
]
