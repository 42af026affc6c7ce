"""Spreadsheet import orchestration.

Drives one import run: read the sheet, settle the header mapping (explicit,
saved template or dictionary), then push every row through
normalize -> classify -> apply, strictly in order. A failing row is recorded
and the run moves on; only unreadable input or an unusable mapping stops a
run, and that still yields a (failed) report.
"""

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from tqdm import tqdm

from ..config import AUDIT_FORMATS, get_config
from ..db.models import Book
from ..db.schemas import ImportTemplateResponse, ImportType, MatchStatus, PricingAction
from ..db.sqlite import Database, get_db
from .errors import CatalogImportError, ConfigurationError, PricingSaveError, RowSkipped
from .extract import SheetData, SpreadsheetSource, read_spreadsheet
from .headers import (
    HeaderSuggestion,
    MappingValidationResult,
    check_mapping,
    suggest_mapping,
    validate_mapping_fields,
)
from .identity import Classification, IdentityResolver
from .isbn import clean_isbn, is_valid_isbn
from .normalize import NormalizedRow, check_importable, normalize_row
from .report import ImportReport, write_audit_log
from .templates import TemplateManager, TemplateMatch

logger = logging.getLogger(__name__)

# Spreadsheet row number of the first data row (row 1 holds the headers)
FIRST_DATA_ROW = 2


class CancellationToken:
    """Stops a running import between rows."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ImportOptions:
    """Options of one import run. None means the configured default."""

    import_type: ImportType = ImportType.GENERAL
    template_id: Optional[str] = None
    default_currency: Optional[str] = None
    log_dir: Optional[Path] = None
    audit_format: Optional[str] = None
    delete_source: bool = True
    cancel_token: Optional[CancellationToken] = None
    show_progress: bool = False
    dry_run: bool = False


@dataclass
class MappingValidation:
    """Preview of how an uploaded file would be mapped."""

    headers: list[str]
    mapping: dict[str, str]
    unmapped: list[str]
    suggestions: dict[str, str]
    validation: MappingValidationResult
    total_rows: int
    template: Optional[ImportTemplateResponse] = None
    template_match: Optional[TemplateMatch] = None

    def to_dict(self) -> dict:
        return {
            "headers": self.headers,
            "mapping": self.mapping,
            "unmapped": self.unmapped,
            "suggestions": self.suggestions,
            "validation": {**self.validation.to_dict(), "total_rows": self.total_rows},
            "template": (
                {"id": self.template.id, "name": self.template.name}
                if self.template
                else None
            ),
            "extra_headers": self.template_match.extra_headers if self.template_match else [],
        }


def _source_label(source: SpreadsheetSource, filename: Optional[str]) -> str:
    if filename:
        return Path(filename).stem
    if isinstance(source, bytes):
        return "upload"
    return Path(source).stem


def validate_mapping(
    source: SpreadsheetSource,
    tenant_id: Optional[str] = None,
    db: Optional[Database] = None,
    filename: Optional[str] = None,
) -> MappingValidation:
    """Read a file's header row and report how it would be mapped.

    A saved template matching the headers replaces the dictionary mapping.
    Template usage is not counted.

    Raises:
        SpreadsheetError: If the file cannot be read
    """
    db = db or get_db()
    tenant_id = tenant_id or get_config().tenant_id

    sheet = read_spreadsheet(source, filename)
    suggestion = suggest_mapping(sheet.headers)
    mapping = suggestion.mapping
    unmapped = suggestion.unmapped
    suggestions = suggestion.suggestions

    resolution = TemplateManager(db).resolve_template(tenant_id, sheet.headers)
    if resolution:
        mapping = resolution.mapping_for(sheet.headers)
        # Only headers the template leaves uncovered still need attention
        unmapped = [h for h in unmapped if h not in mapping]
        suggestions = {h: f for h, f in suggestions.items() if h not in mapping}

    return MappingValidation(
        headers=suggestion.headers,
        mapping=mapping,
        unmapped=unmapped,
        suggestions=suggestions,
        validation=validate_mapping_fields(sheet.headers, mapping),
        total_rows=sheet.total_rows,
        template=resolution.template if resolution else None,
        template_match=resolution.match if resolution else None,
    )


def check_book_status(
    db: Database,
    tenant_id: str,
    book_data: dict,
    pricing_data: Optional[dict] = None,
    publisher_data: Optional[dict] = None,
) -> Classification:
    """Classify a single book against the catalog without changing anything."""
    book_data = {k: v for k, v in book_data.items() if v not in (None, "")}
    pricing_data = dict(pricing_data or {})

    if "isbn" in book_data:
        raw = str(book_data["isbn"])
        book_data["isbn"] = clean_isbn(raw) if is_valid_isbn(raw) else None
    pricing_data["discount"] = pricing_data.get("discount") or 0

    return IdentityResolver(db).classify(tenant_id, book_data, pricing_data, publisher_data)


class BookImporter:
    """Applies the rows of one sheet to a tenant's catalog."""

    def __init__(
        self,
        db: Database,
        tenant_id: str,
        source_label: str,
        options: ImportOptions,
        default_currency: str,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.source_label = source_label
        self.options = options
        self.default_currency = default_currency
        self.resolver = IdentityResolver(db)

    def import_rows(
        self, sheet: SheetData, mapping: dict[str, str], report: ImportReport
    ) -> ImportReport:
        """Process every row in order, recording each outcome on the report."""
        report.total = sheet.total_rows
        token = self.options.cancel_token

        rows = tqdm(
            sheet.rows,
            desc=f"Importing {self.source_label}",
            disable=not self.options.show_progress,
        )
        for index, row in enumerate(rows):
            row_number = index + FIRST_DATA_ROW
            if token is not None and token.cancelled:
                logger.warning("Import of %s cancelled at row %d", self.source_label, row_number)
                report.cancelled = True
                break

            try:
                self._import_row(row_number, row, mapping, report)
            except RowSkipped as e:
                report.skipped += 1
                report.skipped_details.append({"row": row_number, "reason": e.reason})
                logger.warning("Row %d skipped: %s", row_number, e.reason)
            except Exception as e:
                report.errors += 1
                report.error_details.append({"row": row_number, "error": str(e), "data": row})
                logger.error("Row %d failed: %s", row_number, e)

        return report

    def _import_row(
        self, row_number: int, row: dict, mapping: dict[str, str], report: ImportReport
    ) -> None:
        normalized = normalize_row(row, mapping, self.source_label, self.default_currency)
        check_importable(normalized, self.options.import_type)

        result = self.resolver.classify(
            self.tenant_id,
            normalized.book_data,
            normalized.pricing_data,
            normalized.publisher_data,
        )
        logger.debug("Row %d classified %s: %s", row_number, result.status.value, result.message)

        if result.status == MatchStatus.CONFLICT:
            report.conflicts += 1
            report.conflict_details.append(self._conflict_detail(row_number, normalized, result))
        elif result.status == MatchStatus.NEW:
            if not self.options.dry_run:
                self.create_book_with_pricing(normalized)
                report.books_added += 1
                report.prices_added += 1
            report.inserted += 1
        else:
            self._apply_pricing(normalized, result, report)
            report.duplicate_details.append(self._duplicate_detail(row_number, normalized, result))

    def _apply_pricing(
        self, normalized: NormalizedRow, result: Classification, report: ImportReport
    ) -> None:
        decision = result.pricing
        dry_run = self.options.dry_run

        if decision.action == PricingAction.ADD_PRICE:
            if not dry_run:
                self.db.create_pricing(
                    self.tenant_id, result.existing_book.id, normalized.to_pricing_create()
                )
                report.prices_added += 1
            report.inserted += 1
        elif decision.action == PricingAction.UPDATE_PRICE:
            if not dry_run:
                self.db.update_pricing(decision.pricing_id, **decision.update_fields())
                report.prices_updated += 1
            report.updated += 1
        else:
            report.duplicates += 1

    def create_book_with_pricing(self, normalized: NormalizedRow) -> Book:
        """Create a book and its first pricing record.

        The two writes commit separately. If the pricing write fails the
        book is deleted again and PricingSaveError is raised; a failed delete
        is logged and reported on the error.
        """
        book_schema = normalized.to_book_create()
        pricing_schema = normalized.to_pricing_create()

        publisher_id = None
        if normalized.publisher_name:
            publisher = self.db.get_or_create_publisher(self.tenant_id, normalized.publisher_name)
            publisher_id = publisher.id

        book = self.db.create_book(self.tenant_id, book_schema, publisher_id)
        try:
            self.db.create_pricing(self.tenant_id, book.id, pricing_schema)
        except Exception as e:
            rolled_back = self._delete_orphan(book.id)
            suffix = "" if rolled_back else " (book rollback failed)"
            raise PricingSaveError(
                f"Failed to save pricing: {e}{suffix}",
                book_id=book.id,
                rolled_back=rolled_back,
            ) from e
        return book

    def _delete_orphan(self, book_id: str) -> bool:
        try:
            return self.db.delete_book(book_id)
        except SQLAlchemyError as e:
            logger.warning("Could not roll back book %s after pricing failure: %s", book_id, e)
            return False

    @staticmethod
    def _conflict_detail(
        row_number: int, normalized: NormalizedRow, result: Classification
    ) -> dict:
        return {
            "row": row_number,
            "title": normalized.title,
            "author": normalized.book_data.get("author"),
            "isbn": normalized.isbn,
            "other_code": normalized.book_data.get("other_code"),
            "matched_by": result.matched_by.value if result.matched_by else None,
            "existing_book_id": result.existing_book.id if result.existing_book else None,
            "conflict_fields": result.conflict_fields,
            "message": result.message,
        }

    @staticmethod
    def _duplicate_detail(
        row_number: int, normalized: NormalizedRow, result: Classification
    ) -> dict:
        return {
            "row": row_number,
            "title": normalized.title,
            "author": normalized.book_data.get("author"),
            "isbn": normalized.isbn,
            "matched_by": result.matched_by.value if result.matched_by else None,
            "existing_book_id": result.existing_book.id,
            "pricing_action": result.pricing.action.value,
            "differences": result.pricing.differences,
            "message": result.message,
        }


def _resolve_mapping(
    db: Database,
    tenant_id: str,
    headers: list[str],
    mapping: Optional[dict[str, str]],
    template_id: Optional[str],
) -> tuple[dict[str, str], Optional[ImportTemplateResponse]]:
    if mapping is not None:
        return {str(k).strip(): v for k, v in mapping.items()}, None

    resolution = TemplateManager(db).resolve_template(tenant_id, headers, template_id)
    if resolution:
        logger.info(
            "Using import template %r (matched by %s)",
            resolution.template.name, resolution.matched_by,
        )
        return resolution.mapping_for(headers), resolution.template

    suggestion: HeaderSuggestion = suggest_mapping(headers)
    return suggestion.mapping, None


def _delete_source(source: SpreadsheetSource) -> None:
    if isinstance(source, bytes):
        return
    try:
        Path(source).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not delete uploaded file %s: %s", source, e)


def run_import(
    source: SpreadsheetSource,
    mapping: Optional[dict[str, str]] = None,
    source_label: Optional[str] = None,
    tenant_id: Optional[str] = None,
    options: Optional[ImportOptions] = None,
    db: Optional[Database] = None,
    filename: Optional[str] = None,
) -> ImportReport:
    """Import a spreadsheet into a tenant's catalog.

    Args:
        source: Path to the spreadsheet, or its raw bytes
        mapping: Header -> field mapping. None picks a saved template,
            falling back to the header dictionary.
        source_label: Pricing source for rows without a Source column.
            Defaults to the file name without extension.
        tenant_id: Tenant scope, defaults to the configured tenant
        options: Run options
        db: Database, defaults to the global instance
        filename: File name when source is bytes

    Returns:
        ImportReport. Unreadable files and unusable mappings give a report
        with success=False and no row counts.
    """
    options = options or ImportOptions()
    config = get_config()
    db = db or get_db()
    tenant_id = tenant_id or config.tenant_id
    source_label = source_label or _source_label(source, filename)
    import_type = ImportType(options.import_type)

    report = ImportReport(
        source=source_label,
        tenant_id=tenant_id,
        import_type=import_type.value,
        dry_run=options.dry_run,
    )
    logger.info(
        "Starting %s import of %s for tenant %s%s",
        import_type.value, source_label, tenant_id, " (dry run)" if options.dry_run else "",
    )

    audit_format = options.audit_format or config.audit_format

    try:
        try:
            if audit_format not in AUDIT_FORMATS:
                raise ConfigurationError(f"Unknown audit log format: {audit_format}")
            sheet = read_spreadsheet(source, filename)
            resolved, template = _resolve_mapping(
                db, tenant_id, sheet.headers, mapping, options.template_id
            )
            check_mapping(sheet.headers, resolved)
        except CatalogImportError as e:
            logger.error("Import of %s failed: %s", source_label, e)
            return ImportReport.failure(
                str(e),
                source=source_label,
                tenant_id=tenant_id,
                import_type=import_type.value,
                dry_run=options.dry_run,
            )

        if template is not None:
            report.template_id = template.id
            if not options.dry_run:
                TemplateManager(db).record_usage(tenant_id, template.id)

        importer = BookImporter(
            db,
            tenant_id,
            source_label,
            replace(options, import_type=import_type),
            (options.default_currency or config.default_currency).upper(),
        )
        importer.import_rows(sheet, resolved, report)
        report.finish()

        logger.info("Finished import of %s: %s", source_label, report.summary)
        try:
            write_audit_log(
                report,
                Path(options.log_dir or config.log_dir),
                audit_format,
            )
        except OSError as e:
            logger.error("Could not write audit log for %s: %s", source_label, e)
        return report
    finally:
        if options.delete_source:
            _delete_source(source)
