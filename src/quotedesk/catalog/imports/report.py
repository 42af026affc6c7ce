"""Import report and audit log.

ImportReport accumulates per-row outcomes of one run. The audit log is a
JSON dump of the report or a plain-text summary of the rows that need
review (conflicts, duplicates, errors).
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

AUDIT_LOG_EXTENSIONS = {"json": "json", "text": "log"}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

SECTION_RULE = "-" * 40


@dataclass
class ImportReport:
    """Result of one import run."""

    success: bool = True
    message: str = ""
    source: Optional[str] = None
    tenant_id: Optional[str] = None
    import_type: Optional[str] = None
    template_id: Optional[str] = None
    dry_run: bool = False

    # Row outcomes; each processed row counts in exactly one of these
    total: int = 0
    inserted: int = 0
    updated: int = 0
    duplicates: int = 0
    conflicts: int = 0
    errors: int = 0
    skipped: int = 0

    # Catalog writes
    books_added: int = 0
    prices_added: int = 0
    prices_updated: int = 0

    conflict_details: list[dict] = field(default_factory=list)
    duplicate_details: list[dict] = field(default_factory=list)
    error_details: list[dict] = field(default_factory=list)
    skipped_details: list[dict] = field(default_factory=list)

    cancelled: bool = False
    log_file: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @classmethod
    def failure(cls, message: str, **kwargs) -> "ImportReport":
        """A report for a run that could not start."""
        now = datetime.now(timezone.utc)
        return cls(success=False, message=message, finished_at=now, **kwargs)

    @property
    def processed(self) -> int:
        """Rows that reached a terminal state."""
        return (
            self.inserted
            + self.updated
            + self.duplicates
            + self.conflicts
            + self.errors
            + self.skipped
        )

    @property
    def summary(self) -> str:
        """Get summary string."""
        return (
            f"Total: {self.total}, "
            f"Inserted: {self.inserted}, "
            f"Updated: {self.updated}, "
            f"Duplicates: {self.duplicates}, "
            f"Conflicts: {self.conflicts}, "
            f"Errors: {self.errors}, "
            f"Skipped: {self.skipped}"
        )

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)
        if self.cancelled:
            self.message = f"Import cancelled after {self.processed} of {self.total} rows"
        elif self.dry_run:
            self.message = "Dry run completed"
        else:
            self.message = "Import completed"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "message": self.message,
            "source": self.source,
            "tenant_id": self.tenant_id,
            "import_type": self.import_type,
            "template_id": self.template_id,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "stats": {
                "total": self.total,
                "inserted": self.inserted,
                "updated": self.updated,
                "duplicates": self.duplicates,
                "conflicts": self.conflicts,
                "errors": self.errors,
                "skipped": self.skipped,
                "books_added": self.books_added,
                "prices_added": self.prices_added,
                "prices_updated": self.prices_updated,
            },
            "conflict_details": self.conflict_details,
            "duplicate_details": self.duplicate_details,
            "error_details": self.error_details,
            "skipped_details": self.skipped_details,
            "log_file": self.log_file,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def audit_log_name(report: ImportReport, fmt: str = "json") -> str:
    """File name of the audit log for a report: import-<source>-<timestamp>.<ext>."""
    source = _UNSAFE_FILENAME_CHARS.sub("_", report.source or "import").strip("._") or "import"
    timestamp = (report.started_at or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S-%f")
    return f"import-{source}-{timestamp}.{AUDIT_LOG_EXTENSIONS[fmt]}"


def _format_text(report: ImportReport) -> str:
    lines = [
        f"BULK IMPORT LOG - {report.started_at.isoformat()}",
        "=" * 42,
        f"Source: {report.source or 'N/A'}",
        report.summary,
        "",
    ]

    if report.conflict_details:
        lines.append(f"CONFLICTS ({len(report.conflict_details)} records):")
        lines.append(SECTION_RULE)
        for index, conflict in enumerate(report.conflict_details, 1):
            lines.append(f"{index}. Row {conflict['row']}: CONFLICT")
            lines.append(
                f"   Book: {conflict.get('title') or 'N/A'} by {conflict.get('author') or 'N/A'}"
            )
            lines.append(f"   ISBN: {conflict.get('isbn') or 'N/A'}")
            lines.append(f"   Conflicts: {json.dumps(conflict.get('conflict_fields'), indent=2)}")
            lines.append("")
        lines.append("")

    if report.duplicate_details:
        lines.append(f"DUPLICATES ({len(report.duplicate_details)} records):")
        lines.append(SECTION_RULE)
        for index, duplicate in enumerate(report.duplicate_details, 1):
            lines.append(f"{index}. Row {duplicate['row']}: DUPLICATE")
            lines.append(
                f"   Book: {duplicate.get('title') or 'N/A'} by {duplicate.get('author') or 'N/A'}"
            )
            lines.append(f"   ISBN: {duplicate.get('isbn') or 'N/A'}")
            lines.append(f"   Existing Book ID: {duplicate.get('existing_book_id')}")
            lines.append(f"   Pricing: {duplicate.get('pricing_action')}")
            if duplicate.get("differences"):
                lines.append(f"   Differences: {json.dumps(duplicate['differences'], indent=2)}")
            lines.append("")
        lines.append("")

    if report.error_details:
        lines.append(f"ERRORS ({len(report.error_details)} records):")
        lines.append(SECTION_RULE)
        for index, error in enumerate(report.error_details, 1):
            lines.append(f"{index}. Row {error['row']}: {error['error']}")
            lines.append(f"   Data: {json.dumps(error.get('data'), indent=2, default=str)}")
            lines.append("")

    return "\n".join(lines) + "\n"


def write_audit_log(report: ImportReport, log_dir: Path, fmt: str = "json") -> Path:
    """Write the audit log of a finished run and record its path on the report.

    Args:
        report: Report to write
        log_dir: Directory for audit logs, created if missing
        fmt: "json" for the full report, "text" for the review sections

    Returns:
        Path of the written file
    """
    if fmt not in AUDIT_LOG_EXTENSIONS:
        raise ValueError(f"Unknown audit log format: {fmt}")

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / audit_log_name(report, fmt)
    report.log_file = str(path)

    if fmt == "json":
        content = json.dumps(report.to_dict(), indent=2, default=str)
    else:
        content = _format_text(report)

    path.write_text(content, encoding="utf-8")
    logger.info("Wrote import audit log to %s", path)
    return path
