"""Command-line interface for the catalog importer.

Built with Typer for commands and Rich for output.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import AUDIT_FORMATS, get_config
from .db import get_db
from .db.schemas import ImportTemplateCreate, ImportType, MatchStatus
from .imports import (
    ImportOptions,
    SpreadsheetError,
    TemplateManager,
    available_fields,
    check_book_status,
    run_import,
    suggest_mapping,
    validate_mapping,
)
from .imports.extract import read_spreadsheet
from .logging_config import setup_logging

# Create the main app
app = typer.Typer(
    name="quotedesk",
    help="Bulk-import book price lists into the quotation catalog.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
import_app = typer.Typer(help="Validate and import spreadsheets.")
app.add_typer(import_app, name="import")

template_app = typer.Typer(help="Manage saved header-mapping templates.")
app.add_typer(template_app, name="template")

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    MatchStatus.NEW: "green",
    MatchStatus.DUPLICATE: "yellow",
    MatchStatus.CONFLICT: "red",
}


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def _parse_mapping(mapping_json: Optional[str]) -> Optional[dict[str, str]]:
    """Parse a --mapping option ('{"Header": "field", ...}')."""
    if mapping_json is None:
        return None
    try:
        mapping = json.loads(mapping_json)
    except json.JSONDecodeError as e:
        print_error(f"Invalid --mapping JSON: {e}")
        raise typer.Exit(1)
    if not isinstance(mapping, dict):
        print_error("--mapping must be a JSON object of header -> field")
        raise typer.Exit(1)
    return {str(k): str(v) for k, v in mapping.items()}


def _mapping_table(mapping: dict[str, str], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Header", style="cyan")
    table.add_column("Field", style="green")
    for header, target in mapping.items():
        table.add_row(header, target)
    return table


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to the console"),
) -> None:
    """Configure logging before any command runs."""
    config = get_config()
    setup_logging(config.log_level, config.log_dir, console_output=verbose)


# ============================================================================
# Field Commands
# ============================================================================


@app.command()
def fields() -> None:
    """List the catalog fields a spreadsheet column can map to."""
    table = Table(title="Importable Fields", show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Label")
    table.add_column("Category", style="green")
    table.add_column("Required", justify="center")

    for info in available_fields():
        table.add_row(
            info["key"],
            info["label"],
            info["category"],
            "yes" if info["required"] else "",
        )

    console.print(table)


# ============================================================================
# Import Commands
# ============================================================================


@import_app.command("validate")
def import_validate(
    file: Path = typer.Argument(..., help="Spreadsheet to inspect (.xlsx, .xls, .csv)"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id"),
) -> None:
    """Show how a spreadsheet's headers map to catalog fields."""
    try:
        result = validate_mapping(file, tenant_id=tenant, db=get_db())
    except SpreadsheetError as e:
        print_error(str(e))
        raise typer.Exit(1)

    title = f"[bold]{file.name}[/bold] - {result.total_rows} data rows"
    console.print(Panel(title, style="magenta"))

    if result.template:
        print_info(f"Matches saved template '{result.template.name}' ({result.template.id})")
        if result.template_match and result.template_match.extra_headers:
            print_warning(
                f"Headers not in template: {', '.join(result.template_match.extra_headers)}"
            )

    console.print(_mapping_table(result.mapping, "Mapping"))

    if result.suggestions:
        console.print(_mapping_table(result.suggestions, "Suggestions"))
    if result.unmapped:
        print_warning(f"Unmapped headers: {', '.join(result.unmapped)}")

    validation = result.validation
    if validation.missing_book_fields:
        print_warning(f"Missing book fields: {', '.join(validation.missing_book_fields)}")
    if validation.missing_pricing_fields:
        print_warning(f"Missing pricing fields: {', '.join(validation.missing_pricing_fields)}")
    if validation.is_valid:
        print_success("All required fields are mapped")


@import_app.command("run")
def import_run(
    file: Path = typer.Argument(..., help="Spreadsheet to import (.xlsx, .xls, .csv)"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Pricing source label"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id"),
    import_type: ImportType = typer.Option(ImportType.GENERAL, "--type", help="Import type"),
    template: Optional[str] = typer.Option(None, "--template", help="Template id to apply"),
    mapping_json: Optional[str] = typer.Option(None, "--mapping", help="Header mapping as JSON"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Classify rows without saving"),
    delete_source: bool = typer.Option(
        False, "--delete-source/--keep-source", help="Delete the file afterwards"
    ),
    audit_format: Optional[str] = typer.Option(
        None, "--format", "-f", help=f"Audit log format: {', '.join(AUDIT_FORMATS)}"
    ),
) -> None:
    """Import a spreadsheet into the catalog."""
    if audit_format is not None and audit_format not in AUDIT_FORMATS:
        print_error(f"Unknown audit log format: {audit_format}")
        raise typer.Exit(1)

    mapping = _parse_mapping(mapping_json)
    options = ImportOptions(
        import_type=import_type,
        template_id=template,
        audit_format=audit_format,
        delete_source=delete_source,
        show_progress=True,
        dry_run=dry_run,
    )

    report = run_import(
        file,
        mapping=mapping,
        source_label=source,
        tenant_id=tenant,
        options=options,
        db=get_db(),
    )

    if not report.success:
        print_error(report.message)
        raise typer.Exit(1)

    table = Table(title=f"Import: {report.source}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Total Rows", str(report.total))
    table.add_row("Inserted", str(report.inserted))
    table.add_row("Updated", str(report.updated))
    table.add_row("Duplicates", str(report.duplicates))
    table.add_row("Conflicts", str(report.conflicts))
    table.add_row("Errors", str(report.errors))
    table.add_row("Skipped", str(report.skipped))
    console.print(table)

    if report.conflict_details:
        conflicts = Table(title="Conflicts", show_header=True, header_style="bold red")
        conflicts.add_column("Row", justify="right")
        conflicts.add_column("Title", style="cyan", max_width=40)
        conflicts.add_column("Field")
        conflicts.add_column("Existing")
        conflicts.add_column("Incoming")
        for detail in report.conflict_details:
            for name, values in detail["conflict_fields"].items():
                conflicts.add_row(
                    str(detail["row"]),
                    detail.get("title") or "-",
                    name,
                    str(values.get("old")),
                    str(values.get("new")),
                )
        console.print(conflicts)

    for error in report.error_details[:5]:
        console.print(f"  [red]Row {error['row']}: {error['error']}[/red]")

    if report.cancelled:
        print_warning(report.message)
    elif dry_run:
        print_info("Dry run - no changes made.")
    else:
        print_success(report.summary)

    if report.log_file:
        print_info(f"Audit log: {report.log_file}")


# ============================================================================
# Status Check
# ============================================================================


@app.command()
def check(
    title: Optional[str] = typer.Option(None, "--title", help="Book title"),
    isbn: Optional[str] = typer.Option(None, "--isbn", "-i", help="ISBN-10 or ISBN-13"),
    other_code: Optional[str] = typer.Option(None, "--other-code", help="Non-ISBN code"),
    publisher: Optional[str] = typer.Option(None, "--publisher", "-p", help="Publisher name"),
    rate: Optional[float] = typer.Option(None, "--rate", help="Quoted rate"),
    discount: float = typer.Option(0, "--discount", help="Discount percent"),
    source: str = typer.Option("manual", "--source", "-s", help="Pricing source label"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id"),
) -> None:
    """Classify one book against the catalog without changing it."""
    if not (title or isbn or other_code):
        print_error("Give at least one of --title, --isbn or --other-code")
        raise typer.Exit(1)

    result = check_book_status(
        get_db(),
        tenant or get_config().tenant_id,
        {"title": title, "isbn": isbn, "other_code": other_code},
        {"source": source, "rate": rate, "discount": discount},
        {"publisher_name": publisher} if publisher else {},
    )

    style = STATUS_STYLES[result.status]
    console.print(f"[bold {style}]{result.status.value}[/bold {style}] {result.message}")
    if result.pricing_action:
        console.print(f"Pricing: {result.pricing_action.value}")
    if result.existing_book:
        print_info(f"Existing book: {result.existing_book.title} ({result.existing_book.id})")
    for name, values in result.conflict_fields.items():
        console.print(f"  {name}: {values['old']!r} -> {values['new']!r}")
    if result.pricing:
        for name, values in result.pricing.differences.items():
            console.print(f"  {name}: {values['old']} -> {values['new']}")


# ============================================================================
# Template Commands
# ============================================================================


@template_app.command("save")
def template_save(
    name: str = typer.Argument(..., help="Template name"),
    file: Path = typer.Argument(..., help="Spreadsheet whose header row the template matches"),
    mapping_json: Optional[str] = typer.Option(None, "--mapping", help="Header mapping as JSON"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id"),
) -> None:
    """Save a header mapping for reuse on files with the same headers."""
    try:
        sheet = read_spreadsheet(file)
    except SpreadsheetError as e:
        print_error(str(e))
        raise typer.Exit(1)

    mapping = _parse_mapping(mapping_json)
    if mapping is None:
        mapping = suggest_mapping(sheet.headers).mapping
    if not mapping:
        print_error("No header could be mapped; pass --mapping")
        raise typer.Exit(1)

    manager = TemplateManager(get_db())
    template = manager.create_template(
        tenant or get_config().tenant_id,
        ImportTemplateCreate(
            name=name,
            description=description,
            mapping=mapping,
            expected_headers=sheet.headers,
        ),
    )
    print_success(f"Saved template '{template.name}' ({template.id})")


@template_app.command("list")
def template_list(
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id"),
) -> None:
    """List saved templates, most recently used first."""
    templates = TemplateManager(get_db()).list_templates(tenant or get_config().tenant_id)
    if not templates:
        print_info("No templates saved.")
        return

    table = Table(title="Import Templates", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Headers", justify="right")
    table.add_column("Uses", justify="right")
    table.add_column("Last Used")
    for template in templates:
        table.add_row(
            template.id,
            template.name,
            str(len(template.expected_headers)),
            str(template.usage_count),
            template.last_used_at.strftime("%Y-%m-%d %H:%M") if template.last_used_at else "-",
        )
    console.print(table)


@template_app.command("delete")
def template_delete(
    template_id: str = typer.Argument(..., help="Template id"),
    tenant: Optional[str] = typer.Option(None, "--tenant", "-t", help="Tenant id"),
) -> None:
    """Delete a saved template."""
    manager = TemplateManager(get_db())
    if not manager.delete_template(tenant or get_config().tenant_id, template_id):
        print_error(f"Template not found: {template_id}")
        raise typer.Exit(1)
    print_success(f"Deleted template {template_id}")


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__

    console.print(f"quotedesk version {__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
