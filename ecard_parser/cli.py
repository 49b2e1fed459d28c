"""
CLI Interface
=============
Command-line interface for the eCard parser.

Usage:
    python -m ecard_parser init-db [--db PATH]
    python -m ecard_parser scan <directory> [--db PATH]
    python -m ecard_parser status [--db PATH]
    python -m ecard_parser run [options]
    python -m ecard_parser extract <json_path> [--json-output]
    python -m ecard_parser templates

Every option falls back to the matching ECARD_* environment variable.
"""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from . import __version__
from . import database as db
from .batch import BatchProcessor
from .engine import ExtractionEngine, ExtractorConfig
from .templates import TEMPLATE_CATALOG

console = Console()

db_option = click.option(
    "--db",
    "db_path",
    default=None,
    help="Work queue database path (env: ECARD_DB_PATH)",
)
log_level_option = click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level (env: ECARD_LOG_LEVEL)",
)


@click.group()
@click.version_option(version=__version__, prog_name="ecard-parser")
def cli():
    """eCard Parser: layout-based field extraction from OCR'd eCards."""
    pass


@cli.command("init-db")
@db_option
def init_db_command(db_path: str):
    """Create the work queue database."""
    config = _load_config(db_path=db_path)
    existed = db.db_exists(config.db_path)
    db.init_db(config.db_path)

    if existed:
        console.print(f"[yellow]Database already exists:[/] {config.db_path}")
    else:
        console.print(f"[green]Database created:[/] {config.db_path}")


@cli.command()
@click.argument(
    "directory",
    required=False,
    type=click.Path(exists=True, file_okay=False),
)
@db_option
def scan(directory: str, db_path: str):
    """Queue every JSON file in DIRECTORY (default: ECARD_JSON_DIR)."""
    config = _load_config(db_path=db_path, json_dir=directory)
    if not config.json_dir:
        console.print("[red]Error:[/] no directory given and ECARD_JSON_DIR unset")
        sys.exit(1)

    db.init_db(config.db_path)
    before = db.count_pending(config.db_path)
    scanned = db.enqueue_directory(config.json_dir, config.db_path)
    after = db.count_pending(config.db_path)

    console.print(
        f"Scanned [bold]{scanned}[/] JSON files, "
        f"[bold]{after - before}[/] newly queued. "
        f"Work queue now has [bold]{after}[/] items to process."
    )


@cli.command()
@db_option
def status(db_path: str):
    """Show work queue progress and previously skipped files."""
    config = _load_config(db_path=db_path)
    if not db.db_exists(config.db_path):
        console.print(f"[red]Error:[/] no database at {config.db_path}")
        sys.exit(1)

    total = db.count_all(config.db_path)
    pending = db.count_pending(config.db_path)

    table = Table(title="Work Queue", border_style="cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Queued", str(total))
    table.add_row("Complete", str(total - pending))
    table.add_row("Pending", str(pending))
    console.print(table)

    commented = db.list_commented(config.db_path)
    if commented:
        _display_skipped(
            [(row["Path"], row["Comments"]) for row in commented],
            title="Previously Skipped",
        )


@cli.command()
@db_option
@click.option(
    "--json-dir",
    default=None,
    type=click.Path(exists=True, file_okay=False),
    help="Scan this directory into the queue before running",
)
@click.option("--csv-dir", default=None, help="Output folder for CSV files")
@click.option("--log-dir", default=None, help="Folder for log_csv.txt")
@click.option("--log-file", default=None, help="Explicit log file path")
@click.option(
    "--batch-size", "-b",
    default=None,
    type=click.IntRange(min=1),
    help="Rows per CSV file (env: ECARD_CSV_BATCH_SIZE)",
)
@click.option(
    "--max-documents", "-n",
    default=None,
    type=click.IntRange(min=1),
    help="Process at most this many documents",
)
@click.option(
    "--deadline",
    default=None,
    type=float,
    help="Stop starting new documents after this many seconds",
)
@log_level_option
def run(
    db_path: str,
    json_dir: str,
    csv_dir: str,
    log_dir: str,
    log_file: str,
    batch_size: int,
    max_documents: int,
    deadline: float,
    log_level: str,
):
    """Process the work queue into tab-delimited CSV files."""
    config = _load_config(
        db_path=db_path,
        json_dir=json_dir,
        csv_dir=csv_dir,
        log_dir=log_dir,
        log_file=log_file,
        batch_size=batch_size,
        log_level=log_level,
    )

    if not db.db_exists(config.db_path):
        console.print(
            f"[red]Error:[/] no database at {config.db_path}. "
            f"Run 'ecard-parser init-db' first."
        )
        sys.exit(1)

    if json_dir:
        db.enqueue_directory(json_dir, config.db_path)

    pending = db.count_pending(config.db_path)
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]eCard Parser v{__version__}[/]\n"
            f"[dim]{pending} documents pending in {config.db_path}[/]",
            border_style="cyan",
        )
    )
    console.print()

    if pending == 0:
        console.print("[yellow]Work queue is empty.[/]")
        return

    processor = BatchProcessor(config)
    total = min(pending, max_documents) if max_documents else pending

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Extracting eCards...", total=total)

        def on_progress(current: int, _total: int, path: str):
            progress.update(task, completed=current)

        report = processor.run(
            max_documents=max_documents,
            deadline_seconds=deadline,
            progress_callback=on_progress,
        )

    _display_batch_summary(report)


@cli.command()
@click.argument("json_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
@log_level_option
def extract(json_path: str, json_output: bool, log_level: str):
    """Extract a single OCR JSON file without touching the work queue."""
    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    config = _load_config(log_level=log_level)
    engine = ExtractionEngine(config)
    outcome = engine.process_file(json_path)

    if json_output:
        print(json.dumps(outcome.model_dump(mode="json"), indent=2))
    elif outcome.result is None:
        console.print(
            f"[red]Skipped[/] ({outcome.skip_reason.value}): {outcome.message}"
        )
    else:
        table = Table(title="Extracted Fields", border_style="cyan")
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for field, value in outcome.result.model_dump().items():
            table.add_row(field, value or "[dim](empty)[/]")
        console.print(table)

    if outcome.result is None:
        sys.exit(1)


@cli.command()
def templates():
    """List the recognized eCard templates in priority order."""
    table = Table(title="Template Catalog", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    table.add_column("Value Labels")

    for idx, template in enumerate(TEMPLATE_CATALOG, start=1):
        labels = template.labels
        table.add_row(
            str(idx),
            template.name,
            template.description,
            " | ".join([labels.issue_date, labels.renew_by, labels.ecard_code]),
        )

    console.print(table)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _load_config(**overrides) -> ExtractorConfig:
    """Build the config, reporting bad ECARD_* values instead of a traceback."""
    try:
        return ExtractorConfig.from_env(**overrides)
    except ValueError as e:
        console.print(f"[red]Configuration error:[/] {e}")
        sys.exit(1)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_batch_summary(report):
    """Display batch processing summary."""
    console.print()

    table = Table(title="Batch Processing Summary", border_style="cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Documents Processed", str(report.documents_processed))
    table.add_row(
        "Extracted",
        f"{report.documents_extracted} ({report.success_rate}%)",
    )
    table.add_row("Skipped", str(len(report.skipped)))
    table.add_row("Rows Written", str(report.rows_written))
    table.add_row("CSV Files", str(len(report.csv_files)))
    console.print(table)

    for path in report.csv_files:
        console.print(f"[dim]CSV:[/] {path}")

    if report.skipped:
        _display_skipped(
            [(s.source, f"{s.reason.value}: {s.message}") for s in report.skipped],
            title="Skipped Documents",
        )

    if report.stopped_early:
        console.print("[yellow]Stopped before the queue was drained.[/]")
    console.print()


def _display_skipped(rows: list[tuple[str, str]], title: str):
    table = Table(title=title, border_style="yellow")
    table.add_column("File", style="bold")
    table.add_column("Reason")
    for path, reason in rows:
        table.add_row(path, reason)
    console.print()
    console.print(table)


# ─── Entry point (for python -m ecard_parser.cli) ─────────────────────────────


if __name__ == "__main__":
    cli()
