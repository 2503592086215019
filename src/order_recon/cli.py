"""
Command-line interface for the POS / platform order reconciliation tool.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import (
    POS_SIDE,
    SOURCE_SIDE,
    ReconConfig,
    build_config,
    generate_default_config,
    load_config,
)
from .matching.engine import ReconciliationEngine
from .models.record import RecordOrigin
from .models.result import ReconciliationSummary
from .parsers.file_reader import read_export_file, read_export_files
from .parsers.record_normalizer import RecordNormalizer
from .reports.excel_generator import ExcelReportGenerator
from .reports.json_writer import build_envelope, write_json_report
from .utils.exceptions import ReconciliationError
from .utils.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
def main():
    """POS to Delivery/Booking Platform Order Reconciliation Tool."""
    pass


@main.command()
@click.argument("pos_file", type=click.Path(exists=True, path_type=Path))
@click.argument(
    "source_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option("--pos-type", required=True, help="POS platform tag (e.g. petpooja, ristas)")
@click.option(
    "--source-type", required=True, help="Platform tag (e.g. swiggy, zomatopay, eazydiner)"
)
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output JSON file path")
@click.option("--excel", type=click.Path(path_type=Path), help="Also write an Excel report")
@click.option(
    "--amount-tolerance", type=float, default=None, help="Override absolute amount tolerance"
)
@click.option(
    "--percent-tolerance", type=float, default=None, help="Override percentage tolerance"
)
@click.option(
    "--max-group-size", type=int, default=None, help="Override grouped-match size cap"
)
@click.option("--workers", type=int, default=None, help="Worker threads for per-date stages")
@click.option("--timeout", type=float, default=None, help="Run time budget in seconds")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Reconcile and show summary without writing reports"
)
def reconcile(
    pos_file: Path,
    source_files: tuple[Path, ...],
    pos_type: str,
    source_type: str,
    config: Optional[Path],
    output: Optional[Path],
    excel: Optional[Path],
    amount_tolerance: Optional[float],
    percent_tolerance: Optional[float],
    max_group_size: Optional[int],
    workers: Optional[int],
    timeout: Optional[float],
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile a POS export with one or more platform exports.

    POS_FILE: Path to the POS order export (CSV or Excel)
    SOURCE_FILES: Paths to the platform order exports
    """
    try:
        recon_config = load_config(config)
        _setup_logging(recon_config, verbose)

        recon_config = _apply_overrides(
            recon_config,
            amount_tolerance=amount_tolerance,
            percent_tolerance=percent_tolerance,
            max_group_size=max_group_size,
            workers=workers,
            timeout=timeout,
        )

        engine = ReconciliationEngine(recon_config)
        pos_profile = engine.normalizer.profile_for(pos_type, RecordOrigin.POS)
        source_profile = engine.normalizer.profile_for(source_type, RecordOrigin.SOURCE)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Reading POS export...", total=None)
            pos_rows = read_export_file(pos_file, sheet_name=pos_profile.sheet_name)
            progress.update(task, completed=True)

            task = progress.add_task("Reading platform exports...", total=None)
            source_rows = read_export_files(
                list(source_files), sheet_name=source_profile.sheet_name
            )
            progress.update(task, completed=True)

            task = progress.add_task("Running reconciliation...", total=None)
            outcome = engine.reconcile_rows(pos_rows, pos_type, source_rows, source_type)
            progress.update(task, completed=True)

        summary = engine.generate_summary(outcome)
        _display_summary(summary)
        console.print(
            f"\nFound {outcome.match_count} exact matches out of "
            f"{outcome.total_pos_records} orders."
        )

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        if output is None:
            now = datetime.now()
            output = Path(
                recon_config.output.json_filename_template.format(
                    date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S")
                )
            )

        envelope = build_envelope(
            outcome,
            pos_file=pos_file.name,
            source_files=[p.name for p in source_files],
            pos_type=pos_type,
            source_type=source_type,
        )
        write_json_report(envelope, output)
        console.print(f"\n[green]Results written: {output}[/green]")

        if excel is not None:
            ExcelReportGenerator(recon_config).generate_report(
                summary=summary,
                outcome=outcome,
                output_path=excel,
                pos_file=pos_file.name,
                source_files=[p.name for p in source_files],
            )
            console.print(f"[green]Report generated: {excel}[/green]")

    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command()
@click.argument("export_file", type=click.Path(exists=True, path_type=Path))
@click.option("--type", "platform", required=True, help="Platform tag of the export")
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def inspect(export_file: Path, platform: str, config: Optional[Path]):
    """
    Normalize one export file and display its records.

    EXPORT_FILE: Path to a POS or platform export
    """
    try:
        recon_config = load_config(config)
        profile = recon_config.platforms.get(platform.strip().lower())
        origin = RecordOrigin.POS
        if profile is not None and profile.side == SOURCE_SIDE:
            origin = RecordOrigin.SOURCE

        normalizer = RecordNormalizer(recon_config)
        normalizer.profile_for(platform, origin)
        rows = read_export_file(
            export_file, sheet_name=profile.sheet_name if profile else None
        )
        report = normalizer.normalize(rows, platform, origin)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    table = Table(title=f"{platform} records: {export_file.name}")
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("ID")

    currency = recon_config.output.currency_symbol
    for record in report.records[:20]:  # Show first 20
        table.add_row(
            str(record.seq),
            record.date.isoformat(),
            f"{currency}{record.amount:,.2f}",
            record.raw_id or "-",
        )

    console.print(table)

    if len(report.records) > 20:
        console.print(f"\n... and {len(report.records) - 20} more records")

    console.print(f"\nTotal rows: {report.total_rows}")
    console.print(f"Usable records: {len(report.records)}")
    if report.malformed:
        console.print(f"[yellow]Malformed rows skipped: {len(report.malformed)}[/yellow]")


@main.command("platforms")
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def list_platforms(config: Optional[Path]):
    """List the configured platform tags."""
    recon_config = load_config(config)

    table = Table(title="Configured Platforms")
    table.add_column("Tag", style="cyan")
    table.add_column("Side")
    table.add_column("Name")
    table.add_column("Amount Column")
    table.add_column("Date Column")

    for side in (POS_SIDE, SOURCE_SIDE):
        for tag in recon_config.platforms_for(side):
            profile = recon_config.platforms[tag]
            table.add_row(
                tag,
                side,
                profile.display_name or tag,
                profile.column_mappings["amount"],
                profile.column_mappings["date"],
            )

    console.print(table)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _setup_logging(config: ReconConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else config.logging.level
    log_file = Path(config.logging.file) if config.logging.file else None
    setup_logging(level, log_file=log_file, log_format=config.logging.format)


def _display_summary(summary: ReconciliationSummary) -> None:
    """Display reconciliation summary in console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total POS Records", str(summary.total_pos_records))
    table.add_row("Total Platform Records", str(summary.total_source_records))
    table.add_row("Malformed Rows", str(summary.malformed_count))
    table.add_row("Exact Matches", str(summary.exact_count))
    table.add_row("Probable Matches", str(summary.probable_count))
    table.add_row("Grouped Matches", str(summary.grouped_count))
    table.add_row("Midnight Matches", str(summary.midnight_count))
    table.add_row("Unmatched in POS", str(summary.pos_only_count))
    table.add_row("Unmatched in Platform", str(summary.source_only_count))
    table.add_row("Exact Match Rate", f"{summary.exact_match_rate:.1f}%")
    table.add_row("POS Match Rate", f"{summary.pos_match_rate:.1f}%")
    table.add_row("Processing Time", f"{summary.processing_time_seconds:.2f}s")

    console.print(table)


def _apply_overrides(
    config: ReconConfig,
    amount_tolerance: Optional[float] = None,
    percent_tolerance: Optional[float] = None,
    max_group_size: Optional[int] = None,
    workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> ReconConfig:
    """Apply command-line overrides, re-validating the result."""
    data = config.model_dump()
    matching = data["matching"]

    if amount_tolerance is not None:
        matching["tolerance"]["amount"] = amount_tolerance
    if percent_tolerance is not None:
        matching["tolerance"]["percent"] = percent_tolerance
    if max_group_size is not None:
        matching["grouped"]["max_group_size"] = max_group_size
    if workers is not None:
        data["engine"]["max_workers"] = workers
    if timeout is not None:
        data["engine"]["timeout_seconds"] = timeout

    return build_config(data)


if __name__ == "__main__":
    main()
