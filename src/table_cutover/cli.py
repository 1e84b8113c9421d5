# src/table_cutover/cli.py
import typer
from pathlib import Path
from typing import Any, Dict, List, Optional
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .checkpoint import CheckpointStore, default_checkpoint_path
from .config import build_config, load_config
from .engine import run_migration, validate_job
from .errors import MigrationError
from .logging_utils import configure_logging

console = Console()
app = typer.Typer(help="table-cutover CLI")


def version_callback(value: bool):
    if value:
        from table_cutover import __version__
        console.print(f"table-cutover version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
):
    """table-cutover - move a time-partitioned table to a new instance and swap it in."""
    pass


def _load(config_file: Optional[Path], overrides: Dict[str, Any]):
    try:
        return build_config(config_file, overrides)
    except (MigrationError, OSError) as e:
        console.print(f"[red]✗ Failed to load config: {e}[/red]")
        raise typer.Exit(code=1)


def _job_overrides(
    src_dsn, dst_dsn, src_table, dst_table, time_field, parallelism, starttime,
    is_src_distributed, is_dst_distributed, cluster_name, ignore_field, done_segments,
) -> Dict[str, Any]:
    return {
        "source_dsn": src_dsn,
        "destination_dsn": dst_dsn,
        "source_table": src_table,
        "destination_table": dst_table,
        "time_column": time_field,
        "parallelism": parallelism,
        "start_time": starttime,
        "source_distributed": is_src_distributed,
        "destination_distributed": is_dst_distributed,
        "cluster_name": cluster_name,
        "ignored_columns": ignore_field,
        "checkpoint_file": done_segments,
    }


# Shared job options. None means "not given", so YAML values and defaults apply.
SrcDsn = typer.Option(None, "--src-dsn", help="Source DSN, e.g. clickhouse://default:@localhost:9000/default")
DstDsn = typer.Option(None, "--dst-dsn", help="Destination DSN")
SrcTable = typer.Option(None, "--src-table", help="Source table")
DstTable = typer.Option(None, "--dst-table", help="Destination table")
TimeField = typer.Option(None, "--time-field", help="Date/DateTime column used for segmenting")
Parallelism = typer.Option(None, "--parallelism", help="Number of copy workers (default 4)")
StartTime = typer.Option(None, "--starttime", help="Copy rows at or after this time (default 1970-01-01 08:00:01)")
SrcDistributed = typer.Option(None, "--is-src-distributed/--no-src-distributed", help="Source is a distributed table")
DstDistributed = typer.Option(None, "--is-dst-distributed/--no-dst-distributed", help="Destination is a distributed table")
ClusterName = typer.Option(None, "--cluster-name", help="Cluster for RENAME ... ON CLUSTER")
IgnoreField = typer.Option(None, "--ignore-field", help="Column to skip; repeatable")
DoneSegments = typer.Option(None, "--done-segments", help="Checkpoint file (default done_segments_<src>_to_<dst>.txt)")
ConfigFile = typer.Option(None, "--config", "-c", help="YAML job file; flags override its values")


# ======================================================================================
# COMMAND: table-cutover run
# ======================================================================================
@app.command()
def run(
    config_file: Optional[Path] = ConfigFile,
    src_dsn: Optional[str] = SrcDsn,
    dst_dsn: Optional[str] = DstDsn,
    src_table: Optional[str] = SrcTable,
    dst_table: Optional[str] = DstTable,
    time_field: Optional[str] = TimeField,
    parallelism: Optional[int] = Parallelism,
    starttime: Optional[str] = StartTime,
    is_src_distributed: Optional[bool] = SrcDistributed,
    is_dst_distributed: Optional[bool] = DstDistributed,
    cluster_name: Optional[str] = ClusterName,
    ignore_field: Optional[List[str]] = IgnoreField,
    done_segments: Optional[Path] = DoneSegments,
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="JSON-lines audit log (default log.json)"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Rows fetched per server round trip"),
    write_batch_size: Optional[int] = typer.Option(None, "--write-batch-size", help="Rows per insert"),
    no_cutover: bool = typer.Option(False, "--no-cutover", help="Backfill and catch up only; leave both tables in place"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Backfill, catch up and cut over to the destination table."""
    configure_logging(verbose)
    overrides = _job_overrides(
        src_dsn, dst_dsn, src_table, dst_table, time_field, parallelism, starttime,
        is_src_distributed, is_dst_distributed, cluster_name, ignore_field, done_segments,
    )
    overrides.update({
        "audit_log": log_file,
        "extract_batch_size": batch_size,
        "write_batch_size": write_batch_size,
        "cutover": False if no_cutover else None,
    })
    config = _load(config_file, overrides)

    console.print(f"\n[bold cyan]Table Cutover[/bold cyan] {config.source_table} → {config.destination_table}\n")
    try:
        report = run_migration(config)
    except MigrationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    if report.status == "empty":
        console.print(Panel("[yellow]No data to migrate[/yellow]", border_style="yellow"))
    elif report.failed_segments or report.rows_dropped:
        console.print(Panel(
            f"[yellow bold][WARN] Finished with {len(report.failed_segments)} failed segment(s) "
            f"and {report.rows_dropped} dropped row(s); see {config.audit_log}[/yellow bold]",
            border_style="yellow",
        ))
    elif report.status == "done":
        console.print(Panel(
            f"[green bold][OK] {config.source_table} now serves the migrated data "
            f"({report.rows_written} rows, backup in {config.backup_table})[/green bold]",
            border_style="green",
        ))
    else:
        console.print(Panel(
            f"[green bold][OK] Backfill complete ({report.rows_written} rows); cutover skipped[/green bold]",
            border_style="green",
        ))
    raise typer.Exit(code=1 if report.failed_segments else 0)


# ======================================================================================
# COMMAND: table-cutover validate
# ======================================================================================
@app.command()
def validate(
    config_file: Optional[Path] = ConfigFile,
    src_dsn: Optional[str] = SrcDsn,
    dst_dsn: Optional[str] = DstDsn,
    src_table: Optional[str] = SrcTable,
    dst_table: Optional[str] = DstTable,
    time_field: Optional[str] = TimeField,
    starttime: Optional[str] = StartTime,
    is_src_distributed: Optional[bool] = SrcDistributed,
    is_dst_distributed: Optional[bool] = DstDistributed,
    cluster_name: Optional[str] = ClusterName,
    ignore_field: Optional[List[str]] = IgnoreField,
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """Run every pre-migration check without moving data."""
    configure_logging(verbose)
    overrides = _job_overrides(
        src_dsn, dst_dsn, src_table, dst_table, time_field, None, starttime,
        is_src_distributed, is_dst_distributed, cluster_name, ignore_field, None,
    )
    config = _load(config_file, overrides)

    try:
        columns, time_range = validate_job(config)
    except MigrationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Migrated columns", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim")
    table.add_column("Column", style="cyan")
    table.add_column("Type", style="magenta")
    for i, column in enumerate(columns, start=1):
        table.add_row(str(i), column.name, column.type)
    console.print(table)

    if time_range is None:
        console.print("[yellow]No rows at or after the start time[/yellow]")
    else:
        console.print(f"Time range: {time_range.min} → {time_range.max}")
    console.print("[green bold][OK] All checks passed[/green bold]")


# ======================================================================================
# COMMAND: table-cutover status
# ======================================================================================
@app.command()
def status(
    config_file: Optional[Path] = ConfigFile,
    src_table: Optional[str] = SrcTable,
    dst_table: Optional[str] = DstTable,
    done_segments: Optional[Path] = DoneSegments,
):
    """Show how many segments the checkpoint file records as done."""
    if done_segments is not None:
        path = done_segments
    elif config_file is not None:
        try:
            path = load_config(config_file).checkpoint_path
        except (MigrationError, OSError) as e:
            console.print(f"[red]✗ Failed to load config: {e}[/red]")
            raise typer.Exit(code=1)
    elif src_table and dst_table:
        path = default_checkpoint_path(src_table, dst_table)
    else:
        console.print("[red]✗ Give --done-segments, --config, or both --src-table and --dst-table[/red]")
        raise typer.Exit(code=1)

    checkpoint = CheckpointStore(path)
    done = sorted(checkpoint.load())
    if not done:
        console.print(f"[dim]No completed segments recorded in {path}[/dim]")
        raise typer.Exit(code=0)

    table = Table(title=f"Checkpoint {path}", show_header=True, header_style="bold cyan")
    table.add_column("Completed segments", style="green")
    table.add_column("First", style="white")
    table.add_column("Last", style="white")
    table.add_row(str(len(done)), done[0], done[-1])
    console.print(table)
