"""Main CLI entry point."""

import json
import sys
from pathlib import Path
from typing import List

import click
import pandas as pd
from rich.console import Console
from rich.table import Table

from ..core.archive_processor import parse_file_content, process_archive_entries
from ..core.models import ArchiveEntry, ParsedData, isoformat_z
from ..utils.config import config
from ..utils.exceptions import ArchiveError, InspectorError, LogFileError
from ..utils.logger import setup_logger
from ..utils.validators import validate_input_path


console = Console()


def read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise LogFileError(f"Cannot read {path}: {e}")


def collect_entries(paths: List[str]) -> List[ArchiveEntry]:
    """Walk files and directories into archive entries with relative paths."""
    entries = []
    for raw in paths:
        root = Path(raw)
        if root.is_file():
            entries.append(ArchiveEntry(path=root.name, content=read_text(root)))
            continue
        for file_path in sorted(p for p in root.rglob("*") if p.is_file()):
            entries.append(ArchiveEntry(
                path=file_path.relative_to(root).as_posix(),
                content=read_text(file_path),
            ))
    if not entries:
        raise ArchiveError(f"No files found under {', '.join(paths)}")
    return entries


def events_frame(data: ParsedData) -> pd.DataFrame:
    """Event timeline as a DataFrame ordered by timestamp."""
    frame = pd.DataFrame([event.to_dict() for event in data.events])
    if frame.empty:
        return frame
    for column in ("vmName", "phase"):
        if column not in frame.columns:
            frame[column] = ""
    frame = frame.fillna("")
    return frame.sort_values("timestamp", kind="stable").reset_index(drop=True)


def render_plans(data: ParsedData) -> None:
    table = Table(title="Migration plans")
    table.add_column("Plan", style="cyan")
    table.add_column("Status")
    table.add_column("Type")
    table.add_column("VMs", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Panics", justify="right")
    table.add_column("Last seen")

    status_styles = {"Succeeded": "green", "Failed": "red", "Running": "yellow"}
    for plan in data.plans:
        status = plan.status + (" (archived)" if plan.archived else "")
        style = status_styles.get(plan.status, "white")
        table.add_row(
            plan.key,
            f"[{style}]{status}[/{style}]",
            plan.migration_type,
            str(len(plan.vms)),
            str(len(plan.errors)),
            str(len(plan.panics)),
            isoformat_z(plan.last_seen),
        )
    console.print(table)

    for plan in data.plans:
        if not plan.vms:
            continue
        vm_table = Table(title=f"VMs of {plan.key}")
        vm_table.add_column("VM", style="cyan")
        vm_table.add_column("Phase")
        vm_table.add_column("Step")
        vm_table.add_column("Type")
        vm_table.add_column("Precopies", justify="right")
        for vm in plan.vms.values():
            vm_table.add_row(
                f"{vm.name} ({vm.id})" if vm.name else vm.id,
                vm.current_phase,
                vm.current_step,
                vm.migration_type,
                str(vm.precopy_count or ""),
            )
        console.print(vm_table)


def render_stats(data: ParsedData) -> None:
    stats, summary = data.stats, data.summary
    console.print(
        f"Lines: {stats.total_lines} total, {stats.parsed_lines} parsed, "
        f"{stats.error_lines} undecodable, {stats.duplicate_lines} duplicates"
    )
    console.print(
        f"Plans: {summary.total_plans} ([yellow]{summary.running} running[/yellow], "
        f"[green]{summary.succeeded} succeeded[/green], [red]{summary.failed} failed[/red], "
        f"{summary.pending} pending, {summary.archived} archived)"
    )


def render_events(data: ParsedData) -> None:
    frame = events_frame(data)
    if frame.empty:
        console.print("[yellow]No events[/yellow]")
        return
    table = Table(title="Event timeline")
    for column in ("timestamp", "type", "planName", "vmName", "description"):
        table.add_column(column)
    for row in frame.itertuples(index=False):
        table.add_row(row.timestamp, row.type, row.planName, row.vmName, row.description)
    console.print(table)


@click.command()
@click.argument('paths', nargs=-1, type=click.Path(exists=True))
@click.option('--output-format', '-f', default='human',
              type=click.Choice(['json', 'human']),
              help='Output format')
@click.option('--events', is_flag=True, help='Show the event timeline')
@click.option('--workers', type=int, default=None, help='Threads for parsing controller logs')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--config-dir', default=None, help='Configuration directory path')
@click.option('--app-log-file', help='Log file for application logs')
@click.option('--test-config', is_flag=True, help='Test configuration files and exit')
def main(paths, output_format, events, workers, verbose, config_dir, app_log_file, test_config):
    """Inspect migration controller logs and Plan YAML resources."""

    # Keep stdout clean for piping JSON
    if verbose:
        log_level = "DEBUG"
    else:
        log_level = "WARNING" if output_format == 'json' else "INFO"
    logger = setup_logger(level=log_level, log_file=app_log_file)

    if config_dir:
        config.use_config_dir(config_dir)

    if test_config:
        try:
            console.print("[green]Testing configuration...[/green]")
            console.print(f"Log signatures: {config.get_log_signatures()}")
            console.print(f"API group: {config.get_api_group()}")
            console.print(f"Parser settings: {config.get_parser_config()}")
            console.print(f"Archive settings: {config.get_archive_config()}")
            console.print("[green]✓ Configuration test passed[/green]")
            return
        except (InspectorError, FileNotFoundError) as e:
            console.print(f"[red]Configuration test failed: {e}[/red]")
            sys.exit(1)

    if not paths:
        console.print("[red]Error: at least one PATH is required[/red]")
        console.print("Usage: plan-inspector path/to/controller.log [plan.yaml ...]")
        sys.exit(1)

    try:
        for path in paths:
            if not validate_input_path(path):
                raise LogFileError(f"Not a readable file or directory: {path}")

        single = Path(paths[0])
        if len(paths) == 1 and single.is_file():
            logger.info(f"Parsing {single}")
            data = parse_file_content(read_text(single))
            payload = data.to_dict()
        else:
            entries = collect_entries(list(paths))
            logger.info(f"Dispatching {len(entries)} files")
            result = process_archive_entries(entries, max_workers=workers)
            data = result.parsed_data
            payload = result.to_dict()
            if output_format == 'human' and result.skipped_files:
                console.print(f"[dim]Skipped {len(result.skipped_files)} unrecognized files[/dim]")

        if output_format == 'json':
            click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
            return

        render_stats(data)
        render_plans(data)
        if events:
            render_events(data)

    except InspectorError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == '__main__':
    main()
