from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from rowstream.domain.models import CellValue, Column
from rowstream.domain.results import GenerateResponse, LeaseResponse, PageResponse

_STATUS_STYLES = {
    "completed": "bold green",
    "partial": "bold yellow",
    "rejected": "bold red",
    "failed": "bold red",
}


def _format_cell(value: Any) -> str:
    if value is None:
        return "[dim]null[/dim]"
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


def _format_bytes(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f} MB"


def print_generate_result(table_id: str, result: GenerateResponse, console: Optional[Console] = None) -> None:
    """Render the outcome of a bulk generation request."""
    console = console or Console()
    status = result.get("status", "unknown")
    style = _STATUS_STYLES.get(status, "white")

    table = Table(title=f"Bulk generation for {table_id}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")

    table.add_row("Status", f"[{style}]{status}[/{style}]")
    table.add_row("Rows added", f"{result.get('rowsAdded', 0):,}")
    extra: Dict[str, Any] = result.get("extra") or {}
    if extra:
        table.add_row("Duration (s)", f"{extra.get('duration_seconds', 0.0):.2f}")
        table.add_row("Throughput (rows/s)", f"{extra.get('throughput_rows_per_sec', 0.0):,.2f}")
        table.add_row("Peak Memory", _format_bytes(extra.get("peak_rss_bytes")))
        cpu = extra.get("cpu_percent")
        table.add_row("CPU %", f"{cpu:.1f}" if cpu is not None else "N/A")
    table.add_row("Message", result.get("message", ""))

    console.print(table)


def print_page(
    page: PageResponse,
    columns: Sequence[Column],
    console: Optional[Console] = None,
    title: Optional[str] = None,
) -> None:
    """
    Render one page of rows, one table column per grid column.

    Cells missing from a row's cache (columns added after the row was
    written) render as null.
    """
    console = console or Console()

    if not page["rows"]:
        console.print("[yellow]No rows to display.[/yellow]")
        return

    caption = f"{len(page['rows']):,} of {page['totalCount']:,} rows"
    if page["hasMore"]:
        caption += " | more available"
    table = Table(title=title, box=box.ROUNDED, caption=caption)
    table.add_column("Created", style="dim", no_wrap=True)
    for column in columns:
        justify = "right" if column.type.value == "NUMBER" else "left"
        table.add_column(column.name, justify=justify)

    for row in page["rows"]:
        data = row["data"]
        table.add_row(row["createdAt"], *(_format_cell(data.get(c.id)) for c in columns))

    console.print(table)
    if page["nextCursor"]:
        console.print(f"[dim]next cursor:[/dim] {page['nextCursor']}")


def print_preview(
    rows: List[Dict[str, CellValue]], columns: Sequence[Column], console: Optional[Console] = None
) -> None:
    console = console or Console()
    table = Table(title="Synthesized preview (not written)", box=box.SIMPLE)
    for column in columns:
        table.add_column(column.name)
    for values in rows:
        table.add_row(*(_format_cell(values.get(c.id)) for c in columns))
    console.print(table)


def print_lease(table_id: str, lease: LeaseResponse, console: Optional[Console] = None) -> None:
    console = console or Console()
    if not lease["isLocked"]:
        console.print(f"[green]{table_id}: no live bulk lease[/green]")
        return
    seconds = (lease["remainingMs"] or 0) / 1000.0
    console.print(
        f"[yellow]{table_id}: bulk lease live until {lease['expiresAt']} "
        f"({seconds:,.1f}s remaining)[/yellow]"
    )


__all__ = ["print_generate_result", "print_lease", "print_page", "print_preview"]
