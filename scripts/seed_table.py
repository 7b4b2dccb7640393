"""
Create a demo table (Name / Email / Age / Notes) and optionally bulk-load it.

Usage:
    python scripts/seed_table.py --rows 50000
"""

from __future__ import annotations

import sys
import time

import typer

from rowstream.config import get_settings
from rowstream.domain.models import ColumnType
from rowstream.infrastructure.db_factory import get_sync_connection
from rowstream.infrastructure.schema import apply_schema
from rowstream.service import get_service
from rowstream.utils.logging import configure_logging

app = typer.Typer(help="Create a demo table and bulk-load synthetic rows into it.")

DEMO_COLUMNS = [
    ("Name", ColumnType.TEXT),
    ("Email", ColumnType.TEXT),
    ("Age", ColumnType.NUMBER),
    ("Notes", ColumnType.TEXT),
]


@app.command()
def main(
    name: str = typer.Option("Demo", "--name", "-n", help="Display name for the new table."),
    rows: int = typer.Option(10_000, "--rows", "-r", help="Rows to load (0 to only create)."),
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", help="Rows per batch."),
    parallelism: int | None = typer.Option(None, "--parallelism", "-p", help="Writer connections."),
) -> None:
    """
    Apply the schema, create the demo table, then load `rows` rows into it.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    with get_sync_connection() as conn:
        apply_schema(conn)

    service = get_service()
    table_id, columns = service.repository.create_table(name, DEMO_COLUMNS)
    typer.echo(f"Created table {table_id} with columns: {', '.join(c.name for c in columns)}")

    if rows <= 0:
        return

    start = time.perf_counter()
    result = service.generate_bulk_rows(
        table_id, rows, batch_size=batch_size, parallelism=parallelism, wait_for_background=True
    )
    duration = time.perf_counter() - start
    typer.echo(f"{result['message']} Total time {duration:.2f}s including background passes.")
    if not result["success"]:
        sys.exit(1)


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
