from __future__ import annotations

import json
import sys
from typing import Optional

import typer

from rowstream.config import get_settings
from rowstream.errors import RowstreamError
from rowstream.infrastructure.db_factory import get_sync_connection
from rowstream.infrastructure.schema import apply_schema
from rowstream.reporter import print_generate_result, print_lease, print_page, print_preview
from rowstream.service import get_service
from rowstream.utils.logging import configure_logging

app = typer.Typer(help="rowstream CLI: bulk row generation and keyset pagination.")


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"batch={settings.bulk_batch_size} parallelism={settings.bulk_parallelism}"
        f" (max {settings.bulk_max_parallelism}) max_rows={settings.bulk_max_rows} | "
        f"first_page={settings.page_first_size} max_page={settings.page_max_size} "
        f"sweep={settings.page_sweep_remainder}"
    )


@app.command("init-db")
def init_db(
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Create the tables and indexes if they do not exist.
    """
    _setup_logging()
    with get_sync_connection(dsn) as conn:
        apply_schema(conn)
    typer.echo("Schema applied.")


@app.command()
def generate(
    table_id: str = typer.Argument(..., help="Table to load rows into."),
    rows: int = typer.Option(10_000, "--rows", "-r", help="Number of rows to generate."),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", help="Rows per batch transaction (default from settings)."
    ),
    parallelism: Optional[int] = typer.Option(
        None, "--parallelism", "-p", help="Concurrent writer connections (default from settings)."
    ),
    wait: bool = typer.Option(
        False, "--wait", help="Wait for search backfill and statistics refresh to finish."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response as JSON."),
) -> None:
    """
    Bulk-load synthetic rows into a table.
    """
    _setup_logging()
    result = get_service().generate_bulk_rows(
        table_id,
        rows,
        batch_size=batch_size,
        parallelism=parallelism,
        wait_for_background=wait,
    )
    if as_json:
        typer.echo(json.dumps(result, indent=2))
    else:
        print_generate_result(table_id, result)
    if not result["success"]:
        raise typer.Exit(code=1)


@app.command()
def page(
    table_id: str = typer.Argument(..., help="Table to read."),
    cursor: Optional[str] = typer.Option(None, "--cursor", "-c", help="Cursor from a previous page."),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Requested page size."),
    all_pages: bool = typer.Option(False, "--all", help="Follow cursors until the last page."),
) -> None:
    """
    Print one page of rows (or every page with --all).
    """
    _setup_logging()
    service = get_service()
    try:
        columns = service.repository.load_columns(table_id)
    except RowstreamError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)

    if not all_pages:
        print_page(service.get_page(table_id, cursor=cursor, limit=limit), columns)
        return

    for number, result in enumerate(service.reader.iter_pages(table_id, limit=limit), start=1):
        print_page(result.to_response(), columns, title=f"Page {number}")


@app.command()
def lease(table_id: str = typer.Argument(..., help="Table to check.")) -> None:
    """
    Show whether a bulk lease is live for a table.
    """
    _setup_logging()
    print_lease(table_id, get_service().check_lease(table_id))


@app.command()
def preview(
    table_id: str = typer.Argument(..., help="Table whose next rows to synthesize."),
    rows: int = typer.Option(5, "--rows", "-r", help="Number of rows to show."),
) -> None:
    """
    Show the values the next bulk load would write, without writing them.
    """
    _setup_logging()
    service = get_service()
    try:
        columns = service.repository.load_columns(table_id)
        values = service.preview_rows(table_id, rows)
    except RowstreamError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    print_preview(values, columns)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
