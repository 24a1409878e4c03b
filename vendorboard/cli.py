from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vendorboard import services
from vendorboard.config import get_settings
from vendorboard.db import init_db, session_scope
from vendorboard.importer import import_workbook
from vendorboard.weeks import format_date, week_label, weeks_overlapping_month

app = typer.Typer(help="Weekly vendor delivery dashboard")
console = Console()
log = logging.getLogger(__name__)


def _configure_logging(*, verbose: int, json_output: bool) -> None:
    if verbose <= 0:
        level = logging.getLevelName(get_settings().log_level)
        if not isinstance(level, int):
            level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers: list[logging.Handler]
    if json_output:
        handlers = [logging.StreamHandler()]
        fmt = "%(levelname)s: %(message)s"
    else:
        handlers = [RichHandler(console=console, show_time=False, show_path=False, markup=True)]
        fmt = "%(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=handlers, force=True)


@app.callback()
def app_callback(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON for scripting."),
    verbose: int = typer.Option(0, "-v", "--verbose", count=True, help="Increase log verbosity."),
) -> None:
    ctx.obj = {"json_output": json_output, "verbose": verbose}
    _configure_logging(verbose=verbose, json_output=json_output)


def _wants_json(ctx: typer.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("json_output"))


def _print(title: str, payload: dict[str, Any], ctx: typer.Context) -> None:
    if _wants_json(ctx):
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    table = Table(show_header=True, header_style="bold cyan", box=ROUNDED)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in payload.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(Panel(table, title=title, border_style="cyan"))


@app.command("serve")
def serve_command(
    host: str | None = typer.Option(None, help="Bind address (default from VENDORBOARD_HOST)."),
    port: int | None = typer.Option(None, help="Port (default from VENDORBOARD_PORT)."),
    reload: bool = typer.Option(False, help="Reload on code changes."),
) -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("vendorboard.app:app", host=host or settings.host, port=port or settings.port, reload=reload)


@app.command("init-db")
def init_db_command(
    ctx: typer.Context,
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    engine = init_db(db_url)
    _print("init-db", {"status": "ok", "database": engine.url.render_as_string(hide_password=True)}, ctx)


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="XLSX workbook to import."),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    init_db(db_url)
    with session_scope() as session:
        try:
            result = import_workbook(file, session)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="file") from exc
    _print("import", result.model_dump(), ctx)


@app.command("purge-feedback")
def purge_feedback_command(
    ctx: typer.Context,
    marker: list[str] | None = typer.Option(
        None, "--marker", help="Delete feedback whose user name contains this text (repeatable).",
    ),
    db_url: str | None = typer.Option(default=None, help="Optional SQLAlchemy DB URL"),
) -> None:
    """Remove feedback left behind by test runs."""
    markers = marker or get_settings().test_feedback_markers
    init_db(db_url)
    with session_scope() as session:
        deleted = services.purge_feedback(session, markers)
        session.commit()
    log.info("Purged %d feedback rows matching %s", deleted, markers)
    _print("purge-feedback", {"deleted": deleted, "markers": ", ".join(markers)}, ctx)


@app.command("weeks")
def weeks_command(
    ctx: typer.Context,
    year: int = typer.Argument(...),
    month: int = typer.Argument(..., min=1, max=12),
) -> None:
    try:
        weeks = weeks_overlapping_month(year, month)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="year") from exc
    _print(f"weeks {year}-{month:02d}", {format_date(m): week_label(m) for m in weeks}, ctx)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
