"""Command-line interface for tablesmith (project files, import, render, local API)."""

from __future__ import annotations

import json
from pathlib import Path

import click

from tablesmith import __version__
from tablesmith.errors import TableError


@click.group()
@click.version_option(version=__version__, prog_name="tablesmith")
def main() -> None:
    """tablesmith -- editable data tables with CSV/HTML/XLSX import and styled rendering.

    Lifecycle: Create -> Import/Edit -> Save -> Render
    """


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _service(directory: str):
    from tablesmith.logging.events import set_project_dir
    from tablesmith.ui.service import TableService

    project_dir = Path(directory)
    set_project_dir(project_dir)
    return TableService(project_dir=project_dir)


def _echo_event(evt: dict) -> None:
    ts = evt.get("ts", "")
    lvl = evt.get("level", "").upper()
    etype = evt.get("event_type", "")
    msg = evt.get("message", "")
    err = evt.get("error_code")
    line = f"[{ts}] {lvl:7s} {etype}: {msg}"
    if err:
        line += f"  ({err})"
    click.echo(line)


_FORMAT_BY_SUFFIX = {".csv": "csv", ".txt": "csv", ".html": "html", ".htm": "html", ".xlsx": "xlsx"}


# ---------------------------------------------------------------------------
# Project / tables
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def init(directory: str) -> None:
    """Scaffold a new project with a demo table at DIRECTORY."""
    from tablesmith.project import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("title")
@click.option("--id", "table_id", default=None, help="Explicit table id (default: slug of TITLE).")
def create(directory: str, title: str, table_id: str | None) -> None:
    """Create an empty table titled TITLE."""
    svc = _service(directory)
    try:
        table = svc.create_table(title, table_id)
    except TableError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created table: {table['table_id']}")


@main.command("list")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def list_cmd(directory: str, as_json: bool) -> None:
    """List tables in DIRECTORY."""
    tables = _service(directory).list_tables()
    if as_json:
        click.echo(json.dumps(tables, indent=2))
        return
    if not tables:
        click.echo("No tables found.")
        return
    for t in tables:
        click.echo(f"  {t['table_id']:24s} {t['n_columns']:3d} cols {t['n_rows']:5d} rows  {t['title']}")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("table_id")
def show(directory: str, table_id: str) -> None:
    """Print a table's schema, options and rows as JSON."""
    try:
        table = _service(directory).get_table(table_id)
    except TableError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(table, indent=2, ensure_ascii=False))


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("table_id")
def delete(directory: str, table_id: str) -> None:
    """Delete a table."""
    try:
        _service(directory).delete_table(table_id)
    except TableError as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted table: {table_id}")


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


@main.command("import")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("table_id")
@click.argument("source", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "fmt", type=click.Choice(["csv", "html", "xlsx"]), default=None, help="Input format (default: from file extension).")
@click.option("--sheet", default=None, help="Worksheet to read (xlsx only).")
def import_cmd(directory: str, table_id: str, source: str, fmt: str | None, sheet: str | None) -> None:
    """Replace TABLE_ID's schema and rows with the contents of SOURCE.

    The table is created when it does not exist yet; if the import then
    fails, the new table is removed again.
    """
    src = Path(source)
    fmt = fmt or _FORMAT_BY_SUFFIX.get(src.suffix.lower())
    if fmt is None:
        raise click.ClickException(f"Cannot infer format from {src.name!r}; pass --format")

    if fmt == "xlsx":
        payload: str | bytes = src.read_bytes()
    else:
        try:
            payload = src.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise click.ClickException(
                f"{src.name} is not UTF-8 text (byte {e.start}); re-save it as UTF-8"
            )

    svc = _service(directory)
    created = False
    try:
        if not svc.store.exists(table_id):
            svc.create_table(src.stem, table_id)
            created = True
        session = svc.open_session(table_id)
        if fmt == "xlsx":
            result = session.import_xlsx(payload, sheet)
        elif fmt == "html":
            result = session.import_html(payload)
        else:
            result = session.import_csv(payload)
        ack = session.save()
    except TableError as e:
        if created:
            svc.delete_table(table_id)
        raise click.ClickException(str(e))
    finally:
        svc.close_session(table_id)
    click.echo(result["message"])
    click.echo(f"Saved {table_id} ({ack.content_hash[:12]})")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("table_id")
@click.argument("output", type=click.Path(dir_okay=False))
def export(directory: str, table_id: str, output: str) -> None:
    """Write TABLE_ID's raw values to OUTPUT as CSV."""
    try:
        result = _service(directory).export_csv(table_id, Path(output))
    except TableError as e:
        raise click.ClickException(str(e))
    click.echo(f"Exported {result['n_rows']} rows x {result['n_cols']} columns to {result['path']}")


# ---------------------------------------------------------------------------
# Render
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("table_id")
@click.option("--class", "extra_class", default=None, help="Extra CSS class for the table element.")
@click.option("-o", "--output", default=None, type=click.Path(dir_okay=False), help="Write markup to a file.")
def render(directory: str, table_id: str, extra_class: str | None, output: str | None) -> None:
    """Render TABLE_ID's saved state as HTML."""
    html = _service(directory).render(table_id, extra_class)
    if output:
        Path(output).write_text(html, encoding="utf-8")
        click.echo(f"Wrote {output}")
    else:
        click.echo(html)


# ---------------------------------------------------------------------------
# UI
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--port", type=int, default=None, help="Port (auto-select if omitted).")
@click.option("--no-open", is_flag=True, help="Don't auto-open browser.")
def ui(directory: str, host: str, port: int | None, no_open: bool) -> None:
    """Serve the editor API and render directive for DIRECTORY."""
    import socket
    import webbrowser

    import uvicorn

    from tablesmith.ui.server import create_app

    app = create_app(Path(directory))

    if port is None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, 0))
            port = s.getsockname()[1]

    url = f"http://{host}:{port}"
    click.echo(f"Serving API at {url}/api")
    click.echo("Press Ctrl+C to stop")

    if not no_open:
        import threading
        threading.Timer(0.8, lambda: webbrowser.open(f"{url}/docs")).start()

    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("\nStopped.")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--table", "table_id", default=None, help="Filter by table id.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    table_id: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from tablesmith.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, table_id=table_id, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        _echo_event(evt)


@main.command("table-log")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("table_id")
def table_log_cmd(directory: str, table_id: str) -> None:
    """Show event log for a specific table."""
    from tablesmith.logging.sink import EventSink

    events = EventSink(Path(directory)).read_table_log(table_id)

    if not events:
        click.echo(f"No events found for table {table_id}.")
        return

    for evt in events:
        _echo_event(evt)


if __name__ == "__main__":
    main()
