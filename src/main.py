"""kintree command line.

- init-db: create the SQLite database and seed relation masters
- import-gedcom: load individuals and families from a GEDCOM file
- validate: report cycles, impossible ages and misconfigured relations
- layout: print the positioned family tree as JSON
- plot: render the family tree with Graphviz
- serve: run the REST API
"""

import json
import logging
from pathlib import Path

import typer

import database
from config import configure_logging, get_settings
from graph import build_graph, layout_tree, tree_data
from parsing import import_gedcom
from placement import Direction, LayoutOptions, get_placer
from plotting import plot_tree
from relations import check_relation_masters
from validation import validate_tree

app = typer.Typer(
    name="kintree",
    help="Family tree records, relationship inference and tree layout",
    add_completion=False,
)
logger = logging.getLogger("kintree")
_state: dict = {}


@app.callback()
def main(
    db: Path = typer.Option(None, "--db", help="SQLite database path (default: KINTREE_DATABASE)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    try:
        settings = get_settings()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    if db is not None:
        settings.database_path = db
    configure_logging("DEBUG" if verbose else settings.log_level)
    _state["settings"] = settings
    _state["placer"] = get_placer(settings.layout_engine)


def _connect():
    path = _state["settings"].database_path
    logger.debug("Opening database %s", path)
    return database.create_database(path)


@app.command("init-db")
def init_db():
    """Create the database and seed the default relation masters."""
    conn = _connect()
    masters = database.list_relation_masters(conn)
    conn.close()
    typer.echo(f"Database ready with {len(masters)} relation masters")


@app.command("import-gedcom")
def import_gedcom_command(path: Path = typer.Argument(..., exists=True, dir_okay=False)):
    """Import individuals and families from a GEDCOM file."""
    conn = _connect()
    members, edges = import_gedcom(conn, path)
    conn.close()
    typer.echo(f"Imported {members} members and {edges} relationships")


@app.command()
def validate():
    """Validate the stored family tree; exits 1 when the tree has warnings."""
    conn = _connect()
    warnings = validate_tree(build_graph(conn))
    notes = check_relation_masters(conn)
    conn.close()

    # Unresolved inverse codes only disable mirroring; they are not tree errors.
    for note in notes:
        typer.echo(f"Note: {note}")
    if not warnings:
        typer.echo("No validation issues found")
        return
    typer.echo(f"Found {len(warnings)} validation warnings:")
    for w in warnings[:10]:
        typer.echo(f"  - {w}")
    if len(warnings) > 10:
        typer.echo(f"  ... and {len(warnings) - 10} more")
    raise typer.Exit(code=1)


@app.command()
def layout(direction: Direction = typer.Option(Direction.TOP_TO_BOTTOM, "--direction", "-d")):
    """Print the positioned family tree as JSON."""
    settings = _state["settings"]
    options = LayoutOptions(
        node_width=settings.node_width,
        node_height=settings.node_height,
        rank_sep=settings.rank_sep,
        node_sep=settings.node_sep,
    )
    conn = _connect()
    result = layout_tree(conn, direction, options, _state["placer"])
    conn.close()
    typer.echo(json.dumps(result, indent=2))


@app.command()
def plot(
    output: Path = typer.Argument(Path("family_tree.png")),
    direction: Direction = typer.Option(Direction.TOP_TO_BOTTOM, "--direction", "-d"),
):
    """Render the family tree to PNG, SVG or PDF."""
    conn = _connect()
    data = tree_data(conn)
    conn.close()
    plot_tree(data["nodes"], data["edges"], output, direction)
    typer.echo(f"Graph saved to {output}")


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000):
    """Run the REST API with uvicorn."""
    import uvicorn

    from api import create_app

    uvicorn.run(create_app(_state["settings"]), host=host, port=port)


if __name__ == "__main__":
    app()
