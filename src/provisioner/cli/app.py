"""
Root Typer application for the ``provisioner`` CLI.

Commands import the ops layer lazily so ``provisioner --help`` stays fast.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="provisioner",
    help="provisioner: installation migration control plane.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from provisioner import __version__

        typer.echo(f"provisioner {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Manage migrations, supervisors and the entity store."""


# ── Sub-command registration ─────────────────────────────────────────────

from provisioner.cli.db import app as db_app  # noqa: E402
from provisioner.cli.migration import app as migration_app  # noqa: E402
from provisioner.cli.serve import app as serve_app  # noqa: E402
from provisioner.cli.supervisor import app as supervisor_app  # noqa: E402

app.add_typer(db_app, name="db", help="Entity store operations.")
app.add_typer(migration_app, name="migration", help="Migration management.")
app.add_typer(supervisor_app, name="supervisor", help="Run the supervisors.")
app.add_typer(serve_app, name="serve", help="Start the API server.")
