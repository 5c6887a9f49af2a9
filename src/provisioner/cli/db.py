"""``provisioner db``: create and check the entity store."""

from __future__ import annotations

import typer

from provisioner.cli.utils import cli_context, output_result
from provisioner.ops.database import check_database_health, initialize_database

app = typer.Typer(no_args_is_help=True)

DatabaseOption = typer.Option(None, "--database", "-d", help="Store URL (overrides PROVISIONER_DATABASE_URL)")
JsonOption = typer.Option(False, "--json", help="JSON output")


@app.command()
def init(database: str | None = DatabaseOption, json_out: bool = JsonOption) -> None:
    """Create the entity tables (safe to repeat)."""
    with cli_context(database) as ctx:
        output_result(initialize_database(ctx), as_json=json_out, title="Store Init")


@app.command()
def health(database: str | None = DatabaseOption, json_out: bool = JsonOption) -> None:
    """Check connectivity, schema and migration counts."""
    with cli_context(database) as ctx:
        output_result(check_database_health(ctx), as_json=json_out, title="Store Health")
