"""``provisioner migration``: request, inspect and retire migrations."""

from __future__ import annotations

import typer

from provisioner.cli.db import DatabaseOption, JsonOption
from provisioner.cli.utils import cli_context, output_paged, output_result
from provisioner.ops.migrations import (
    create_migration,
    delete_migration,
    get_migration,
    list_migrations,
    teardown_migration,
    unlock_migration,
)
from provisioner.ops.requests import (
    CreateMigrationRequest,
    ListMigrationsRequest,
    UnlockMigrationRequest,
)

app = typer.Typer(no_args_is_help=True)


@app.command("create")
def create(
    installation_id: str = typer.Argument(..., help="Installation to move"),
    cluster_id: str = typer.Option(..., "--cluster", "-c", help="Destination cluster"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Request the move of an installation to another cluster.

    Repeating the request while a migration of the same placement is
    still active prints that migration instead of creating another.
    """
    request = CreateMigrationRequest(cluster_id=cluster_id, installation_id=installation_id)
    with cli_context(database) as ctx:
        result = create_migration(ctx, request)
        title = "Migration" if result.metadata.get("created", True) else "Migration (existing)"
        output_result(result, as_json=json_out, title=title)


@app.command("list")
def list_(
    state: str | None = typer.Option(None, "--state", "-s", help="Only this state"),
    cluster_installation: str | None = typer.Option(None, "--cluster-installation"),
    active: bool = typer.Option(False, "--active", help="Only non-terminal migrations"),
    limit: int = typer.Option(50, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """List migrations, oldest first."""
    request = ListMigrationsRequest(
        state=state,
        cluster_installation_id=cluster_installation,
        active_only=active,
        limit=limit,
        offset=offset,
    )
    with cli_context(database) as ctx:
        output_paged(list_migrations(ctx, request), as_json=json_out, title="Migrations")


@app.command("show")
def show(
    migration_id: str = typer.Argument(...),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    with cli_context(database) as ctx:
        output_result(get_migration(ctx, migration_id), as_json=json_out, title=f"Migration {migration_id}")


@app.command("delete")
def delete(
    migration_id: str = typer.Argument(...),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Delete a finished, unlocked migration."""
    with cli_context(database) as ctx:
        output_result(delete_migration(ctx, migration_id), as_json=json_out, title="Deleted")


@app.command("unlock")
def unlock(
    migration_id: str = typer.Argument(...),
    owner: str | None = typer.Option(None, "--owner", help="Instance that holds the lock"),
    force: bool = typer.Option(False, "--force", help="Release whoever holds the lock"),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Release a migration's lock, e.g. after its supervisor died."""
    request = UnlockMigrationRequest(migration_id=migration_id, owner_id=owner, force=force)
    with cli_context(database) as ctx:
        output_result(unlock_migration(ctx, request), as_json=json_out, title="Unlock")


@app.command("teardown")
def teardown(
    migration_id: str = typer.Argument(...),
    database: str | None = DatabaseOption,
    json_out: bool = JsonOption,
) -> None:
    """Delete the database a failed migration restored on the destination."""
    with cli_context(database) as ctx:
        output_result(teardown_migration(ctx, migration_id), as_json=json_out, title="Teardown requested")
