"""Shared plumbing for the ``provisioner`` sub-commands.

Commands open the store through :func:`cli_context`, call one operation
from :mod:`provisioner.ops`, and hand the result to :func:`output_result`
or :func:`output_paged`. A failed result prints ``Error (<CODE>): ...`` on
stderr and exits 1; ``--json`` switches successful output to JSON on stdout.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, is_dataclass
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from provisioner.core.logging import configure_logging
from provisioner.core.settings import ProvisionerSettings, get_settings
from provisioner.ops.context import OperationContext
from provisioner.ops.result import OperationResult, PagedResult
from provisioner.store import open_store

console = Console()
err_console = Console(stderr=True)


def load_settings(database: str | None = None) -> ProvisionerSettings:
    """Environment settings with ``--database`` applied; configures logging."""
    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_url": database})
    configure_logging(
        settings.log_level,
        json_format=settings.json_logs,
        instance_id=settings.instance_id,
    )
    return settings


@contextmanager
def cli_context(database: str | None = None) -> Iterator[OperationContext]:
    """Operation context on a freshly opened store, closed on exit."""
    settings = load_settings(database)
    store = open_store(settings.database_url)
    try:
        yield OperationContext(store=store, settings=settings, caller="cli")
    finally:
        store.close()


def _plain(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    return obj


def _print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def _exit_on_failure(result: OperationResult) -> None:
    if result.success:
        return
    if result.error is None:
        err_console.print("[bold red]Error[/bold red]: operation failed")
    else:
        err_console.print(
            f"[bold red]Error[/bold red] ({result.error.code.value}): {result.error.message}"
        )
    raise typer.Exit(code=1)


def output_result(result: OperationResult, *, as_json: bool = False, title: str = "") -> None:
    """Print one entity (field per line), a list (table) or just ``OK``."""
    _exit_on_failure(result)
    data = result.data
    if as_json:
        _print_json([_plain(d) for d in data] if isinstance(data, list) else _plain(data))
    elif data is None:
        console.print(f"[green]OK[/green] {title}".rstrip())
    elif isinstance(data, list):
        _print_rows(data, title)
    else:
        if title:
            console.print(f"[bold]{title}[/bold]")
        for key, value in _plain(data).items():
            console.print(f"  [cyan]{key}[/cyan]: {value}")


def output_paged(result: PagedResult, *, as_json: bool = False, title: str = "") -> None:
    """Print one page of a list operation."""
    _exit_on_failure(result)
    items = result.data or []
    if as_json:
        _print_json(
            {
                "items": [_plain(item) for item in items],
                "total": result.total,
                "limit": result.limit,
                "offset": result.offset,
                "has_more": result.has_more,
            }
        )
        return
    _print_rows(items, title)
    if items:
        console.print(f"[dim]{len(items)} of {result.total}, offset {result.offset}[/dim]")


def _print_rows(items: list, title: str) -> None:
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    rows = [_plain(item) for item in items]
    table = Table(title=title or None, pad_edge=False)
    for column in rows[0]:
        table.add_column(column, overflow="fold")
    for row in rows:
        table.add_row(*(str(value) for value in row.values()))
    console.print(table)
