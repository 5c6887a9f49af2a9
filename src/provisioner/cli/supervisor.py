"""
CLI: ``provisioner supervisor``: drive the enabled supervisors.

``run`` starts the scheduler and blocks until interrupted; ``tick`` runs a
single pass of every enabled supervisor and exits.
"""

from __future__ import annotations

import threading

import typer

from provisioner.cli.utils import console, err_console, load_settings

app = typer.Typer(no_args_is_help=True)


def _runtime(database: str | None, interval: float | None):
    from provisioner.core.errors import ConfigError
    from provisioner.runtime import build_runtime

    settings = load_settings(database)
    if interval is not None:
        settings = settings.model_copy(update={"poll_interval_seconds": interval})
    try:
        return build_runtime(settings)
    except ConfigError as e:
        err_console.print(f"[bold red]Error[/bold red] (CONFIG): {e}")
        raise typer.Exit(code=1) from e


@app.command("run")
def run(
    interval: float | None = typer.Option(None, "--interval", "-i", help="Tick interval (s)"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Run the supervisors on the scheduler until Ctrl-C."""
    runtime = _runtime(database, interval)
    kinds = ", ".join(runtime.scheduler.supervisor_kinds) or "none"
    console.print(
        f"[bold green]Supervisors running[/bold green] ({kinds}) "
        f"every {runtime.settings.poll_interval_seconds}s as {runtime.settings.instance_id}"
    )
    runtime.scheduler.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        console.print("[yellow]Stopping...[/yellow]")
    finally:
        runtime.close()


@app.command("tick")
def tick(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one pass of every enabled supervisor."""
    import json

    runtime = _runtime(database, None)
    try:
        runtime.scheduler.tick_once()
        stats = runtime.scheduler.get_stats().to_dict()
    finally:
        runtime.close()

    if json_out:
        console.print_json(json.dumps(stats, default=str))
        return
    console.print(
        f"[green]OK[/green] {stats['supervisor_runs']} supervisor pass(es), "
        f"{sum(stats['supervisor_failures'].values())} failure(s)"
    )
