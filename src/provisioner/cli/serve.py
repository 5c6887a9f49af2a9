"""
CLI: ``provisioner serve``: start the API server.
"""

from __future__ import annotations

import typer

from provisioner.cli.utils import console, err_console, load_settings

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    with_scheduler: bool = typer.Option(
        False, "--with-scheduler", help="Also run the supervisors in this process"
    ),
    database: str | None = typer.Option(None, "--database", "-d"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the provisioner REST API server."""
    import uvicorn

    from provisioner.api import create_app
    from provisioner.core.errors import ConfigError
    from provisioner.runtime import build_runtime

    settings = load_settings(database)
    try:
        runtime = build_runtime(settings)
    except ConfigError as e:
        err_console.print(f"[bold red]Error[/bold red] (CONFIG): {e}")
        raise typer.Exit(code=1) from e

    api = create_app(
        settings,
        store=runtime.store,
        supervisor=runtime.migration_supervisor,
        scheduler=runtime.scheduler if with_scheduler else None,
        aws_client=runtime.aws_client,
    )
    bind_host = host or settings.host
    bind_port = port or settings.port
    console.print(f"[bold green]Starting provisioner API[/bold green] on {bind_host}:{bind_port}")
    if with_scheduler:
        runtime.scheduler.start()
    try:
        uvicorn.run(api, host=bind_host, port=bind_port, log_level=log_level)
    finally:
        runtime.close()
