"""``bundlefeed serve`` — run the HTTP API with uvicorn."""

from __future__ import annotations

import typer
import uvicorn
from rich.console import Console

from bundlefeed.api.app import create_app
from bundlefeed.config import FeedConfig
from bundlefeed.core.production_guard import ProductionConfigError

console = Console()


def serve_cmd(
    host: str = typer.Option(None, "--host", help="Bind address.  Defaults to BUNDLEFEED_HOST."),
    port: int = typer.Option(None, "--port", "-p", help="Bind port.  Defaults to BUNDLEFEED_PORT."),
) -> None:
    """Serve the admin API and the public source.json."""
    config = FeedConfig()
    try:
        api = create_app(config)
    except ProductionConfigError as exc:
        console.print(f"[bold red]Refusing to start:[/bold red] {exc}")
        raise typer.Exit(code=1)

    bind_host = host or config.host
    bind_port = port or config.port
    console.print(
        f"[bold green]Bundlefeed[/bold green] listening on "
        f"http://{bind_host}:{bind_port} ([cyan]{config.environment}[/cyan])"
    )
    uvicorn.run(api, host=bind_host, port=bind_port, log_level=config.log_level.lower())
