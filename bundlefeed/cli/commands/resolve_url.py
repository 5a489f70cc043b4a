"""``bundlefeed resolve-url PATH`` — expand a stored path into a public URL."""

from __future__ import annotations

import typer
from rich.console import Console

from bundlefeed.config import FeedConfig
from bundlefeed.core.errors import ConfigurationError
from bundlefeed.core.storage_paths import RequestContext, resolve_public_url

console = Console()


def resolve_url_cmd(
    path: str = typer.Argument(..., help="Stored path such as /ipas/app-1.0.ipa."),
    base: str = typer.Option(
        None,
        "--base",
        "-b",
        help="Public base URL.  Defaults to BUNDLEFEED_PUBLIC_BASE_URL.",
    ),
    host: str = typer.Option(
        None,
        "--host",
        help="Request host to derive the base from when none is configured.",
    ),
    scheme: str = typer.Option("https", "--scheme", help="Scheme used with --host."),
) -> None:
    """Print the public URL a stored path resolves to."""
    request = RequestContext(scheme=scheme, host=host) if host else None
    try:
        url = resolve_public_url(path, base or FeedConfig().public_base_url, request)
    except ConfigurationError as exc:
        console.print(f"[bold red]Cannot resolve:[/bold red] {exc}")
        raise typer.Exit(code=1)
    console.print(url, soft_wrap=True)
