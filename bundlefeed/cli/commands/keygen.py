"""``bundlefeed keygen`` — mint an access key pair for CI uploads."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

from bundlefeed.core.access import generate_key_pair

console = Console()


def keygen_cmd() -> None:
    """Generate a ``key:secret`` pair for ``BUNDLEFEED_ACCESS_KEYS``.

    The secret is shown once; store it in the CI system and add the full
    ``key:secret`` entry to the server's configuration.
    """
    key, secret = generate_key_pair()
    console.print(
        Panel(
            "\n".join([
                f"[bold]Key:[/bold]    {key}",
                f"[bold]Secret:[/bold] {secret}",
                "",
                "[dim]Send as header:[/dim]",
                f"X-Access-Key: {key}:{secret}",
            ]),
            title="[bold]Access Key[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
