"""Main Typer application — imports and registers all CLI commands.

Entry point: ``bundlefeed`` (configured via pyproject.toml console_scripts).

Commands: inspect, hash, resolve-url, upload, keygen, serve.
"""

from __future__ import annotations

import typer

from bundlefeed.cli.commands.hash_cmd import hash_cmd
from bundlefeed.cli.commands.inspect_cmd import inspect_cmd
from bundlefeed.cli.commands.keygen import keygen_cmd
from bundlefeed.cli.commands.resolve_url import resolve_url_cmd
from bundlefeed.cli.commands.serve import serve_cmd
from bundlefeed.cli.commands.upload import upload_cmd

app = typer.Typer(
    name="bundlefeed",
    help="Bundlefeed: archive ingestion and public app feed.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="inspect", help="Show Info.plist metadata from an archive.")(inspect_cmd)
app.command(name="hash", help="Print the SHA-256 of a file.")(hash_cmd)
app.command(name="resolve-url", help="Expand a stored path into a public URL.")(resolve_url_cmd)
app.command(name="upload", help="Upload an archive as a new version.")(upload_cmd)
app.command(name="keygen", help="Generate a CI access key pair.")(keygen_cmd)
app.command(name="serve", help="Run the HTTP API.")(serve_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
