"""``bundlefeed inspect ARCHIVE`` — print the metadata embedded in an archive.

Runs the same extractor as the upload flow, but with the strict error
policy: a missing or unreadable Info.plist is reported and exits non-zero.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from bundlefeed.core.errors import MetadataNotFound, MetadataParseError
from bundlefeed.core.extractor import extract_metadata

console = Console()


def inspect_cmd(
    archive: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to the .ipa archive.",
    ),
) -> None:
    """Extract and display Info.plist metadata from an archive."""
    try:
        metadata = extract_metadata(archive.read_bytes())
    except MetadataNotFound as exc:
        console.print(f"[bold red]No descriptor found:[/bold red] {exc}")
        raise typer.Exit(code=1)
    except MetadataParseError as exc:
        console.print(f"[bold red]Descriptor unreadable:[/bold red] {exc}")
        raise typer.Exit(code=1)

    table = Table(title=archive.name)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for field, value in metadata.model_dump().items():
        table.add_row(field, value if value is not None else "[dim]-[/dim]")
    console.print(table)
