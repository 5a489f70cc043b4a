"""``bundlefeed hash FILE`` — print the SHA-256 of a file.

Streams the file through the same hashing reader the object store uses, so
the digest matches what an upload would record.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from bundlefeed.core.hasher import HashingReader

console = Console()


def hash_cmd(
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to hash."
    ),
) -> None:
    """Print the lowercase hex SHA-256 digest and size of a file."""
    with path.open("rb") as handle:
        reader = HashingReader(handle)
        reader.drain()
    console.print(f"{reader.hexdigest()}  {path.name}  [dim]({reader.bytes_read} bytes)[/dim]")
