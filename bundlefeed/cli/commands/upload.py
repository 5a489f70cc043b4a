"""``bundlefeed upload ARCHIVE`` — ingest a version from the command line.

Runs the same flow as ``POST /api/versions`` against the configured catalog
and object store.  Superseded objects are cleaned up inline since there is
no response to protect.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from bundlefeed.config import FeedConfig, configure_logging
from bundlefeed.core.catalog import Catalog
from bundlefeed.core.cleanup import InlineCleanup
from bundlefeed.core.errors import BundlefeedError
from bundlefeed.core.ingestion import IngestionOrchestrator
from bundlefeed.core.object_store import create_object_store
from bundlefeed.core.production_guard import enforce_production_constraints
from bundlefeed.models.archive import UploadedArchive
from bundlefeed.models.requests import VersionUploadForm

console = Console()


def upload_cmd(
    archive: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Path to the .ipa archive."
    ),
    app_id: str = typer.Option(None, "--app-id", help="Owning app ID."),
    version: str = typer.Option(None, "--version", "-v", help="Marketing version."),
    build_version: str = typer.Option(None, "--build", "-b", help="Build number."),
    date: str = typer.Option(None, "--date", help="Release date (ISO 8601)."),
    min_os_version: str = typer.Option(None, "--min-os", help="Minimum OS version."),
    description: str = typer.Option(
        None, "--description", "-d", help="Localized release notes."
    ),
    max_os_version: str = typer.Option(None, "--max-os", help="Maximum OS version."),
    hidden: bool = typer.Option(False, "--hidden", help="Upload as not visible."),
    replace: str = typer.Option(
        None,
        "--replace",
        help="Replace the archive of this version ID instead of creating one.",
    ),
) -> None:
    """Upload an archive as a new version of an app."""
    config = FeedConfig()
    configure_logging(config)
    enforce_production_constraints(config)

    store = create_object_store(config)
    orchestrator = IngestionOrchestrator(
        Catalog(config.catalog_path),
        store,
        InlineCleanup(store),
        max_upload_bytes=config.max_upload_bytes,
        max_image_bytes=config.max_image_bytes,
    )
    payload = UploadedArchive(data=archive.read_bytes(), filename=archive.name)

    try:
        if replace:
            record = orchestrator.replace_artifact(replace, payload)
        else:
            form = VersionUploadForm(
                app_id=app_id,
                version=version,
                build_version=build_version,
                date=date,
                localized_description=description,
                min_os_version=min_os_version,
                max_os_version=max_os_version,
                visible=not hidden,
            )
            record = orchestrator.upload_version(form, payload)
    except BundlefeedError as exc:
        console.print(f"[bold red]Upload failed ({exc.reason}):[/bold red] {exc.message}")
        raise typer.Exit(code=1)
    finally:
        orchestrator.close()

    console.print(
        Panel(
            "\n".join([
                f"[bold green]{'Archive replaced' if replace else 'Version uploaded'}[/bold green]",
                "",
                f"[bold]Version ID:[/bold] {record.version_id}",
                f"[bold]Version:[/bold]    {record.version} ({record.build_version})",
                f"[bold]Stored at:[/bold]  {record.download_url}",
                f"[bold]Size:[/bold]       {record.size} bytes",
                f"[bold]SHA-256:[/bold]    {record.sha256}",
                f"[bold]Bundle ID:[/bold]  {record.bundle_identifier or '[dim]unknown[/dim]'}",
            ]),
            title="[bold]Bundlefeed[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )

    # Print the version ID plainly for scripting
    console.print(f"[bold]{record.version_id}[/bold]")
