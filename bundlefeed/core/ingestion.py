"""Ingestion orchestrator — the use-case layer for artifact uploads.

The orchestrator wires the Catalog, the ObjectStoreGateway, the metadata
extractor, and the cleanup scheduler into the upload, inspect, replace, and
delete flows.  Each flow is linear:

1. Validate the request (no I/O happens before this passes)
2. Resolve the owning app / version in the catalog
3. Extract metadata (best-effort) and stream the bytes to storage, hashing
   them on the way
4. Persist the catalog record with the StoragePath, size, and digest
5. Return the persisted record

Superseded objects are handed to the cleanup scheduler after the catalog
write; their removal never blocks or fails the flow.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import PurePosixPath

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from bundlefeed.config import FeedConfig
from bundlefeed.core.catalog import Catalog
from bundlefeed.core.cleanup import BackgroundCleanup, CleanupScheduler
from bundlefeed.core.errors import ConflictError, NotFoundError, ValidationError
from bundlefeed.core.extractor import extract_metadata, try_extract_metadata
from bundlefeed.core.object_store import ObjectStoreGateway, create_object_store
from bundlefeed.core.production_guard import enforce_production_constraints
from bundlefeed.core.storage_paths import build_storage_path, parse_storage_path
from bundlefeed.models.archive import ArchiveMetadata, UploadedArchive
from bundlefeed.models.catalog import AppRecord, SourceConfig, VersionRecord
from bundlefeed.models.requests import (
    AppUpdate,
    SourceConfigUpdate,
    VersionUpdate,
    VersionUploadForm,
)
from bundlefeed.models.storage import (
    ICONS_BUCKET,
    IPAS_BUCKET,
    SCREENSHOTS_BUCKET,
    SOURCE_IMAGES_BUCKET,
    PutResult,
    StoredObjectRef,
)

logger = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPE = "application/octet-stream"
DEFAULT_ARCHIVE_EXTENSION = "ipa"
MAX_SCREENSHOTS_PER_UPLOAD = 10
SOURCE_IMAGE_KINDS: tuple[str, ...] = ("icon", "header")

_IMAGE_EXTENSIONS: dict[str, str] = {"image/png": "png", "image/jpeg": "jpg"}
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_DATE_ADAPTER = TypeAdapter(datetime)
_HTTP_URL = re.compile(r"^https?://[^\s/]+(/\S*)?$", re.IGNORECASE)


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def _key_part(value: str) -> str:
    """Make a catalog value safe to embed in an object key."""
    return _UNSAFE_KEY_CHARS.sub("_", value.strip()) or "_"


def _blank_to_none(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


def _match_stored(entry: str, stored: Sequence[str]) -> str | None:
    """Return the stored path *entry* refers to, directly or as a resolved URL."""
    for path in stored:
        if entry == path or entry.endswith(path):
            return path
    return None


def _parse_date(value: str) -> datetime:
    try:
        return _DATE_ADAPTER.validate_python(value)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid release date: {value!r}") from exc


class IngestionOrchestrator:
    """Coordinates archive and image ingestion against catalog and storage.

    Parameters
    ----------
    catalog:
        The catalog store holding apps and versions.
    store:
        The object store gateway, shared process-wide.
    cleanup:
        Scheduler for best-effort removal of superseded objects.  Defaults to
        a background thread pool over *store*.
    max_upload_bytes:
        Hard ceiling on an archive upload.
    max_image_bytes:
        Hard ceiling on an icon, header, or screenshot upload.
    clock:
        Returns the current time in epoch milliseconds; embedded in object
        keys to keep them unique.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: ObjectStoreGateway,
        cleanup: CleanupScheduler | None = None,
        *,
        max_upload_bytes: int = 500 * 1024 * 1024,
        max_image_bytes: int = 10 * 1024 * 1024,
        clock: Callable[[], int] = _epoch_millis,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.cleanup = cleanup or BackgroundCleanup(store)
        self._max_upload_bytes = max_upload_bytes
        self._max_image_bytes = max_image_bytes
        self._clock = clock

    @classmethod
    def from_config(cls, config: FeedConfig) -> IngestionOrchestrator:
        """Assemble the orchestrator and its collaborators from configuration."""
        enforce_production_constraints(config)
        store = create_object_store(config)
        return cls(
            Catalog(config.catalog_path),
            store,
            BackgroundCleanup(store, max_workers=config.cleanup_workers),
            max_upload_bytes=config.max_upload_bytes,
            max_image_bytes=config.max_image_bytes,
        )

    def close(self) -> None:
        """Drain pending cleanups."""
        self.cleanup.shutdown(wait=True)

    def get_app(self, app_id: str) -> AppRecord:
        """Return an app or raise ``NotFoundError``."""
        return self._require_app(app_id)

    def get_version(self, version_id: str) -> VersionRecord:
        """Return a version or raise ``NotFoundError``."""
        return self._require_version(version_id)

    # ------------------------------------------------------------------
    # Archive flows
    # ------------------------------------------------------------------

    def inspect_archive(self, archive: UploadedArchive | None) -> ArchiveMetadata:
        """Extract metadata without persisting anything.

        ``MetadataNotFound`` and ``MetadataParseError`` propagate to the
        caller unchanged.
        """
        self._require_archive(archive)
        return extract_metadata(archive.data)

    def upload_version(
        self, form: VersionUploadForm, archive: UploadedArchive | None
    ) -> VersionRecord:
        """Store a new archive and create its version record.

        Raises
        ------
        ValidationError
            Missing archive or required field; nothing has been stored.
        NotFoundError
            The owning app does not exist.
        StorageError
            The object store rejected the upload; no catalog row is written.
        ConflictError
            The app already has this version.  The uploaded object is left
            in place.
        """
        # 1. Validate
        self._require_archive(archive)
        missing = form.missing_fields()
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        release_date = _parse_date(form.date)

        # 2. Resolve owner
        app = self._require_app(form.app_id)

        # 3. Extract + hash + store
        metadata = try_extract_metadata(archive.data)
        key = (
            f"{_key_part(app.bundle_identifier)}-{_key_part(form.version)}-"
            f"{self._clock()}.{self._archive_extension(archive)}"
        )
        stored = self._put(IPAS_BUCKET, key, archive, ARCHIVE_CONTENT_TYPE)

        # 4. Persist
        record = VersionRecord(
            app_id=app.app_id,
            version=form.version,
            build_version=form.build_version,
            date=release_date,
            localized_description=form.localized_description,
            download_url=stored.ref.storage_path,
            size=stored.size,
            sha256=stored.sha256,
            min_os_version=form.min_os_version,
            max_os_version=form.max_os_version or None,
            visible=form.visible,
            bundle_identifier=metadata.bundle_identifier if metadata else None,
            display_name=metadata.display_name if metadata else None,
        )
        try:
            saved = self.catalog.create_version(record)
        except ConflictError:
            logger.warning(
                "Catalog rejected version %s of %s; object %s left in storage",
                form.version,
                app.app_id,
                stored.ref.storage_path,
            )
            raise

        logger.info(
            "Uploaded version %s of %s as %s (%d bytes, sha256 %s)",
            saved.version,
            app.bundle_identifier,
            saved.download_url,
            saved.size,
            saved.sha256[:12],
        )
        return saved

    def replace_artifact(
        self, version_id: str, archive: UploadedArchive | None
    ) -> VersionRecord:
        """Swap the archive behind an existing version.

        The record's path, size, and digest are updated, then the previous
        object is submitted for removal exactly once.
        """
        self._require_archive(archive)
        record = self._require_version(version_id)
        app = self._require_app(record.app_id)

        metadata = try_extract_metadata(archive.data)
        key = (
            f"{_key_part(app.bundle_identifier)}-{_key_part(record.version)}-"
            f"{self._clock()}.{self._archive_extension(archive)}"
        )
        stored = self._put(IPAS_BUCKET, key, archive, ARCHIVE_CONTENT_TYPE)

        changes: dict[str, object] = {
            "download_url": stored.ref.storage_path,
            "size": stored.size,
            "sha256": stored.sha256,
        }
        if metadata is not None:
            changes["bundle_identifier"] = metadata.bundle_identifier
            changes["display_name"] = metadata.display_name
        saved = self.catalog.update_version(record.model_copy(update=changes))

        self._discard(record.download_url, keep=stored.ref)
        logger.info(
            "Replaced archive for version %s of %s: %s -> %s",
            record.version,
            app.bundle_identifier,
            record.download_url,
            saved.download_url,
        )
        return saved

    def update_version(self, version_id: str, changes: VersionUpdate) -> VersionRecord:
        """Apply edits to a version's declared fields."""
        record = self._require_version(version_id)
        update = changes.model_dump(exclude_none=True)
        blank = [
            name
            for name in ("version", "build_version", "date", "min_os_version")
            if name in update and not update[name].strip()
        ]
        if blank:
            raise ValidationError(f"Fields cannot be blank: {', '.join(blank)}")
        if "date" in update:
            update["date"] = _parse_date(update["date"])
        if not update:
            return record
        return self.catalog.update_version(record.model_copy(update=update))

    def delete_version(self, version_id: str) -> None:
        """Delete the catalog row, then best-effort remove its objects."""
        record = self._require_version(version_id)
        self.catalog.delete_version(version_id)
        self._discard(record.download_url)
        for path in record.screenshots:
            self._discard(path)
        logger.info("Deleted version %s (%s)", version_id, record.version)

    # ------------------------------------------------------------------
    # Image flows
    # ------------------------------------------------------------------

    def upload_icon(self, app_id: str, image: UploadedArchive | None) -> AppRecord:
        """Store a new app icon and point the app at it."""
        ext = self._require_image(image)
        app = self._require_app(app_id)
        stored = self._put(
            ICONS_BUCKET, f"{_key_part(app_id)}-{self._clock()}.{ext}", image, image.content_type
        )
        saved = self.catalog.update_app(
            app.model_copy(update={"icon_url": stored.ref.storage_path})
        )
        self._discard(app.icon_url, keep=stored.ref)
        return saved

    def upload_app_screenshots(
        self, app_id: str, images: Sequence[UploadedArchive]
    ) -> AppRecord:
        """Append screenshots to an app's gallery."""
        extensions = self._require_images(images)
        app = self._require_app(app_id)
        paths = self._put_screenshots(_key_part(app_id), images, extensions)
        return self.catalog.update_app(
            app.model_copy(update={"screenshots": [*app.screenshots, *paths]})
        )

    def remove_app_screenshot(self, app_id: str, index: int) -> AppRecord:
        """Drop one screenshot from an app's gallery by position."""
        app = self._require_app(app_id)
        if index < 0 or index >= len(app.screenshots):
            raise ValidationError(f"Invalid screenshot index: {index}")
        removed = app.screenshots[index]
        remaining = [p for i, p in enumerate(app.screenshots) if i != index]
        saved = self.catalog.update_app(app.model_copy(update={"screenshots": remaining}))
        self._discard(removed)
        return saved

    def reorder_app_screenshots(self, app_id: str, order: Sequence[str]) -> AppRecord:
        """Rearrange an app's gallery.

        *order* must name every current screenshot exactly once, either by
        stored path or by the public URL it resolves to.  Nothing is added
        or removed, so no object needs cleaning up.
        """
        app = self._require_app(app_id)
        reordered = [_match_stored(entry, app.screenshots) for entry in order]
        if None in reordered or sorted(reordered) != sorted(app.screenshots):
            raise ValidationError(
                "Screenshot order must list each current screenshot exactly once"
            )
        return self.catalog.update_app(app.model_copy(update={"screenshots": reordered}))

    def upload_version_screenshots(
        self, version_id: str, images: Sequence[UploadedArchive]
    ) -> VersionRecord:
        """Append screenshots to a version."""
        extensions = self._require_images(images)
        record = self._require_version(version_id)
        paths = self._put_screenshots(
            f"version-{_key_part(version_id)}", images, extensions
        )
        return self.catalog.update_version(
            record.model_copy(update={"screenshots": [*record.screenshots, *paths]})
        )

    def upload_source_image(
        self, kind: str, image: UploadedArchive | None
    ) -> SourceConfig:
        """Store the feed's icon or header image."""
        if kind not in SOURCE_IMAGE_KINDS:
            raise ValidationError(f"Unknown source image kind: {kind!r}")
        ext = self._require_image(image)
        config = self.catalog.get_source_config()
        stored = self._put(
            SOURCE_IMAGES_BUCKET, f"{kind}-{self._clock()}.{ext}", image, image.content_type
        )
        field = "icon_url" if kind == "icon" else "header_url"
        previous = getattr(config, field)
        saved = self.catalog.save_source_config(
            config.model_copy(update={field: stored.ref.storage_path})
        )
        if previous:
            self._discard(previous, keep=stored.ref)
        return saved

    def get_source_config(self) -> SourceConfig:
        return self.catalog.get_source_config()

    def update_source_config(self, changes: SourceConfigUpdate) -> SourceConfig:
        """Replace the feed's name, texts, website, tint, and featured apps.

        Blank optional values are stored as ``None``.  ``website`` must be an
        absolute http(s) URL, and every featured app must exist.
        """
        name = changes.name.strip()
        if not name:
            raise ValidationError("Name is required")
        website = _blank_to_none(changes.website)
        if website is not None and not _HTTP_URL.match(website):
            raise ValidationError(f"Invalid website URL: {website!r}")
        for app_id in changes.featured_apps:
            self._require_app(app_id)

        config = self.catalog.get_source_config()
        saved = self.catalog.save_source_config(
            config.model_copy(
                update={
                    "name": name,
                    "subtitle": _blank_to_none(changes.subtitle),
                    "description": _blank_to_none(changes.description),
                    "website": website,
                    "tint_color": _blank_to_none(changes.tint_color),
                    "featured_apps": list(dict.fromkeys(changes.featured_apps)),
                }
            )
        )
        logger.info("Updated source config %r", name)
        return saved

    # ------------------------------------------------------------------
    # App lifecycle
    # ------------------------------------------------------------------

    def update_app(self, app_id: str, changes: AppUpdate) -> AppRecord:
        """Apply edits to an app's listing fields."""
        app = self._require_app(app_id)
        update = changes.model_dump(exclude_none=True)
        blank = [
            name
            for name in ("name", "bundle_identifier", "developer_name")
            if name in update and not update[name].strip()
        ]
        if blank:
            raise ValidationError(f"Fields cannot be blank: {', '.join(blank)}")
        if not update:
            return app
        saved = self.catalog.update_app(app.model_copy(update=update))
        logger.info("Updated app %s: %s", app_id, ", ".join(sorted(update)))
        return saved

    def delete_app(self, app_id: str) -> None:
        """Delete an app with its versions, then clean up every object."""
        app = self._require_app(app_id)
        versions = self.catalog.list_versions(app_id)
        self.catalog.delete_app(app_id)

        orphaned = [app.icon_url, *app.screenshots]
        for record in versions:
            orphaned.append(record.download_url)
            orphaned.extend(record.screenshots)
        for path in orphaned:
            if path:
                self._discard(path)
        logger.info("Deleted app %s with %d versions", app_id, len(versions))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_archive(self, archive: UploadedArchive | None) -> None:
        if archive is None or archive.is_empty:
            raise ValidationError("IPA file is required")
        if len(archive.data) > self._max_upload_bytes:
            raise ValidationError(
                f"Archive exceeds the {self._max_upload_bytes} byte upload limit"
            )

    def _require_image(self, image: UploadedArchive | None) -> str:
        if image is None or image.is_empty:
            raise ValidationError("Image file is required")
        if len(image.data) > self._max_image_bytes:
            raise ValidationError(
                f"Image exceeds the {self._max_image_bytes} byte upload limit"
            )
        ext = _IMAGE_EXTENSIONS.get(image.content_type.lower())
        if ext is None:
            raise ValidationError("Only PNG and JPEG images are allowed")
        return ext

    def _require_images(self, images: Sequence[UploadedArchive]) -> list[str]:
        if not images:
            raise ValidationError("Screenshot files are required")
        if len(images) > MAX_SCREENSHOTS_PER_UPLOAD:
            raise ValidationError(
                f"At most {MAX_SCREENSHOTS_PER_UPLOAD} screenshots per upload"
            )
        return [self._require_image(image) for image in images]

    def _require_app(self, app_id: str | None) -> AppRecord:
        app = self.catalog.get_app(app_id) if app_id else None
        if app is None:
            raise NotFoundError(f"App not found: {app_id}")
        return app

    def _require_version(self, version_id: str) -> VersionRecord:
        record = self.catalog.get_version(version_id)
        if record is None:
            raise NotFoundError(f"Version not found: {version_id}")
        return record

    def _put(
        self, bucket: str, key: str, upload: UploadedArchive, content_type: str
    ) -> PutResult:
        return self.store.put(bucket, key, upload.data, upload.size, content_type)

    def _put_screenshots(
        self, owner: str, images: Sequence[UploadedArchive], extensions: list[str]
    ) -> list[str]:
        stamp = self._clock()
        return [
            self._put(
                SCREENSHOTS_BUCKET, f"{owner}-{stamp}-{i}.{ext}", image, image.content_type
            ).ref.storage_path
            for i, (image, ext) in enumerate(zip(images, extensions))
        ]

    def _discard(self, stored_path: str, keep: StoredObjectRef | None = None) -> None:
        """Submit the object behind *stored_path* for best-effort removal."""
        ref = parse_storage_path(stored_path)
        if ref is None or ref == keep:
            return
        self.cleanup.submit(ref)

    @staticmethod
    def _archive_extension(archive: UploadedArchive) -> str:
        if archive.filename:
            suffix = PurePosixPath(archive.filename).suffix.lstrip(".").lower()
            if suffix and suffix.isalnum():
                return suffix
        return DEFAULT_ARCHIVE_EXTENSION
