"""Bundlefeed data models — all Pydantic v2, all frozen (immutable)."""

from bundlefeed.models.archive import ArchiveMetadata, UploadedArchive
from bundlefeed.models.catalog import AppRecord, SourceConfig, VersionRecord
from bundlefeed.models.requests import (
    REQUIRED_VERSION_FIELDS,
    AppCreate,
    AppUpdate,
    ScreenshotOrder,
    SourceConfigUpdate,
    VersionUpdate,
    VersionUploadForm,
)
from bundlefeed.models.storage import (
    ICONS_BUCKET,
    IPAS_BUCKET,
    KNOWN_BUCKETS,
    SCREENSHOTS_BUCKET,
    SOURCE_IMAGES_BUCKET,
    ObjectStat,
    PutResult,
    StoredObjectRef,
)

__all__ = [
    # archive
    "ArchiveMetadata",
    "UploadedArchive",
    # catalog
    "AppRecord",
    "SourceConfig",
    "VersionRecord",
    # requests
    "REQUIRED_VERSION_FIELDS",
    "AppCreate",
    "AppUpdate",
    "ScreenshotOrder",
    "SourceConfigUpdate",
    "VersionUpdate",
    "VersionUploadForm",
    # storage
    "ICONS_BUCKET",
    "IPAS_BUCKET",
    "KNOWN_BUCKETS",
    "SCREENSHOTS_BUCKET",
    "SOURCE_IMAGES_BUCKET",
    "ObjectStat",
    "PutResult",
    "StoredObjectRef",
]
