"""Inbound request shapes for the ingestion flows."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

#: Form fields a version upload must carry, in the order they are reported.
REQUIRED_VERSION_FIELDS: tuple[str, ...] = (
    "app_id",
    "version",
    "build_version",
    "date",
    "min_os_version",
    "localized_description",
)


class VersionUploadForm(BaseModel):
    """Fields submitted alongside an archive upload.

    Every field is optional at the model level so a partially filled form can
    be represented; the orchestrator decides what is required and raises
    ``ValidationError`` before touching storage.
    """

    model_config = ConfigDict(frozen=True)

    app_id: str | None = None
    version: str | None = None
    build_version: str | None = None
    date: str | None = None
    localized_description: str | None = None
    min_os_version: str | None = None
    max_os_version: str | None = None
    visible: bool = True

    def missing_fields(self) -> list[str]:
        """Return the required fields that are absent or blank."""
        missing = []
        for name in REQUIRED_VERSION_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing


class VersionUpdate(BaseModel):
    """Partial edit of a version's declared fields.  ``None`` means unchanged."""

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    build_version: str | None = None
    date: str | None = None
    localized_description: str | None = None
    min_os_version: str | None = None
    max_os_version: str | None = None
    visible: bool | None = None


class AppCreate(BaseModel):
    """Fields needed to register an app that versions can be uploaded to."""

    model_config = ConfigDict(frozen=True)

    name: str
    bundle_identifier: str
    developer_name: str
    subtitle: str | None = None
    localized_description: str = ""
    tint_color: str = ""
    visible: bool = True


class AppUpdate(BaseModel):
    """Partial edit of an app's listing fields.  ``None`` means unchanged.

    Icon and screenshots are managed through their upload flows and cannot
    be set here.
    """

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    bundle_identifier: str | None = None
    developer_name: str | None = None
    subtitle: str | None = None
    localized_description: str | None = None
    tint_color: str | None = None
    visible: bool | None = None


class ScreenshotOrder(BaseModel):
    """New order for an app's screenshot gallery, as stored paths."""

    model_config = ConfigDict(frozen=True)

    screenshots: list[str]


class SourceConfigUpdate(BaseModel):
    """Replacement for the feed-level fields of ``SourceConfig``.

    Optional fields left out (or blank) are cleared.  Icon and header images
    have their own upload flow.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    subtitle: str | None = None
    description: str | None = None
    website: str | None = None
    tint_color: str | None = None
    featured_apps: list[str] = Field(default_factory=list)
