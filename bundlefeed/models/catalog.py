"""Catalog records — apps, versions, and feed-level source configuration.

Records are frozen; the catalog store returns updated copies via
``model_copy`` rather than mutating in place.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AppRecord(BaseModel):
    """An installable application listed in the feed."""

    model_config = ConfigDict(frozen=True)

    app_id: str = Field(default_factory=lambda: f"app-{uuid.uuid4().hex[:12]}")
    name: str
    bundle_identifier: str
    developer_name: str
    subtitle: str | None = None
    localized_description: str = ""
    icon_url: str = ""  # StoragePath, or a legacy absolute URL
    tint_color: str = ""
    screenshots: list[str] = Field(default_factory=list)
    visible: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class VersionRecord(BaseModel):
    """One released build of an app.

    ``download_url`` is always a StoragePath (``/ipas/<key>``); it is only
    expanded to a public URL on read.  Unique on (``app_id``, ``version``).
    """

    model_config = ConfigDict(frozen=True)

    version_id: str = Field(default_factory=lambda: f"ver-{uuid.uuid4().hex[:12]}")
    app_id: str
    version: str
    build_version: str
    date: datetime
    localized_description: str = ""
    download_url: str
    size: int
    sha256: str
    min_os_version: str
    max_os_version: str | None = None
    visible: bool = True
    screenshots: list[str] = Field(default_factory=list)
    bundle_identifier: str | None = None
    display_name: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class SourceConfig(BaseModel):
    """Feed-level metadata rendered at the top of ``source.json``."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    subtitle: str | None = None
    description: str | None = None
    icon_url: str | None = None
    header_url: str | None = None
    website: str | None = None
    tint_color: str | None = None
    featured_apps: list[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_now)
