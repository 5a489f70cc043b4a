"""FeedProjection — read-only view of the catalog as a public feed.

The projection never stores state: every call re-reads the catalog and
expands persisted StoragePaths into public URLs for the current base.  The
same rows therefore render correctly behind any host, proxy, or CDN.

Output keys follow the AltStore source format (``downloadURL``,
``minOSVersion``, ...), which is what feed clients consume.
"""

from __future__ import annotations

from typing import Any

from bundlefeed.core.catalog import Catalog
from bundlefeed.core.storage_paths import (
    RequestContext,
    resolve_optional_url,
    resolve_public_url,
)
from bundlefeed.models.catalog import AppRecord, SourceConfig, VersionRecord


class FeedProjection:
    """Renders catalog records with resolved public URLs.

    Parameters
    ----------
    catalog:
        The catalog to project from.
    base_url:
        Configured public base URL.  When ``None`` the base is derived from
        the request passed to each call.
    identifier:
        Reverse-DNS identifier of the feed itself.
    name:
        Feed name shown while the stored source config has none.
    """

    def __init__(
        self,
        catalog: Catalog,
        base_url: str | None = None,
        *,
        identifier: str = "com.example.source",
        name: str = "AltStore Source",
    ) -> None:
        self._catalog = catalog
        self._base_url = base_url
        self._identifier = identifier
        self._name = name

    # ------------------------------------------------------------------
    # Single records
    # ------------------------------------------------------------------

    def version_view(
        self, record: VersionRecord, request: RequestContext | None = None
    ) -> dict[str, Any]:
        """Admin view of one version, including catalog bookkeeping."""
        view = self._version_entry(record, request)
        view.update(
            {
                "id": record.version_id,
                "appId": record.app_id,
                "visible": record.visible,
                "bundleIdentifier": record.bundle_identifier,
                "displayName": record.display_name,
                "screenshots": self._urls(record.screenshots, request),
                "createdAt": record.created_at.isoformat(),
                "updatedAt": record.updated_at.isoformat(),
            }
        )
        return view

    def app_view(
        self, app: AppRecord, request: RequestContext | None = None
    ) -> dict[str, Any]:
        """Admin view of one app without its versions."""
        view = self._app_entry(app, request)
        view.update(
            {
                "id": app.app_id,
                "visible": app.visible,
                "createdAt": app.created_at.isoformat(),
                "updatedAt": app.updated_at.isoformat(),
            }
        )
        return view

    def source_view(
        self, config: SourceConfig, request: RequestContext | None = None
    ) -> dict[str, Any]:
        return {
            "name": config.name or self._name,
            "subtitle": config.subtitle,
            "description": config.description,
            "iconURL": self._url(config.icon_url, request),
            "headerURL": self._url(config.header_url, request),
            "website": config.website,
            "tintColor": config.tint_color,
            "featuredApps": list(config.featured_apps),
        }

    # ------------------------------------------------------------------
    # Whole feed
    # ------------------------------------------------------------------

    def source(self, request: RequestContext | None = None) -> dict[str, Any]:
        """Build the public ``source.json`` document.

        Only visible apps and visible versions are listed; versions are
        newest first.
        """
        config = self._catalog.get_source_config()
        document = self.source_view(config, request)
        document["identifier"] = self._identifier

        apps = []
        for app in self._catalog.list_apps(visible_only=True):
            entry = self._app_entry(app, request)
            entry["versions"] = [
                self._version_entry(record, request)
                for record in self._catalog.list_versions(app.app_id, visible_only=True)
            ]
            apps.append(entry)
        document["apps"] = apps
        document["news"] = []
        return document

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _app_entry(
        self, app: AppRecord, request: RequestContext | None
    ) -> dict[str, Any]:
        return {
            "name": app.name,
            "bundleIdentifier": app.bundle_identifier,
            "developerName": app.developer_name,
            "subtitle": app.subtitle,
            "localizedDescription": app.localized_description,
            "iconURL": self._url(app.icon_url, request),
            "tintColor": app.tint_color or None,
            "screenshots": self._urls(app.screenshots, request),
        }

    def _version_entry(
        self, record: VersionRecord, request: RequestContext | None
    ) -> dict[str, Any]:
        return {
            "version": record.version,
            "buildVersion": record.build_version,
            "date": record.date.isoformat(),
            "localizedDescription": record.localized_description,
            "downloadURL": resolve_public_url(record.download_url, self._base_url, request),
            "size": record.size,
            "sha256": record.sha256,
            "minOSVersion": record.min_os_version,
            "maxOSVersion": record.max_os_version,
        }

    def _url(self, stored: str | None, request: RequestContext | None) -> str | None:
        return resolve_optional_url(stored, self._base_url, request)

    def _urls(self, stored: list[str], request: RequestContext | None) -> list[str]:
        return [resolve_public_url(path, self._base_url, request) for path in stored]
