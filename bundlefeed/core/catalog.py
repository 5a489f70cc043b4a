"""SQLite-backed catalog of apps, versions, and feed configuration.

The catalog is the sole arbiter of "was this version already uploaded": the
UNIQUE (app_id, version) constraint rejects duplicates, and the rejection
surfaces as ``ConflictError``.  No application-level locking is involved.

Design:
- One connection per operation, WAL journal mode for concurrent readers.
- Foreign keys ON; deleting an app cascades to its versions.
- Records are frozen pydantic models; updates return fresh copies.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from bundlefeed.core.errors import ConflictError, NotFoundError
from bundlefeed.models.catalog import AppRecord, SourceConfig, VersionRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_APPS = """
CREATE TABLE IF NOT EXISTS apps (
    app_id                TEXT PRIMARY KEY,
    name                  TEXT NOT NULL,
    bundle_identifier     TEXT NOT NULL UNIQUE,
    developer_name        TEXT NOT NULL,
    subtitle              TEXT,
    localized_description TEXT NOT NULL DEFAULT '',
    icon_url              TEXT NOT NULL DEFAULT '',
    tint_color            TEXT NOT NULL DEFAULT '',
    screenshots_json      TEXT NOT NULL DEFAULT '[]',
    visible               INTEGER NOT NULL DEFAULT 1,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);
"""

_CREATE_VERSIONS = """
CREATE TABLE IF NOT EXISTS versions (
    version_id            TEXT PRIMARY KEY,
    app_id                TEXT NOT NULL REFERENCES apps(app_id) ON DELETE CASCADE,
    version               TEXT NOT NULL,
    build_version         TEXT NOT NULL,
    date                  TEXT NOT NULL,
    localized_description TEXT NOT NULL DEFAULT '',
    download_url          TEXT NOT NULL,
    size                  INTEGER NOT NULL,
    sha256                TEXT NOT NULL,
    min_os_version        TEXT NOT NULL,
    max_os_version        TEXT,
    visible               INTEGER NOT NULL DEFAULT 1,
    screenshots_json      TEXT NOT NULL DEFAULT '[]',
    bundle_identifier     TEXT,
    display_name          TEXT,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL,
    UNIQUE (app_id, version)
);
"""

_CREATE_IDX_VERSIONS_APP = """
CREATE INDEX IF NOT EXISTS idx_versions_app ON versions(app_id, date);
"""

_CREATE_SOURCE_CONFIG = """
CREATE TABLE IF NOT EXISTS source_config (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    config_json TEXT NOT NULL
);
"""

_VERSION_COLUMNS = (
    "version_id, app_id, version, build_version, date, localized_description, "
    "download_url, size, sha256, min_os_version, max_os_version, visible, "
    "screenshots_json, bundle_identifier, display_name, created_at, updated_at"
)

_APP_COLUMNS = (
    "app_id, name, bundle_identifier, developer_name, subtitle, "
    "localized_description, icon_url, tint_color, screenshots_json, visible, "
    "created_at, updated_at"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime) -> str:
    return value.isoformat()


class Catalog:
    """Catalog store for apps, versions, and the feed's source config.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_APPS)
            conn.execute(_CREATE_VERSIONS)
            conn.execute(_CREATE_IDX_VERSIONS_APP)
            conn.execute(_CREATE_SOURCE_CONFIG)

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    def create_app(self, app: AppRecord) -> AppRecord:
        """Insert a new app.  Duplicate bundle identifiers raise ``ConflictError``."""
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO apps ({_APP_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    self._app_params(app),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Bundle identifier already exists: {app.bundle_identifier}"
            ) from exc
        logger.info("Created app %s (%s)", app.app_id, app.bundle_identifier)
        return app

    def get_app(self, app_id: str) -> AppRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_APP_COLUMNS} FROM apps WHERE app_id = ?", (app_id,)
            ).fetchone()
        return self._row_to_app(row) if row else None

    def list_apps(self, *, visible_only: bool = False) -> list[AppRecord]:
        query = f"SELECT {_APP_COLUMNS} FROM apps"
        if visible_only:
            query += " WHERE visible = 1"
        query += " ORDER BY created_at DESC"
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [self._row_to_app(row) for row in rows]

    def update_app(self, app: AppRecord) -> AppRecord:
        """Persist every field of *app*, stamping ``updated_at``."""
        updated = app.model_copy(update={"updated_at": _now()})
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE apps SET
                        name = ?, bundle_identifier = ?, developer_name = ?,
                        subtitle = ?, localized_description = ?, icon_url = ?,
                        tint_color = ?, screenshots_json = ?, visible = ?,
                        updated_at = ?
                    WHERE app_id = ?
                    """,
                    (
                        updated.name,
                        updated.bundle_identifier,
                        updated.developer_name,
                        updated.subtitle,
                        updated.localized_description,
                        updated.icon_url,
                        updated.tint_color,
                        json.dumps(updated.screenshots),
                        int(updated.visible),
                        _ts(updated.updated_at),
                        updated.app_id,
                    ),
                )
                updated_rows = cursor.rowcount
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Bundle identifier already exists: {app.bundle_identifier}"
            ) from exc
        if updated_rows == 0:
            raise NotFoundError(f"App not found: {app.app_id}")
        return updated

    def delete_app(self, app_id: str) -> bool:
        """Delete an app and, by cascade, all of its versions."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM apps WHERE app_id = ?", (app_id,))
            deleted = cursor.rowcount
        return deleted > 0

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def create_version(self, record: VersionRecord) -> VersionRecord:
        """Insert a version.

        Raises
        ------
        ConflictError
            If the app already has a version with the same version string.
        NotFoundError
            If the owning app does not exist.
        """
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO versions ({_VERSION_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    self._version_params(record),
                )
        except sqlite3.IntegrityError as exc:
            raise self._version_integrity_error(record, exc) from exc
        return record

    def get_version(self, version_id: str) -> VersionRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_VERSION_COLUMNS} FROM versions WHERE version_id = ?",
                (version_id,),
            ).fetchone()
        return self._row_to_version(row) if row else None

    def find_version(self, app_id: str, version: str) -> VersionRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_VERSION_COLUMNS} FROM versions "
                "WHERE app_id = ? AND version = ?",
                (app_id, version),
            ).fetchone()
        return self._row_to_version(row) if row else None

    def list_versions(
        self, app_id: str, *, visible_only: bool = False
    ) -> list[VersionRecord]:
        """Return an app's versions, newest release date first."""
        query = f"SELECT {_VERSION_COLUMNS} FROM versions WHERE app_id = ?"
        if visible_only:
            query += " AND visible = 1"
        query += " ORDER BY date DESC, created_at DESC"
        with self._connect() as conn:
            rows = conn.execute(query, (app_id,)).fetchall()
        return [self._row_to_version(row) for row in rows]

    def update_version(self, record: VersionRecord) -> VersionRecord:
        """Persist every field of *record*, stamping ``updated_at``."""
        updated = record.model_copy(update={"updated_at": _now()})
        params = self._version_params(updated)
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE versions SET
                        app_id = ?, version = ?, build_version = ?, date = ?,
                        localized_description = ?, download_url = ?, size = ?,
                        sha256 = ?, min_os_version = ?, max_os_version = ?,
                        visible = ?, screenshots_json = ?, bundle_identifier = ?,
                        display_name = ?, created_at = ?, updated_at = ?
                    WHERE version_id = ?
                    """,
                    (*params[1:], params[0]),
                )
                updated_rows = cursor.rowcount
        except sqlite3.IntegrityError as exc:
            raise self._version_integrity_error(updated, exc) from exc
        if updated_rows == 0:
            raise NotFoundError(f"Version not found: {record.version_id}")
        return updated

    def delete_version(self, version_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM versions WHERE version_id = ?", (version_id,)
            )
            deleted = cursor.rowcount
        return deleted > 0

    def count_versions(self, app_id: str, version: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM versions WHERE app_id = ?"
        params: tuple[str, ...] = (app_id,)
        if version is not None:
            query += " AND version = ?"
            params = (app_id, version)
        with self._connect() as conn:
            return int(conn.execute(query, params).fetchone()[0])

    # ------------------------------------------------------------------
    # Source config
    # ------------------------------------------------------------------

    def get_source_config(self) -> SourceConfig:
        """Return the feed config, creating the default row on first read."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT config_json FROM source_config WHERE id = 1"
            ).fetchone()
        if row is None:
            return self.save_source_config(SourceConfig())
        return SourceConfig.model_validate_json(row["config_json"])

    def save_source_config(self, config: SourceConfig) -> SourceConfig:
        saved = config.model_copy(update={"updated_at": _now()})
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO source_config (id, config_json) VALUES (1, ?) "
                "ON CONFLICT(id) DO UPDATE SET config_json = excluded.config_json",
                (saved.model_dump_json(),),
            )
        return saved

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _version_integrity_error(
        record: VersionRecord, exc: sqlite3.IntegrityError
    ) -> Exception:
        if "FOREIGN KEY" in str(exc).upper():
            return NotFoundError(f"App not found: {record.app_id}")
        return ConflictError(
            f"Version {record.version} already exists for app {record.app_id}"
        )

    @staticmethod
    def _app_params(app: AppRecord) -> tuple:
        return (
            app.app_id,
            app.name,
            app.bundle_identifier,
            app.developer_name,
            app.subtitle,
            app.localized_description,
            app.icon_url,
            app.tint_color,
            json.dumps(app.screenshots),
            int(app.visible),
            _ts(app.created_at),
            _ts(app.updated_at),
        )

    @staticmethod
    def _version_params(record: VersionRecord) -> tuple:
        return (
            record.version_id,
            record.app_id,
            record.version,
            record.build_version,
            _ts(record.date),
            record.localized_description,
            record.download_url,
            record.size,
            record.sha256,
            record.min_os_version,
            record.max_os_version,
            int(record.visible),
            json.dumps(record.screenshots),
            record.bundle_identifier,
            record.display_name,
            _ts(record.created_at),
            _ts(record.updated_at),
        )

    @staticmethod
    def _row_to_app(row: sqlite3.Row) -> AppRecord:
        return AppRecord(
            app_id=row["app_id"],
            name=row["name"],
            bundle_identifier=row["bundle_identifier"],
            developer_name=row["developer_name"],
            subtitle=row["subtitle"],
            localized_description=row["localized_description"],
            icon_url=row["icon_url"],
            tint_color=row["tint_color"],
            screenshots=json.loads(row["screenshots_json"]),
            visible=bool(row["visible"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_version(row: sqlite3.Row) -> VersionRecord:
        return VersionRecord(
            version_id=row["version_id"],
            app_id=row["app_id"],
            version=row["version"],
            build_version=row["build_version"],
            date=row["date"],
            localized_description=row["localized_description"],
            download_url=row["download_url"],
            size=row["size"],
            sha256=row["sha256"],
            min_os_version=row["min_os_version"],
            max_os_version=row["max_os_version"],
            visible=bool(row["visible"]),
            screenshots=json.loads(row["screenshots_json"]),
            bundle_identifier=row["bundle_identifier"],
            display_name=row["display_name"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
