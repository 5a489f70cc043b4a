"""Tests for the Catalog — uniqueness, cascades, and source config."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from bundlefeed.core.catalog import Catalog
from bundlefeed.core.errors import ConflictError, NotFoundError
from bundlefeed.models.catalog import AppRecord, SourceConfig, VersionRecord


def _version(app_id: str = "app-demo", version: str = "1.0", **overrides) -> VersionRecord:
    fields = {
        "app_id": app_id,
        "version": version,
        "build_version": "1",
        "date": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "download_url": f"/ipas/com.example.demo-{version}-1.ipa",
        "size": 10,
        "sha256": "0" * 64,
        "min_os_version": "15.0",
    }
    fields.update(overrides)
    return VersionRecord(**fields)


class TestApps:
    def test_create_and_get(self, catalog: Catalog, sample_app: AppRecord):
        loaded = catalog.get_app(sample_app.app_id)
        assert loaded is not None
        assert loaded.bundle_identifier == "com.example.demo"

    def test_get_missing(self, catalog: Catalog):
        assert catalog.get_app("app-missing") is None

    def test_duplicate_bundle_identifier(self, catalog: Catalog, sample_app: AppRecord):
        with pytest.raises(ConflictError):
            catalog.create_app(
                AppRecord(name="Other", bundle_identifier="com.example.demo", developer_name="x")
            )

    def test_update_round_trips_lists(self, catalog: Catalog, sample_app: AppRecord):
        catalog.update_app(sample_app.model_copy(update={"screenshots": ["/screenshots/a.png"]}))
        assert catalog.get_app(sample_app.app_id).screenshots == ["/screenshots/a.png"]

    def test_update_missing(self, catalog: Catalog):
        ghost = AppRecord(name="Ghost", bundle_identifier="com.ghost", developer_name="x")
        with pytest.raises(NotFoundError):
            catalog.update_app(ghost)

    def test_list_visible_only(self, catalog: Catalog, sample_app: AppRecord):
        catalog.create_app(
            AppRecord(
                name="Hidden",
                bundle_identifier="com.example.hidden",
                developer_name="x",
                visible=False,
            )
        )
        assert len(catalog.list_apps()) == 2
        assert [a.app_id for a in catalog.list_apps(visible_only=True)] == [sample_app.app_id]

    def test_delete_cascades_to_versions(self, catalog: Catalog, sample_app: AppRecord):
        record = catalog.create_version(_version())
        assert catalog.delete_app(sample_app.app_id) is True
        assert catalog.get_version(record.version_id) is None
        assert catalog.delete_app(sample_app.app_id) is False


class TestVersions:
    def test_create_and_get(self, catalog: Catalog, sample_app: AppRecord):
        record = catalog.create_version(_version())
        loaded = catalog.get_version(record.version_id)
        assert loaded is not None
        assert loaded.download_url == record.download_url
        assert loaded.date == record.date

    def test_duplicate_version_conflicts(self, catalog: Catalog, sample_app: AppRecord):
        catalog.create_version(_version(version="1.0"))
        with pytest.raises(ConflictError):
            catalog.create_version(_version(version="1.0"))
        assert catalog.count_versions(sample_app.app_id, "1.0") == 1

    def test_same_version_on_other_app_allowed(self, catalog: Catalog, sample_app: AppRecord):
        other = catalog.create_app(
            AppRecord(name="Other", bundle_identifier="com.other", developer_name="x")
        )
        catalog.create_version(_version(version="1.0"))
        catalog.create_version(_version(app_id=other.app_id, version="1.0"))
        assert catalog.count_versions(other.app_id) == 1

    def test_unknown_app_is_not_found(self, catalog: Catalog):
        with pytest.raises(NotFoundError):
            catalog.create_version(_version(app_id="app-missing"))

    def test_list_newest_first(self, catalog: Catalog, sample_app: AppRecord):
        catalog.create_version(_version(version="1.0", date=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        catalog.create_version(_version(version="2.0", date=datetime(2025, 6, 1, tzinfo=timezone.utc)))
        assert [v.version for v in catalog.list_versions(sample_app.app_id)] == ["2.0", "1.0"]

    def test_list_visible_only(self, catalog: Catalog, sample_app: AppRecord):
        catalog.create_version(_version(version="1.0"))
        catalog.create_version(_version(version="1.1", visible=False))
        visible = catalog.list_versions(sample_app.app_id, visible_only=True)
        assert [v.version for v in visible] == ["1.0"]

    def test_update_to_existing_version_conflicts(self, catalog: Catalog, sample_app: AppRecord):
        catalog.create_version(_version(version="1.0"))
        second = catalog.create_version(_version(version="1.1"))
        with pytest.raises(ConflictError):
            catalog.update_version(second.model_copy(update={"version": "1.0"}))

    def test_update_stamps_updated_at(self, catalog: Catalog, sample_app: AppRecord):
        record = catalog.create_version(_version())
        updated = catalog.update_version(record.model_copy(update={"size": 99}))
        assert updated.updated_at >= record.updated_at
        assert catalog.get_version(record.version_id).size == 99

    def test_find_version(self, catalog: Catalog, sample_app: AppRecord):
        record = catalog.create_version(_version(version="3.0"))
        assert catalog.find_version(sample_app.app_id, "3.0").version_id == record.version_id
        assert catalog.find_version(sample_app.app_id, "9.9") is None

    def test_delete(self, catalog: Catalog, sample_app: AppRecord):
        record = catalog.create_version(_version())
        assert catalog.delete_version(record.version_id) is True
        assert catalog.delete_version(record.version_id) is False


class TestSourceConfig:
    def test_default_created_on_first_read(self, catalog: Catalog):
        config = catalog.get_source_config()
        assert config.name == ""

    def test_save_and_reload(self, catalog: Catalog):
        catalog.save_source_config(SourceConfig(name="My Feed", icon_url="/source-images/icon-1.png"))
        loaded = catalog.get_source_config()
        assert loaded.name == "My Feed"
        assert loaded.icon_url == "/source-images/icon-1.png"

    def test_persists_across_instances(self, catalog: Catalog, tmp_dir):
        catalog.save_source_config(SourceConfig(name="Durable"))
        assert Catalog(tmp_dir / "catalog.db").get_source_config().name == "Durable"
