"""Tests for service config — env-driven settings."""

from __future__ import annotations

import logging
from pathlib import Path

from bundlefeed.config import FeedConfig, configure_logging


class TestFeedConfig:
    def test_defaults(self):
        config = FeedConfig()
        assert config.environment == "development"
        assert config.log_level == "INFO"
        assert config.storage_backend == "s3"
        assert config.public_base_url is None
        assert config.max_upload_bytes == 500 * 1024 * 1024

    def test_is_production_false_by_default(self):
        assert FeedConfig().is_production is False

    def test_is_production_when_set(self):
        assert FeedConfig(environment="production").is_production is True

    def test_default_paths(self):
        config = FeedConfig()
        assert config.catalog_path == Path(".bundlefeed/catalog.db")
        assert config.local_storage_path == Path(".bundlefeed/objects")

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BUNDLEFEED_PUBLIC_BASE_URL", "https://cdn.example.com/public")
        monkeypatch.setenv("BUNDLEFEED_STORAGE_BACKEND", "local")
        monkeypatch.setenv("BUNDLEFEED_CLEANUP_WORKERS", "4")
        config = FeedConfig()
        assert config.public_base_url == "https://cdn.example.com/public"
        assert config.storage_backend == "local"
        assert config.cleanup_workers == 4

    def test_access_keys_from_env_json(self, monkeypatch):
        monkeypatch.setenv("BUNDLEFEED_ACCESS_KEYS", '["ak_1:s1", "ak_2:s2"]')
        assert FeedConfig().access_keys == ["ak_1:s1", "ak_2:s2"]


class TestConfigureLogging:
    def test_applies_level(self):
        configure_logging(FeedConfig(log_level="WARNING"))
        assert logging.getLogger().level == logging.WARNING

    def test_debug_forces_debug_level(self):
        configure_logging(FeedConfig(log_level="ERROR", debug=True))
        assert logging.getLogger().level == logging.DEBUG
