"""Service configuration — env-driven via pydantic-settings.

Reads from a ``.env`` file and ``BUNDLEFEED_*`` environment variables.  The
object store client and the public URL base are derived from this once per
process and injected; nothing re-reads the environment per request.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class FeedConfig(BaseSettings):
    """Bundlefeed configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BUNDLEFEED_STORAGE_BACKEND=s3
        export BUNDLEFEED_S3_ENDPOINT_URL=http://minio:9000
        export BUNDLEFEED_PUBLIC_BASE_URL=https://cdn.example.com/public

    Or via .env file::

        BUNDLEFEED_ENVIRONMENT=production
        BUNDLEFEED_ADMIN_TOKEN=...
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BUNDLEFEED_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Catalog
    catalog_path: Path = Path(".bundlefeed/catalog.db")

    # Object storage
    storage_backend: str = "s3"  # "s3" or "local"
    local_storage_path: Path = Path(".bundlefeed/objects")
    s3_endpoint_url: str = "http://minio:9000"
    s3_access_key: str = "devadmin"
    s3_secret_key: str = "devsecret"
    s3_region: str = "us-east-1"

    # Public URL base for stored objects.  When unset, the base is derived
    # from the inbound request host plus "/public".
    public_base_url: str | None = None

    # Upload ceilings
    max_upload_bytes: int = 500 * 1024 * 1024
    max_image_bytes: int = 10 * 1024 * 1024

    # Credentials
    admin_token: str = ""
    access_keys: list[str] = []  # "key:secret" pairs for CI uploads

    # Best-effort cleanup
    cleanup_workers: int = 2

    # HTTP
    host: str = "0.0.0.0"
    port: int = 3000

    # Feed identity
    feed_name: str = "AltStore Source"
    feed_identifier: str = "com.example.source"

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


def configure_logging(config: FeedConfig) -> None:
    """Apply ``config.log_level`` to the root logger.

    Called once by the CLI and the API factory; library modules only create
    module-level loggers.
    """
    level = logging.DEBUG if config.debug else getattr(
        logging, config.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)
