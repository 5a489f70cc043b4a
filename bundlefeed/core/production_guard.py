"""Production configuration guard — enforces hard constraints in production.

The guard runs once when the service is assembled and fails hard (raises
``ProductionConfigError``) if the configuration cannot safely serve
uploads.  Other code should not scatter ``if is_production`` checks.
"""

from __future__ import annotations

import logging

from bundlefeed.config import FeedConfig

logger = logging.getLogger(__name__)


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process should exit; this error must not be caught and ignored.
    """


def enforce_production_constraints(config: FeedConfig) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. An admin token must be configured.
    3. Objects must go to the S3 backend, not the local filesystem.
    4. Every configured access key must be a ``key:secret`` pair.

    Raises
    ------
    ProductionConfigError
        If any production constraint is violated.
    """
    if not config.is_production:
        return

    violations: list[str] = []

    if config.debug:
        violations.append(
            "debug=True is not allowed in production. Set BUNDLEFEED_DEBUG=false."
        )

    if not config.admin_token:
        violations.append(
            "An admin token is required in production. Set BUNDLEFEED_ADMIN_TOKEN."
        )

    if config.storage_backend != "s3":
        violations.append(
            f"storage_backend={config.storage_backend!r} is not allowed in "
            "production. Set BUNDLEFEED_STORAGE_BACKEND=s3."
        )

    for entry in config.access_keys:
        key, _, secret = entry.partition(":")
        if not key or not secret:
            violations.append(
                f"Access key entry {key or '<empty>'!r} is not a key:secret pair."
            )

    if violations:
        msg = "Production configuration guard failed.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")
