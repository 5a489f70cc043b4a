"""Access gate — resolves either credential scheme to a single yes/no.

Interactive admins present ``Authorization: Bearer <token>``; CI jobs present
``X-Access-Key: <key>:<secret>``.  The ingestion code never sees which one
was used, only whether the caller is authorized.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Iterable

from bundlefeed.config import FeedConfig

logger = logging.getLogger(__name__)

ACCESS_KEY_PREFIX = "ak_"


def generate_key_pair() -> tuple[str, str]:
    """Return a fresh ``(key, secret)`` pair for a CI access key."""
    return f"{ACCESS_KEY_PREFIX}{secrets.token_hex(12)}", secrets.token_hex(32)


def parse_access_key(header: str | None) -> tuple[str, str] | None:
    """Split a ``key:secret`` header value; ``None`` if malformed."""
    if not header:
        return None
    key, sep, secret = header.strip().partition(":")
    if not sep or not key or not secret:
        return None
    return key, secret


class AccessGate:
    """Checks bearer tokens and access keys against configured credentials.

    Parameters
    ----------
    admin_token:
        The bearer token accepted for interactive sessions.  Empty disables
        bearer authentication.
    access_keys:
        ``key:secret`` entries accepted in the ``X-Access-Key`` header.
    """

    def __init__(self, admin_token: str = "", access_keys: Iterable[str] = ()) -> None:
        self._admin_token = admin_token
        self._secrets: dict[str, str] = {}
        for entry in access_keys:
            parsed = parse_access_key(entry)
            if parsed is None:
                logger.warning("Ignoring malformed access key entry")
                continue
            self._secrets[parsed[0]] = parsed[1]

    @classmethod
    def from_config(cls, config: FeedConfig) -> AccessGate:
        return cls(admin_token=config.admin_token, access_keys=config.access_keys)

    def check_bearer(self, authorization: str | None) -> bool:
        if not self._admin_token or not authorization:
            return False
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return hmac.compare_digest(token.strip(), self._admin_token)

    def check_access_key(self, header: str | None) -> bool:
        parsed = parse_access_key(header)
        if parsed is None:
            return False
        key, secret = parsed
        expected = self._secrets.get(key)
        if expected is None:
            return False
        return hmac.compare_digest(secret, expected)

    def is_authorized(
        self, *, authorization: str | None = None, access_key: str | None = None
    ) -> bool:
        """True if either credential checks out."""
        return self.check_bearer(authorization) or self.check_access_key(access_key)
