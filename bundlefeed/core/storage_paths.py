"""Storage path resolver — persisted paths in, public URLs out.

The catalog stores only bucket-relative paths of the form ``/<bucket>/<key>``.
Public URLs are computed on read, from either a configured base URL or the
inbound request's own scheme and host plus ``/public``.  Moving the service
to a new host, behind a proxy, or behind a CDN therefore needs no data
migration.

Older rows may still hold absolute URLs.  ``normalize_legacy_url`` reduces
``http(s)://anyhost/public/<rest>`` to ``/<rest>`` so those rows are
re-based on the current host too; new data never goes through it.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from bundlefeed.core.errors import ConfigurationError
from bundlefeed.models.storage import StoredObjectRef

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_LEGACY_PUBLIC_URL = re.compile(r"^https?://[^/]+/public(/.*)$", re.IGNORECASE)


class RequestContext(BaseModel):
    """The parts of an inbound request needed to derive a public base."""

    model_config = ConfigDict(frozen=True)

    scheme: str
    host: str

    @classmethod
    def from_headers(
        cls, scheme: str, headers: Mapping[str, str]
    ) -> RequestContext | None:
        """Build a context from request headers, honoring proxy forwarding.

        ``X-Forwarded-Proto`` and ``X-Forwarded-Host`` win over the socket
        scheme and ``Host`` header; only the first value of a comma-separated
        forwarding chain is used.  Returns ``None`` without a host.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        host = _first(lowered.get("x-forwarded-host")) or lowered.get("host", "")
        proto = _first(lowered.get("x-forwarded-proto")) or scheme
        if not host:
            return None
        return cls(scheme=proto or "http", host=host)


def _first(value: str | None) -> str:
    if not value:
        return ""
    return value.split(",")[0].strip()


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------


def build_storage_path(bucket: str, key: str) -> str:
    """Return the persisted ``/<bucket>/<key>`` path.  Pure; no I/O."""
    return f"/{bucket}/{key}"


def parse_storage_path(stored: str) -> StoredObjectRef | None:
    """Return the bucket/key a stored path refers to, or ``None``.

    Legacy ``.../public/<bucket>/<key>`` URLs are normalized first.  Any
    other absolute URL, or a path without a key, yields ``None``.
    """
    if not stored:
        return None
    path = normalize_legacy_url(stored)
    if is_absolute_url(path):
        return None
    bucket, _, key = path.lstrip("/").partition("/")
    if not bucket or not key:
        return None
    return StoredObjectRef(bucket=bucket, key=key)


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


def is_absolute_url(value: str) -> bool:
    return bool(_ABSOLUTE_URL.match(value))


def normalize_legacy_url(value: str) -> str:
    """Reduce ``http(s)://anyhost/public/<rest>`` to ``/<rest>``.

    Values that are not legacy public URLs are returned unchanged.
    """
    match = _LEGACY_PUBLIC_URL.match(value)
    if match:
        return match.group(1)
    return value


def public_base(
    base_url: str | None = None, request: RequestContext | None = None
) -> str:
    """Derive the public base URL for stored objects.

    Priority: configured *base_url* (trailing slash trimmed), then the
    request's ``scheme://host`` plus ``/public``.

    Raises
    ------
    ConfigurationError
        If neither a configured base nor a request host is available.
    """
    if base_url and base_url.strip():
        return base_url.strip().rstrip("/")
    if request is not None and request.host:
        return f"{request.scheme}://{request.host}/public"
    raise ConfigurationError(
        "Public base URL is not configured and could not be derived from the request"
    )


def resolve_public_url(
    stored_path: str,
    base_url: str | None = None,
    request: RequestContext | None = None,
) -> str:
    """Expand a persisted path into a fully-qualified public URL.

    * Relative paths get a leading slash if missing and are appended to the
      public base.
    * Legacy ``.../public/<rest>`` absolute URLs are re-based on the current
      public base.
    * Any other absolute URL is returned unchanged.

    Resolving the same path twice under the same base yields the same URL.
    """
    path = normalize_legacy_url(stored_path)
    if is_absolute_url(path):
        return path
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{public_base(base_url, request)}{path}"


def resolve_optional_url(
    stored_path: str | None,
    base_url: str | None = None,
    request: RequestContext | None = None,
) -> str | None:
    """``resolve_public_url`` that passes empty values through as ``None``."""
    if not stored_path:
        return None
    return resolve_public_url(stored_path, base_url, request)
