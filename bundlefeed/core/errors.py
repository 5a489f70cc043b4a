"""Error taxonomy for the ingestion pipeline.

Every error carries a short, machine-stable ``reason`` string and the HTTP
status the API boundary reports it with.  Callers match on the class; the
API layer serializes ``reason`` and the message, never a traceback.
"""

from __future__ import annotations


class BundlefeedError(RuntimeError):
    """Base class for all errors surfaced to callers."""

    reason: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.reason)
        self.message = message or self.reason

    def to_dict(self) -> dict[str, str]:
        return {"error": self.reason, "detail": self.message}


class ValidationError(BundlefeedError):
    """A required field is missing or malformed.  Raised before any I/O."""

    reason = "validation_failed"
    status_code = 400


class NotFoundError(BundlefeedError):
    """The owning app or the target record does not exist."""

    reason = "not_found"
    status_code = 404


class ObjectNotFound(NotFoundError):
    """The object store has no object under the requested bucket/key."""

    reason = "object_not_found"


class ConflictError(BundlefeedError):
    """A catalog uniqueness constraint rejected the write."""

    reason = "conflict"
    status_code = 409


class MetadataNotFound(BundlefeedError):
    """The archive holds zero or several candidate Info.plist entries."""

    reason = "metadata_not_found"
    status_code = 422


class MetadataParseError(BundlefeedError):
    """The archive or its descriptor could not be decoded."""

    reason = "metadata_parse_error"
    status_code = 422


class StorageError(BundlefeedError):
    """The object store rejected a put or get."""

    reason = "storage_error"
    status_code = 502


class ConfigurationError(BundlefeedError):
    """A public URL cannot be derived from config or the request."""

    reason = "configuration_error"
    status_code = 500


class AuthorizationError(BundlefeedError):
    """Neither a valid bearer token nor a valid access key was presented."""

    reason = "unauthorized"
    status_code = 401
