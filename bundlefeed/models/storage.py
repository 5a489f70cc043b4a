"""Object storage models — bucket/key references and stat results."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

IPAS_BUCKET = "ipas"
ICONS_BUCKET = "icons"
SCREENSHOTS_BUCKET = "screenshots"
SOURCE_IMAGES_BUCKET = "source-images"

KNOWN_BUCKETS: tuple[str, ...] = (
    IPAS_BUCKET,
    ICONS_BUCKET,
    SCREENSHOTS_BUCKET,
    SOURCE_IMAGES_BUCKET,
)


class StoredObjectRef(BaseModel):
    """A reference to one object in a bucket.

    The key is unique within its bucket at write time because it embeds the
    owner identifier and a millisecond timestamp.
    """

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str

    @property
    def storage_path(self) -> str:
        """The ``/<bucket>/<key>`` form persisted in the catalog."""
        return f"/{self.bucket}/{self.key}"


class ObjectStat(BaseModel):
    """Metadata reported by the object store for a stored object."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    size: int
    content_type: str = "application/octet-stream"
    etag: str = ""
    last_modified: datetime | None = None


class PutResult(BaseModel):
    """Outcome of a put: the digest and byte count of what was streamed."""

    model_config = ConfigDict(frozen=True)

    ref: StoredObjectRef
    size: int
    sha256: str
