"""Uploaded archive and descriptor metadata models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UploadedArchive(BaseModel):
    """An uploaded file held in memory for the duration of one request.

    ``size`` defaults to the buffer length when the caller does not declare
    one.
    """

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    size: int = -1
    content_type: str = "application/octet-stream"
    filename: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_size(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("size", -1) in (-1, None):
            values = dict(values)
            values["size"] = len(values.get("data") or b"")
        return values

    @property
    def is_empty(self) -> bool:
        return not self.data


class ArchiveMetadata(BaseModel):
    """Fields read from a bundle's Info.plist.

    Every field is optional; the descriptor format does not guarantee any key
    is present.
    """

    model_config = ConfigDict(frozen=True)

    short_version: str | None = None
    build_version: str | None = None
    min_os_version: str | None = None
    bundle_identifier: str | None = None
    display_name: str | None = None
