"""FastAPI application — the HTTP boundary over the ingestion orchestrator.

Routes translate multipart forms and headers into orchestrator calls and
render records through ``FeedProjection``.  Credentials are resolved to a
single yes/no by ``AccessGate`` before any handler runs; every
``BundlefeedError`` becomes ``{"error": reason, "detail": message}`` with the
error's status code, and request-shape failures reuse the
``validation_failed`` envelope.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bundlefeed import __version__
from bundlefeed.config import FeedConfig, configure_logging
from bundlefeed.core.access import AccessGate
from bundlefeed.core.errors import AuthorizationError, BundlefeedError, ValidationError
from bundlefeed.core.feed import FeedProjection
from bundlefeed.core.ingestion import IngestionOrchestrator
from bundlefeed.core.storage_paths import RequestContext
from bundlefeed.models.archive import UploadedArchive
from bundlefeed.models.catalog import AppRecord
from bundlefeed.models.requests import (
    AppCreate,
    AppUpdate,
    ScreenshotOrder,
    SourceConfigUpdate,
    VersionUpdate,
    VersionUploadForm,
)

logger = logging.getLogger(__name__)


def _request_context(request: Request) -> RequestContext | None:
    return RequestContext.from_headers(request.url.scheme, request.headers)


def _read_upload(upload: UploadFile | None, limit: int) -> UploadedArchive | None:
    """Buffer an uploaded file, refusing anything over *limit* bytes."""
    if upload is None:
        return None
    data = upload.file.read(limit + 1)
    if len(data) > limit:
        raise ValidationError(f"Upload exceeds the {limit} byte limit")
    return UploadedArchive(
        data=data,
        content_type=upload.content_type or "application/octet-stream",
        filename=upload.filename,
    )


def create_app(
    config: FeedConfig | None = None,
    *,
    orchestrator: IngestionOrchestrator | None = None,
) -> FastAPI:
    """Build the API around one orchestrator and one access gate.

    Parameters
    ----------
    config:
        Service configuration.  Defaults to ``FeedConfig()`` (environment).
    orchestrator:
        Pre-built orchestrator; built from *config* when omitted.
    """
    config = config or FeedConfig()
    configure_logging(config)
    if orchestrator is None:
        orchestrator = IngestionOrchestrator.from_config(config)
    gate = AccessGate.from_config(config)
    feed = FeedProjection(
        orchestrator.catalog,
        config.public_base_url,
        identifier=config.feed_identifier,
        name=config.feed_name,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        orchestrator.close()

    api = FastAPI(title="Bundlefeed", version=__version__, lifespan=lifespan)
    api.state.config = config
    api.state.orchestrator = orchestrator

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @api.exception_handler(BundlefeedError)
    async def _bundlefeed_error(request: Request, exc: BundlefeedError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @api.exception_handler(RequestValidationError)
    async def _request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = ValidationError("Request did not match the expected shape")
        content = error.to_dict()
        content["errors"] = jsonable_encoder(exc.errors())
        return JSONResponse(status_code=error.status_code, content=content)

    @api.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "internal_error"})

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def require_admin(authorization: str | None = Header(default=None)) -> None:
        if not gate.check_bearer(authorization):
            raise AuthorizationError("Missing or invalid bearer token")

    def require_uploader(
        authorization: str | None = Header(default=None),
        x_access_key: str | None = Header(default=None),
    ) -> None:
        if not gate.is_authorized(authorization=authorization, access_key=x_access_key):
            raise AuthorizationError("Missing or invalid credentials")

    admin = [Depends(require_admin)]

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    @api.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @api.get("/source.json")
    def source(request: Request) -> dict[str, Any]:
        return feed.source(_request_context(request))

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def _version_form(
        app_id: str | None = Form(default=None, alias="appId"),
        version: str | None = Form(default=None),
        build_version: str | None = Form(default=None, alias="buildVersion"),
        date: str | None = Form(default=None),
        localized_description: str | None = Form(default=None, alias="localizedDescription"),
        min_os_version: str | None = Form(default=None, alias="minOSVersion"),
        max_os_version: str | None = Form(default=None, alias="maxOSVersion"),
        visible: bool = Form(default=True),
    ) -> VersionUploadForm:
        return VersionUploadForm(
            app_id=app_id,
            version=version,
            build_version=build_version,
            date=date,
            localized_description=localized_description,
            min_os_version=min_os_version,
            max_os_version=max_os_version,
            visible=visible,
        )

    def _upload_version(
        request: Request, form: VersionUploadForm, ipa: UploadFile | None
    ) -> dict[str, Any]:
        archive = _read_upload(ipa, config.max_upload_bytes)
        record = orchestrator.upload_version(form, archive)
        return feed.version_view(record, _request_context(request))

    @api.post("/api/versions", status_code=201, dependencies=admin)
    def upload_version(
        request: Request,
        form: VersionUploadForm = Depends(_version_form),
        ipa: UploadFile | None = File(default=None),
    ) -> dict[str, Any]:
        return _upload_version(request, form, ipa)

    @api.post(
        "/api/versions/ci-upload",
        status_code=201,
        dependencies=[Depends(require_uploader)],
    )
    def ci_upload_version(
        request: Request,
        form: VersionUploadForm = Depends(_version_form),
        ipa: UploadFile | None = File(default=None),
    ) -> dict[str, Any]:
        return _upload_version(request, form, ipa)

    @api.post("/api/versions/ipa-metadata", dependencies=admin)
    def inspect_archive(ipa: UploadFile | None = File(default=None)) -> dict[str, Any]:
        metadata = orchestrator.inspect_archive(_read_upload(ipa, config.max_upload_bytes))
        return {
            "version": metadata.short_version,
            "buildVersion": metadata.build_version,
            "minOSVersion": metadata.min_os_version,
            "bundleIdentifier": metadata.bundle_identifier,
            "displayName": metadata.display_name,
        }

    @api.put("/api/versions/{version_id}/ipa", dependencies=admin)
    def replace_artifact(
        version_id: str,
        request: Request,
        ipa: UploadFile | None = File(default=None),
    ) -> dict[str, Any]:
        archive = _read_upload(ipa, config.max_upload_bytes)
        record = orchestrator.replace_artifact(version_id, archive)
        return feed.version_view(record, _request_context(request))

    @api.put("/api/versions/{version_id}", dependencies=admin)
    def update_version(
        version_id: str, changes: VersionUpdate, request: Request
    ) -> dict[str, Any]:
        record = orchestrator.update_version(version_id, changes)
        return feed.version_view(record, _request_context(request))

    @api.delete("/api/versions/{version_id}", dependencies=admin)
    def delete_version(version_id: str) -> dict[str, str]:
        orchestrator.delete_version(version_id)
        return {"deleted": version_id}

    @api.get("/api/versions/app/{app_id}", dependencies=admin)
    def list_versions(app_id: str, request: Request) -> list[dict[str, Any]]:
        ctx = _request_context(request)
        return [
            feed.version_view(record, ctx)
            for record in orchestrator.catalog.list_versions(app_id)
        ]

    @api.get("/api/versions/{version_id}", dependencies=admin)
    def get_version(version_id: str, request: Request) -> dict[str, Any]:
        record = orchestrator.get_version(version_id)
        return feed.version_view(record, _request_context(request))

    @api.post("/api/versions/{version_id}/screenshots", dependencies=admin)
    def upload_version_screenshots(
        version_id: str,
        request: Request,
        screenshots: list[UploadFile] = File(default=[]),
    ) -> dict[str, Any]:
        images = [_read_upload(f, config.max_image_bytes) for f in screenshots]
        record = orchestrator.upload_version_screenshots(version_id, images)
        return feed.version_view(record, _request_context(request))

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    @api.post("/api/apps", status_code=201, dependencies=admin)
    def create_app_record(body: AppCreate, request: Request) -> dict[str, Any]:
        app = orchestrator.catalog.create_app(AppRecord(**body.model_dump()))
        return feed.app_view(app, _request_context(request))

    @api.get("/api/apps", dependencies=admin)
    def list_apps(request: Request) -> list[dict[str, Any]]:
        ctx = _request_context(request)
        return [feed.app_view(app, ctx) for app in orchestrator.catalog.list_apps()]

    @api.get("/api/apps/{app_id}", dependencies=admin)
    def get_app(app_id: str, request: Request) -> dict[str, Any]:
        return feed.app_view(orchestrator.get_app(app_id), _request_context(request))

    @api.put("/api/apps/{app_id}", dependencies=admin)
    def update_app(app_id: str, changes: AppUpdate, request: Request) -> dict[str, Any]:
        app = orchestrator.update_app(app_id, changes)
        return feed.app_view(app, _request_context(request))

    @api.delete("/api/apps/{app_id}", dependencies=admin)
    def delete_app(app_id: str) -> dict[str, str]:
        orchestrator.delete_app(app_id)
        return {"deleted": app_id}

    @api.post("/api/apps/{app_id}/icon", dependencies=admin)
    def upload_icon(
        app_id: str, request: Request, icon: UploadFile | None = File(default=None)
    ) -> dict[str, Any]:
        app = orchestrator.upload_icon(app_id, _read_upload(icon, config.max_image_bytes))
        return feed.app_view(app, _request_context(request))

    @api.post("/api/apps/{app_id}/screenshots", dependencies=admin)
    def upload_app_screenshots(
        app_id: str,
        request: Request,
        screenshots: list[UploadFile] = File(default=[]),
    ) -> dict[str, Any]:
        images = [_read_upload(f, config.max_image_bytes) for f in screenshots]
        app = orchestrator.upload_app_screenshots(app_id, images)
        return feed.app_view(app, _request_context(request))

    @api.put("/api/apps/{app_id}/screenshots/reorder", dependencies=admin)
    def reorder_app_screenshots(
        app_id: str, body: ScreenshotOrder, request: Request
    ) -> dict[str, Any]:
        app = orchestrator.reorder_app_screenshots(app_id, body.screenshots)
        return feed.app_view(app, _request_context(request))

    @api.delete("/api/apps/{app_id}/screenshots/{index}", dependencies=admin)
    def remove_app_screenshot(app_id: str, index: int, request: Request) -> dict[str, Any]:
        app = orchestrator.remove_app_screenshot(app_id, index)
        return feed.app_view(app, _request_context(request))

    # ------------------------------------------------------------------
    # Source config
    # ------------------------------------------------------------------

    @api.get("/api/source", dependencies=admin)
    def get_source_config(request: Request) -> dict[str, Any]:
        return feed.source_view(orchestrator.get_source_config(), _request_context(request))

    @api.put("/api/source", dependencies=admin)
    def update_source_config(
        changes: SourceConfigUpdate, request: Request
    ) -> dict[str, Any]:
        saved = orchestrator.update_source_config(changes)
        return feed.source_view(saved, _request_context(request))

    @api.post("/api/source/{kind}", dependencies=admin)
    def upload_source_image(
        kind: str, request: Request, image: UploadFile | None = File(default=None)
    ) -> dict[str, Any]:
        saved = orchestrator.upload_source_image(
            kind, _read_upload(image, config.max_image_bytes)
        )
        return feed.source_view(saved, _request_context(request))

    return api
