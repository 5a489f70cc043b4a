"""HTTP boundary — a thin FastAPI layer over the ingestion orchestrator."""

from bundlefeed.api.app import create_app

__all__ = ["create_app"]
