"""Bundlefeed: artifact ingestion and public feed for an app-bundle catalog.

Accepts uploaded ``.ipa`` archives, reads their embedded Info.plist, hashes
and stores them in a bucket-oriented object store, and serves the catalog as
an AltStore-style ``source.json`` with host-independent download URLs.
"""

__version__ = "0.1.0"
__description__ = "Admin-console artifact ingestion pipeline and public app feed"

from bundlefeed.core.ingestion import IngestionOrchestrator

__all__ = ["IngestionOrchestrator", "__version__"]
