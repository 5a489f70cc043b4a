"""Core ingestion components: extractor, hasher, path resolver, object store,
catalog, cleanup, and the orchestrator that ties them together."""
