"""Bundlefeed CLI — Typer-based command-line interface.

Provides the ``bundlefeed`` command with subcommands for inspecting and
hashing archives, resolving stored paths, uploading versions, generating
access keys, and serving the HTTP API.

All output uses Rich for formatted terminal display.
"""
