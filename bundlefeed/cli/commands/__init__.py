"""Individual CLI command implementations, registered in ``bundlefeed.cli.app``."""
