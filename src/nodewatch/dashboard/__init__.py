"""HTTP query and export surface for the collector."""

from nodewatch.dashboard.app import create_app

__all__ = ["create_app"]
