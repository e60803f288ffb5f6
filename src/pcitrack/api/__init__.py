"""PCI Tracker HTTP API."""

from pcitrack.api.main import create_app

__all__ = ["create_app"]
