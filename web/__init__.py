"""HTTP status API for the relay."""

from web.app import create_app, StatusServer

__all__ = ["create_app", "StatusServer"]
