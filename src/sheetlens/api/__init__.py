"""HTTP API for SheetLens."""

from .app import create_app, get_repository

__all__ = ["create_app", "get_repository"]
