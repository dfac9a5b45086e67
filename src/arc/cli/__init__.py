"""Command-line interface for Arc."""

from ._app import app, create_app, main

__all__ = ["app", "create_app", "main"]
