"""Command-line interface for ragvault."""

from .app import app, main

__all__ = ["app", "main"]
