"""Logging setup for the CLI process."""

from .logging import configure_logging

__all__ = ["configure_logging"]
