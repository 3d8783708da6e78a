"""Cellular router watchdog with automatic reboot recovery."""

from .version import __version__

__all__ = ["__version__"]
