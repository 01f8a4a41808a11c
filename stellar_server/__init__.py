"""Stellar build supervisor service."""

from .version import __version__

__all__ = ["__version__"]
