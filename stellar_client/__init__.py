"""Client SDK and command line tools for the Stellar build service."""

from stellar_server.version import __version__

__all__ = ["__version__"]
