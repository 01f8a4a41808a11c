"""Exported SDK primitives for the Stellar build service."""

from .client import ServerError, StellarClient
from .models import BuildLogs, BuildStartRequest, BuildStatus

__all__ = [
    "BuildLogs",
    "BuildStartRequest",
    "BuildStatus",
    "ServerError",
    "StellarClient",
]
