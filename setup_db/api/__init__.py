"""
Package Index Layer.

This package handles all communication with the remote NuGet index.
"""

from .client import RemoteIndex
from .rate_limiter import AdaptiveRateLimiter
from .versions import pinned_version, select_latest, version_key

__all__ = [
    "AdaptiveRateLimiter",
    "RemoteIndex",
    "pinned_version",
    "select_latest",
    "version_key",
]
