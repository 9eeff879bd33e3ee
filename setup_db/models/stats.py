"""
Dataclass for tracking resolution session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class ResolutionStats:
    """Counts network and cache activity for one resolver session."""

    packages_resolved: int = 0
    versions_looked_up: int = 0
    manifests_downloaded: int = 0
    manifests_from_cache: int = 0
    archives_downloaded: int = 0
    artifacts_written: int = 0
    bytes_downloaded: int = 0
    resolved: list[str] = field(default_factory=list)
    _start_time: float = field(default=0.0, repr=False)

    def __post_init__(self):
        self._start_time = time.monotonic()

    @property
    def network_calls(self) -> int:
        """Number of index requests issued (pages of a listing not included)."""
        return (
            self.versions_looked_up
            + self.manifests_downloaded
            + self.archives_downloaded
        )

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start_time
