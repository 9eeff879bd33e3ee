"""
Version selection helpers for the registration index.

Only the dotted-numeric prefix of a version takes part in comparisons; any
pre-release (`-beta`) or build metadata (`+sha`) suffix is ignored.
"""

import re
from collections.abc import Iterable

from setup_db.models.package import IndexEntry

_NUMERIC_PREFIX = re.compile(r"^\d+(\.\d+)*$")


def version_key(version: str | None) -> tuple[int, ...] | None:
    """
    Returns the comparable numeric components of a version string.

    `"1.2.0-beta"` -> `(1, 2, 0)`. Returns None when the numeric prefix is
    missing or malformed.
    """
    if not version:
        return None
    release = re.split(r"[-+]", version.strip(), maxsplit=1)[0]
    if not _NUMERIC_PREFIX.match(release):
        return None
    return tuple(int(part) for part in release.split("."))


def select_latest(entries: Iterable[IndexEntry]) -> IndexEntry | None:
    """Picks the entry with the greatest numeric version; the first listed wins ties."""
    best: IndexEntry | None = None
    best_key: tuple[int, ...] | None = None
    for entry in entries:
        key = version_key(entry.version)
        if key is None:
            continue
        if best_key is None or key > best_key:
            best, best_key = entry, key
    return best


def pinned_version(spec: str | None) -> str | None:
    """
    Reduces a declared dependency version to the single version to fetch.

    A plain version (`1.2.3`) and an interval with an inclusive lower bound
    (`[1.2.3]`, `[1.2.3, )`) pin that version. An exclusive lower bound
    (`(1.0,2.0]`) excludes the bound itself, so it resolves to the latest
    version like an interval without one (`(, 2.0]`); both return None.
    """
    spec = (spec or "").strip()
    if not spec or spec[0] == "(":
        return None
    if spec[0] == "[":
        lower = spec[1:].split(",", 1)[0].rstrip("])").strip()
        return lower or None
    return spec
