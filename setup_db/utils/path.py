"""
Utilities for handling cache file names and directories.
"""

from pathlib import Path

from pathvalidate import ValidationError, validate_filename

from setup_db.exceptions import UnsafeCacheNameError


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def safe_cache_name(file_name: str) -> str:
    """
    Returns `file_name` unchanged if it is a plain file name.

    Names taken from manifests and archives end up as paths inside the cache
    directory, so anything carrying a directory component, a reserved
    device name or characters invalid on the host platform is rejected.

    Raises:
        UnsafeCacheNameError: If the name cannot be used as-is.
    """
    if file_name in (".", "..") or "/" in file_name or "\\" in file_name:
        raise UnsafeCacheNameError(f"Refusing to write '{file_name}' to the cache.")
    try:
        validate_filename(file_name, platform="auto")
    except ValidationError as e:
        raise UnsafeCacheNameError(
            f"Refusing to write '{file_name}' to the cache: {e}"
        ) from e
    return file_name
