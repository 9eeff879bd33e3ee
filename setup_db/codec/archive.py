"""
Extracts the primary library from a package archive (.nupkg, a zip container).
"""

import io
import logging
import posixpath
import zipfile
import zlib
from collections.abc import Sequence

from setup_db.exceptions import ArchiveFormatError, ArtifactNotFoundError
from setup_db.models.config import DEFAULT_LIBRARY_PREFIXES

log = logging.getLogger(__name__)

LIBRARY_EXTENSION = ".dll"


def extract_primary_binary(
    archive: bytes,
    library_prefixes: Sequence[str] = tuple(DEFAULT_LIBRARY_PREFIXES),
    extension: str = LIBRARY_EXTENSION,
) -> tuple[str, bytes]:
    """
    Returns the first library entry of the archive targeting a portable runtime.

    An entry matches when its full path starts with one of `library_prefixes`
    and its file name ends with `extension`. Archive order decides between
    several matches.

    Returns:
        The entry's file name (without directories) and its contents.

    Raises:
        ArchiveFormatError: If the bytes are not a readable zip archive.
        ArtifactNotFoundError: If no entry matches.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                name = posixpath.basename(info.filename)
                if info.filename.startswith(tuple(library_prefixes)) and name.endswith(
                    extension
                ):
                    log.debug(f"Selected archive entry '{info.filename}'.")
                    return name, zf.read(info)
    except zipfile.BadZipFile as e:
        raise ArchiveFormatError(f"Package archive is not a valid zip file: {e}") from e
    except (zlib.error, NotImplementedError) as e:
        # Corrupt deflate stream or a compression method zipfile cannot read
        raise ArchiveFormatError(f"Cannot decompress package archive entry: {e}") from e

    raise ArtifactNotFoundError(
        f"No '{extension}' entry under {', '.join(library_prefixes)} in package archive."
    )
