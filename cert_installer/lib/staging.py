"""Staging copier and upload cleanup.

The upload directory is writable by an untrusted account. Everything the
pipeline validates is read from a private snapshot instead, and the upload
directory is emptied at the end of every run.
"""

import os
import shutil
import stat
import tempfile
from pathlib import Path

from cert_installer.lib.errors import StagingError
from cert_installer.lib.logging_config import LOGGER

STAGING_PREFIX = "install_certificates."
_COPY_CHUNK = 64 * 1024


def create_working_area(parent: Path | None = None) -> Path:
    """Create a fresh, exclusively owned (0700) working directory.

    Raises:
        StagingError: If the directory cannot be created
    """
    try:
        return Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=parent))
    except OSError as e:
        raise StagingError(f"cannot create working area: {e}") from e


def _copy_regular_file(source: Path, destination: Path) -> bool:
    """Copy ``source`` if it is a regular file, without following symlinks.

    Opening with O_NOFOLLOW and checking the opened descriptor closes the race
    where an entry is swapped for a symlink or FIFO after the directory scan.

    Returns:
        True if copied, False if the entry is not a regular file
    """
    try:
        fd = os.open(source, os.O_RDONLY | os.O_NOFOLLOW | os.O_NONBLOCK)
    except OSError as e:
        # ELOOP: symlink; ENXIO: socket
        LOGGER.debug("Cannot open %s: %s", source, e)
        return False
    try:
        is_regular = stat.S_ISREG(os.fstat(fd).st_mode)
    except OSError:
        os.close(fd)
        raise
    if not is_regular:
        os.close(fd)
        return False
    with os.fdopen(fd, "rb") as src:
        with open(destination, "xb") as dst:
            shutil.copyfileobj(src, dst, _COPY_CHUNK)
    return True


def stage_upload_directory(upload_directory: Path, working_area: Path) -> list[str]:
    """Snapshot the upload directory into the working area.

    Only regular files are kept. Any other entry (symlink, directory, FIFO,
    socket, device) is anomalous in an upload area and is dropped with a warning.

    Args:
        upload_directory: Directory populated by the uploader
        working_area: Directory created by create_working_area

    Returns:
        Names of rejected non-regular entries

    Raises:
        StagingError: If the upload directory cannot be read or a copy fails
    """
    rejected: list[str] = []
    try:
        entries = sorted(os.scandir(upload_directory), key=lambda e: e.name)
    except OSError as e:
        raise StagingError(f"cannot read upload directory {upload_directory}: {e}") from e

    for entry in entries:
        source = Path(entry.path)
        try:
            copied = _copy_regular_file(source, working_area / entry.name)
        except OSError as e:
            raise StagingError(f"cannot stage {source}: {e}") from e
        if not copied:
            LOGGER.warning("Removing non-regular or unreadable upload entry %s", source)
            rejected.append(entry.name)

    LOGGER.debug(
        "Staged %d file(s) from %s into %s",
        len(entries) - len(rejected),
        upload_directory,
        working_area,
    )
    return rejected


def remove_working_area(working_area: Path) -> None:
    """Delete the working area and everything in it."""
    try:
        shutil.rmtree(working_area)
    except FileNotFoundError:
        pass
    except OSError as e:
        LOGGER.error("Cannot remove working area %s: %s", working_area, e)


def wipe_directory(directory: Path) -> int:
    """Remove every entry in ``directory``, hidden files included.

    The directory itself is kept. Symlinks are unlinked, never followed.

    Returns:
        Number of entries removed
    """
    removed = 0
    try:
        entries = list(os.scandir(directory))
    except OSError as e:
        LOGGER.error("Cannot list %s for cleanup: %s", directory, e)
        return removed

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                shutil.rmtree(entry.path)
            else:
                os.unlink(entry.path)
            removed += 1
        except FileNotFoundError:
            pass
        except OSError as e:
            LOGGER.error("Cannot remove %s: %s", entry.path, e)
    return removed
