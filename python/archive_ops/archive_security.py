"""
Safety checks applied while an archive is unpacked.

Entry names are resolved against the extraction root and rejected when
they are absolute or climb out of it; symlink targets get the same
treatment. Running totals of bytes and entries are checked against
limits so a hostile archive cannot fill the disk.
"""

import os
import posixpath
from pathlib import Path, PurePosixPath

import psutil

from colored_logger import get_colored_logger

from .errors import ArchiveLimitsExceeded, InsufficientSpace, UnsafeArchiveEntry

logger = get_colored_logger(__name__)

# Default limits
MAX_EXTRACTED_BYTES = 20 * 1024 * 1024 * 1024  # 20GB
MAX_EXTRACTED_ENTRIES = 200000
MIN_FREE_SPACE_MARGIN = 64 * 1024 * 1024  # 64MB


class ExtractionValidator:
    """Validates entry paths and running totals for one extraction job."""

    def __init__(
        self,
        root: Path,
        max_bytes: int = MAX_EXTRACTED_BYTES,
        max_entries: int = MAX_EXTRACTED_ENTRIES,
    ):
        self.root = Path(os.path.realpath(root))
        self.max_bytes = max_bytes
        self.max_entries = max_entries
        self.total_bytes = 0
        self.total_entries = 0

    def resolve_member(self, member_name: str) -> Path:
        """Map an archive member name to a path under the root, or raise UnsafeArchiveEntry."""
        name = member_name.replace("\\", "/")
        pure = PurePosixPath(name)

        if not name or pure.is_absolute() or (len(name) > 1 and name[1] == ":"):
            logger.warning("Absolute archive entry blocked: %s", member_name)
            raise UnsafeArchiveEntry(f"Absolute path in archive: {member_name}")

        parts = [part for part in pure.parts if part not in ("", ".")]
        if ".." in parts:
            logger.warning("Path traversal attempt blocked: %s", member_name)
            raise UnsafeArchiveEntry(f"Path traversal in archive: {member_name}")
        if not parts:
            raise UnsafeArchiveEntry(f"Empty entry name in archive: {member_name!r}")

        target = self.root.joinpath(*parts)
        self._ensure_inside(target.parent, member_name)
        return target

    def check_symlink(self, link_path: Path, link_target: str) -> None:
        """Reject links whose target would resolve outside the root. The root itself is allowed."""
        if os.path.isabs(link_target):
            raise UnsafeArchiveEntry(f"Absolute symlink target: {link_target}")
        joined = posixpath.normpath(
            posixpath.join(str(link_path.parent), link_target.replace("\\", "/"))
        )
        self._ensure_inside(Path(joined), link_target)

    def _ensure_inside(self, path: Path, label: str) -> None:
        resolved = Path(os.path.realpath(path))
        try:
            resolved.relative_to(self.root)
        except ValueError:
            logger.warning("Archive entry escapes extraction root: %s", label)
            raise UnsafeArchiveEntry(f"Entry escapes extraction root: {label}")

    def account_entry(self) -> None:
        self.total_entries += 1
        if self.total_entries > self.max_entries:
            logger.error("Entry count limit exceeded (%d entries)", self.max_entries)
            raise ArchiveLimitsExceeded(
                f"Archive has more than {self.max_entries} entries"
            )

    def account_bytes(self, count: int) -> None:
        self.total_bytes += count
        if self.total_bytes > self.max_bytes:
            logger.error(
                "Extracted size limit exceeded (%.2f MB)",
                self.max_bytes / (1024 * 1024),
            )
            raise ArchiveLimitsExceeded(
                f"Archive expands to more than {self.max_bytes} bytes"
            )

    def check_declared_totals(self, total_bytes: int, total_entries: int) -> None:
        """Fail before writing anything when the archive's own header is over the limits."""
        if total_bytes > self.max_bytes or total_entries > self.max_entries:
            raise ArchiveLimitsExceeded(
                f"Archive declares {total_entries} entries / {total_bytes} bytes"
            )


def ensure_free_space(
    directory: Path, required_bytes: int, margin: int = MIN_FREE_SPACE_MARGIN
) -> None:
    """Raise InsufficientSpace unless ``directory``'s volume can hold ``required_bytes``."""
    try:
        free = psutil.disk_usage(str(directory)).free
    except OSError as e:
        logger.debug("Could not read free space for %s: %s", directory, e)
        return

    if free < required_bytes + margin:
        raise InsufficientSpace(
            f"Need {required_bytes / (1024 * 1024):.1f} MB, "
            f"only {free / (1024 * 1024):.1f} MB free"
        )
