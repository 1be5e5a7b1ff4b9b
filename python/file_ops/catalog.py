"""
Directory catalog: typed snapshots of a directory's immediate children.

Each child becomes an immutable ``Entry`` whose ``kind`` is derived once
from the file type and extension. Children whose metadata cannot be read
are left out of the listing instead of failing it.
"""

import os
import stat
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from colored_logger import get_colored_logger

from .errors import DirectoryUnreadable

logger = get_colored_logger(__name__)

PathLike = Union[str, Path]

ARCHIVE_EXTENSIONS = frozenset(
    {"zip", "ipa", "tipa", "tar", "gz", "tgz", "bz2", "tbz2", "xz", "txz", "zst"}
)
AUTHORIZATION_PROFILE_EXTENSIONS = frozenset({"mobileprovision"})
PRIVATE_KEY_CONTAINER_EXTENSIONS = frozenset({"p12"})
APPLICATION_DIRECTORY_EXTENSIONS = frozenset({"app"})
PROPERTY_LIST_EXTENSIONS = frozenset({"plist"})


class EntryKind(Enum):
    PLAIN_FILE = "plain_file"
    DIRECTORY = "directory"
    ARCHIVE = "archive"
    AUTHORIZATION_PROFILE = "authorization_profile"
    PRIVATE_KEY_CONTAINER = "private_key_container"
    APPLICATION_DIRECTORY = "application_directory"
    PROPERTY_LIST = "property_list"


def extension_of(name: str) -> str:
    """Lower-case extension without the dot; empty for dot-files and bare names."""
    base = name.rstrip("/")
    dot = base.rfind(".")
    if dot <= 0:
        return ""
    return base[dot + 1 :].lower()


def classify(name: str, is_directory: bool) -> EntryKind:
    ext = extension_of(name)
    if is_directory:
        if ext in APPLICATION_DIRECTORY_EXTENSIONS:
            return EntryKind.APPLICATION_DIRECTORY
        return EntryKind.DIRECTORY
    if ext in ARCHIVE_EXTENSIONS:
        return EntryKind.ARCHIVE
    if ext in AUTHORIZATION_PROFILE_EXTENSIONS:
        return EntryKind.AUTHORIZATION_PROFILE
    if ext in PRIVATE_KEY_CONTAINER_EXTENSIONS:
        return EntryKind.PRIVATE_KEY_CONTAINER
    if ext in PROPERTY_LIST_EXTENSIONS:
        return EntryKind.PROPERTY_LIST
    return EntryKind.PLAIN_FILE


def format_size(byte_size: int) -> str:
    size = float(byte_size)
    for unit in ("bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            if unit == "bytes":
                return f"{int(size)} bytes"
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


@dataclass(frozen=True, eq=False)
class Entry:
    """Immutable snapshot of one filesystem object. Identity is the absolute path."""

    name: str
    location: Path
    byte_size: int = 0
    created_at: Optional[datetime] = None
    is_directory: bool = False
    kind: EntryKind = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "location", Path(os.path.abspath(self.location)))
        object.__setattr__(self, "kind", classify(self.name, self.is_directory))

    def __eq__(self, other):
        if not isinstance(other, Entry):
            return NotImplemented
        return self.location == other.location

    def __hash__(self):
        return hash(self.location)

    @classmethod
    def from_path(cls, path: PathLike) -> "Entry":
        """Build an entry from the filesystem. Raises OSError if metadata is unreadable."""
        location = Path(path)
        st = os.stat(location)
        is_directory = stat.S_ISDIR(st.st_mode)
        birth = getattr(st, "st_birthtime", None)
        return cls(
            name=location.name,
            location=location,
            byte_size=0 if is_directory else st.st_size,
            created_at=datetime.fromtimestamp(birth) if birth is not None else None,
            is_directory=is_directory,
        )

    @property
    def extension(self) -> str:
        return extension_of(self.name)

    @property
    def is_archive(self) -> bool:
        return self.kind is EntryKind.ARCHIVE

    @property
    def is_authorization_profile(self) -> bool:
        return self.kind is EntryKind.AUTHORIZATION_PROFILE

    @property
    def is_private_key_container(self) -> bool:
        return self.kind is EntryKind.PRIVATE_KEY_CONTAINER

    @property
    def is_application_directory(self) -> bool:
        return self.kind is EntryKind.APPLICATION_DIRECTORY

    @property
    def is_property_list(self) -> bool:
        return self.kind is EntryKind.PROPERTY_LIST

    @property
    def formatted_size(self) -> str:
        return format_size(self.byte_size)


class DirectoryCatalog:
    """Reads a directory's immediate children into sorted ``Entry`` snapshots."""

    def list(self, directory: PathLike, include_hidden: bool = True) -> List[Entry]:
        """
        List the children of ``directory`` sorted case-insensitively by name.

        Raises:
            DirectoryUnreadable: If the directory itself cannot be enumerated.
        """
        try:
            with os.scandir(directory) as it:
                children = [Path(child.path) for child in it]
        except OSError as e:
            raise DirectoryUnreadable(
                f"Error loading files from {directory}: {e.strerror or e}"
            ) from e

        entries: List[Entry] = []
        for child in children:
            if not include_hidden and child.name.startswith("."):
                continue
            try:
                entries.append(Entry.from_path(child))
            except OSError as e:
                logger.debug("Skipping unreadable entry %s: %s", child, e)

        entries.sort(key=lambda entry: entry.name.lower())
        return entries

    def find_by_kind(self, directory: PathLike, kind: EntryKind) -> List[Entry]:
        return [entry for entry in self.list(directory) if entry.kind is kind]
