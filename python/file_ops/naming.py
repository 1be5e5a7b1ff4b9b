import os
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]

INVALID_NAME_CHARACTERS = '/:?*<>|"\\'
MAX_ATTEMPTS = 999

_STRIP_TABLE = str.maketrans("", "", INVALID_NAME_CHARACTERS)


def sanitize_file_name(name: str) -> str:
    """Remove characters that cannot appear in a single path component."""
    return name.translate(_STRIP_TABLE)


def split_extension(file_name: str):
    """Split "a.b.txt" into ("a.b", "txt"); dot-files and bare names have no extension."""
    dot = file_name.rfind(".")
    if dot <= 0:
        return file_name, ""
    return file_name[:dot], file_name[dot + 1 :]


class NamingResolver:
    """Finds a destination path that does not exist yet. Only probes, never creates."""

    def __init__(self, max_attempts: int = MAX_ATTEMPTS):
        self.max_attempts = max_attempts

    def resolve(self, candidate_path: PathLike) -> Path:
        """
        Return ``candidate_path`` if free, else the first free "name (n).ext".

        After ``max_attempts`` numbered candidates the last one is returned
        even if it exists.
        """
        candidate = Path(candidate_path)
        if not os.path.lexists(candidate):
            return candidate

        stem, extension = split_extension(candidate.name)
        parent = candidate.parent
        attempt = candidate
        for counter in range(1, self.max_attempts + 1):
            new_name = f"{stem} ({counter})"
            if extension:
                new_name = f"{new_name}.{extension}"
            attempt = parent / new_name
            if not os.path.lexists(attempt):
                return attempt
        return attempt


_default_resolver = NamingResolver()


def resolve(candidate_path: PathLike) -> Path:
    return _default_resolver.resolve(candidate_path)
