"""
Scoped access grants for caller-external resources.

Some hosts require a temporary permission grant before a path outside
the managed tree can be read. The grant must be released on every exit
path, so callers go through ``scoped_access`` instead of pairing
acquire/release calls by hand.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol, Union

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)

PathLike = Union[str, Path]


class ScopedAccessProvider(Protocol):
    def acquire(self, path: Path) -> bool:
        """Request access; True means a grant was taken and must be released."""
        ...

    def release(self, path: Path) -> None:
        ...


class UnrestrictedAccess:
    """Provider for hosts without access grants: nothing to take or release."""

    def acquire(self, path: Path) -> bool:
        return False

    def release(self, path: Path) -> None:
        pass


@contextmanager
def scoped_access(provider: ScopedAccessProvider, path: PathLike) -> Iterator[bool]:
    """Hold an access grant for ``path`` for the duration of the block."""
    target = Path(path)
    granted = provider.acquire(target)
    if granted:
        logger.trace("Scoped access acquired: %s", target)
    try:
        yield granted
    finally:
        if granted:
            provider.release(target)
            logger.trace("Scoped access released: %s", target)
