"""
File operation engine: copy, move, delete, rename, create and import.

Multi-item operations run on a worker pool and never abort on the first
error: every item ends up either counted as a success or listed in the
``BatchResult.failures`` with a message. Results are handed back through
a ``Future`` and, optionally, an ``on_complete`` callback posted to the
caller's completion dispatcher.
"""

import os
import shutil
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from colored_logger import get_colored_logger
from core.dispatch import CompletionDispatcher, InlineDispatcher
from core.scoped_access import ScopedAccessProvider, UnrestrictedAccess, scoped_access

from .catalog import Entry
from .errors import (
    DestinationExists,
    FileOperationError,
    InvalidName,
    OperationInProgress,
    SourceNotAccessible,
    TargetExists,
)
from .models import BatchAccumulator, BatchResult, summarize
from .naming import NamingResolver, sanitize_file_name

logger = get_colored_logger(__name__)

PathLike = Union[str, Path]
BatchCallback = Callable[[BatchResult], None]


def _describe(error: BaseException) -> str:
    if isinstance(error, OSError) and error.strerror:
        return error.strerror
    return str(error)


def _remove_path(path: Path) -> None:
    """Delete a file, symlink or directory tree."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        os.remove(path)


def _discard_partial(path: Path) -> None:
    if os.path.lexists(path):
        try:
            _remove_path(path)
        except OSError as e:
            logger.debug("Failed to remove partial output %s: %s", path, e)


def _claim(path: Path, is_directory: bool) -> None:
    """Create an empty file or directory at ``path``; FileExistsError if it is taken."""
    if is_directory:
        os.mkdir(path)
    else:
        with open(path, "xb"):
            pass


def _is_within(path: Path, ancestor: Path) -> bool:
    try:
        path.resolve().relative_to(ancestor.resolve())
        return True
    except ValueError:
        return False


class FileOperationEngine:
    """
    Runs file operations for a user-owned directory tree.

    The engine keeps no state between calls apart from the number of
    batches currently running, exposed as ``busy``. Overlapping batches
    are allowed unless the engine is built with ``exclusive=True``, in
    which case a second batch raises ``OperationInProgress``.
    """

    def __init__(
        self,
        max_workers: int = 4,
        dispatcher: Optional[CompletionDispatcher] = None,
        access_provider: Optional[ScopedAccessProvider] = None,
        resolver: Optional[NamingResolver] = None,
        chunk_size: int = 64 * 1024,
        exclusive: bool = False,
    ):
        self.max_workers = max(1, max_workers)
        self.dispatcher = dispatcher or InlineDispatcher()
        self.access_provider = access_provider or UnrestrictedAccess()
        self.resolver = resolver or NamingResolver()
        self.chunk_size = max(1024, chunk_size)
        self.exclusive = exclusive

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="FileOps"
        )
        self._lock = threading.Lock()
        self._in_progress = 0

    # ------------------------------------------------------------------
    # Batch plumbing

    @property
    def operation_in_progress(self) -> int:
        with self._lock:
            return self._in_progress

    @property
    def busy(self) -> bool:
        return self.operation_in_progress > 0

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    def _submit_batch(
        self,
        verb: str,
        work: Callable[[BatchAccumulator], None],
        on_complete: Optional[BatchCallback],
    ) -> "Future[BatchResult]":
        future: "Future[BatchResult]" = Future()
        with self._lock:
            if self.exclusive and self._in_progress:
                raise OperationInProgress()
            self._in_progress += 1

        def run() -> None:
            accumulator = BatchAccumulator()
            try:
                work(accumulator)
            except Exception as e:
                logger.exception("Unexpected error during %s batch", verb)
                with self._lock:
                    self._in_progress -= 1
                future.set_exception(e)
                return

            result = accumulator.result()
            with self._lock:
                self._in_progress -= 1

            if result.succeeded:
                logger.success(summarize(result, verb))
            else:
                logger.warning(summarize(result, verb))

            if on_complete is not None:
                self.dispatcher.post(on_complete, result)
            future.set_result(result)

        try:
            self._executor.submit(run)
        except RuntimeError:
            with self._lock:
                self._in_progress -= 1
            raise
        return future

    # ------------------------------------------------------------------
    # Copy / move

    def copy(
        self,
        items: Sequence[Entry],
        destination_directory: PathLike,
        on_complete: Optional[BatchCallback] = None,
    ) -> "Future[BatchResult]":
        """Copy items into a directory, renaming "name (n).ext" instead of overwriting."""
        items = list(items)
        destination = Path(destination_directory)

        def work(acc: BatchAccumulator) -> None:
            for item in items:
                try:
                    self._copy_one(item, destination)
                    acc.success()
                except (OSError, shutil.Error, FileOperationError) as e:
                    message = f"Failed to copy {item.name}: {_describe(e)}"
                    logger.warning(message)
                    acc.failure(item.name, message)

        return self._submit_batch("copy", work, on_complete)

    def _copy_one(self, item: Entry, destination: Path) -> Path:
        if item.is_directory and _is_within(destination, item.location):
            raise FileOperationError("Cannot copy a folder into itself")

        final_path = self.resolver.resolve(destination / item.name)
        try:
            _claim(final_path, item.is_directory)
        except FileExistsError as e:
            raise DestinationExists(
                f"No free name for {item.name} in {destination}"
            ) from e

        # Only final_path was created here, so only it is discarded on failure
        try:
            if item.is_directory:
                shutil.copytree(
                    item.location, final_path, symlinks=True, dirs_exist_ok=True
                )
            else:
                shutil.copy2(item.location, final_path)
        except (OSError, shutil.Error):
            _discard_partial(final_path)
            raise
        logger.debug("Copied %s -> %s", item.location, final_path)
        return final_path

    def move(
        self,
        items: Sequence[Entry],
        destination_directory: PathLike,
        on_complete: Optional[BatchCallback] = None,
    ) -> "Future[BatchResult]":
        """
        Move items into a directory.

        Unlike ``copy``, a name collision is not renamed: the item fails with
        ``DestinationExists`` and both files stay untouched.
        """
        items = list(items)
        destination = Path(destination_directory)

        def work(acc: BatchAccumulator) -> None:
            for item in items:
                target = destination / item.name
                try:
                    if os.path.lexists(target):
                        raise DestinationExists(
                            f"{item.name} already exists in {destination}"
                        )
                    shutil.move(str(item.location), str(target))
                    logger.debug("Moved %s -> %s", item.location, target)
                    acc.success()
                except (OSError, shutil.Error, FileOperationError) as e:
                    message = f"Failed to move {item.name}: {_describe(e)}"
                    logger.warning(message)
                    acc.failure(item.name, message)

        return self._submit_batch("move", work, on_complete)

    # ------------------------------------------------------------------
    # Delete

    def delete_one(self, item: Entry) -> None:
        """Delete a single file or directory tree. Raises FileOperationError on failure."""
        try:
            _remove_path(item.location)
        except OSError as e:
            raise FileOperationError(
                f"Failed to delete {item.name}: {_describe(e)}"
            ) from e
        logger.debug("Deleted %s", item.location)

    def delete_many(
        self, items: Sequence[Entry], on_complete: Optional[BatchCallback] = None
    ) -> "Future[BatchResult]":
        items = list(items)

        def work(acc: BatchAccumulator) -> None:
            for item in items:
                try:
                    self.delete_one(item)
                    acc.success()
                except FileOperationError as e:
                    logger.warning("%s", e)
                    acc.failure(item.name, str(e))

        return self._submit_batch("delete", work, on_complete)

    # ------------------------------------------------------------------
    # Rename / create

    @staticmethod
    def _sanitized(name: str) -> str:
        sanitized = sanitize_file_name(name).strip()
        if not sanitized or sanitized in (".", ".."):
            raise InvalidName(f"Invalid name: {name!r}")
        return sanitized

    def rename(self, item: Entry, new_name: str) -> Path:
        """Rename in place. Fails with TargetExists instead of picking another name."""
        sanitized = self._sanitized(new_name)
        target = item.location.parent / sanitized
        if os.path.lexists(target):
            raise TargetExists(f"{sanitized} already exists")
        try:
            os.rename(item.location, target)
        except OSError as e:
            raise FileOperationError(
                f"Error renaming {item.name}: {_describe(e)}"
            ) from e
        logger.info("Renamed %s to %s", item.name, sanitized)
        return target

    def create_folder(self, directory: PathLike, name: str) -> Path:
        sanitized = self._sanitized(name)
        target = Path(directory) / sanitized
        if os.path.lexists(target):
            raise TargetExists(f"{sanitized} already exists")
        try:
            os.mkdir(target)
        except OSError as e:
            raise FileOperationError(
                f"Error creating folder: {_describe(e)}"
            ) from e
        logger.info("Created folder %s", target)
        return target

    def create_file(self, directory: PathLike, name: str) -> Path:
        """Create an empty file; an existing name gets a " (n)" suffix."""
        sanitized = self._sanitized(name)
        target = self.resolver.resolve(Path(directory) / sanitized)
        try:
            with open(target, "x", encoding="utf-8"):
                pass
        except OSError as e:
            raise FileOperationError(f"Error creating file: {_describe(e)}") from e
        logger.info("Created file %s", target)
        return target

    # ------------------------------------------------------------------
    # Text content

    def read_text(self, item: Entry) -> str:
        try:
            with open(item.location, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise FileOperationError(
                f"Failed to load file content: {_describe(e)}"
            ) from e

    def write_text(self, item: Entry, content: str) -> None:
        """Replace the file's content through a temp file and an atomic rename."""
        directory = item.location.parent
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{item.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            if os.path.exists(item.location):
                shutil.copymode(item.location, temp_path)
            os.replace(temp_path, item.location)
        except OSError as e:
            _discard_partial(Path(temp_path))
            raise FileOperationError(
                f"Failed to save file content: {_describe(e)}"
            ) from e

    # ------------------------------------------------------------------
    # Import

    def import_external(
        self,
        source_paths: Iterable[PathLike],
        destination_directory: PathLike,
        on_complete: Optional[BatchCallback] = None,
    ) -> "Future[BatchResult]":
        """
        Copy caller-external files into ``destination_directory``.

        Each source is read under a scoped access grant that is released on
        every exit path. A failed copy of a regular file falls back to a raw
        byte copy before the item is reported as failed.
        """
        sources: List[Path] = [Path(p) for p in source_paths]
        destination = Path(destination_directory)

        def work(acc: BatchAccumulator) -> None:
            for source in sources:
                name = source.name
                try:
                    with scoped_access(self.access_provider, source):
                        if not os.path.exists(source):
                            raise SourceNotAccessible(
                                f"Source file not accessible: {name}"
                            )
                        final_path = self.resolver.resolve(destination / name)
                        self._import_single(source, final_path)
                    acc.success()
                except FileOperationError as e:
                    logger.warning("Failed to import %s: %s", name, e)
                    acc.failure(name, str(e))
                except OSError as e:
                    message = f"Source file not accessible: {name} ({_describe(e)})"
                    logger.warning(message)
                    acc.failure(name, message)

        return self._submit_batch("import", work, on_complete)

    def _import_single(self, source: Path, destination: Path) -> None:
        is_directory = source.is_dir()
        try:
            _claim(destination, is_directory)
        except FileExistsError as e:
            raise DestinationExists(
                f"No free name for {source.name} in {destination.parent}"
            ) from e
        except OSError as e:
            raise FileOperationError(f"Failed to copy file: {_describe(e)}") from e

        try:
            if is_directory:
                shutil.copytree(
                    source, destination, symlinks=True, dirs_exist_ok=True
                )
                return
            try:
                shutil.copy2(source, destination)
            except OSError as copy_error:
                logger.debug(
                    "Direct copy of %s failed (%s), falling back to byte copy",
                    source,
                    copy_error,
                )
                self._copy_bytes(source, destination)
        except (OSError, shutil.Error) as e:
            _discard_partial(destination)
            raise FileOperationError(f"Failed to copy file: {_describe(e)}") from e

    def _copy_bytes(self, source: Path, destination: Path) -> None:
        with open(source, "rb") as src, open(destination, "wb") as dst:
            while True:
                chunk = src.read(self.chunk_size)
                if not chunk:
                    break
                dst.write(chunk)
