"""
Archive Service - runs extraction and packaging jobs one at a time.

The service owns a single worker thread and an explicit state machine
(IDLE, EXTRACTING, PACKAGING) guarded by a lock. A request made while a
job is active is rejected with ``JobAlreadyActive``. Preconditions on the
input entry are checked synchronously before any I/O; everything after
that happens on the worker and is reported once through the completion
dispatcher as a ``JobResult``.
"""

import os
import shutil
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from colored_logger import get_colored_logger
from core.cancellation import CancellationToken, OperationCancelled
from core.dispatch import CompletionDispatcher, InlineDispatcher
from file_ops.catalog import Entry
from file_ops.naming import NamingResolver

from .archive_security import (
    MAX_EXTRACTED_BYTES,
    MAX_EXTRACTED_ENTRIES,
    MIN_FREE_SPACE_MARGIN,
    ExtractionValidator,
    ensure_free_space,
)
from .archive_verifier import DistributableVerifier
from .codecs import DEFAULT_CHUNK_SIZE, ArchiveCodecFactory, ArchiveReader
from .errors import (
    ArchiveCorrupted,
    ArchiveError,
    JobAlreadyActive,
    JobCancelled,
    NotAnApplicationDirectory,
    NotAnArchive,
)
from .path_utils import TempFileManager, distributable_name, payload_root

logger = get_colored_logger(__name__)

PathLike = Union[str, Path]
ProgressCallback = Callable[[float], None]


class ServiceState(Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    PACKAGING = "packaging"


class JobStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class JobResult:
    """Terminal outcome of one extraction or packaging job."""

    status: JobStatus
    output_name: Optional[str] = None
    error: Optional[ArchiveError] = None

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.SUCCEEDED

    @property
    def reason(self) -> str:
        return str(self.error) if self.error is not None else ""


CompletionCallback = Callable[[JobResult], None]


class ProgressReporter:
    """
    Forwards job progress to the caller through the dispatcher.

    Values are clamped to [0.0, 1.0], never go backwards, and are
    throttled to steps of ``min_step`` so a large archive does not flood
    the completion context. ``complete()`` always delivers exactly 1.0.
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        dispatcher: CompletionDispatcher,
        min_step: float = 0.01,
    ):
        self.callback = callback
        self.dispatcher = dispatcher
        self.min_step = min_step
        self._lock = threading.Lock()
        self._reported = -1.0

    def update(self, fraction: float) -> None:
        fraction = min(1.0, max(0.0, fraction))
        with self._lock:
            if fraction <= self._reported:
                return
            if fraction < 1.0 and fraction - self._reported < self.min_step:
                return
            self._reported = fraction

        logger.trace("Job progress: %.1f%%", fraction * 100)
        if self.callback is not None:
            self.dispatcher.post(self.callback, fraction)

    def start(self) -> None:
        self.update(0.0)

    def complete(self) -> None:
        self.update(1.0)


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    elif os.path.lexists(path):
        try:
            os.remove(path)
        except OSError as e:
            logger.debug("Failed to roll back %s: %s", path, e)


class ArchiveService:
    """
    Extracts archives and packages application bundles as distributables.

    Both jobs return a ``Future[JobResult]`` and post ``on_complete`` to the
    dispatcher exactly once. The active-job flag is set before the job is
    queued and cleared after ``on_complete`` has run, so with a
    ``CompletionQueue`` the service stays busy until the owner thread
    drains the queue.
    """

    def __init__(
        self,
        dispatcher: Optional[CompletionDispatcher] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        compression_level: int = 6,
        max_extracted_bytes: int = MAX_EXTRACTED_BYTES,
        max_extracted_entries: int = MAX_EXTRACTED_ENTRIES,
        free_space_margin: int = MIN_FREE_SPACE_MARGIN,
        codec_factory=None,
        resolver: Optional[NamingResolver] = None,
        verifier: Optional[DistributableVerifier] = None,
    ):
        self.dispatcher = dispatcher or InlineDispatcher()
        self.chunk_size = max(1024, chunk_size)
        self.compression_level = compression_level
        self.max_extracted_bytes = max_extracted_bytes
        self.max_extracted_entries = max_extracted_entries
        self.free_space_margin = free_space_margin
        self.codec_factory = codec_factory or ArchiveCodecFactory
        self.resolver = resolver or NamingResolver()
        self.verifier = verifier or DistributableVerifier()

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ArchiveJob"
        )
        self._lock = threading.Lock()
        self._state = ServiceState.IDLE

    @classmethod
    def from_settings(cls, settings, dispatcher: Optional[CompletionDispatcher] = None):
        return cls(
            dispatcher=dispatcher,
            chunk_size=settings.chunk_size,
            compression_level=settings.ipa_compression_level,
            max_extracted_bytes=settings.max_extracted_bytes,
            max_extracted_entries=settings.max_extracted_entries,
            free_space_margin=settings.min_free_space_margin_bytes,
        )

    # ------------------------------------------------------------------
    # State machine

    @property
    def state(self) -> ServiceState:
        with self._lock:
            return self._state

    @property
    def busy(self) -> bool:
        return self.state is not ServiceState.IDLE

    def _begin(self, state: ServiceState) -> None:
        with self._lock:
            if self._state is not ServiceState.IDLE:
                raise JobAlreadyActive(
                    f"Cannot start {state.value}: service is {self._state.value}"
                )
            self._state = state

    def _finish(self) -> None:
        with self._lock:
            self._state = ServiceState.IDLE

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # ------------------------------------------------------------------
    # Job plumbing

    def _launch(
        self,
        label: str,
        job: Callable[[ProgressReporter], JobResult],
        on_progress: Optional[ProgressCallback],
        on_complete: Optional[CompletionCallback],
    ) -> "Future[JobResult]":
        future: "Future[JobResult]" = Future()
        reporter = ProgressReporter(on_progress, self.dispatcher)

        def run() -> None:
            start_time = time.time()
            try:
                result = job(reporter)
            except OperationCancelled:
                logger.warning("%s cancelled", label)
                result = JobResult(JobStatus.CANCELLED, error=JobCancelled())
            except ArchiveError as e:
                logger.failure("%s failed: %s", label, e)
                result = JobResult(JobStatus.FAILED, error=e)
            except (OSError, shutil.Error) as e:
                logger.failure("%s failed: %s", label, e)
                result = JobResult(
                    JobStatus.FAILED, error=ArchiveError(f"{label} failed: {e}")
                )
            except Exception as e:
                logger.exception("Unexpected error during %s", label)
                error = ArchiveError(f"{label} failed: {e}")
                error.__cause__ = e
                result = JobResult(JobStatus.FAILED, error=error)
            else:
                logger.success(
                    "%s finished: %s (%.2f seconds)",
                    label,
                    result.output_name or "done",
                    time.time() - start_time,
                )

            self.dispatcher.post(self._deliver, on_complete, result)
            future.set_result(result)

        try:
            self._executor.submit(run)
        except RuntimeError:
            self._finish()
            raise
        return future

    def _deliver(
        self, on_complete: Optional[CompletionCallback], result: JobResult
    ) -> None:
        try:
            if on_complete is not None:
                on_complete(result)
        except Exception:
            logger.exception("Archive completion callback raised")
        finally:
            self._finish()

    # ------------------------------------------------------------------
    # Extraction

    def extract(
        self,
        archive: Entry,
        into_directory: PathLike,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "Future[JobResult]":
        """
        Unpack ``archive`` under ``into_directory``.

        Raises:
            NotAnArchive: The entry is not classified as an archive.
            UnsupportedArchiveFormat: No codec handles the file name.
            JobAlreadyActive: Another job is running.
        """
        if not archive.is_archive:
            raise NotAnArchive(f"{archive.name} is not an archive")
        codec = self.codec_factory.for_path(
            archive.location, self.compression_level, self.chunk_size
        )
        destination = Path(into_directory)

        self._begin(ServiceState.EXTRACTING)
        logger.info("Extracting %s into %s", archive.name, destination)

        def job(reporter: ProgressReporter) -> JobResult:
            return self._run_extract(
                codec, archive.location, destination, reporter, cancel_token
            )

        return self._launch(f"Extraction of {archive.name}", job, on_progress, on_complete)

    def _run_extract(
        self,
        codec: ArchiveReader,
        archive_path: Path,
        destination: Path,
        reporter: ProgressReporter,
        cancel_token: Optional[CancellationToken],
    ) -> JobResult:
        if not destination.is_dir():
            raise ArchiveError(f"Destination is not a directory: {destination}")

        declared_size = codec.uncompressed_size(archive_path)
        if declared_size is not None:
            ensure_free_space(destination, declared_size, self.free_space_margin)

        reporter.start()
        staging = TempFileManager.create_staging_directory(destination)
        moved: List[Path] = []
        try:
            validator = ExtractionValidator(
                staging, self.max_extracted_bytes, self.max_extracted_entries
            )
            for entry in codec.extract_entries(
                archive_path, staging, validator, cancel_token
            ):
                logger.trace("Unpacked %s", entry.name)
                reporter.update(entry.progress)

            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            self._promote(staging, destination, moved)
        except Exception:
            for path in reversed(moved):
                _remove_path(path)
            raise
        finally:
            TempFileManager.cleanup_directory(staging)

        reporter.complete()
        output_name = moved[0].name if len(moved) == 1 else None
        return JobResult(JobStatus.SUCCEEDED, output_name=output_name)

    def _promote(self, staging: Path, destination: Path, moved: List[Path]) -> None:
        """Move staged top-level items into place without overwriting anything."""
        for child in sorted(os.listdir(staging)):
            final_path = self.resolver.resolve(destination / child)
            try:
                TempFileManager.atomic_move(staging / child, final_path)
            except FileExistsError as e:
                raise ArchiveError(f"No free name for {child} in {destination}") from e
            moved.append(final_path)
            logger.debug("Placed %s", final_path)

    # ------------------------------------------------------------------
    # Packaging

    def package_as_distributable(
        self,
        application: Entry,
        into_directory: PathLike,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "Future[JobResult]":
        """
        Package an application bundle as ``<Name>.ipa`` in ``into_directory``.

        The archive layout is ``Payload/<Name>.app/...``. An existing
        ``<Name>.ipa`` is never overwritten; the new file gets a " (n)"
        suffix and ``JobResult.output_name`` carries the final name.
        """
        if not application.is_application_directory:
            raise NotAnApplicationDirectory(
                f"{application.name} is not an application bundle"
            )
        destination = Path(into_directory)

        self._begin(ServiceState.PACKAGING)
        logger.info("Packaging %s into %s", application.name, destination)

        def job(reporter: ProgressReporter) -> JobResult:
            return self._run_package(
                application.location,
                application.name,
                destination,
                reporter,
                cancel_token,
            )

        return self._launch(
            f"Packaging of {application.name}", job, on_progress, on_complete
        )

    @staticmethod
    def _collect_bundle(
        app_directory: Path, app_name: str
    ) -> Tuple[List[Tuple[Path, str]], int]:
        """List (path, archive name) pairs for the bundle and their total file bytes."""
        prefix = payload_root(app_name)
        files: List[Tuple[Path, str]] = [(app_directory, prefix)]
        total_bytes = 0

        for root, dirs, names in os.walk(app_directory):
            dirs.sort()
            root_path = Path(root)
            for name in dirs + sorted(names):
                path = root_path / name
                relative = path.relative_to(app_directory).as_posix()
                files.append((path, f"{prefix}/{relative}"))
                if name in names and not path.is_symlink():
                    total_bytes += path.stat().st_size
        return files, total_bytes

    def _run_package(
        self,
        app_directory: Path,
        app_name: str,
        destination: Path,
        reporter: ProgressReporter,
        cancel_token: Optional[CancellationToken],
    ) -> JobResult:
        if not destination.is_dir():
            raise ArchiveError(f"Destination is not a directory: {destination}")

        files, total_bytes = self._collect_bundle(app_directory, app_name)
        ensure_free_space(destination, total_bytes, self.free_space_margin)
        logger.debug(
            "Packaging %d entries (%.2f MB)", len(files), total_bytes / (1024 * 1024)
        )

        final_path = self.resolver.resolve(destination / distributable_name(app_name))
        temp_path = TempFileManager.generate_temp_path(final_path)
        writer = self.codec_factory.distributable_writer(
            self.compression_level, self.chunk_size
        )

        reporter.start()
        written = 0
        try:
            for count in writer.create_archive(files, temp_path, cancel_token):
                written += count
                if total_bytes:
                    reporter.update(written / total_bytes)

            if not self.verifier.verify(temp_path, app_name):
                raise ArchiveCorrupted(f"Verification failed for {final_path.name}")
            try:
                TempFileManager.atomic_move(temp_path, final_path)
            except FileExistsError as e:
                raise ArchiveError(
                    f"No free name for {final_path.name} in {destination}"
                ) from e
        except Exception:
            TempFileManager.cleanup_temp_file(temp_path)
            raise

        reporter.complete()
        return JobResult(JobStatus.SUCCEEDED, output_name=final_path.name)
