"""
Archive extraction and distributable packaging.
"""

from .errors import (
    ArchiveError,
    NotAnArchive,
    NotAnApplicationDirectory,
    JobAlreadyActive,
    UnsupportedArchiveFormat,
    ArchiveCorrupted,
    UnsafeArchiveEntry,
    ArchiveLimitsExceeded,
    InsufficientSpace,
    JobCancelled,
)
from .archive_security import ExtractionValidator, ensure_free_space
from .codecs import (
    ArchiveCodecFactory,
    ExtractedEntry,
    TarArchiveCodec,
    ZipArchiveCodec,
    ZstdArchiveCodec,
)
from .archive_verifier import DistributableVerifier
from .path_utils import TempFileManager, distributable_name, payload_root

# Main service
from .archive_service import (
    ArchiveService,
    JobResult,
    JobStatus,
    ProgressReporter,
    ServiceState,
)

__all__ = [
    # Errors
    "ArchiveError",
    "NotAnArchive",
    "NotAnApplicationDirectory",
    "JobAlreadyActive",
    "UnsupportedArchiveFormat",
    "ArchiveCorrupted",
    "UnsafeArchiveEntry",
    "ArchiveLimitsExceeded",
    "InsufficientSpace",
    "JobCancelled",
    # Components
    "ExtractionValidator",
    "ensure_free_space",
    "ArchiveCodecFactory",
    "ExtractedEntry",
    "TarArchiveCodec",
    "ZipArchiveCodec",
    "ZstdArchiveCodec",
    "DistributableVerifier",
    "TempFileManager",
    "distributable_name",
    "payload_root",
    # Service
    "ArchiveService",
    "JobResult",
    "JobStatus",
    "ProgressReporter",
    "ServiceState",
]
