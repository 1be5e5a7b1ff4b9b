class ArchiveError(Exception):
    """Base class for extraction and packaging failures."""

    code = "archive_error"
    default_message = "Archive operation failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)


class NotAnArchive(ArchiveError):
    code = "not_an_archive"
    default_message = "File is not a supported archive"


class NotAnApplicationDirectory(ArchiveError):
    code = "not_an_application_directory"
    default_message = "Only .app directories can be packaged"


class JobAlreadyActive(ArchiveError):
    code = "job_already_active"
    default_message = "Another extraction or packaging job is already running"


class UnsupportedArchiveFormat(ArchiveError):
    code = "unsupported_archive_format"
    default_message = "Archive format is not supported"


class ArchiveCorrupted(ArchiveError):
    code = "archive_corrupted"
    default_message = "Archive is damaged or unreadable"


class UnsafeArchiveEntry(ArchiveError):
    code = "unsafe_archive_entry"
    default_message = "Archive entry points outside the extraction directory"


class ArchiveLimitsExceeded(ArchiveError):
    code = "archive_limits_exceeded"
    default_message = "Archive exceeds the configured size or entry limits"


class InsufficientSpace(ArchiveError):
    code = "insufficient_space"
    default_message = "Not enough free disk space"


class JobCancelled(ArchiveError):
    code = "job_cancelled"
    default_message = "Job was cancelled"
