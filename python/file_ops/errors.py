class FileOperationError(Exception):
    """Base class for file operation failures."""

    code = "file_operation_error"
    default_message = "File operation failed"

    def __init__(self, message: str = ""):
        super().__init__(message or self.default_message)


class DirectoryUnreadable(FileOperationError):
    code = "directory_unreadable"
    default_message = "Directory cannot be read"


class DestinationExists(FileOperationError):
    code = "destination_exists"
    default_message = "An item with the same name already exists at the destination"


class TargetExists(FileOperationError):
    code = "target_exists"
    default_message = "An item with that name already exists"


class InvalidName(FileOperationError):
    code = "invalid_name"
    default_message = "Name is empty after removing invalid characters"


class SourceNotAccessible(FileOperationError):
    code = "source_not_accessible"
    default_message = "Source file not accessible"


class OperationInProgress(FileOperationError):
    code = "operation_in_progress"
    default_message = "Another file operation is still running"
