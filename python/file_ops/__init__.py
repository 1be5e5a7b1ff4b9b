from .catalog import DirectoryCatalog, Entry, EntryKind, classify, format_size
from .naming import NamingResolver, resolve, sanitize_file_name
from .errors import (
    FileOperationError,
    DirectoryUnreadable,
    DestinationExists,
    TargetExists,
    InvalidName,
    SourceNotAccessible,
    OperationInProgress,
)
from .models import BatchResult, summarize
from .operation_engine import FileOperationEngine

__all__ = [
    # Catalog
    "DirectoryCatalog",
    "Entry",
    "EntryKind",
    "classify",
    "format_size",
    # Naming
    "NamingResolver",
    "resolve",
    "sanitize_file_name",
    # Errors
    "FileOperationError",
    "DirectoryUnreadable",
    "DestinationExists",
    "TargetExists",
    "InvalidName",
    "SourceNotAccessible",
    "OperationInProgress",
    # Results
    "BatchResult",
    "summarize",
    # Engine
    "FileOperationEngine",
]
