from .cancellation import CancellationToken, OperationCancelled
from .dispatch import CompletionDispatcher, CompletionQueue, InlineDispatcher
from .scoped_access import ScopedAccessProvider, UnrestrictedAccess, scoped_access

__all__ = [
    "CancellationToken",
    "OperationCancelled",
    "CompletionDispatcher",
    "CompletionQueue",
    "InlineDispatcher",
    "ScopedAccessProvider",
    "UnrestrictedAccess",
    "scoped_access",
]
