from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a multi-item operation: one success or one failure per item."""

    success_count: int = 0
    failures: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def failed_names(self) -> List[str]:
        return [name for name, _ in self.failures]


class BatchAccumulator:
    """Collects per-item outcomes while a batch runs; not shared across threads."""

    def __init__(self):
        self._success_count = 0
        self._failures: List[Tuple[str, str]] = []

    def success(self) -> None:
        self._success_count += 1

    def failure(self, name: str, message: str) -> None:
        self._failures.append((name, message))

    def result(self) -> BatchResult:
        return BatchResult(self._success_count, tuple(self._failures))


_PAST_TENSE = {
    "copy": "copied",
    "move": "moved",
    "delete": "deleted",
    "import": "imported",
}


def summarize(result: BatchResult, verb: str) -> str:
    """Human readable one-line summary, e.g. "Copied 2 items. Failed to copy 1 items."."""
    done = _PAST_TENSE.get(verb, verb + "ed")
    noun = "item" if result.success_count == 1 else "items"
    if result.succeeded:
        return f"Successfully {done} {result.success_count} {noun}"
    return (
        f"{done.capitalize()} {result.success_count} {noun}. "
        f"Failed to {verb} {result.failure_count} items."
    )
