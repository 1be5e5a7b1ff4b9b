"""
Completion contexts for results produced on worker threads.

Worker threads never hand results straight to the caller; they post a
callback to a dispatcher chosen by the caller. ``InlineDispatcher`` runs
it immediately, ``CompletionQueue`` holds it until the owning thread
drains the queue (the role a UI main loop plays).
"""

import queue
import threading
from typing import Any, Callable, Optional, Protocol

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


class CompletionDispatcher(Protocol):
    """Anything that can schedule a callback on the caller's context."""

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        ...


class InlineDispatcher:
    """Runs callbacks immediately on whichever thread posts them."""

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        callback(*args)


class CompletionQueue:
    """Thread-safe queue of callbacks drained by a single owner thread."""

    def __init__(self, owner: Optional[threading.Thread] = None):
        self._queue: "queue.Queue" = queue.Queue()
        self.owner = owner or threading.current_thread()

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        self._queue.put((callback, args))

    def pending(self) -> int:
        return self._queue.qsize()

    def process_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run queued callbacks on the calling thread.

        Args:
            timeout: Seconds to wait for the first callback when the queue is
                empty. None returns immediately.

        Returns:
            Number of callbacks that ran.
        """
        if threading.current_thread() is not self.owner:
            raise RuntimeError("CompletionQueue drained from a non-owner thread")

        processed = 0
        try:
            if timeout is not None:
                callback, args = self._queue.get(timeout=timeout)
                self._run(callback, args)
                processed += 1
            while True:
                callback, args = self._queue.get_nowait()
                self._run(callback, args)
                processed += 1
        except queue.Empty:
            pass
        return processed

    @staticmethod
    def _run(callback: Callable[..., Any], args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Completion callback %r raised", callback)
