import threading


class OperationCancelled(Exception):
    """Raised inside a job when its cancellation token has been triggered."""

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


class CancellationToken:
    """One-shot cancellation flag shared between a caller and a running job."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()
