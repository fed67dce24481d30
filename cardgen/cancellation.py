"""Process-wide cancellation signal observed by every service worker."""
from contextlib import contextmanager
from typing import Optional, Set
import threading


class CancellationToken:
    """
    Broadcast stop signal.

    Waiting on the token itself replaces sleeping; ``linked`` lets a caller
    wait on one of its own events and still wake up on cancellation.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._linked: Set[threading.Event] = set()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None):
        """Fire the signal. Only the first reason is kept."""
        with self._lock:
            if self.reason is None and reason is not None:
                self.reason = reason
            self._event.set()
            linked = list(self._linked)
        for event in linked:
            event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block for up to ``timeout`` seconds; True once cancelled."""
        return self._event.wait(timeout)

    @contextmanager
    def linked(self, event: threading.Event):
        """Set ``event`` on cancellation for the duration of the block."""
        with self._lock:
            self._linked.add(event)
            if self._event.is_set():
                event.set()
        try:
            yield event
        finally:
            with self._lock:
                self._linked.discard(event)
