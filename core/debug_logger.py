# =============================================================================
# Debug Log Store for Streamlit
# =============================================================================

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Generic, List, Tuple, TypeVar

from models.constants import DEBUG_LOGGER_NAME, MAX_DEBUG_LOGS, MAX_NETWORK_RECORDS
from models.data_models import LogEntry, LogType, NetworkRequestRecord

logger = logging.getLogger(__name__)
mirror_logger = logging.getLogger(DEBUG_LOGGER_NAME)

T = TypeVar("T")

_MIRROR_LEVELS = {
    LogType.ERROR: logging.ERROR,
    LogType.WARNING: logging.WARNING,
    LogType.SUCCESS: logging.INFO,
    LogType.INFO: logging.INFO,
}


class Subscription:
    """Handle returned by ``subscribe``; releasing it stops delivery to the callback."""

    def __init__(self, buffer: "ObservableBuffer", callback: Callable[[Tuple[Any, ...]], None]):
        self._buffer = buffer
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._buffer._detach(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.unsubscribe()


class ObservableBuffer(Generic[T]):
    """
    Bounded, most-recent-first sequence with synchronous change notification.

    New items are prepended and the sequence is then truncated to ``max_size``,
    so the newest ``max_size`` items are always kept. Every mutation hands each
    subscriber the full new snapshot. Mutation and notification happen under a
    single lock so subscribers see changes in the order they were made.
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._items: Tuple[T, ...] = ()
        self._subscribers: List[Subscription] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._items)

    def snapshot(self) -> Tuple[T, ...]:
        return self._items

    def append(self, item: T) -> None:
        with self._lock:
            self._items = ((item,) + self._items)[: self.max_size]
            self._notify()

    def clear(self) -> None:
        with self._lock:
            self._items = ()
            self._notify()

    def subscribe(self, callback: Callable[[Tuple[T, ...]], None]) -> Subscription:
        """Register a callback for subsequent changes; history is not replayed."""
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def _notify(self) -> None:
        items = self._items
        for subscription in list(self._subscribers):
            if not subscription.active:
                continue
            try:
                subscription.callback(items)
            except Exception:
                logger.exception("Debug log subscriber %r failed", subscription.callback)


class LogStore(ObservableBuffer[LogEntry]):
    """Process-wide debug log shown in the Debug tab."""

    def __init__(self, max_size: int = MAX_DEBUG_LOGS):
        super().__init__(max_size)

    def add_log(self, message: str, type: Any = LogType.INFO, details: Any = None) -> LogEntry:
        """Append a timestamped entry and mirror it to the Python log."""
        entry = LogEntry.create(message, type, details)
        self.append(entry)
        # Also log to the console for server-side debugging
        if entry.details:
            mirror_logger.log(_MIRROR_LEVELS[entry.type], "%s\n%s", entry.label(), entry.details)
        else:
            mirror_logger.log(_MIRROR_LEVELS[entry.type], entry.label())
        return entry

    def clear_logs(self) -> None:
        """Clear everything, then record that the clear happened."""
        with self._lock:
            self.clear()
            self.add_log("Debug logs cleared", LogType.INFO)

    def get_log_text(self) -> str:
        """Get all entries as a single text block, newest first."""
        lines = []
        for entry in self._items:
            lines.append(f"{entry.timestamp.isoformat()} {entry.label()}")
            if entry.details:
                lines.append(entry.details)
        return "\n".join(lines)


class NetworkLog(ObservableBuffer[NetworkRequestRecord]):
    """Bounded history of outbound HTTP calls for the network panel."""

    def __init__(self, max_size: int = MAX_NETWORK_RECORDS):
        super().__init__(max_size)


@contextmanager
def measure_performance(store: LogStore, label: str, enabled: bool = True):
    """Log how long the wrapped block took."""
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        duration = (time.perf_counter() - start) * 1000
        store.add_log(f"Performance: {label}", LogType.INFO, {"duration": f"{duration:.2f}ms"})
