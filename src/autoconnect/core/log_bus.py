"""In-memory publish/subscribe channel for structured run logs."""

import traceback
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Literal, Optional

from autoconnect.utils import log

LogLevel = Literal["debug", "info", "warn", "error"]

LOG_LEVELS = ("debug", "info", "warn", "error")

# loguru level names for each bus level
_LOGURU_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "error": "ERROR",
}


@dataclass(frozen=True)
class ErrorInfo:
    """Name, message and stack text of an exception attached to a log entry."""
    name: str
    message: str
    stack: str = ""

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorInfo":
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(name=type(error).__name__, message=str(error), stack=stack)

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "message": self.message, "stack": self.stack}


@dataclass(frozen=True)
class LogEntry:
    """A single immutable log event."""
    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Optional[Dict[str, Any]] = None
    error: Optional[ErrorInfo] = None

    def __post_init__(self):
        if self.level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.level}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "context": dict(self.context) if self.context else None,
            "error": self.error.to_dict() if self.error else None,
        }


Subscriber = Callable[[LogEntry], None]


class LogBus:
    """
    Bounded ring buffer of log entries plus synchronous fan-out to subscribers.

    Publishing never fails because of a subscriber: a callback that raises is
    reported through loguru and the remaining subscribers still get the entry.
    """

    def __init__(self, capacity: int = 1000):
        """
        Initialize the bus.

        Args:
            capacity: Maximum number of entries kept in memory
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._buffer: Deque[LogEntry] = deque(maxlen=capacity)
        self._subscribers: List[Subscriber] = []

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, entry: LogEntry):
        """Store the entry and deliver it to every current subscriber."""
        self._buffer.append(entry)

        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._subscribers):
            try:
                callback(entry)
            except Exception as e:
                log.warning(f"Log subscriber {callback!r} failed: {e}")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for entries published from now on.

        Returns:
            Unsubscribe handle; calling it more than once is a no-op
        """
        token = Registration(callback)
        self._subscribers.append(token)

        def unsubscribe():
            if token.active:
                token.active = False
                self._subscribers.remove(token)

        return unsubscribe

    def snapshot(self, level: Optional[str] = None, limit: Optional[int] = None) -> List[LogEntry]:
        """
        Get buffered entries, oldest first.

        Args:
            level: Only return entries of this level
            limit: Only return the last ``limit`` matching entries
        """
        entries = list(self._buffer)
        if level:
            entries = [entry for entry in entries if entry.level == level]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def clear(self):
        self._buffer.clear()


class Registration:
    """
    One subscription of a callback. Registering the same callable twice
    gives two registrations that are removed independently.
    """

    def __init__(self, callback: Callable[..., None]):
        self.callback = callback
        self.active = True

    def __call__(self, *args):
        self.callback(*args)

    def __repr__(self) -> str:
        return repr(self.callback)


class BusLogger:
    """
    Publishes structured entries to a LogBus and mirrors them to loguru.

    Keyword arguments become the entry's ``context``.
    """

    def __init__(self, bus: LogBus, component: str = "automation"):
        self.bus = bus
        self.component = component

    def debug(self, message: str, **context: Any) -> LogEntry:
        return self._emit("debug", message, None, context)

    def info(self, message: str, **context: Any) -> LogEntry:
        return self._emit("info", message, None, context)

    def warning(self, message: str, error: Optional[BaseException] = None, **context: Any) -> LogEntry:
        return self._emit("warn", message, error, context)

    def error(self, message: str, error: Optional[BaseException] = None, **context: Any) -> LogEntry:
        return self._emit("error", message, error, context)

    def action(self, action: str, **context: Any) -> LogEntry:
        """Log an automation action with its timestamp."""
        return self.info(f"Action: {action}", **context)

    def _emit(
        self,
        level: LogLevel,
        message: str,
        error: Optional[BaseException],
        context: Dict[str, Any]
    ) -> LogEntry:
        entry = LogEntry(
            level=level,
            message=message,
            context=context or None,
            error=ErrorInfo.from_exception(error) if error is not None else None,
        )
        log.bind(component=self.component, **context).log(_LOGURU_LEVELS[level], message)
        self.bus.publish(entry)
        return entry
