"""Status observers.

Implementations of IStatusObserver that the event bus forwards progress
messages to.
"""

import logging
import sys
import threading
from typing import Callable, Optional, TextIO

from ..domain.entities import Severity
from ..domain.ports import IStatusObserver

logger = logging.getLogger(__name__)

SEVERITY_PREFIX = {
    Severity.INFO: "[INFO]",
    Severity.SUCCESS: "[ OK ]",
    Severity.WARNING: "[WARN]",
    Severity.ERROR: "[FAIL]",
}


class ConsoleObserver(IStatusObserver):
    """Write progress lines to a text stream (stdout by default)."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def notify(self, message: str, severity: Severity) -> None:
        stream = self.stream or sys.stdout
        stream.write(f"{SEVERITY_PREFIX.get(severity, '[INFO]')} {message}\n")
        stream.flush()


class CallbackObserver(IStatusObserver):
    """Forward progress to a plain ``(message, severity)`` callable."""

    def __init__(self, callback: Callable[[str, Severity], None]):
        self.callback = callback

    def notify(self, message: str, severity: Severity) -> None:
        self.callback(message, severity)


class RecordingObserver(IStatusObserver):
    """Keep every message in memory, in delivery order."""

    def __init__(self):
        self._lock = threading.Lock()
        self.messages: list[tuple[str, Severity]] = []

    def notify(self, message: str, severity: Severity) -> None:
        with self._lock:
            self.messages.append((message, severity))

    def texts(self, severity: Optional[Severity] = None) -> list[str]:
        """Messages, optionally only those of one severity."""
        with self._lock:
            return [
                text for text, sev in self.messages
                if severity is None or sev == severity
            ]
