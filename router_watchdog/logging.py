"""Logging configuration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .events import EventSink, LogLine

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
EVENT_LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
EVENT_TIME_FORMAT = "%H:%M:%S"


class EventLogHandler(logging.Handler):
    """Forward log records to an event sink as :class:`LogLine` events.

    A line identical to the one forwarded just before it is dropped, so a
    device stuck in the same condition does not flood the dashboard.
    """

    def __init__(self, sink: EventSink, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._sink = sink
        self._last_message: Optional[str] = None
        self.setFormatter(logging.Formatter(EVENT_LOG_FORMAT, EVENT_TIME_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            # Compare without the timestamp, which differs on every line.
            message = record.getMessage().strip()
            key = f"{record.levelname}:{record.name}:{message}"
            if key == self._last_message:
                return
            self._last_message = key
            self._sink.emit(LogLine(level=record.levelname, message=self.format(record)))
        except Exception:
            self.handleError(record)


def configure_logging(
    level: str = "INFO",
    *,
    log_path: Optional[Path] = None,
    verbose: bool = False,
    sink: Optional[EventSink] = None,
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO". Ignored when ``verbose`` is set.
    log_path:
        Optional filesystem path for a file handler. When absent, only console logging is configured.
    verbose:
        Log at DEBUG, including each request attempt.
    sink:
        When given, log lines are routed to this event sink instead of the console,
        leaving the terminal to the dashboard.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    resolved = "DEBUG" if verbose else level
    logging.basicConfig(
        level=getattr(logging, resolved.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if sink is not None:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.addHandler(EventLogHandler(sink))

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    if not verbose:
        logging.getLogger("asyncio").setLevel(logging.WARNING)
