"""Typed events flowing from the monitor loop to the presentation layer.

The monitor loop owns all device state. Everything the dashboard shows reaches
it through an :class:`EventSink`, which is one-directional and never blocks
the producer: :class:`EventChannel` drops its oldest buffered event rather
than wait for a slow consumer.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol, Union


@dataclass(frozen=True)
class UptimeUpdated:
    seconds: int


@dataclass(frozen=True)
class TrafficUpdated:
    rx_bytes: int
    tx_bytes: int


@dataclass(frozen=True)
class RadioUpdated:
    """Frequency of each radio, ``None`` when the radio is absent."""

    primary_frequency: Optional[int]
    secondary_frequency: Optional[int]


@dataclass(frozen=True)
class SignalQualityUpdated:
    rsrq: Optional[int]
    rsrq_5g: Optional[int]


@dataclass(frozen=True)
class RebootRecorded:
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class StateChanged:
    previous: str
    current: str


@dataclass(frozen=True)
class RequestAttempt:
    kind: str
    attempt: int
    outcome: str
    elapsed_seconds: float


@dataclass(frozen=True)
class LogLine:
    level: str
    message: str


WatchdogEvent = Union[
    UptimeUpdated,
    TrafficUpdated,
    RadioUpdated,
    SignalQualityUpdated,
    RebootRecorded,
    StateChanged,
    RequestAttempt,
    LogLine,
]


class EventSink(Protocol):
    """Destination for watchdog events."""

    def emit(self, event: WatchdogEvent) -> None:
        """Deliver ``event`` without blocking the caller."""
        ...


class NullSink:
    """Sink that discards every event."""

    def emit(self, event: WatchdogEvent) -> None:
        return None


class EventChannel:
    """Bounded FIFO of events between the monitor task and a consumer."""

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[WatchdogEvent] = asyncio.Queue(
            maxsize=max(1, maxsize)
        )
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of events discarded because the buffer was full."""
        return self._dropped

    def emit(self, event: WatchdogEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    continue
                self._dropped += 1

    async def get(self) -> WatchdogEvent:
        return await self._queue.get()

    def get_nowait(self) -> WatchdogEvent:
        return self._queue.get_nowait()

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()
