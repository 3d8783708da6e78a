"""Turn a monitor reply into a typed signal state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .gateway import ResponseEnvelope, parse_numeric


class UnusablePollError(ValueError):
    """The reply lacks a counter required to evaluate the device."""


@dataclass(frozen=True)
class SignalState:
    uptime_seconds: int
    rx_bytes: int
    tx_bytes: int
    primary_frequency: Optional[int] = None
    secondary_frequency: Optional[int] = None
    rsrq: Optional[int] = None
    rsrq_5g: Optional[int] = None

    @property
    def primary_radio_present(self) -> bool:
        return self.primary_frequency is not None

    @property
    def secondary_radio_present(self) -> bool:
        return self.secondary_frequency is not None

    @property
    def total_bytes(self) -> int:
        return self.rx_bytes + self.tx_bytes


def evaluate(envelope: ResponseEnvelope) -> SignalState:
    """Evaluate one monitor reply.

    Raises:
        UnusablePollError: If uptime, RX or TX counters are missing or not
            numeric. Partial data is never evaluated.
    """

    uptime = parse_numeric(envelope.uptime)
    if uptime is None:
        raise UnusablePollError("uptime not found")

    rx_bytes = parse_numeric(envelope.wan_rx_bytes)
    if rx_bytes is None:
        raise UnusablePollError("wan_rx_bytes not found")

    tx_bytes = parse_numeric(envelope.wan_tx_bytes)
    if tx_bytes is None:
        raise UnusablePollError("wan_tx_bytes not found")

    return SignalState(
        uptime_seconds=uptime,
        rx_bytes=rx_bytes,
        tx_bytes=tx_bytes,
        primary_frequency=parse_numeric(envelope.freq),
        secondary_frequency=parse_numeric(envelope.freq_5g),
        rsrq=parse_numeric(envelope.rsrq),
        rsrq_5g=parse_numeric(envelope.rsrq_5g),
    )


def signal_tier(rsrq: Optional[int], *, secondary: bool = False) -> int:
    """Bucket an RSRQ reading into a 1 (poor) to 4 (excellent) tier.

    A missing reading is tier 0. The secondary radio uses a slightly
    stricter second boundary than the primary one.
    """

    if rsrq is None:
        return 0
    if secondary:
        if rsrq <= -15:
            return 1
        if rsrq <= -9:
            return 2
    else:
        if rsrq < -15:
            return 1
        if rsrq <= -10:
            return 2
    if rsrq <= -5:
        return 3
    return 4
