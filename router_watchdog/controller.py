"""Monitoring and recovery state machine.

The controller polls the router, keeps a baseline of the last moment the
secondary (5G) radio was seen, and reboots the router once the radio has been
missing for longer than the configured tolerance. A brief loss of 5G while the
router keeps working on the primary radio is tolerated; only a sustained loss,
measured in device uptime and in bytes moved since the baseline, triggers a
login followed by a reboot.

Every failure resolves into a delay. The loop ends only through :meth:`stop`
or task cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from .config import RecoveryConfig
from .evaluator import SignalState, UnusablePollError, evaluate
from .events import (
    EventSink,
    NullSink,
    RadioUpdated,
    RebootRecorded,
    SignalQualityUpdated,
    StateChanged,
    TrafficUpdated,
    UptimeUpdated,
)
from .executor import RequestError, RequestKind
from .gateway import (
    CommandPayload,
    ResponseEnvelope,
    build_login_payload,
    build_monitor_payload,
    build_reboot_payload,
)

if TYPE_CHECKING:
    from .health import HealthReporter

LOGGER = logging.getLogger(__name__)


class ControllerState(str, Enum):
    MONITORING = "monitoring"
    DEGRADED = "degraded"
    """Secondary radio missing, still within tolerance."""
    AUTHENTICATING = "authenticating"
    REBOOTING = "rebooting"
    COOLDOWN = "cooldown"
    """Quiet period after a reboot while the router comes back up."""


class CommandExecutor(Protocol):
    async def execute(
        self, payload: CommandPayload, kind: RequestKind
    ) -> ResponseEnvelope:
        ...


@dataclass(frozen=True)
class DeviceBaseline:
    """Uptime and cumulative traffic at the last known-good poll."""

    uptime: int = 0
    total_bytes: int = 0

    @classmethod
    def from_signal(cls, signal: SignalState) -> "DeviceBaseline":
        return cls(uptime=signal.uptime_seconds, total_bytes=signal.total_bytes)

    def seeded(self, signal: SignalState) -> "DeviceBaseline":
        """Fill zero fields from ``signal`` (cold start or after a reboot)."""

        return DeviceBaseline(
            uptime=self.uptime or signal.uptime_seconds,
            total_bytes=self.total_bytes or signal.total_bytes,
        )

    def is_ahead_of(self, signal: SignalState) -> bool:
        """True when the router's counters went backwards (it restarted)."""

        return (
            signal.uptime_seconds < self.uptime
            or signal.total_bytes < self.total_bytes
        )


@dataclass(frozen=True)
class OutageWindow:
    seconds: int
    bytes: int

    @classmethod
    def measure(cls, baseline: DeviceBaseline, signal: SignalState) -> "OutageWindow":
        return cls(
            seconds=max(0, signal.uptime_seconds - baseline.uptime),
            bytes=max(0, signal.total_bytes - baseline.total_bytes),
        )


def tolerance_exceeded(window: OutageWindow, policy: RecoveryConfig) -> bool:
    """Return whether an outage has outgrown the grace period or byte budget.

    With ``trigger_mode`` ``"any"`` a single exceeded threshold is enough;
    ``"all"`` requires every enabled threshold. A zero ``byte_tolerance``
    disables the byte threshold.
    """

    checks = [window.seconds >= policy.grace_seconds]
    if policy.byte_tolerance > 0:
        checks.append(window.bytes >= policy.byte_tolerance)

    if policy.trigger_mode == "all":
        return all(checks)
    return any(checks)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class RecoveryController:
    """Drive the poll, evaluate, recover loop for a single router."""

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        username: str,
        password_hash: str,
        policy: Optional[RecoveryConfig] = None,
        sink: Optional[EventSink] = None,
        health: Optional[HealthReporter] = None,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], datetime] = _default_clock,
    ) -> None:
        self._executor = executor
        self._username = username
        self._password_hash = password_hash
        self._policy = policy or RecoveryConfig()
        self._sink: EventSink = sink or NullSink()
        self._health = health
        self._stop_event = stop_event or asyncio.Event()
        self._clock = clock

        self._state = ControllerState.MONITORING
        self._baseline = DeviceBaseline()
        self._last_reboot_at: Optional[datetime] = None

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def baseline(self) -> DeviceBaseline:
        return self._baseline

    @property
    def last_reboot_at(self) -> Optional[datetime]:
        return self._last_reboot_at

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Run until :meth:`stop` is called or the task is cancelled."""

        LOGGER.info(
            "Watchdog started (grace=%ds, byte_tolerance=%d, trigger=%s)",
            self._policy.grace_seconds,
            self._policy.byte_tolerance,
            self._policy.trigger_mode,
        )
        while not self._stop_event.is_set():
            try:
                delay = await self.step()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Unexpected error in monitoring cycle")
                await self._set_state(ControllerState.MONITORING)
                delay = self._policy.poll_failure_delay_seconds

            await self._wait(delay)

        LOGGER.info("Watchdog stopped")

    async def step(self) -> float:
        """Perform one cycle and return the seconds to wait before the next."""

        if self._state is ControllerState.COOLDOWN:
            await self._set_state(ControllerState.MONITORING)

        try:
            envelope = await self._executor.execute(
                build_monitor_payload(), RequestKind.MONITOR
            )
        except RequestError as exc:
            LOGGER.error("Monitoring cycle failed: %s", exc)
            await self._report_device(False, "unreachable")
            return self._policy.poll_failure_delay_seconds

        try:
            signal = evaluate(envelope)
        except UnusablePollError as exc:
            LOGGER.warning("Skipping poll: %s", exc)
            await self._report_device(False, str(exc))
            return self._policy.poll_failure_delay_seconds

        self._publish(signal)
        LOGGER.debug("Total traffic %.2f MB", signal.total_bytes / 1_000_000)

        if not signal.primary_radio_present:
            LOGGER.debug("No data connection")
            await self._report_device(False, "no data connection")
            return self._policy.poll_interval_seconds

        if signal.secondary_radio_present:
            self._baseline = DeviceBaseline.from_signal(signal)
            LOGGER.debug("5G available (FREQ_5G=%s)", signal.secondary_frequency)
            await self._report_device(True, "5g")
            return self._policy.poll_interval_seconds

        await self._set_state(ControllerState.DEGRADED)
        await self._report_device(False, "5g missing")
        if self._baseline.is_ahead_of(signal):
            LOGGER.info(
                "Router counters reset (uptime %ds < %ds), restarting outage window",
                signal.uptime_seconds,
                self._baseline.uptime,
            )
            self._baseline = DeviceBaseline()
        self._baseline = self._baseline.seeded(signal)
        window = OutageWindow.measure(self._baseline, signal)

        if not tolerance_exceeded(window, self._policy):
            LOGGER.warning(
                "Waiting for 5G recovery: down %ds, %.2f MB used on 4G",
                window.seconds,
                window.bytes / 1_000_000,
            )
            await self._set_state(ControllerState.MONITORING)
            return 0.0

        LOGGER.warning(
            "5G missing for %ds (%.2f MB on 4G), initiating reboot",
            window.seconds,
            window.bytes / 1_000_000,
        )
        return await self._recover()

    async def _recover(self) -> float:
        await self._set_state(ControllerState.AUTHENTICATING)
        try:
            login = await self._executor.execute(
                build_login_payload(self._username, self._password_hash),
                RequestKind.LOGIN,
            )
        except RequestError as exc:
            return await self._abort_recovery(
                "Login failed: %s", exc, self._policy.login_failure_delay_seconds
            )

        if not login.success or not login.session_id:
            return await self._abort_recovery(
                "Login failed: %s",
                "no session granted",
                self._policy.login_failure_delay_seconds,
            )

        await self._set_state(ControllerState.REBOOTING)
        try:
            await self._executor.execute(
                build_reboot_payload(login.session_id), RequestKind.REBOOT
            )
        except RequestError as exc:
            return await self._abort_recovery(
                "Reboot sequence failed: %s",
                exc,
                self._policy.reboot_failure_delay_seconds,
            )

        self._last_reboot_at = self._clock()
        self._baseline = DeviceBaseline()
        self._sink.emit(RebootRecorded(occurred_at=self._last_reboot_at))
        if self._health is not None:
            await self._health.record_reboot(self._last_reboot_at)
        await self._set_state(ControllerState.COOLDOWN)
        LOGGER.info(
            "Reboot sequence completed, resuming in %.0fs", self._policy.cooldown_seconds
        )
        return self._policy.cooldown_seconds

    async def _abort_recovery(self, message: str, reason: object, delay: float) -> float:
        LOGGER.error(message + ", retrying in %.0fs", reason, delay)
        await self._set_state(ControllerState.MONITORING)
        return delay

    async def _set_state(self, state: ControllerState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        LOGGER.debug("State %s -> %s", previous.value, state.value)
        self._sink.emit(StateChanged(previous=previous.value, current=state.value))
        if self._health is not None:
            await self._health.set_controller_state(
                state.value, healthy=state is ControllerState.MONITORING
            )

    async def _report_device(self, healthy: bool, detail: str) -> None:
        if self._health is not None:
            await self._health.update("device", healthy, detail)

    def _publish(self, signal: SignalState) -> None:
        self._sink.emit(UptimeUpdated(seconds=signal.uptime_seconds))
        self._sink.emit(TrafficUpdated(rx_bytes=signal.rx_bytes, tx_bytes=signal.tx_bytes))
        self._sink.emit(
            RadioUpdated(
                primary_frequency=signal.primary_frequency,
                secondary_frequency=signal.secondary_frequency,
            )
        )
        self._sink.emit(SignalQualityUpdated(rsrq=signal.rsrq, rsrq_5g=signal.rsrq_5g))

    async def _wait(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
