"""Main application entry-point for router-watchdog."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from .config import WatchdogConfig, load_config
from .controller import RecoveryController
from .dashboard import WatchdogDashboard
from .evaluator import SignalState, evaluate
from .events import EventChannel, EventSink, NullSink
from .executor import RequestExecutor, RequestKind
from .gateway import build_login_payload, build_monitor_payload, build_reboot_payload
from .health import HealthReporter, HealthServer
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


class CredentialsMissingError(RuntimeError):
    """Raised when the router username or password hash is not configured."""


def build_executor(
    config: WatchdogConfig, *, sink: Optional[EventSink] = None
) -> RequestExecutor:
    return RequestExecutor(
        config.device.url,
        timeout=config.device.request_timeout_seconds,
        max_attempts=config.retry.max_attempts,
        base_delay=config.retry.base_delay_seconds,
        max_delay=config.retry.max_delay_seconds,
        sink=sink,
    )


def require_credentials(config: WatchdogConfig) -> None:
    missing = [
        name
        for name, value in (
            ("username", config.device.username),
            ("password_hash", config.device.password_hash),
        )
        if not value
    ]
    if missing:
        raise CredentialsMissingError(
            "missing device credentials: " + ", ".join(missing)
        )


class WatchdogApp:
    """Coordinates the monitor loop, the dashboard and the health endpoint.

    The monitor loop runs as a background task feeding an
    :class:`EventChannel`; the dashboard (when enabled) runs in the same event
    loop and consumes it. Closing the dashboard or receiving SIGTERM stops the
    monitor loop.
    """

    def __init__(
        self,
        config: Optional[WatchdogConfig] = None,
        *,
        use_dashboard: Optional[bool] = None,
    ) -> None:
        self._config = config or load_config()
        self._use_dashboard = (
            self._config.dashboard.enabled if use_dashboard is None else use_dashboard
        )
        self._channel = EventChannel(maxsize=self._config.dashboard.event_buffer)
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._controller: Optional[RecoveryController] = None

    @property
    def use_dashboard(self) -> bool:
        return self._use_dashboard

    @property
    def channel(self) -> EventChannel:
        return self._channel

    async def run(self) -> None:
        config = self._config
        stop_event = asyncio.Event()

        LOGGER.info("router-watchdog starting with config: %s", config.path)
        LOGGER.info("Monitoring %s", config.device.url)
        await self._start_health_server()

        sink: EventSink = self._channel if self._use_dashboard else NullSink()
        executor = build_executor(config, sink=sink)
        self._controller = RecoveryController(
            executor,
            username=config.device.username,
            password_hash=config.device.password_hash,
            policy=config.recovery,
            sink=sink,
            health=self._health,
            stop_event=stop_event,
        )
        await self._health.update("monitor", True, "running")

        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGTERM, self._controller.stop)

        monitor_task = asyncio.create_task(self._controller.run())
        try:
            if self._use_dashboard:
                dashboard = WatchdogDashboard(
                    self._channel,
                    max_logs=config.dashboard.max_logs,
                    settle_uptime_seconds=config.recovery.settle_uptime_seconds,
                )
                await dashboard.run_async()
            else:
                await monitor_task
        finally:
            self._controller.stop()
            monitor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor_task
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGTERM)
            await executor.aclose()
            await self._health.update("monitor", False, "stopped")
            await self._stop_health_server()

    @classmethod
    def start(
        cls,
        config: Optional[WatchdogConfig] = None,
        *,
        use_dashboard: Optional[bool] = None,
    ) -> int:
        instance = cls(config=config, use_dashboard=use_dashboard)
        resolved = instance._config
        try:
            require_credentials(resolved)
        except CredentialsMissingError as exc:
            configure_logging(resolved.log_level, verbose=resolved.logging.verbose)
            LOGGER.error("Cannot start: %s", exc)
            return 1

        # The dashboard owns the terminal, so log lines travel through the
        # event channel instead of the console.
        configure_logging(
            resolved.log_level,
            log_path=resolved.logging.path,
            verbose=resolved.logging.verbose,
            sink=instance.channel if instance.use_dashboard else None,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("router-watchdog received shutdown signal")
        return 0

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled:
            return
        self._health_server = HealthServer(self._health, health.host, health.port)
        try:
            await self._health_server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            self._health_server = None

    async def _stop_health_server(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None


async def probe_status(config: WatchdogConfig) -> SignalState:
    """Poll the router once and evaluate the reply."""

    async with build_executor(config) as executor:
        envelope = await executor.execute(build_monitor_payload(), RequestKind.MONITOR)
    return evaluate(envelope)


async def reboot_now(config: WatchdogConfig) -> bool:
    """Log in and reboot the router once. Returns False if login is rejected."""

    require_credentials(config)
    async with build_executor(config) as executor:
        login = await executor.execute(
            build_login_payload(config.device.username, config.device.password_hash),
            RequestKind.LOGIN,
        )
        if not login.success or not login.session_id:
            LOGGER.error("Login rejected by %s", config.device.host)
            return False
        await executor.execute(
            build_reboot_payload(login.session_id), RequestKind.REBOOT
        )
    LOGGER.info("Reboot command accepted by %s", config.device.host)
    return True
