"""Health reporting for the running watchdog."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from aiohttp import web

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Tracks component statuses and the controller state."""

    def __init__(self) -> None:
        self._components: Dict[str, ComponentStatus] = {}
        self._controller: Optional[ComponentStatus] = None
        self._last_reboot_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            self._components[name] = ComponentStatus(
                name=name, healthy=healthy, detail=detail
            )

    async def set_controller_state(self, state: str, *, healthy: bool) -> None:
        async with self._lock:
            self._controller = ComponentStatus(
                name="controller", healthy=healthy, detail=state
            )

    async def record_reboot(self, occurred_at: datetime) -> None:
        async with self._lock:
            self._last_reboot_at = occurred_at

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            components = [status.as_dict() for status in self._components.values()]
            controller = self._controller
            last_reboot_at = self._last_reboot_at

        healthy = all(item["healthy"] for item in components)
        if controller is not None and not controller.healthy:
            healthy = False

        payload: Dict[str, object] = {
            "status": "ok" if healthy else "degraded",
            "components": components,
            "lastRebootAt": (
                last_reboot_at.isoformat(timespec="seconds") if last_reboot_at else None
            ),
        }
        if controller is not None:
            payload["controllerState"] = {
                "state": controller.detail,
                "healthy": controller.healthy,
                "updatedAt": controller.updated_at.isoformat(timespec="seconds"),
            }

        return payload


class HealthServer:
    """Minimal HTTP server exposing `/healthz` for status checks."""

    def __init__(self, reporter: HealthReporter, host: str, port: int) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz",
            self._host,
            self.bound_port,
        )

    @property
    def bound_port(self) -> int:
        """Actual listening port, resolved when configured with port 0."""
        if self._runner is not None:
            for address in self._runner.addresses:
                if isinstance(address, tuple) and len(address) >= 2:
                    return int(address[1])
        return self._port

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = await self._reporter.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)
