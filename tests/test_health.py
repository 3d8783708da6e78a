from datetime import datetime, timezone

import aiohttp
import pytest

from router_watchdog.health import HealthReporter, HealthServer


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("monitor", True, "running")
    await reporter.update("device", False, "5g missing")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    components = {item["name"]: item for item in snapshot["components"]}
    assert components["monitor"]["healthy"] is True
    assert components["device"]["healthy"] is False
    assert components["device"]["detail"] == "5g missing"
    assert snapshot["lastRebootAt"] is None
    assert "controllerState" not in snapshot


@pytest.mark.asyncio
async def test_health_reporter_controller_state_affects_status():
    reporter = HealthReporter()
    rebooted = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    await reporter.update("monitor", True)
    await reporter.set_controller_state("rebooting", healthy=False)
    await reporter.record_reboot(rebooted)

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    assert snapshot["controllerState"]["state"] == "rebooting"
    assert snapshot["controllerState"]["healthy"] is False
    assert snapshot["lastRebootAt"] == "2024-05-01T12:00:00+00:00"


@pytest.mark.asyncio
async def test_health_server_serves_snapshot(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("monitor", True)
    await reporter.set_controller_state("monitoring", healthy=True)

    host = "127.0.0.1"
    server = HealthServer(reporter, host, unused_tcp_port)
    await server.start()

    try:
        assert server.bound_port == unused_tcp_port
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{unused_tcp_port}/healthz") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"

            await reporter.update("device", False, "unreachable")
            async with session.get(f"http://{host}:{unused_tcp_port}/healthz") as response:
                assert response.status == 503
    finally:
        await server.stop()
