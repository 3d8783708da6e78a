from datetime import datetime, timezone

import pytest

from router_watchdog.dashboard import (
    DashboardModel,
    WatchdogDashboard,
    format_frequency,
    format_megabytes,
    format_reboot,
    format_signal,
    format_uptime,
    render_header,
    render_log_line,
)
from router_watchdog.events import (
    EventChannel,
    LogLine,
    RadioUpdated,
    RebootRecorded,
    RequestAttempt,
    SignalQualityUpdated,
    StateChanged,
    TrafficUpdated,
    UptimeUpdated,
)


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0:00:00"), (59, "0:00:59"), (3725, "1:02:05"), (90061, "25:01:01"), (-5, "0:00:00")],
)
def test_format_uptime(seconds, expected):
    assert format_uptime(seconds) == expected


def test_format_megabytes():
    assert format_megabytes(12_345_678) == "   12.35MB"
    assert format_megabytes(0) == "    0.00MB"


def test_format_frequency():
    assert format_frequency(None) == "NA"
    assert format_frequency(3500) == "   3500"


def test_format_signal_bars():
    assert format_signal(-4) == " -4 ■■■■"
    assert format_signal(-12) == "-12 ■■□□"
    assert format_signal(-16) == "-16 ■□□□"
    assert format_signal(-9, secondary=True) == " -9 ■■□□"
    assert format_signal(None) == " NA □□□□"


def test_format_reboot():
    assert format_reboot(None) == "NONE"
    stamp = datetime(2024, 5, 1, 12, 0, 5, tzinfo=timezone.utc)
    assert format_reboot(stamp) == stamp.astimezone().strftime("%B %d, %Y %I:%M:%S %p")


def test_model_applies_events():
    model = DashboardModel(max_logs=2)
    stamp = datetime(2024, 5, 1, tzinfo=timezone.utc)

    model.apply(UptimeUpdated(seconds=10))
    model.apply(TrafficUpdated(rx_bytes=5, tx_bytes=6))
    model.apply(RadioUpdated(primary_frequency=1850, secondary_frequency=None))
    model.apply(SignalQualityUpdated(rsrq=-8, rsrq_5g=None))
    model.apply(RebootRecorded(occurred_at=stamp))
    model.apply(StateChanged(previous="monitoring", current="degraded"))

    assert model.uptime_seconds == 10
    assert (model.rx_bytes, model.tx_bytes) == (5, 6)
    assert model.primary_frequency == 1850
    assert model.secondary_frequency is None
    assert model.rsrq == -8
    assert model.last_reboot_at == stamp
    assert model.state == "degraded"
    assert not model.apply(RequestAttempt("monitor", 1, "success", 0.1))


def test_model_keeps_last_logs():
    model = DashboardModel(max_logs=2)

    for index in range(4):
        assert model.apply(LogLine(level="INFO", message=f"line {index}"))

    assert [line.message for line in model.logs] == ["line 2", "line 3"]


def test_render_header_marks_missing_radio():
    model = DashboardModel(primary_frequency=1850, uptime_seconds=30)

    header = render_header(model, settle_uptime_seconds=240)

    assert "1850" in header
    assert "NA" in header
    assert "0:00:30" in header
    assert "NONE" in header
    assert "MONITORING" in header


def test_render_log_line_keeps_text():
    text = render_log_line(LogLine(level="ERROR", message="12:00:00 ERROR [boom]"))

    assert text.plain == "12:00:00 ERROR [boom]"


@pytest.mark.asyncio
async def test_dashboard_consumes_channel():
    channel = EventChannel()
    app = WatchdogDashboard(channel, max_logs=5)

    async with app.run_test() as pilot:
        channel.emit(UptimeUpdated(seconds=3725))
        channel.emit(RadioUpdated(primary_frequency=1850, secondary_frequency=3500))
        channel.emit(LogLine(level="INFO", message="12:00:00 INFO started"))

        for _ in range(50):
            await pilot.pause(0.01)
            if app.model.logs:
                break

        assert app.model.uptime_seconds == 3725
        assert app.model.secondary_frequency == 3500
        assert [line.message for line in app.model.logs] == ["12:00:00 INFO started"]

        await pilot.press("c")
        await pilot.pause()
        assert not app.model.logs
