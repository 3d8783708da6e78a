import logging

import pytest

from router_watchdog.events import EventChannel, LogLine
from router_watchdog.logging import EventLogHandler, configure_logging


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _lines(channel: EventChannel) -> list[LogLine]:
    lines = []
    while not channel.empty():
        lines.append(channel.get_nowait())
    return lines


def test_event_handler_forwards_and_deduplicates():
    channel = EventChannel()
    logger = logging.getLogger("router_watchdog.tests.dedupe")
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    handler = EventLogHandler(channel)
    logger.addHandler(handler)
    try:
        logger.warning("5G missing")
        logger.warning("5G missing")
        logger.error("5G missing")
        logger.warning("5G missing")
        logger.info("reboot sequence completed")
    finally:
        logger.removeHandler(handler)

    lines = _lines(channel)
    assert [line.level for line in lines] == ["WARNING", "ERROR", "WARNING", "INFO"]
    assert lines[0].message.endswith("WARNING 5G missing")
    assert lines[-1].message.endswith("INFO reboot sequence completed")


def test_configure_logging_routes_to_sink(restore_root_logging):
    channel = EventChannel()

    configure_logging("INFO", sink=channel)
    root = logging.getLogger()

    assert root.level == logging.INFO
    assert [type(h) for h in root.handlers] == [EventLogHandler]

    logging.getLogger("router_watchdog.tests").debug("hidden")
    logging.getLogger("router_watchdog.tests").info("shown")

    assert [line.message.split(" ", 1)[1] for line in _lines(channel)] == [
        "INFO shown"
    ]


def test_configure_logging_verbose_and_file(tmp_path, restore_root_logging):
    log_path = tmp_path / "logs" / "watchdog.log"

    configure_logging("WARNING", log_path=log_path, verbose=True)
    logging.getLogger("router_watchdog.tests").debug("to file")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logging.getLogger().level == logging.DEBUG
    assert "to file" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("aiohttp.access").level == logging.WARNING
