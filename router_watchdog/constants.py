"""Constants used across the router-watchdog package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "router-watchdog"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_DEVICE_HOST = "192.168.0.1"
DEFAULT_DEVICE_PATH = "/cgi-bin/http.cgi"

# Wire command codes understood by the router's control endpoint.
CMD_MONITOR = 133
CMD_LOGIN = 100
CMD_REBOOT = 6

DEFAULT_LANGUAGE = "EN"
REBOOT_TYPE_SOFT = 1

REBOOT_TIMESTAMP_FORMAT = "%B %d, %Y %I:%M:%S %p"
