"""Configuration loader for router-watchdog."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import constants

TRIGGER_MODES = ("any", "all")

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(slots=True)
class DeviceConfig:
    host: str = constants.DEFAULT_DEVICE_HOST
    path: str = constants.DEFAULT_DEVICE_PATH
    username: str = ""
    password_hash: str = ""
    request_timeout_seconds: float = 10.0

    @property
    def url(self) -> str:
        host = self.host.strip().rstrip("/")
        if "://" not in host:
            host = f"http://{host}"
        return f"{host}/{self.path.lstrip('/')}"


@dataclass(slots=True)
class RetryConfig:
    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 32.0


@dataclass(slots=True)
class RecoveryConfig:
    poll_interval_seconds: float = 1.0
    poll_failure_delay_seconds: float = 1.0
    grace_seconds: int = 5
    byte_tolerance: int = 10_000_000  # 0 disables the byte threshold
    trigger_mode: str = "any"
    login_failure_delay_seconds: float = 180.0
    reboot_failure_delay_seconds: float = 120.0
    cooldown_seconds: float = 60.0
    settle_uptime_seconds: int = 240


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    verbose: bool = False


@dataclass(slots=True)
class DashboardConfig:
    enabled: bool = True
    max_logs: int = 15
    event_buffer: int = 256


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class WatchdogConfig:
    device: DeviceConfig
    retry: RetryConfig
    recovery: RecoveryConfig
    logging: LoggingConfig
    dashboard: DashboardConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.logging.verbose else self.logging.level


def _apply_environment(parser: ConfigParser, environ: Mapping[str, str]) -> None:
    overrides = {
        "WATCHDOG_HOST": ("device", "host"),
        "WATCHDOG_USERNAME": ("device", "username"),
        "WATCHDOG_PASSWORD_HASH": ("device", "password_hash"),
    }
    for variable, (section, option) in overrides.items():
        value = environ.get(variable)
        if value:
            parser.set(section, option, value)

    debug = environ.get("WATCHDOG_DEBUG")
    if debug is not None:
        parser.set(
            "logging", "verbose", "true" if debug.lower() in _TRUTHY else "false"
        )


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> WatchdogConfig:
    """Load configuration from disk, applying defaults and environment overrides."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser(interpolation=None)
    parser.read_dict(
        {
            "device": {
                "host": constants.DEFAULT_DEVICE_HOST,
                "path": constants.DEFAULT_DEVICE_PATH,
                "username": "",
                "password_hash": "",
                "request_timeout_seconds": "10.0",
            },
            "retry": {
                "max_attempts": "5",
                "base_delay_seconds": "1.0",
                "max_delay_seconds": "32.0",
            },
            "recovery": {
                "poll_interval_seconds": "1.0",
                "poll_failure_delay_seconds": "1.0",
                "grace_seconds": "5",
                "byte_tolerance": "10000000",
                "trigger_mode": "any",
                "login_failure_delay_seconds": "180",
                "reboot_failure_delay_seconds": "120",
                "cooldown_seconds": "60",
                "settle_uptime_seconds": "240",
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "verbose": "false",
            },
            "dashboard": {
                "enabled": "true",
                "max_logs": "15",
                "event_buffer": "256",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    _apply_environment(parser, os.environ if environ is None else environ)

    device = DeviceConfig(
        host=parser.get("device", "host"),
        path=parser.get("device", "path"),
        username=parser.get("device", "username", fallback=""),
        password_hash=parser.get("device", "password_hash", fallback=""),
        request_timeout_seconds=max(
            0.1,
            parser.getfloat("device", "request_timeout_seconds", fallback=10.0),
        ),
    )

    retry_defaults = RetryConfig()
    base_delay = max(
        0.0,
        parser.getfloat(
            "retry", "base_delay_seconds", fallback=retry_defaults.base_delay_seconds
        ),
    )
    retry = RetryConfig(
        max_attempts=max(
            1,
            parser.getint(
                "retry", "max_attempts", fallback=retry_defaults.max_attempts
            ),
        ),
        base_delay_seconds=base_delay,
        max_delay_seconds=max(
            base_delay,
            parser.getfloat(
                "retry", "max_delay_seconds", fallback=retry_defaults.max_delay_seconds
            ),
        ),
    )

    trigger_mode = parser.get("recovery", "trigger_mode", fallback="any").strip().lower()
    if trigger_mode not in TRIGGER_MODES:
        trigger_mode = "any"

    recovery_defaults = RecoveryConfig()

    recovery = RecoveryConfig(
        poll_interval_seconds=max(
            0.0,
            parser.getfloat(
                "recovery",
                "poll_interval_seconds",
                fallback=recovery_defaults.poll_interval_seconds,
            ),
        ),
        poll_failure_delay_seconds=max(
            0.0,
            parser.getfloat(
                "recovery",
                "poll_failure_delay_seconds",
                fallback=recovery_defaults.poll_failure_delay_seconds,
            ),
        ),
        grace_seconds=max(
            0,
            parser.getint(
                "recovery", "grace_seconds", fallback=recovery_defaults.grace_seconds
            ),
        ),
        byte_tolerance=max(
            0,
            parser.getint(
                "recovery", "byte_tolerance", fallback=recovery_defaults.byte_tolerance
            ),
        ),
        trigger_mode=trigger_mode,
        login_failure_delay_seconds=max(
            0.0,
            parser.getfloat(
                "recovery",
                "login_failure_delay_seconds",
                fallback=recovery_defaults.login_failure_delay_seconds,
            ),
        ),
        reboot_failure_delay_seconds=max(
            0.0,
            parser.getfloat(
                "recovery",
                "reboot_failure_delay_seconds",
                fallback=recovery_defaults.reboot_failure_delay_seconds,
            ),
        ),
        cooldown_seconds=max(
            0.0,
            parser.getfloat(
                "recovery",
                "cooldown_seconds",
                fallback=recovery_defaults.cooldown_seconds,
            ),
        ),
        settle_uptime_seconds=max(
            0,
            parser.getint(
                "recovery",
                "settle_uptime_seconds",
                fallback=recovery_defaults.settle_uptime_seconds,
            ),
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO").upper(),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        verbose=parser.getboolean("logging", "verbose", fallback=False),
    )

    dashboard = DashboardConfig(
        enabled=parser.getboolean("dashboard", "enabled", fallback=True),
        max_logs=max(1, parser.getint("dashboard", "max_logs", fallback=15)),
        event_buffer=max(1, parser.getint("dashboard", "event_buffer", fallback=256)),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return WatchdogConfig(
        device=device,
        retry=retry,
        recovery=recovery,
        logging=logging_config,
        dashboard=dashboard,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: WatchdogConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
