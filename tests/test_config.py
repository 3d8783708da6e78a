from pathlib import Path

from router_watchdog.config import load_config, save_config


def test_load_config_defaults(config_path: Path) -> None:
    config = load_config(config_path, environ={})

    assert config.device.host == "192.168.0.1"
    assert config.device.url == "http://192.168.0.1/cgi-bin/http.cgi"
    assert config.device.request_timeout_seconds == 10.0
    assert config.device.username == ""
    assert config.retry.max_attempts == 5
    assert config.retry.base_delay_seconds == 1.0
    assert config.retry.max_delay_seconds == 32.0
    assert config.recovery.grace_seconds == 5
    assert config.recovery.byte_tolerance == 10_000_000
    assert config.recovery.trigger_mode == "any"
    assert config.recovery.login_failure_delay_seconds == 180.0
    assert config.recovery.reboot_failure_delay_seconds == 120.0
    assert config.recovery.cooldown_seconds == 60.0
    assert config.recovery.settle_uptime_seconds == 240
    assert config.logging.level == "INFO"
    assert config.logging.path is None
    assert config.logging.verbose is False
    assert config.log_level == "INFO"
    assert config.dashboard.enabled is True
    assert config.dashboard.max_logs == 15
    assert config.health.enabled is False
    assert config.path == config_path


def test_load_config_overrides_defaults(config_path: Path) -> None:
    config_path.write_text(
        """
[device]
host = 10.0.0.1:8080
username = admin
password_hash = abc%123

[recovery]
grace_seconds = 300
byte_tolerance = 0
trigger_mode = ALL

[logging]
path = ~/watchdog.log

[health]
enabled = true
port = 8099
""",
        encoding="utf-8",
    )

    config = load_config(config_path, environ={})

    assert config.device.url == "http://10.0.0.1:8080/cgi-bin/http.cgi"
    assert config.device.username == "admin"
    assert config.device.password_hash == "abc%123"
    assert config.recovery.grace_seconds == 300
    assert config.recovery.byte_tolerance == 0
    assert config.recovery.trigger_mode == "all"
    assert config.logging.path == Path("~/watchdog.log").expanduser()
    assert config.health.enabled is True
    assert config.health.port == 8099


def test_load_config_clamps_invalid_values(config_path: Path) -> None:
    config_path.write_text(
        """
[retry]
max_attempts = 0
base_delay_seconds = 4
max_delay_seconds = 1

[recovery]
trigger_mode = sometimes
grace_seconds = -3
""",
        encoding="utf-8",
    )

    config = load_config(config_path, environ={})

    assert config.retry.max_attempts == 1
    assert config.retry.max_delay_seconds == 4.0
    assert config.recovery.trigger_mode == "any"
    assert config.recovery.grace_seconds == 0


def test_environment_overrides_file(config_path: Path) -> None:
    config_path.write_text(
        "[device]\nhost = 10.0.0.1\nusername = file-user\n", encoding="utf-8"
    )

    config = load_config(
        config_path,
        environ={
            "WATCHDOG_HOST": "192.168.8.1",
            "WATCHDOG_USERNAME": "env-user",
            "WATCHDOG_PASSWORD_HASH": "env-hash",
            "WATCHDOG_DEBUG": "Yes",
        },
    )

    assert config.device.host == "192.168.8.1"
    assert config.device.username == "env-user"
    assert config.device.password_hash == "env-hash"
    assert config.logging.verbose is True
    assert config.log_level == "DEBUG"


def test_device_url_accepts_scheme(config_path: Path) -> None:
    config = load_config(config_path, environ={"WATCHDOG_HOST": "https://router.lan/"})

    assert config.device.url == "https://router.lan/cgi-bin/http.cgi"


def test_save_config_round_trips(config_path: Path) -> None:
    config = load_config(config_path, environ={})
    config.raw.set("recovery", "grace_seconds", "42")

    save_config(config)

    assert load_config(config_path, environ={}).recovery.grace_seconds == 42
