"""Command payloads and response envelope for the router control endpoint.

The router speaks a fixed JSON command set over a single HTTP endpoint. Every
request is a flat JSON object carrying a numeric ``cmd`` code; every reply is a
flat JSON object whose fields are optional and, when present, mostly encoded as
strings. This module has no state and performs no I/O.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import constants


class EnvelopeParseError(ValueError):
    """Raised when a response body is not a JSON object."""


@dataclass(frozen=True)
class CommandPayload:
    """Common fields shared by every command sent to the router."""

    cmd: int
    method: str
    language: str = constants.DEFAULT_LANGUAGE
    session_id: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return {
            "cmd": self.cmd,
            "method": self.method,
            "language": self.language,
            "sessionId": self.session_id,
        }


@dataclass(frozen=True)
class MonitorPayload(CommandPayload):
    cmd: int = constants.CMD_MONITOR
    method: str = "GET"


@dataclass(frozen=True)
class LoginPayload(CommandPayload):
    cmd: int = constants.CMD_LOGIN
    method: str = "POST"
    username: str = ""
    passwd: str = ""
    is_auto_upgrade: str = "0"

    def to_wire(self) -> Dict[str, Any]:
        payload = super().to_wire()
        payload.update(
            {
                "username": self.username,
                "passwd": self.passwd,
                "isAutoUpgrade": self.is_auto_upgrade,
            }
        )
        return payload

    def __repr__(self) -> str:
        return (
            f"LoginPayload(cmd={self.cmd}, username={self.username!r}, passwd='***')"
        )


@dataclass(frozen=True)
class RebootPayload(CommandPayload):
    cmd: int = constants.CMD_REBOOT
    method: str = "POST"
    reboot_type: int = constants.REBOOT_TYPE_SOFT

    def to_wire(self) -> Dict[str, Any]:
        return {
            "cmd": self.cmd,
            "rebootType": self.reboot_type,
            "method": self.method,
            "language": self.language,
            "sessionId": self.session_id,
        }


def build_monitor_payload() -> MonitorPayload:
    return MonitorPayload()


def build_login_payload(
    username: str, password_hash: str, session_id: str = ""
) -> LoginPayload:
    return LoginPayload(username=username, passwd=password_hash, session_id=session_id)


def build_reboot_payload(session_id: str) -> RebootPayload:
    return RebootPayload(session_id=session_id)


def parse_numeric(value: Any) -> Optional[int]:
    """Normalise a wire field into an integer or ``None``.

    The router encodes numbers as strings and omits or blanks fields for
    radios that are down. A missing field, ``null`` and a present but
    non-numeric value (``""``, ``"-"``, ``"NA"``) are all reported as ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        return str(value)
    return None


@dataclass(frozen=True)
class ResponseEnvelope:
    """Parsed reply from the router. Every field is optional."""

    success: bool = False
    session_id: Optional[str] = None
    uptime: Optional[str] = None
    wan_rx_bytes: Optional[str] = None
    wan_tx_bytes: Optional[str] = None
    freq: Optional[str] = None
    freq_5g: Optional[str] = None
    rsrq: Optional[str] = None
    rsrq_5g: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return bool(self.session_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResponseEnvelope":
        session_id = data.get("sessionId")
        return cls(
            success=data.get("success") is True,
            session_id=session_id if isinstance(session_id, str) and session_id else None,
            uptime=_as_text(data.get("uptime")),
            wan_rx_bytes=_as_text(data.get("wan_rx_bytes")),
            wan_tx_bytes=_as_text(data.get("wan_tx_bytes")),
            freq=_as_text(data.get("FREQ")),
            freq_5g=_as_text(data.get("FREQ_5G")),
            rsrq=_as_text(data.get("RSRQ")),
            rsrq_5g=_as_text(data.get("RSRQ_5G")),
        )

    @classmethod
    def reboot_acknowledged(cls) -> "ResponseEnvelope":
        """Envelope assumed when the router drops the connection mid-reboot."""

        return cls(success=True, freq_5g="-", uptime="0")


def parse_envelope(body: bytes) -> ResponseEnvelope:
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EnvelopeParseError(f"invalid JSON response: {exc}") from exc

    if not isinstance(data, dict):
        raise EnvelopeParseError(
            f"expected a JSON object, got {type(data).__name__}"
        )

    return ResponseEnvelope.from_dict(data)
