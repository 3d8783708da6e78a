"""Retrying request execution against the router control endpoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import replace
from enum import Enum
from typing import Awaitable, Callable, Optional

import aiohttp

from .events import EventSink, NullSink, RequestAttempt
from .gateway import CommandPayload, EnvelopeParseError, ResponseEnvelope, parse_envelope

LOGGER = logging.getLogger(__name__)

SleepType = Callable[[float], Awaitable[None]]


class RequestKind(str, Enum):
    """Classification that changes how a reply is interpreted."""

    MONITOR = "monitor"
    LOGIN = "login"
    REBOOT = "reboot"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TRANSPORT_ERROR = "transport_error"
    READ_ERROR = "read_error"
    MALFORMED = "malformed"
    REJECTED = "rejected"
    AUTH_REJECTED = "auth_rejected"


class RequestError(Exception):
    """Base class for request pipeline failures."""


class RetriesExhaustedError(RequestError):
    """Raised when every attempt of a single call has failed."""

    def __init__(
        self, kind: RequestKind, attempts: int, last_error: Optional[BaseException]
    ) -> None:
        super().__init__(
            f"{kind.value} request failed after {attempts} attempts: {last_error}"
        )
        self.kind = kind
        self.attempts = attempts
        self.last_error = last_error


class ApplicationRejectedError(RequestError):
    """The router answered with ``success`` false."""


def calculate_backoff(attempt: int, base: float = 1.0, cap: float = 32.0) -> float:
    """Return the delay after failed attempt ``attempt`` (0-based)."""

    if attempt < 0:
        attempt = 0
    # Clamp the exponent so large attempt numbers stay finite.
    return min(base * (2 ** min(attempt, 30)), cap)


class RequestExecutor:
    """Send one command with bounded retries and exponential backoff.

    Args:
        url: Full URL of the router's control endpoint.
        session: Optional shared ``aiohttp`` session. One is created lazily
            (and closed by :meth:`aclose`) when omitted.
        timeout: Total timeout for a single HTTP attempt, in seconds.
        max_attempts: Attempts per call before giving up.
        base_delay: Backoff base, in seconds.
        max_delay: Backoff cap, in seconds.
        sink: Receives one :class:`RequestAttempt` per attempt.
        sleep: Awaitable used between attempts.
    """

    def __init__(
        self,
        url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 32.0,
        sink: Optional[EventSink] = None,
        sleep: SleepType = asyncio.sleep,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._session = session
        self._owns_session = session is None
        self._sink: EventSink = sink or NullSink()
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def execute(
        self, payload: CommandPayload, kind: RequestKind
    ) -> ResponseEnvelope:
        """Send ``payload`` until it succeeds or the attempt budget is spent.

        Returns the parsed envelope on success. A login reply lacking a
        session id is returned immediately with ``success`` false.

        Raises:
            RetriesExhaustedError: If no attempt succeeded.
        """

        session = self._ensure_session()
        body = payload.to_wire()
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            started = time.monotonic()
            outcome, envelope, error = await self._attempt(session, body, kind)
            elapsed = time.monotonic() - started
            self._record_attempt(kind, attempt, outcome, elapsed, error)

            if envelope is not None:
                return envelope

            last_error = error
            if attempt + 1 < self.max_attempts:
                await self._sleep(
                    calculate_backoff(attempt, self.base_delay, self.max_delay)
                )

        raise RetriesExhaustedError(kind, self.max_attempts, last_error)

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _attempt(
        self,
        session: aiohttp.ClientSession,
        body: dict,
        kind: RequestKind,
    ) -> tuple[AttemptOutcome, Optional[ResponseEnvelope], Optional[BaseException]]:
        try:
            response = await session.post(
                self.url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return AttemptOutcome.TRANSPORT_ERROR, None, exc

        try:
            # The router drops the connection mid-reboot before it finishes
            # writing a reply, so the status line is all we can rely on.
            if kind is RequestKind.REBOOT and response.status == 200:
                return AttemptOutcome.SUCCESS, ResponseEnvelope.reboot_acknowledged(), None

            try:
                raw = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                return AttemptOutcome.READ_ERROR, None, exc
        finally:
            with contextlib.suppress(Exception):
                response.release()

        try:
            envelope = parse_envelope(raw)
        except EnvelopeParseError as exc:
            return AttemptOutcome.MALFORMED, None, exc

        if kind is RequestKind.LOGIN and not envelope.has_session:
            return AttemptOutcome.AUTH_REJECTED, replace(envelope, success=False), None

        if envelope.success:
            return AttemptOutcome.SUCCESS, envelope, None

        return (
            AttemptOutcome.REJECTED,
            None,
            ApplicationRejectedError("request failed with success=false"),
        )

    def _record_attempt(
        self,
        kind: RequestKind,
        attempt: int,
        outcome: AttemptOutcome,
        elapsed: float,
        error: Optional[BaseException],
    ) -> None:
        number = attempt + 1
        if outcome is AttemptOutcome.SUCCESS:
            LOGGER.debug(
                "%s request successful (attempt %d, %.2fs)", kind.value, number, elapsed
            )
        elif outcome is AttemptOutcome.AUTH_REJECTED:
            LOGGER.warning(
                "%s rejected: no session id in reply (attempt %d)", kind.value, number
            )
        else:
            LOGGER.error(
                "%s request failed: %s (attempt %d/%d): %s",
                kind.value,
                outcome.value,
                number,
                self.max_attempts,
                error,
            )

        self._sink.emit(
            RequestAttempt(
                kind=kind.value,
                attempt=number,
                outcome=outcome.value,
                elapsed_seconds=elapsed,
            )
        )
