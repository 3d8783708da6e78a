"""Terminal dashboard showing live router status and watchdog logs."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.widgets import Footer, RichLog, Static

from . import constants
from .evaluator import signal_tier
from .events import (
    EventChannel,
    LogLine,
    RadioUpdated,
    RebootRecorded,
    SignalQualityUpdated,
    StateChanged,
    TrafficUpdated,
    UptimeUpdated,
    WatchdogEvent,
)

PINK = "#ff87d7"
LIME = "#5fff00"
TIER_COLORS = {0: "grey50", 1: "#ff38c7", 2: "#ffd438", 3: "#68e1fc", 4: "#80fc68"}
LEVEL_STYLES = {
    "DEBUG": "bold cyan",
    "INFO": "bold green",
    "WARNING": "bold yellow",
    "ERROR": "bold white on red",
    "CRITICAL": "bold red",
}


def format_uptime(seconds: int) -> str:
    hours, remainder = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def format_megabytes(value: int) -> str:
    return f"{value / 1_000_000:8.2f}MB"


def format_frequency(frequency: Optional[int]) -> str:
    return "NA" if frequency is None else f"{frequency:>7}"


def format_signal(rsrq: Optional[int], *, secondary: bool = False) -> str:
    tier = signal_tier(rsrq, secondary=secondary)
    bars = "■" * tier + "□" * (4 - tier)
    value = " NA" if rsrq is None else f"{rsrq:3d}"
    return f"{value} {bars}"


def format_reboot(occurred_at: Optional[datetime]) -> str:
    if occurred_at is None:
        return "NONE"
    return occurred_at.astimezone().strftime(constants.REBOOT_TIMESTAMP_FORMAT)


@dataclass
class DashboardModel:
    """Latest values received from the monitor loop."""

    max_logs: int = 15
    primary_frequency: Optional[int] = None
    secondary_frequency: Optional[int] = None
    rsrq: Optional[int] = None
    rsrq_5g: Optional[int] = None
    rx_bytes: int = 0
    tx_bytes: int = 0
    uptime_seconds: int = 0
    last_reboot_at: Optional[datetime] = None
    state: str = "monitoring"
    logs: Deque[LogLine] = field(default_factory=deque)

    def apply(self, event: WatchdogEvent) -> bool:
        """Fold ``event`` into the model. Returns True for a new log line."""

        if isinstance(event, UptimeUpdated):
            self.uptime_seconds = event.seconds
        elif isinstance(event, TrafficUpdated):
            self.rx_bytes = event.rx_bytes
            self.tx_bytes = event.tx_bytes
        elif isinstance(event, RadioUpdated):
            self.primary_frequency = event.primary_frequency
            self.secondary_frequency = event.secondary_frequency
        elif isinstance(event, SignalQualityUpdated):
            self.rsrq = event.rsrq
            self.rsrq_5g = event.rsrq_5g
        elif isinstance(event, RebootRecorded):
            self.last_reboot_at = event.occurred_at
        elif isinstance(event, StateChanged):
            self.state = event.current
        elif isinstance(event, LogLine):
            self.logs.append(event)
            while len(self.logs) > self.max_logs:
                self.logs.popleft()
            return True
        return False


def _frequency_markup(frequency: Optional[int]) -> str:
    if frequency is None:
        return f"[on {PINK}]NA[/]"
    return f"[{LIME}]{format_frequency(frequency)}[/]"


def _signal_markup(rsrq: Optional[int], *, secondary: bool) -> str:
    color = TIER_COLORS[signal_tier(rsrq, secondary=secondary)]
    return f"[{color}]{format_signal(rsrq, secondary=secondary)}[/]"


def render_header(model: DashboardModel, *, settle_uptime_seconds: int = 240) -> str:
    """Render the status panel as Rich markup."""

    uptime_color = PINK if model.uptime_seconds < settle_uptime_seconds else LIME
    reboot_color = LIME if model.last_reboot_at is None else PINK
    lines = [
        "[b]Router Watchdog[/b]",
        "",
        f"[b]4G[/b] {_frequency_markup(model.primary_frequency)}    "
        f"[b]5G[/b] {_frequency_markup(model.secondary_frequency)}",
        f"[b]ᯤ:[/b] {_signal_markup(model.rsrq, secondary=False)}    "
        f"[b]ᯤ:[/b] {_signal_markup(model.rsrq_5g, secondary=True)}",
        f"[b]↑U[/b]{format_megabytes(model.tx_bytes)}  "
        f"[b]↓D[/b]{format_megabytes(model.rx_bytes)}",
        f"[b]UPtime:[/b] [{uptime_color}]{format_uptime(model.uptime_seconds)}[/]",
        f"[b]REboot:[/b] [{reboot_color}]{format_reboot(model.last_reboot_at)}[/]",
        f"[b]State:[/b]  {model.state.upper()}",
    ]
    return "\n".join(lines)


def render_log_line(line: LogLine) -> Text:
    text = Text(line.message)
    text.highlight_words([line.level], style=LEVEL_STYLES.get(line.level, ""))
    return text


class WatchdogDashboard(App):
    """Textual front end consuming the watchdog event channel."""

    TITLE = "Router Watchdog"

    CSS = """
    #status {
        width: 48;
        height: auto;
        border: double $accent;
        padding: 0 2;
        margin: 1;
    }
    #log {
        height: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("ctrl+c", "quit", "Quit"),
        ("c", "clear_log", "Clear"),
    ]

    def __init__(
        self,
        channel: EventChannel,
        *,
        max_logs: int = 15,
        settle_uptime_seconds: int = 240,
    ) -> None:
        super().__init__()
        self._channel = channel
        self._settle_uptime_seconds = settle_uptime_seconds
        self.model = DashboardModel(max_logs=max_logs)

    def compose(self) -> ComposeResult:
        yield Static(self._header(), id="status")
        yield RichLog(id="log", max_lines=self.model.max_logs, wrap=True)
        yield Footer()

    def on_mount(self) -> None:
        self.run_worker(self._consume_events(), exclusive=True, group="events")

    async def _consume_events(self) -> None:
        while True:
            event = await self._channel.get()
            self.handle_event(event)
            # Drain whatever queued up while we were redrawing.
            while not self._channel.empty():
                self.handle_event(self._channel.get_nowait())
            await asyncio.sleep(0)

    def handle_event(self, event: WatchdogEvent) -> None:
        if self.model.apply(event):
            self.query_one("#log", RichLog).write(render_log_line(event))
        else:
            self.query_one("#status", Static).update(self._header())

    def action_clear_log(self) -> None:
        self.model.logs.clear()
        self.query_one("#log", RichLog).clear()

    def _header(self) -> str:
        return render_header(self.model, settle_uptime_seconds=self._settle_uptime_seconds)
