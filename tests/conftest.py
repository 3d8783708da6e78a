from __future__ import annotations

import json
from collections import deque
from pathlib import Path
from typing import Any, Deque, Union

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

ENDPOINT = "/cgi-bin/http.cgi"

Reply = Union[dict, str, bytes, web.StreamResponse]


def monitor_reply(
    *,
    uptime: Any = "1000",
    rx: Any = "2000000",
    tx: Any = "1000000",
    freq: Any = "1850",
    freq_5g: Any = "3500",
    rsrq: Any = "-9",
    rsrq_5g: Any = "-11",
) -> dict:
    """Build a monitor reply; pass ``None`` to omit a field."""

    fields = {
        "uptime": uptime,
        "wan_rx_bytes": rx,
        "wan_tx_bytes": tx,
        "FREQ": freq,
        "FREQ_5G": freq_5g,
        "RSRQ": rsrq,
        "RSRQ_5G": rsrq_5g,
    }
    reply: dict = {"success": True}
    reply.update({key: value for key, value in fields.items() if value is not None})
    return reply


class FakeRouter:
    """Scripted stand-in for the router's control endpoint."""

    def __init__(self) -> None:
        self.replies: Deque[Reply] = deque()
        self.default: Reply = monitor_reply()
        self.requests: list[dict] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    @property
    def commands(self) -> list[int]:
        return [request.get("cmd") for request in self.requests]

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(json.loads(await request.read()))
        reply = self.replies.popleft() if self.replies else self.default
        if isinstance(reply, web.StreamResponse):
            return reply
        if isinstance(reply, dict):
            return web.json_response(reply)
        if isinstance(reply, str):
            reply = reply.encode("utf-8")
        return web.Response(body=reply, content_type="application/json")


@pytest_asyncio.fixture
async def fake_router():
    router = FakeRouter()
    app = web.Application()
    app.router.add_post(ENDPOINT, router.handle)

    async with TestServer(app) as server:
        router.url = str(server.make_url(ENDPOINT))
        router.host = f"{server.host}:{server.port}"
        yield router


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "router-watchdog.cfg"
