"""Shared fixtures: a fake public chat backend, fast settings, fake Redis."""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import fakeredis
import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from chatwidget.core.settings import Settings
from chatwidget.widget import ChatWidget, init

TENANT_ID = "tenant-1"
PUBLIC = "/api/v1/chat/public"


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------

class FakeBackend:
    """
    In-process stand-in for the public chat API and its websocket.

    ``failures`` maps an operation name (start, message, end, status,
    handover) to an HTTP status to answer with; ``rejections`` holds the
    operations that answer 200 with ``success: false``; ``delays`` holds
    per-operation sleeps before answering; ``raw_bodies`` answers an operation
    with a 200 carrying the given bytes verbatim.
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.failures: Dict[str, int] = {}
        self.rejections: set = set()
        self.delays: Dict[str, float] = {}
        self.raw_bodies: Dict[str, bytes] = {}

        self.statuses: Dict[int, str] = {}
        self.reply: Dict[str, Any] = {"content": "Hi there!", "is_agent": False}
        self.push_before_reply: Optional[dict] = None
        self.refuse_ws = False

        self.sockets: List[web.WebSocketResponse] = []
        self.ws_connects = 0
        self.ws_keys: List[str] = []
        self.ws_received: List[dict] = []

        self._sessions = 0
        self.server: Optional[TestServer] = None
        self.url = ""

    # ---------------- helpers ----------------
    def calls_to(self, name: str) -> List[Any]:
        return [body for op, body in self.calls if op == name]

    async def _gate(self, name: str, body: Any = None) -> Optional[web.Response]:
        self.calls.append((name, body))
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            return web.json_response({"success": False, "error": "boom"}, status=self.failures[name])
        if name in self.rejections:
            return web.json_response({"success": False, "error": "rejected"})
        if name in self.raw_bodies:
            return web.Response(body=self.raw_bodies[name], content_type="text/plain")
        return None

    @staticmethod
    def ok(data: Any) -> web.Response:
        return web.json_response({"success": True, "data": data})

    async def push(self, frame: dict) -> None:
        for ws in list(self.sockets):
            if not ws.closed:
                await ws.send_str(json.dumps(frame))

    async def drop_connections(self) -> None:
        for ws in list(self.sockets):
            await ws.close()

    # ---------------- routes ----------------
    async def start(self, request: web.Request) -> web.Response:
        body = await request.json()
        failed = await self._gate("start", body)
        if failed is not None:
            return failed

        self._sessions += 1
        conversation_id = 100 + self._sessions
        self.statuses.setdefault(conversation_id, "active")
        return self.ok(
            {
                "session_id": f"sess_{self._sessions}",
                "conversation_id": conversation_id,
                "message": "Chat session started",
            }
        )

    async def message(self, request: web.Request) -> web.Response:
        body = await request.json()
        if self.push_before_reply is not None:
            await self.push(self.push_before_reply)
        failed = await self._gate("message", body)
        if failed is not None:
            return failed
        return self.ok(dict(self.reply))

    async def end(self, request: web.Request) -> web.Response:
        body = await request.json()
        failed = await self._gate("end", body)
        if failed is not None:
            return failed
        self.statuses[body["session_id"]] = "ended"
        return self.ok({"message": "Chat session ended"})

    async def status(self, request: web.Request) -> web.Response:
        conversation_id = int(request.match_info["conversation_id"])
        failed = await self._gate("status", conversation_id)
        if failed is not None:
            return failed
        if conversation_id not in self.statuses:
            return web.json_response({"success": False, "error": "not found"}, status=404)
        return self.ok({"status": self.statuses[conversation_id], "conversation_id": conversation_id})

    async def handover(self, request: web.Request) -> web.Response:
        body = await request.json()
        failed = await self._gate("handover", body)
        if failed is not None:
            return failed
        return self.ok({"message": "Connecting you with an agent...", "status": "handover_requested"})

    async def websocket(self, request: web.Request) -> web.WebSocketResponse:
        if self.refuse_ws:
            raise web.HTTPServiceUnavailable()

        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.ws_connects += 1
        self.ws_keys.append(request.match_info["session_key"])
        self.sockets.append(ws)
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self.ws_received.append(json.loads(msg.data))
        finally:
            self.sockets.remove(ws)
        return ws

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(f"{PUBLIC}/start", self.start)
        app.router.add_post(f"{PUBLIC}/message", self.message)
        app.router.add_post(f"{PUBLIC}/end", self.end)
        app.router.add_get(f"{PUBLIC}/status/{{conversation_id}}", self.status)
        app.router.add_post(f"{PUBLIC}/handover", self.handover)
        app.router.add_get("/ws/public/{session_key}", self.websocket)
        return app


@pytest_asyncio.fixture
async def backend():
    fake = FakeBackend()
    server = TestServer(fake.build_app())
    await server.start_server()
    fake.server = server
    fake.url = str(server.make_url("")).rstrip("/")
    yield fake
    await fake.drop_connections()
    await server.close()


# ---------------------------------------------------------------------------
# Settings / storage
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        TENANT_ID=TENANT_ID,
        HEARTBEAT_INTERVAL_SECONDS=0.05,
        RECONNECT_DELAY_SECONDS=0.05,
        RECONNECT_MAX_DELAY_SECONDS=0.2,
        RECONNECT_JITTER=0,
        END_CLOSE_DELAY_SECONDS=0.05,
        REQUEST_TIMEOUT_SECONDS=2,
    )


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def make_widget(backend, settings, redis):
    created: List[ChatWidget] = []

    def _make(**options: Any) -> ChatWidget:
        data = {"apiUrl": backend.url, "tenantId": TENANT_ID, **options}
        widget = init(data, settings=settings, redis=redis)
        created.append(widget)
        return widget

    yield _make
    for widget in created:
        await widget.shutdown()


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------

async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    return _wait_until
