import fakeredis
import httpx
import pytest
import pytest_asyncio

from chatwidget.main import create_app

WELCOME = "Hi! How can I help you today?"


@pytest_asyncio.fixture
async def app(settings, redis, backend):
    application = create_app(settings=settings, redis=redis)
    yield application
    for widget in list(application.state.previews.values()):
        await widget.shutdown()


@pytest_asyncio.fixture
async def api(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def preview_id(api, backend):
    resp = await api.post("/v1/previews", json={"apiUrl": backend.url, "tenantId": "tenant-1", "title": "Demo"})
    assert resp.status_code == 201
    return resp.json()["preview_id"]


class TestPreviewsApi:
    @pytest.mark.asyncio
    async def test_health(self, api):
        resp = await api.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_create_rejects_bad_config(self, api):
        resp = await api.post("/v1/previews", json={"apiUrl": "", "tenantId": "t"})

        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_snapshot_before_open(self, api, preview_id):
        resp = await api.get(f"/v1/previews/{preview_id}")

        body = resp.json()
        assert resp.status_code == 200
        assert body["is_open"] is False
        assert body["session_key"] is None
        assert body["messages"] == []

    @pytest.mark.asyncio
    async def test_open_and_chat(self, api, preview_id, backend):
        opened = (await api.post(f"/v1/previews/{preview_id}/open")).json()
        assert opened["is_open"] is True
        assert opened["session_key"] == "sess_1"
        assert [m["body"] for m in opened["messages"]] == [WELCOME]

        resp = await api.post(f"/v1/previews/{preview_id}/messages", json={"text": "Hello"})

        body = resp.json()
        assert [m["body"] for m in body["messages"]] == [WELCOME, "Hello", "Hi there!"]
        assert [m["senderType"] for m in body["messages"]] == ["bot", "visitor", "bot"]

    @pytest.mark.asyncio
    async def test_handover_and_end(self, api, preview_id, backend):
        await api.post(f"/v1/previews/{preview_id}/open")

        handed = (await api.post(f"/v1/previews/{preview_id}/handover", json={"reason": "human"})).json()
        assert handed["status_text"] == "Connecting you to a specialist..."

        ended = (await api.post(f"/v1/previews/{preview_id}/end")).json()
        assert ended["session_key"] is None
        assert [m["body"] for m in ended["messages"]] == [WELCOME, "Chat ended. Thank you!"]
        assert backend.calls_to("end") == [{"session_id": 101}]

    @pytest.mark.asyncio
    async def test_previews_do_not_share_sessions(self, api, preview_id, backend):
        other = (await api.post("/v1/previews", json={"apiUrl": backend.url, "tenantId": "tenant-1"})).json()["preview_id"]

        first = (await api.post(f"/v1/previews/{preview_id}/open")).json()
        second = (await api.post(f"/v1/previews/{other}/open")).json()

        assert first["session_key"] != second["session_key"]
        assert len(backend.calls_to("start")) == 2

    @pytest.mark.asyncio
    async def test_close_and_delete(self, api, app, preview_id):
        await api.post(f"/v1/previews/{preview_id}/open")

        closed = (await api.post(f"/v1/previews/{preview_id}/close")).json()
        assert closed["is_open"] is False
        assert closed["session_key"] == "sess_1"

        resp = await api.delete(f"/v1/previews/{preview_id}")
        assert resp.status_code == 204
        assert preview_id not in app.state.previews

        resp = await api.get(f"/v1/previews/{preview_id}")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "preview_not_found"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,suffix", [("post", "/open"), ("post", "/end"), ("delete", "")])
    async def test_unknown_preview(self, api, method, suffix):
        resp = await api.request(method.upper(), f"/v1/previews/missing{suffix}")

        assert resp.status_code == 404


class TestLifespan:
    @pytest.mark.asyncio
    async def test_shutdown_releases_previews_and_own_redis(self, settings, monkeypatch, backend):
        client = fakeredis.FakeAsyncRedis(decode_responses=True)
        closed = []
        original = client.aclose

        async def aclose():
            closed.append(True)
            await original()

        client.aclose = aclose
        monkeypatch.setattr("chatwidget.main.build_redis", lambda _settings: client)
        application = create_app(settings=settings)

        async with application.router.lifespan_context(application):
            transport = httpx.ASGITransport(app=application)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as api:
                created = await api.post("/v1/previews", json={"apiUrl": backend.url, "tenantId": "tenant-1"})
                await api.post(f"/v1/previews/{created.json()['preview_id']}/open")

        assert application.state.previews == {}
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_injected_redis_is_not_closed(self, settings, redis):
        application = create_app(settings=settings, redis=redis)

        async with application.router.lifespan_context(application):
            pass

        assert await redis.ping()
