"""Shared fixtures: a temp token file and an in-process fake API server."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from auth.token_store import TokenStore
from config import ClientSettings
from session_manager import SessionManager


class FakeBackend:
    """Accepts only ``valid_token``; /auth/refresh hands out ``next_tokens``.

    ``hold_refresh_for`` makes the refresh endpoint wait until that many
    requests have been rejected, so concurrent 401s all pile up behind one
    refresh.
    """

    def __init__(self):
        self.base_url = ""
        self.valid_token = "access-2"
        self.next_tokens = ("access-2", "refresh-2")
        self.refresh_mode = "ok"        # ok | error | malformed | keep-refresh
        self.hold_refresh_for = 0
        self.logout_status = 200
        self.refresh_calls = 0
        self.refresh_bodies: list = []
        self.logout_calls = 0
        self.rejections = 0
        self.authorized: list[str] = []
        self.on_authorized = None
        self._rejected = asyncio.Event()

        self.app = web.Application()
        self.app.router.add_get("/users/profile", self.profile)
        self.app.router.add_post("/auth/refresh", self.refresh)
        self.app.router.add_post("/auth/logout", self.logout)
        self.app.router.add_get("/always-401", self.always_401)
        self.app.router.add_get("/expired-403", self.expired_403)
        self.app.router.add_get("/missing", self.missing)
        self.app.router.add_get("/slow", self.slow)
        self.app.router.add_get("/text", self.text)
        self.app.router.add_get("/bad-json", self.bad_json)
        self.app.router.add_get("/binary", self.binary)
        self.app.router.add_get("/echo-headers", self.echo_headers)

    def _reject(self):
        self.rejections += 1
        if self.rejections >= self.hold_refresh_for:
            self._rejected.set()
        return web.json_response({"success": False, "error": "Token expired"}, status=401)

    async def profile(self, request):
        auth = request.headers.get("Authorization")
        if auth != f"Bearer {self.valid_token}":
            delay = float(request.query.get("delay", 0))
            if delay:
                await asyncio.sleep(delay)
            return self._reject()
        self.authorized.append(auth)
        if self.on_authorized:
            self.on_authorized()
        return web.json_response({"success": True, "data": {"userId": 7}})

    async def refresh(self, request):
        self.refresh_calls += 1
        self.refresh_bodies.append(await request.json())
        if self.hold_refresh_for:
            await asyncio.wait_for(self._rejected.wait(), 5)
            await asyncio.sleep(0.05)
        if self.refresh_mode == "error":
            return web.json_response({"success": False, "message": "boom"}, status=500)
        if self.refresh_mode == "malformed":
            return web.json_response({"success": True, "data": {"token": "nope"}})
        access, refresh = self.next_tokens
        data = {"accessToken": access}
        if self.refresh_mode != "keep-refresh":
            data["refreshToken"] = refresh
        return web.json_response({"success": True, "data": data})

    async def logout(self, request):
        self.logout_calls += 1
        return web.json_response({"success": self.logout_status == 200}, status=self.logout_status)

    async def always_401(self, request):
        return web.json_response({"message": "Unauthorized"}, status=401)

    async def expired_403(self, request):
        return web.json_response({"success": False, "message": "jwt expired"}, status=403)

    async def missing(self, request):
        return web.json_response({"success": False, "message": "Job not found"}, status=404)

    async def slow(self, request):
        await asyncio.sleep(2)
        return web.json_response({"success": True})

    async def text(self, request):
        return web.Response(text="pong")

    async def binary(self, request):
        return web.Response(body=b"\xff\xfe bad", content_type="text/plain")

    async def bad_json(self, request):
        return web.Response(text="{oops", content_type="application/json")

    async def echo_headers(self, request):
        return web.json_response(dict(request.headers))


@pytest.fixture
def token_file(tmp_path):
    return tmp_path / "config.json"


@pytest.fixture
def tokens(token_file):
    store = TokenStore(token_file)
    store.set("access-1", "refresh-1")
    return store


@pytest_asyncio.fixture
async def backend():
    fake = FakeBackend()
    server = TestServer(fake.app)
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest.fixture
def settings(backend, token_file):
    return ClientSettings(
        api_url=backend.base_url,
        api_timeout=5.0,
        app_version="9.9.9",
        app_env="test",
        token_file=token_file,
        session_expired_cooldown=0.5,
    )


@pytest_asyncio.fixture
async def manager(settings, tokens):
    m = SessionManager.create(settings, token_store=tokens)
    yield m
    await m.dispose()
