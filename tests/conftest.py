"""
Shared fixtures for the Chat Auth Client tests.

The fake backend mimics the chat auth service: it records every request it
receives and serves configurable responses for the auth endpoints plus a few
protected resources.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from client.api_client import ChatAPIClient
from client.auth.token_storage import MemoryCredentialStore

INVALID_UTF8 = b"\xff\xfe\xfa"


@dataclass
class RecordedRequest:
    method: str
    path: str
    authorization: Optional[str]
    body: Any


class FakeBackend:
    """In-process chat backend used by the client tests."""

    def __init__(self):
        self.url = ""
        self.requests: List[RecordedRequest] = []

        self.users: Dict[str, str] = {"alice@example.com": "secret"}
        self.valid_access_tokens: Set[str] = {"A"}
        self.valid_refresh_tokens: Set[str] = {"R"}

        self.login_payload: Dict[str, Any] = {
            "message": "Login successful",
            "status": "success",
            "access_token": "A",
            "refresh_token": "R",
            "expires_in": 3600,
        }
        self.refresh_payload: Any = {
            "message": "Token refreshed successfully",
            "access_token": "B",
            "expires_in": 900,
        }
        self.refresh_status = 200
        self.refresh_delay = 0.0
        self.logout_status = 200
        self.logout_body: Optional[bytes] = None
        self.refresh_body: Optional[bytes] = None
        self.slow_delay = 1.0

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post('/api/auth/login', self.handle_login)
        app.router.add_post('/api/auth/signup', self.handle_signup)
        app.router.add_post('/api/auth/check-email', self.handle_check_email)
        app.router.add_post('/auth/refresh', self.handle_refresh)
        app.router.add_post('/auth/logout', self.handle_logout)
        app.router.add_get('/auth/me', self.handle_me)
        app.router.add_get('/auth/validate', self.handle_validate)
        app.router.add_post('/auth/change-password', self.handle_change_password)
        app.router.add_route('*', '/orders', self.handle_orders)
        app.router.add_get('/always-401', self.handle_always_unauthorized)
        app.router.add_get('/forbidden', self.handle_forbidden)
        app.router.add_get('/slow', self.handle_slow)
        app.router.add_get('/garbled', self.handle_garbled)
        app.router.add_get('/bad-json', self.handle_bad_json)
        app.router.add_get('/plain', self.handle_plain)
        return app

    async def _record(self, request: web.Request) -> Any:
        body = None
        if request.can_read_body:
            text = await request.text()
            if text:
                body = await request.json()
        self.requests.append(RecordedRequest(
            method=request.method,
            path=request.path,
            authorization=request.headers.get('Authorization'),
            body=body
        ))
        return body

    def calls_to(self, path: str) -> List[RecordedRequest]:
        return [r for r in self.requests if r.path == path]

    def _bearer_valid(self, request: web.Request) -> bool:
        header = request.headers.get('Authorization', '')
        if not header.startswith('Bearer '):
            return False
        return header[len('Bearer '):] in self.valid_access_tokens

    async def handle_login(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        if self.users.get(body.get('email')) != body.get('password'):
            return web.Response(status=401, text="Invalid credentials")
        return web.json_response(self.login_payload)

    async def handle_signup(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        if body.get('email') in self.users:
            return web.json_response({"error": "Email already registered"}, status=409)
        self.users[body['email']] = body['password']
        return web.json_response(dict(self.login_payload, message="Signup successful"), status=201)

    async def handle_check_email(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        return web.json_response({"exists": body.get('email') in self.users, "email": body.get('email')})

    async def handle_refresh(self, request: web.Request) -> web.Response:
        await self._record(request)
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)

        header = request.headers.get('Authorization', '')
        token = header[len('Bearer refresh '):] if header.startswith('Bearer refresh ') else None
        if token not in self.valid_refresh_tokens:
            return web.Response(status=401, text="Invalid refresh token")
        if self.refresh_body is not None:
            return web.Response(body=self.refresh_body, content_type='application/json')
        if self.refresh_status != 200:
            return web.Response(status=self.refresh_status, text="Refresh rejected")

        if isinstance(self.refresh_payload, dict):
            if self.refresh_payload.get('access_token'):
                self.valid_access_tokens.add(self.refresh_payload['access_token'])
            if self.refresh_payload.get('refresh_token'):
                self.valid_refresh_tokens.add(self.refresh_payload['refresh_token'])
            return web.json_response(self.refresh_payload)
        return web.Response(status=200, text=str(self.refresh_payload))

    async def handle_logout(self, request: web.Request) -> web.Response:
        await self._record(request)
        if self.logout_body is not None:
            return web.Response(body=self.logout_body, content_type='application/json')
        if self.logout_status != 200:
            return web.Response(status=self.logout_status, text="Logout failed")
        return web.json_response({"message": "Logged out successfully"})

    async def handle_me(self, request: web.Request) -> web.Response:
        await self._record(request)
        if not self._bearer_valid(request):
            return web.Response(status=401, text="Invalid or expired token")
        return web.json_response({"user": {"id": 7, "name": "Alice", "email": "alice@example.com"}})

    async def handle_validate(self, request: web.Request) -> web.Response:
        await self._record(request)
        if not self._bearer_valid(request):
            return web.Response(status=401, text="Invalid token")
        return web.json_response({"valid": True, "user_id": 7})

    async def handle_change_password(self, request: web.Request) -> web.Response:
        body = await self._record(request)
        if not self._bearer_valid(request):
            return web.Response(status=401, text="Unauthorized")
        if body.get('current_password') != "secret":
            return web.Response(status=400, text="Current password is incorrect")
        return web.json_response({"message": "Password changed successfully"})

    async def handle_orders(self, request: web.Request) -> web.Response:
        await self._record(request)
        if not self._bearer_valid(request):
            return web.Response(status=401, text="Invalid or expired token")
        return web.json_response({"orders": [{"id": 1}], "token": request.headers['Authorization']})

    async def handle_always_unauthorized(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(status=401, text="Invalid or expired token")

    async def handle_forbidden(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"error": "Forbidden"}, status=403)

    async def handle_slow(self, request: web.Request) -> web.Response:
        await self._record(request)
        await asyncio.sleep(self.slow_delay)
        return web.json_response({"ok": True})

    async def handle_garbled(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(body=INVALID_UTF8, content_type='application/json')

    async def handle_bad_json(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(text='{"orders": [', content_type='application/json')

    async def handle_plain(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.Response(text="pong")


@pytest.fixture
async def backend():
    """Running fake backend."""
    fake = FakeBackend()
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.url = str(server.make_url('/')).rstrip('/')

    yield fake

    await server.close()


@pytest.fixture
def store():
    """Empty in-memory credential store."""
    return MemoryCredentialStore()


@pytest.fixture
async def client(backend, store):
    """API client pointed at the fake backend."""
    api_client = ChatAPIClient(backend.url, store, timeout=2.0)

    yield api_client

    await api_client.close()
