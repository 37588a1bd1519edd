"""Pytest configuration for Nine Picture Grid tests.

Ensures the project root is in sys.path and provides a fake Supabase
backend built on ``httpx.MockTransport``.
"""

import json
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from core.auth import AuthService, AuthState
from core.backend import SupabaseBackend
from core.debug_logger import LogStore, NetworkLog
from core.network import build_http_client
from models.data_models import BackendConfig, LogType, Session, User

BACKEND_URL = "https://example-project.supabase.co"
ANON_KEY = "anon-key-0123456789abcdef"


class FakeSupabase:
    """Routes requests by method and path; records every request it sees."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.objects: Dict[str, bytes] = {}
        self.overrides: Dict[str, httpx.Response] = {}

    def storage_calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/storage/")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        key = f"{request.method} {path}"
        if key in self.overrides:
            return self.overrides[key]

        if path == "/auth/v1/health":
            return httpx.Response(200, json={"name": "GoTrue"})
        if path.startswith("/storage/v1/object/list/"):
            return httpx.Response(200, json=[{"name": name, "id": name} for name in sorted(self.objects)])
        if path.startswith("/storage/v1/object/") and request.method == "POST":
            name = path.rsplit("/", 1)[-1]
            self.objects[name] = request.content
            return httpx.Response(200, json={"Key": path.split("/storage/v1/object/", 1)[1]})
        if path.startswith("/storage/v1/object/") and request.method == "DELETE":
            prefixes = json.loads(request.content)["prefixes"]
            for name in prefixes:
                self.objects.pop(name, None)
            return httpx.Response(200, json=[{"name": name} for name in prefixes])
        return httpx.Response(404, json={"message": f"no route for {key}"})


def make_session(user_id: str = "user-1", email: str = "ada@example.com",
                 expires_at: Optional[int] = 1893456000) -> Session:
    return Session(
        access_token="access-token-abcdefghijkl",
        refresh_token="refresh-token",
        expires_at=expires_at,
        user=User(id=user_id, email=email, role="authenticated"),
    )


@pytest.fixture
def store() -> LogStore:
    return LogStore()


@pytest.fixture
def network_log() -> NetworkLog:
    return NetworkLog()


@pytest.fixture
def config() -> BackendConfig:
    return BackendConfig(url=BACKEND_URL, anon_key=ANON_KEY)


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest_asyncio.fixture
async def http(store, network_log, fake_supabase):
    client = build_http_client(store, network_log, transport=httpx.MockTransport(fake_supabase))
    yield client
    await client.aclose()


@pytest.fixture
def backend(config, http) -> SupabaseBackend:
    return SupabaseBackend(config, http)


@pytest.fixture
def signed_in_auth(backend, store) -> AuthService:
    return AuthService(backend, store, AuthState(make_session()))


def entries_of(store: LogStore, log_type: LogType) -> list:
    return [entry for entry in store.snapshot() if entry.type == log_type]
