"""
PyTest Configuration and Fixtures for the RLS smoke test

Provides:
- Supabase env vars patched into os.environ
- Mock admin / anon Supabase clients (AsyncMock, no network)
- FakePostgrest: an in-memory PostgREST served through httpx.MockTransport,
  with row-level security that can be switched off to simulate a leak

Usage:
    pytest tests/ -v
"""

import os
import json
import uuid
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qsl

import httpx
import pytest
from supabase import AuthError

from rls_smoke.config import Settings


# ============================================================================
# Test Configuration Constants
# ============================================================================

TEST_SUPABASE_URL = "https://rls-smoke.supabase.test"
TEST_ANON_KEY = "anon-key-for-tests"
TEST_SERVICE_ROLE_KEY = "service-role-key-for-tests"

TEST_ENV = {
    "SUPABASE_URL": TEST_SUPABASE_URL,
    "SUPABASE_ANON_KEY": TEST_ANON_KEY,
    "SUPABASE_SERVICE_ROLE_KEY": TEST_SERVICE_ROLE_KEY,
}


def make_auth_error(message: str) -> AuthError:
    return AuthError(message, None)


# ============================================================================
# Environment / settings
# ============================================================================

@pytest.fixture
def supabase_env():
    """Patch the three required variables into the environment."""
    with patch.dict(os.environ, TEST_ENV):
        yield TEST_ENV


@pytest.fixture
def clean_env():
    """Environment with none of the Supabase or smoke test variables set."""
    dropped = ("SUPABASE_", "RLS_SMOKE_", "LOG_LEVEL")
    env = {k: v for k, v in os.environ.items() if not k.startswith(dropped)}
    with patch.dict(os.environ, env, clear=True):
        yield env


@pytest.fixture
def settings(supabase_env) -> Settings:
    return Settings()


# ============================================================================
# Mock Supabase auth
# ============================================================================

class FakeAuthBackend:
    """Tracks users created/deleted through the mocked auth API."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.deleted: List[str] = []
        self.fail_create_for: Optional[str] = None
        self.fail_sign_in_for: Optional[str] = None

    def token_for(self, user_id: str) -> str:
        return f"token-{user_id}"

    def user_for_token(self, token: str) -> Optional[str]:
        prefix = "token-"
        if token.startswith(prefix) and token[len(prefix):] in self.users:
            return token[len(prefix):]
        return None

    async def create_user(self, attributes: Dict[str, Any]):
        label = attributes.get("user_metadata", {}).get("label", "")
        if self.fail_create_for and self.fail_create_for == label:
            raise make_auth_error("User already registered")
        user_id = str(uuid.uuid4())
        self.users[user_id] = dict(attributes)
        return SimpleNamespace(user=SimpleNamespace(id=user_id, email=attributes["email"]))

    async def sign_in_with_password(self, credentials: Dict[str, str]):
        for user_id, attributes in self.users.items():
            if attributes["email"] != credentials["email"]:
                continue
            if self.fail_sign_in_for and attributes["email"].startswith(self.fail_sign_in_for):
                break
            if attributes["password"] != credentials["password"]:
                break
            return SimpleNamespace(
                user=SimpleNamespace(id=user_id, email=attributes["email"]),
                session=SimpleNamespace(access_token=self.token_for(user_id)),
            )
        raise make_auth_error("Invalid login credentials")

    async def delete_user(self, user_id: str):
        self.users.pop(user_id, None)
        self.deleted.append(user_id)


@pytest.fixture
def auth_backend() -> FakeAuthBackend:
    return FakeAuthBackend()


@pytest.fixture
def mock_admin_client(auth_backend) -> MagicMock:
    """Service-role client; only auth.admin is used."""
    client = MagicMock()
    client.auth.admin.create_user = AsyncMock(side_effect=auth_backend.create_user)
    client.auth.admin.delete_user = AsyncMock(side_effect=auth_backend.delete_user)
    return client


@pytest.fixture
def mock_anon_client(auth_backend) -> MagicMock:
    """Anon client; only password sign-in is used."""
    client = MagicMock()
    client.auth.sign_in_with_password = AsyncMock(side_effect=auth_backend.sign_in_with_password)
    return client


# ============================================================================
# In-memory PostgREST
# ============================================================================

class FakePostgrest:
    """
    Minimal PostgREST for the ``items`` and ``inventory_events`` tables.

    Supports ``select=``, ``<column>=eq.<value>`` filters, POST with
    ``Prefer: return=representation`` and DELETE. With ``rls_enabled`` every
    query is limited to rows whose ``user_id`` matches the caller.
    """

    def __init__(self, auth: FakeAuthBackend, rls_enabled: bool = True):
        self.auth = auth
        self.rls_enabled = rls_enabled
        self.tables: Dict[str, List[Dict[str, Any]]] = {"items": [], "inventory_events": []}
        self.requests: List[httpx.Request] = []
        self.status_overrides: Dict[tuple, int] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.headers.get("apikey") != TEST_ANON_KEY:
            return httpx.Response(401, json={"message": "Invalid API key"})

        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        caller = self.auth.user_for_token(token)
        if caller is None:
            return httpx.Response(401, json={"message": "JWT expired"})

        table = request.url.path.rsplit("/", 1)[-1]
        if table not in self.tables:
            return httpx.Response(404, json={"message": f"relation \"{table}\" does not exist"})

        override = self.status_overrides.get((request.method, table))
        if override:
            return httpx.Response(override, json={"message": "forced failure"})

        params = dict(parse_qsl(request.url.query.decode()))
        rows = self.tables[table]

        if request.method == "POST":
            payload = json.loads(request.content)
            if self.rls_enabled and payload.get("user_id") != caller:
                return httpx.Response(403, json={"message": "new row violates row-level security policy"})
            row = dict(payload, id=str(uuid.uuid4()))
            rows.append(row)
            if "return=representation" in request.headers.get("prefer", ""):
                return httpx.Response(201, json=[row])
            return httpx.Response(201)

        matched = [row for row in self._visible(rows, caller) if self._matches(row, params)]

        if request.method == "DELETE":
            for row in matched:
                rows.remove(row)
            return httpx.Response(204)

        columns = params.get("select")
        if columns:
            wanted = columns.split(",")
            matched = [{c: row.get(c) for c in wanted} for row in matched]
        return httpx.Response(200, json=matched)

    def _visible(self, rows, caller):
        if not self.rls_enabled:
            return list(rows)
        return [row for row in rows if row.get("user_id") == caller]

    @staticmethod
    def _matches(row, params) -> bool:
        for key, value in params.items():
            if key == "select":
                continue
            if value.startswith("eq.") and str(row.get(key)) != value[3:]:
                return False
        return True


@pytest.fixture
def postgrest(auth_backend) -> FakePostgrest:
    return FakePostgrest(auth_backend)


@pytest.fixture
async def http_client(postgrest):
    async with httpx.AsyncClient(transport=postgrest.transport) as client:
        yield client
