"""
Throwaway Supabase identities.

Users are created through the auth admin API with the service-role key
(email pre-confirmed), signed in with the anon key, and deleted again at
the end of the run.
"""

import uuid
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from supabase import AsyncClient, AsyncClientOptions, AuthError, acreate_client

from .config import Settings
from .errors import SetupError

logger = logging.getLogger(__name__)


@dataclass
class TestIdentity:
    """A test user and, once signed in, its session token."""
    __test__ = False

    label: str
    email: str
    password: str
    user_id: Optional[str] = None
    access_token: Optional[str] = None

    @property
    def is_signed_in(self) -> bool:
        return bool(self.access_token)


def _client_options() -> AsyncClientOptions:
    # One access token lasts the whole run.
    return AsyncClientOptions(auto_refresh_token=False, persist_session=False)


async def create_admin_client(settings: Settings) -> AsyncClient:
    """Supabase client authorised with the service-role key."""
    return await acreate_client(settings.supabase_url, settings.service_role_key, options=_client_options())


async def create_anon_client(settings: Settings) -> AsyncClient:
    """Supabase client authorised with the public anon key."""
    return await acreate_client(settings.supabase_url, settings.anon_key, options=_client_options())


def new_credentials(label: str, email_domain: str):
    """Random email/password pair for a new test user."""
    email = f"{label}-{uuid.uuid4()}@{email_domain}"
    password = f"Pwd-{uuid.uuid4()}"
    return email, password


async def create_identity(admin: AsyncClient, label: str, email_domain: str) -> TestIdentity:
    """
    Create a confirmed user via the auth admin API.

    Raises:
        SetupError: if the admin API rejects the request
    """
    email, password = new_credentials(label, email_domain)

    try:
        response = await admin.auth.admin.create_user({
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": {"purpose": "rls_smoke_test", "label": label},
        })
    except AuthError as e:
        raise SetupError(f"Failed to create user {label}: {e.message}") from e

    user = getattr(response, "user", None)
    if user is None:
        raise SetupError(f"Failed to create user {label}: no user returned")

    logger.debug(f"Created user {label} ({user.id})")
    return TestIdentity(label=label, email=email, password=password, user_id=user.id)


async def sign_in(anon: AsyncClient, identity: TestIdentity) -> TestIdentity:
    """
    Password sign-in; fills in ``user_id`` and ``access_token``.

    Raises:
        SetupError: on rejected credentials or when no session comes back
    """
    try:
        response = await anon.auth.sign_in_with_password({
            "email": identity.email,
            "password": identity.password,
        })
    except AuthError as e:
        raise SetupError(f"Sign-in failed for {identity.email}: {e.message}") from e

    session = getattr(response, "session", None)
    if session is None or not session.access_token:
        raise SetupError(f"Sign-in failed for {identity.email}: no session returned")

    identity.user_id = response.user.id if response.user else identity.user_id
    identity.access_token = session.access_token
    return identity


async def delete_identity(admin: AsyncClient, user_id: Optional[str]) -> bool:
    """
    Best-effort removal of a test user.

    Returns True if the admin API accepted the delete. Failures are logged,
    never raised.
    """
    if not user_id:
        return False
    try:
        await admin.auth.admin.delete_user(user_id)
        return True
    except (AuthError, httpx.HTTPError) as e:
        logger.warning(f"Could not delete test user {user_id}: {e}")
        return False
