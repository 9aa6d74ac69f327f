"""
RLS Smoke Test Runner
=====================

Fixed sequence:
1. Create users A and B (admin API, email pre-confirmed)
2. Sign both in
3. A inserts an item, lists its items; B reads A's items
4. A inserts an inventory event, lists its events; B reads A's events
5. A deletes its item, then both users are deleted

Setup failures (create / sign-in) abort the run with SetupError. Step
failures are recorded and the sequence carries on.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from supabase import AsyncClient

from .config import Settings
from .identities import TestIdentity, create_identity, delete_identity, sign_in
from .rest import RestResponse, authed_fetch
from .results import SmokeReport, check_isolated, check_status, check_visible

logger = logging.getLogger(__name__)

USER_A_LABEL = "qa-user-a"
USER_B_LABEL = "qa-user-b"

ITEMS = "items"
EVENTS = "inventory_events"
ITEM_COLUMNS = "id,user_id,label"
EVENT_COLUMNS = "item_id,user_id,event_type"

RETURN_REPRESENTATION = {"Prefer": "return=representation"}


def item_payload(user_id: str) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "label": "QA Item A",
        "description": "RLS smoke test item",
        "status": "home",
        "estimated_value_cents": 12345,
        "weight_lbs": 10,
        "length_inches": 10,
        "width_inches": 10,
        "height_inches": 10,
        "tags": ["qa"],
        "photo_paths": [],
    }


def event_payload(item_id: Optional[str], user_id: str) -> Dict[str, Any]:
    return {
        "item_id": item_id,
        "user_id": user_id,
        "event_type": "qa_insert_test",
        "event_data": {"note": "RLS check"},
    }


class RlsSmokeTest:
    """Runs the isolation checks for one pair of throwaway users."""

    def __init__(
        self,
        settings: Settings,
        admin: AsyncClient,
        anon: AsyncClient,
        http: httpx.AsyncClient,
        strict: bool = True,
    ):
        self.settings = settings
        self.admin = admin
        self.anon = anon
        self.http = http
        self.strict = strict
        self.report = SmokeReport(supabase_url=settings.supabase_url)
        self._created: List[TestIdentity] = []

    async def run(self) -> SmokeReport:
        """
        Execute the whole sequence and return the report.

        Raises:
            SetupError: if a user cannot be created or signed in. Users that
                were already created are still deleted.
        """
        print("▶️ Starting RLS smoke test…")
        try:
            user_a, user_b = await self._setup()
            await self._exercise(user_a, user_b)
        finally:
            await self._delete_users()
        print("✅ RLS smoke test complete")
        return self.report

    async def _setup(self):
        domain = self.settings.email_domain

        user_a = await create_identity(self.admin, USER_A_LABEL, domain)
        self._created.append(user_a)
        user_b = await create_identity(self.admin, USER_B_LABEL, domain)
        self._created.append(user_b)

        await sign_in(self.anon, user_a)
        await sign_in(self.anon, user_b)

        print(f"   User A: {user_a.user_id}")
        print(f"   User B: {user_b.user_id}")
        self.report.identities = {"User A": user_a.user_id, "User B": user_b.user_id}
        return user_a, user_b

    async def _exercise(self, user_a: TestIdentity, user_b: TestIdentity):
        report = self.report
        owner_filter = f"user_id=eq.{user_a.user_id}"

        insert_item = await self._fetch(
            user_a, ITEMS, method="POST",
            body=item_payload(user_a.user_id), headers=RETURN_REPRESENTATION,
        )
        report.record(check_status("User A inserts own item", insert_item))
        item_id = insert_item.rows[0].get("id") if insert_item.rows else None

        list_items = await self._fetch(user_a, f"{ITEMS}?select={ITEM_COLUMNS}")
        result = check_status("User A lists own items", list_items)
        if self.strict:
            result = check_visible(result, list_items, item_id)
        report.record(result)

        foreign_items = await self._fetch(user_b, f"{ITEMS}?select={ITEM_COLUMNS}&{owner_filter}")
        report.record(check_isolated("User B tries to read User A items", foreign_items, strict=self.strict))

        insert_event = await self._fetch(
            user_a, EVENTS, method="POST",
            body=event_payload(item_id, user_a.user_id), headers=RETURN_REPRESENTATION,
        )
        report.record(check_status("User A inserts inventory event", insert_event))

        list_events = await self._fetch(user_a, f"{EVENTS}?select={EVENT_COLUMNS}")
        report.record(check_status("User A lists own inventory events", list_events))

        foreign_events = await self._fetch(user_b, f"{EVENTS}?select={EVENT_COLUMNS}&{owner_filter}")
        report.record(check_isolated("User B tries to read User A events", foreign_events, strict=self.strict))

        # Cleanup, unchecked
        if item_id:
            await self._fetch(user_a, f"{ITEMS}?id=eq.{item_id}", method="DELETE")

    async def _fetch(self, identity: TestIdentity, path: str, **kwargs) -> RestResponse:
        """authed_fetch that turns transport errors into a status-0 response."""
        try:
            return await authed_fetch(self.http, self.settings, identity.access_token, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{kwargs.get('method', 'GET')} {path} failed: {e}")
            return RestResponse(status=0, json={"error": str(e)})

    async def _delete_users(self):
        while self._created:
            identity = self._created.pop(0)
            await delete_identity(self.admin, identity.user_id)
