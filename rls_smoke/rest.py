"""
Authenticated PostgREST requests.

Every request carries the project's anon key plus the signed-in user's
access token, so row-level security applies exactly as it would for the
real app.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass
class RestResponse:
    """HTTP status plus parsed JSON body (``{}`` when unparseable)."""
    status: int
    json: Any = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def rows(self) -> List[Dict[str, Any]]:
        """Returned rows; PostgREST answers row queries with a JSON array."""
        return self.json if isinstance(self.json, list) else []


def auth_headers(settings: Settings, access_token: str) -> Dict[str, str]:
    return {
        "apikey": settings.anon_key,
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
    }


async def authed_fetch(
    http: httpx.AsyncClient,
    settings: Settings,
    access_token: str,
    path: str,
    method: str = "GET",
    body: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
) -> RestResponse:
    """
    Send a request to ``<SUPABASE_URL>/rest/v1/<path>`` as the given user.

    Args:
        http: Shared async HTTP client
        settings: Project settings (URL and anon key)
        access_token: Session token of the acting user
        path: Resource path including any PostgREST query string
        method: HTTP method
        body: Optional JSON body
        headers: Extra headers, merged over the defaults

    Returns:
        RestResponse with status code and parsed JSON

    Raises:
        httpx.HTTPError: on transport failures
    """
    request_headers = auth_headers(settings, access_token)
    if headers:
        request_headers.update(headers)

    url = f"{settings.rest_url}/{path}"
    logger.debug(f"{method} {url}")

    response = await http.request(
        method,
        url,
        headers=request_headers,
        json=body,
    )

    try:
        payload = response.json()
    except ValueError:
        payload = {}

    return RestResponse(status=response.status_code, json=payload)
