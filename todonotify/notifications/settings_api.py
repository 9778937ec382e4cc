"""
HTTP client for the notification settings endpoints.

``GET`` returns ``{"success": true, "data": {...}}`` and ``PUT`` accepts a
partial settings object and returns ``{"success": true, "message": "..."}``.
Both are scoped to the user behind the bearer session id.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from todonotify.notifications.errors import AuthenticationRequiredError, SettingsAPIError

logger = logging.getLogger(__name__)


class SettingsAPIClient:
    """Async client for ``/api/notifications/settings``."""

    def __init__(
        self,
        base_url: str,
        session_id: str,
        settings_path: str = "/api/notifications/settings",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not session_id:
            raise AuthenticationRequiredError("A session id is required for the settings API")
        self.base_url = base_url.rstrip("/")
        self.url = f"{self.base_url}{settings_path}"
        self.timeout = timeout
        self._transport = transport
        self._headers = {"Authorization": f"Bearer {session_id}"}

    async def _request(self, method: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.request(method, self.url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise SettingsAPIError(f"{method} {self.url} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code >= 400 or not isinstance(body, dict) or body.get("success") is False:
            message = ""
            if isinstance(body, dict):
                message = body.get("message") or body.get("error") or ""
            raise SettingsAPIError(
                f"{method} {self.url} returned {resp.status_code}: {message or resp.text[:200]}",
                status_code=resp.status_code,
            )
        return body

    async def fetch(self) -> Dict[str, Any]:
        """Return the current settings as a wire-format dict."""
        body = await self._request("GET")
        data = body.get("data")
        if not isinstance(data, dict):
            raise SettingsAPIError("Settings response is missing 'data'")
        return data

    async def save(self, partial: Dict[str, Any]) -> str:
        """Persist a partial wire-format settings dict. Returns the server message."""
        body = await self._request("PUT", json=partial)
        message = body.get("message", "")
        logger.debug(f"Settings saved ({', '.join(partial)}): {message}")
        return message
