"""Mailgun client for mailing lists and transactional email.

See: https://documentation.mailgun.com/docs/mailgun/api-reference/
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .base import MailAgentError, response_detail

logger = logging.getLogger(__name__)


class MailgunClient:
    """Async Mailgun client bound to one sending domain."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        domain: str,
        base_url: str = "https://api.mailgun.net/v3",
    ):
        self.http_client = http_client
        self.domain = domain
        self._auth = httpx.BasicAuth("api", api_key)
        self._base_url = base_url.rstrip("/")

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.http_client.request(
                method,
                f"{self._base_url}{path}",
                auth=self._auth,
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.error(f"Mailgun request {method} {path} failed: {e}")
            raise MailAgentError(cause=e) from e

        if response.status_code >= 400:
            raise MailAgentError(
                upstream_status=response.status_code,
                data=response_detail(response),
            )
        return response.json()

    # =========================================================================
    # LISTS
    # =========================================================================

    async def get_list(self, address: str) -> dict[str, Any] | None:
        """Return the list, or None if it does not exist."""
        try:
            data = await self._request("GET", f"/lists/{quote(address)}")
        except MailAgentError as e:
            if e.upstream_status == 404:
                return None
            raise
        return data.get("list")

    async def create_list(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/lists", data=payload)

    async def add_member(self, list_address: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Add a member. Mailgun answers 400 when the address is already on the list."""
        form = {key: value for key, value in payload.items() if key != "vars"}
        if payload.get("vars"):
            form["vars"] = json.dumps(payload["vars"])
        return await self._request("POST", f"/lists/{quote(list_address)}/members", data=form)

    async def list_members(self, list_address: str) -> dict[str, Any]:
        return await self._request("GET", f"/lists/{quote(list_address)}/members")

    async def get_member(self, list_address: str, member_address: str) -> dict[str, Any]:
        data = await self._request(
            "GET",
            f"/lists/{quote(list_address)}/members/{quote(member_address)}",
        )
        return data.get("member", {})

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def send_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", f"/{self.domain}/messages", data=payload)
