"""Shared plumbing for the git hosting clients."""

import json
import logging
from typing import Any

import httpx
import yaml

from ..core.errors import ConfigurationError, TransportError
from .base import BranchNotFoundError, response_detail

logger = logging.getLogger(__name__)


class RestHostingClient:
    """Base class for REST-backed hosting clients bound to one repository."""

    service: str = ""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        username: str,
        repository: str,
        branch: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.http_client = http_client
        self.username = username
        self.repository = repository
        self.branch = branch
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.http_client.request(
                method,
                f"{self._base_url}{path}",
                headers=self._headers,
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.error(f"{self.service} request {method} {path} failed: {e}")
            raise TransportError("HOSTING_API_ERROR", cause=e) from e

        if response.status_code >= 400:
            logger.error(f"{self.service} API error {response.status_code} for {method} {path}")
            raise TransportError(
                "HOSTING_API_ERROR",
                data={"status": response.status_code, "body": response_detail(response)},
            )
        return response

    @staticmethod
    def _branch_missing(error: TransportError) -> bool:
        return isinstance(error.data, dict) and error.data.get("status") in (404, 422)

    async def _delete_branch_request(self, method: str, path: str, name: str) -> None:
        try:
            await self._request(method, path)
        except TransportError as e:
            if self._branch_missing(e):
                raise BranchNotFoundError("HOSTING_API_ERROR", data={"branch": name}, cause=e) from e
            raise

    @staticmethod
    def parse_file(path: str, content: str) -> Any:
        """Parse a repository file according to its extension."""
        lowered = path.lower()
        try:
            if lowered.endswith((".yml", ".yaml")):
                return yaml.safe_load(content)
            if lowered.endswith(".json"):
                return json.loads(content)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigurationError("INVALID_CONFIG_FILE", data={"file": path}, cause=e) from e
        return content
