"""Akismet spam checking.

See: https://akismet.com/developers/detailed-docs/comment-check/
"""

import logging
from typing import Any

import httpx

from ..core.errors import TransportError
from .base import response_detail

logger = logging.getLogger(__name__)


class AkismetClient:
    """Asks Akismet whether a comment is spam."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        site: str,
        bypass_value: str | None = None,
    ):
        self.http_client = http_client
        self.site = site
        self.bypass_value = bypass_value
        self._url = f"https://{api_key}.rest.akismet.com/1.1/comment-check"

    async def check_spam(self, fields: dict[str, Any], metadata: dict[str, Any]) -> bool:
        """
        Return True when Akismet flags the comment.

        `fields` holds the Akismet comment keys (comment_author, comment_content, ...)
        already mapped from the entry; `metadata` the client's ip/user_agent/referrer.
        """
        if self.bypass_value and self.bypass_value in (
            fields.get("comment_author"),
            fields.get("comment_content"),
        ):
            logger.info("Akismet check bypassed")
            return False

        form = {key: value for key, value in fields.items() if value is not None}
        form["blog"] = self.site
        form["user_ip"] = metadata.get("ip") or ""
        form["user_agent"] = metadata.get("user_agent") or ""
        if metadata.get("referrer"):
            form["referrer"] = metadata["referrer"]

        try:
            response = await self.http_client.post(self._url, data=form)
        except httpx.HTTPError as e:
            logger.error(f"Akismet request failed: {e}")
            raise TransportError("SPAM_CHECK_FAILED", cause=e) from e

        if response.status_code >= 400 or response.text not in ("true", "false"):
            debug_help = response.headers.get("X-akismet-debug-help")
            logger.error(f"Akismet returned an unexpected answer: {debug_help or response.status_code}")
            raise TransportError(
                "SPAM_CHECK_FAILED",
                data={"status": response.status_code, "body": response_detail(response)},
            )

        return response.text == "true"
