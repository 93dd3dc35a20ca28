"""Google reCAPTCHA verification.

See: https://developers.google.com/recaptcha/docs/verify
"""

import logging

import httpx

from ..core.errors import TransportError

logger = logging.getLogger(__name__)

VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class RecaptchaClient:
    def __init__(self, http_client: httpx.AsyncClient, verify_url: str = VERIFY_URL):
        self.http_client = http_client
        self.verify_url = verify_url

    async def verify(self, secret: str, response: str, remote_ip: str | None = None) -> bool:
        form = {"secret": secret, "response": response}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            reply = await self.http_client.post(self.verify_url, data=form)
            reply.raise_for_status()
            result = reply.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"reCAPTCHA verification request failed: {e}")
            raise TransportError("RECAPTCHA_INVALID_INPUT_RESPONSE", cause=e) from e

        if not result.get("success"):
            logger.info(f"reCAPTCHA rejected response: {result.get('error-codes')}")
            return False
        return True
