"""Carry workflow state across the review gap.

When an entry goes through moderation, notification has to wait until the
review is merged, which arrives later as an unrelated webhook delivery. The
state needed to resume is sealed and embedded in the review description, which
the hosting provider stores and hands back verbatim with the merge event.
"""

import logging
import re

from pydantic import ValidationError

from ..core.errors import GatewayError
from ..core.security import CryptoAuthenticator
from ..schemas import CONTINUATION_VERSION, DeferredContinuation

logger = logging.getLogger(__name__)

MARKER_PREFIX = "<!--staticman_notification:"
MARKER_SUFFIX = "-->"

_MARKER_RE = re.compile(re.escape(MARKER_PREFIX) + r"(.+?)" + re.escape(MARKER_SUFFIX), re.DOTALL)


class DeferredStateCodec:
    """Encodes continuations into review descriptions and recovers them."""

    def __init__(self, authenticator: CryptoAuthenticator):
        self.authenticator = authenticator

    def encode(self, continuation: DeferredContinuation) -> str:
        payload = continuation.model_dump(mode="json", by_alias=True)
        return self.authenticator.seal(payload)

    @staticmethod
    def embed(token: str) -> str:
        return f"{MARKER_PREFIX}{token}{MARKER_SUFFIX}"

    def encode_marker(self, continuation: DeferredContinuation) -> str:
        return self.embed(self.encode(continuation))

    def decode(self, document: str | None) -> DeferredContinuation | None:
        """
        Recover the continuation from a review description.

        Most descriptions that reach the webhook are ordinary human text, so
        every failure means "no continuation" and returns None.
        """
        if not document:
            return None

        match = _MARKER_RE.search(document)
        if match is None:
            logger.debug("No continuation marker in document")
            return None

        try:
            payload = self.authenticator.unseal(match.group(1).strip())
        except GatewayError as e:
            logger.warning(f"Continuation marker could not be unsealed: {e.code}")
            return None

        version = payload.get("version")
        if version != CONTINUATION_VERSION:
            logger.warning(f"Ignoring continuation with unsupported version {version!r}")
            return None

        try:
            return DeferredContinuation.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Continuation payload is malformed: {e}")
            return None
