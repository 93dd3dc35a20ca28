"""Mailing lists of people who want to hear about new comments on an entry.

There is no local store: each entry maps to a mailing list at the mail
provider whose address is derived deterministically from the environment tag,
the repository and the entry id. The submission request and the later merge
webhook therefore resolve the same list independently.
"""

import logging
import time
from typing import Any

from ..core.config import Settings
from ..core.errors import NoMailingListError
from ..core.security import md5_hex
from ..integrations import MailAgent, MailAgentError
from ..schemas import ConsentModel, SiteConfig
from .notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


def resolve_list_address(
    exe_env: str | None,
    owner: str,
    repository: str,
    entry_id: str,
    domain: str,
) -> str:
    """
    Pseudonymous list address for an entry. Pure and deterministic.

    An unset tag hashes as "null"; only a set tag prefixes the address.
    """
    env = "null" if exe_env is None else exe_env
    compound_id = md5_hex(f"{env}-{owner}-{repository}-{entry_id}")
    if exe_env:
        compound_id = f"{exe_env}-{compound_id}"
    return f"{compound_id}@{domain}"


def build_consent_data(options: dict[str, Any]) -> dict[str, Any]:
    """
    Single opt-in audit fields from submission options.

    A consent date already present (set when the confirmation email went out)
    wins over "now". The consent URL falls back to `origin` and the context
    to `parentName`.
    """
    consent_date = options.get("subscribeConsentDate")
    consent_url = options.get("subscribeConsentUrl")
    consent_context = options.get("subscribeConsentContext")
    return {
        "subscribeConsentDate": consent_date if consent_date is not None else int(time.time()),
        "subscribeConsentUrl": consent_url if consent_url is not None else options.get("origin"),
        "subscribeConsentContext": consent_context if consent_context is not None else options.get("parentName"),
        "subscribeConsentText": options.get("subscribeConsentText"),
    }


class SubscriptionRegistry:
    """Manages the mailing list behind each entry of one repository."""

    def __init__(
        self,
        settings: Settings,
        mail_agent: MailAgent,
        username: str,
        repository: str,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self.settings = settings
        self.mail_agent = mail_agent
        self.username = username
        self.repository = repository
        self.dispatcher = dispatcher or NotificationDispatcher(settings, mail_agent)

    def list_address(self, entry_id: str) -> str:
        return resolve_list_address(
            self.settings.exe_env,
            self.username,
            self.repository,
            entry_id,
            self.mail_agent.domain,
        )

    async def find_list(self, entry_id: str) -> str | None:
        """Address of the entry's list if it exists. Lookup errors other than 404 propagate."""
        address = self.list_address(entry_id)
        found = await self.mail_agent.get_list(address)
        return address if found else None

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def _new_list_payload(self, address: str, entry_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "address": address,
            # Only the service may post to the list
            "access_level": "readonly",
            "reply_preference": "sender",
        }
        entry_name = data.get("parentName")
        if entry_name is not None:
            prefix = self.settings.env_tag_prefix
            payload["name"] = f"{prefix}{entry_name}"
            payload["description"] = (
                f"{prefix}Subscribers to {entry_id} ({self.username}/{self.repository})"
            )
        return payload

    async def ensure_subscribed(
        self,
        data: dict[str, Any],
        email: str,
        consent_model: ConsentModel | str = ConsentModel.NONE,
    ) -> dict[str, Any]:
        """
        Subscribe `email` to the list of the entry `data["parent"]`.

        Safe to repeat: creating a list that already exists and adding an
        existing member are both treated as success.
        """
        entry_id = data["parent"]
        address = self.list_address(entry_id)

        if await self.mail_agent.get_list(address) is None:
            try:
                await self.mail_agent.create_list(self._new_list_payload(address, entry_id, data))
                logger.info(f"Created mailing list for {entry_id}")
            except MailAgentError as e:
                if e.upstream_status != 400:
                    raise
                logger.info(f"Mailing list for {entry_id} was created concurrently")

        member: dict[str, Any] = {"address": email}
        consent_model = ConsentModel(consent_model)
        if consent_model == ConsentModel.SINGLE:
            member["vars"] = build_consent_data(data)
        elif consent_model == ConsentModel.DOUBLE:
            member["vars"] = {
                **build_consent_data(data),
                "subscribeConfirmDate": int(time.time()),
                "subscribeConfirmContext": data.get("subscribeConfirmContext"),
                "subscribeConfirmText": data.get("subscribeConfirmText"),
            }

        try:
            return await self.mail_agent.add_member(address, member)
        except MailAgentError as e:
            if e.upstream_status != 400:
                raise
            logger.info(f"Subscriber already on the list for {entry_id}")
            return {"message": "Address already exists"}

    # =========================================================================
    # NOTIFY
    # =========================================================================

    async def _commenter_is_not_only_subscriber(self, address: str, commenter_email_hash: Any) -> bool:
        """
        False only when the list has exactly one member and it is the commenter.

        Members are stored in the clear while the committed entry only has the
        hashed email, so the member address is hashed for comparison. Any
        failure assumes there are other subscribers.
        """
        try:
            result = await self.mail_agent.list_members(address)
            if result.get("total_count") == 1:
                only_member = result["items"][0]["address"]
                return md5_hex(only_member) != commenter_email_hash
        except (MailAgentError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Could not inspect subscribers of {address}, assuming others exist: {e}")
        return True

    async def notify_if_warranted(
        self,
        entry_id: str,
        fields: dict[str, Any],
        extended_fields: dict[str, Any],
        options: dict[str, Any],
        site_config: SiteConfig,
    ) -> bool:
        """
        Notify the entry's subscribers about a new comment.

        Returns False when suppressed because the commenter is the sole
        subscriber. Raises NoMailingListError when the entry has no list; the
        caller decides whether that matters.
        """
        address = await self.find_list(entry_id)
        if address is None:
            logger.info(f"Unable to find mailing list for {entry_id}")
            raise NoMailingListError(data={"entry": entry_id})

        email_field = options.get("emailField") or "email"
        if not await self._commenter_is_not_only_subscriber(address, fields.get(email_field)):
            logger.info("Commenter is the only subscriber. Suppressing notification.")
            return False

        await self.dispatcher.send(
            address,
            fields,
            extended_fields,
            options,
            {"siteName": site_config.name},
        )
        return True
