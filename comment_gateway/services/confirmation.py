"""Double opt-in: confirmation emails and the links they carry.

Nobody is added to a list until they click the link in the confirmation
email. Everything needed to subscribe them travels inside the link as a sealed
token, so nothing is stored until the click. Because the encryption endpoint
is public, the pepper and environment tag inside the token are what prove it
was issued here.
"""

import logging
import time
from typing import Any
from urllib.parse import quote

from jinja2 import TemplateError
from pydantic import ValidationError

from ..core.config import Settings
from ..core.errors import AuthenticityError
from ..core.security import CryptoAuthenticator
from ..integrations import MailAgentError
from ..schemas import ConfirmationData
from .notifications import (
    CONFIRMATION_CONTENT_TEMPLATE,
    CONFIRMATION_SUBJECT_TEMPLATE,
    EmailTemplates,
    build_sender,
    finalize_message,
)
from .subscriptions import SubscriptionRegistry, build_consent_data

logger = logging.getLogger(__name__)

CONFIRM_TEXT_START = "<!--confirmTextStart-->"
CONFIRM_TEXT_END = "<!--confirmTextEnd-->"

DEFAULT_CONFIRM_TEXT_MARKUP = (
    f"{CONFIRM_TEXT_START}Please confirm your subscription request by clicking this link:{CONFIRM_TEXT_END}"
)

SECONDS_PER_DAY = 86400


def extract_confirm_text(template_source: str) -> str:
    """The fragment between the confirm-text markers, stored as an audit field."""
    start = template_source.find(CONFIRM_TEXT_START)
    end = template_source.find(CONFIRM_TEXT_END)
    if start == -1 or end == -1 or end < start:
        return ""
    return template_source[start + len(CONFIRM_TEXT_START):end]


class ConfirmationFlow:
    """Issues and redeems subscription confirmation tokens."""

    def __init__(
        self,
        settings: Settings,
        authenticator: CryptoAuthenticator,
        registry: SubscriptionRegistry,
        default_confirm_url: str,
        templates: EmailTemplates | None = None,
    ):
        self.settings = settings
        self.authenticator = authenticator
        self.registry = registry
        self.default_confirm_url = default_confirm_url
        self.templates = templates or EmailTemplates(settings.email_template_dir)

    async def needs_confirmation(self, email: str, entry_id: str) -> bool:
        """
        True unless `email` is already a subscribed member of the entry's list.

        Lookup failures answer True: a redundant confirmation email beats
        silently not subscribing someone.
        """
        try:
            address = await self.registry.find_list(entry_id)
            if address is None:
                return True
            member = await self.registry.mail_agent.get_member(address, email)
        except MailAgentError as e:
            logger.info(f"Subscriber not found on the list for {entry_id} (or lookup failed): {e.upstream_status}")
            return True
        return not member.get("subscribed", False)

    # =========================================================================
    # ISSUE
    # =========================================================================

    def _build_token(self, email: str, options: dict[str, Any], subject: str, confirm_text: str) -> str:
        data = ConfirmationData.model_validate(
            {
                "subscriberEmailAddress": email,
                "parent": options.get("parent"),
                "parentName": options.get("parentName"),
                "origin": options.get("origin"),
                **build_consent_data(options),
                "subscribeConfirmContext": f'Email "{subject.strip()}"',
                "subscribeConfirmText": confirm_text,
                "subscribeConfirmRedirect": options.get("subscribeConfirmRedirect"),
                "subscribeConfirmRedirectError": options.get("subscribeConfirmRedirectError"),
                "issuedAt": int(time.time()),
            }
        )
        return self.authenticator.seal(data.model_dump(mode="json", by_alias=True, exclude_none=True))

    def build_confirm_link(
        self,
        template_source: str,
        email: str,
        options: dict[str, Any],
        subject: str,
    ) -> str:
        token = self._build_token(email, options, subject, extract_confirm_text(template_source))
        base_url = options.get("subscribeConfirmUrl") or self.default_confirm_url
        return f"{base_url}?data={quote(token, safe='')}"

    def _render_content(
        self,
        email: str,
        context: dict[str, Any],
        options: dict[str, Any],
        subject: str,
    ) -> str:
        try:
            source = self.templates.source(CONFIRMATION_CONTENT_TEMPLATE)
            confirm_link = self.build_confirm_link(source, email, options, subject)
            return self.templates.render(
                CONFIRMATION_CONTENT_TEMPLATE,
                {**context, "confirmLink": confirm_link},
            )
        except (TemplateError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Using default content for confirmation email: {e}")

        confirm_link = self.build_confirm_link(DEFAULT_CONFIRM_TEXT_MARKUP, email, options, subject)
        origin = options.get("origin", "")
        return (
            "<html>\n"
            "  <body>\n"
            "    You have requested to be notified every time a new comment is added to "
            f'<a href="{origin}">{origin}</a>.\n'
            "    <br>\n"
            "    <br>\n"
            f'    {DEFAULT_CONFIRM_TEXT_MARKUP} <a href="{confirm_link}">{confirm_link[:100]}</a><br>\n'
            "  </body>\n"
            "</html>\n"
        )

    async def issue(
        self,
        email: str,
        fields: dict[str, Any],
        extended_fields: dict[str, Any],
        options: dict[str, Any],
        template_data: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Send a confirmation email unless `email` is already subscribed.

        Returns the mail provider's answer, or None when suppressed.
        """
        entry_id = options.get("parent")
        if not await self.needs_confirmation(email, entry_id):
            logger.info(f"Subscriber already confirmed for {entry_id}. Suppressing confirmation.")
            return None

        context = {
            "fields": fields,
            "extendedFields": extended_fields,
            "options": options,
            "data": template_data,
        }
        subject = self.templates.render_or_default(
            CONFIRMATION_SUBJECT_TEMPLATE,
            context,
            lambda: f"Please confirm your subscription to {template_data.get('siteName')}",
        ).strip()
        html = self._render_content(email, context, options, subject)

        payload = finalize_message(
            self.settings,
            {"from": build_sender(self.settings), "to": email, "subject": subject, "html": html},
        )
        result = await self.registry.mail_agent.send_message(payload)
        logger.info(f"Sent subscription confirmation for {entry_id}")
        return result

    # =========================================================================
    # REDEEM
    # =========================================================================

    def redeem(self, token: str) -> ConfirmationData:
        return redeem_confirmation_token(self.settings, self.authenticator, token)


def redeem_confirmation_token(
    settings: Settings,
    authenticator: CryptoAuthenticator,
    token: str,
) -> ConfirmationData:
    """Unseal a confirmation token; raises AuthenticityError if forged or expired.

    Redemption is not tracked, so a link can be clicked more than once. That is
    harmless because subscribing is idempotent; the age limit bounds replays.
    """
    payload = authenticator.unseal(token)
    try:
        data = ConfirmationData.model_validate(payload)
    except ValidationError as e:
        raise AuthenticityError("PAYLOAD_NOT_AUTHENTIC", cause=e) from e

    max_age_days = settings.confirmation_token_max_age_days
    if max_age_days:
        max_age = max_age_days * SECONDS_PER_DAY
        if data.issued_at is None or time.time() - data.issued_at > max_age:
            logger.info(f"Rejected expired confirmation for {data.parent}")
            raise AuthenticityError("CONFIRMATION_EXPIRED")
    return data
