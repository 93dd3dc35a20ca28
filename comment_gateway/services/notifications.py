"""Email rendering and the new-comment notification.

Emails are rendered from Jinja2 templates in `settings.email_template_dir`, so
deployments can customise them. A missing, unreadable or blank template (or a
blank render) never blocks an email: a built-in default is used instead.
"""

import logging
from pathlib import Path
from typing import Any, Callable

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from ..core.config import Settings
from ..integrations import MailAgent

logger = logging.getLogger(__name__)

NOTIFICATION_SUBJECT_TEMPLATE = "email-notification-subject.txt"
NOTIFICATION_CONTENT_TEMPLATE = "email-notification-content.html"
CONFIRMATION_SUBJECT_TEMPLATE = "email-confirmation-subject.txt"
CONFIRMATION_CONTENT_TEMPLATE = "email-confirmation-content.html"


class BlankTemplateError(TemplateError):
    """A template, or what it rendered to, is empty."""


# =============================================================================
# TEMPLATES
# =============================================================================


class EmailTemplates:
    """Loads and renders the email templates with safe fallbacks."""

    def __init__(self, template_dir: Path):
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html"]),
        )

    def source(self, name: str) -> str:
        """Raw template text; raises if missing, unreadable or blank."""
        text, _, _ = self.env.loader.get_source(self.env, name)
        if not text.strip():
            raise BlankTemplateError(f"Template {name} is empty")
        return text

    def render(self, name: str, context: dict[str, Any]) -> str:
        self.source(name)
        rendered = self.env.get_template(name).render(**context)
        if not rendered.strip():
            raise BlankTemplateError(f"Template {name} rendered to an empty string")
        return rendered

    def render_or_default(
        self,
        name: str,
        context: dict[str, Any],
        default: Callable[[], str],
    ) -> str:
        try:
            return self.render(name, context)
        except (TemplateError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Using default for email template {name}: {e}")
            return default()


def build_sender(settings: Settings) -> str:
    return f"{settings.email_from_name} <{settings.email_from_address}>"


def finalize_message(settings: Settings, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Tag the sender and subject outside production and pin the Reply-To.

    Lists are created with reply preference "sender", which makes the list
    provider rewrite Reply-To to its postmaster unless it is set explicitly.
    """
    prefix = settings.env_tag_prefix
    if prefix:
        payload["from"] = prefix + payload["from"]
        payload["subject"] = prefix + payload["subject"]
    payload["h:Reply-To"] = payload["from"]
    return payload


# =============================================================================
# NOTIFICATION DISPATCHER
# =============================================================================


class NotificationDispatcher:
    """Sends the "new comment" email to a mailing list."""

    def __init__(
        self,
        settings: Settings,
        mail_agent: MailAgent,
        templates: EmailTemplates | None = None,
    ):
        self.settings = settings
        self.mail_agent = mail_agent
        self.templates = templates or EmailTemplates(settings.email_template_dir)

    async def send(
        self,
        target: str,
        fields: dict[str, Any],
        extended_fields: dict[str, Any],
        options: dict[str, Any],
        template_data: dict[str, Any],
    ) -> dict[str, Any]:
        """Render and send the notification; transport failures propagate."""
        context = {
            "fields": fields,
            "extendedFields": extended_fields,
            "options": options,
            "data": template_data,
        }
        origin = options.get("origin", "")

        subject = self.templates.render_or_default(
            NOTIFICATION_SUBJECT_TEMPLATE,
            context,
            lambda: f"There is a new comment at {template_data.get('siteName')}",
        )
        html = self.templates.render_or_default(
            NOTIFICATION_CONTENT_TEMPLATE,
            context,
            lambda: default_notification_html(origin),
        )

        payload = finalize_message(
            self.settings,
            {
                "from": build_sender(self.settings),
                "to": target,
                "subject": subject.strip(),
                "html": html,
            },
        )
        result = await self.mail_agent.send_message(payload)
        logger.info(f"Sent notification to list {target}")
        return result


def default_notification_html(origin: str) -> str:
    return (
        "<html>\n"
        "  <body>\n"
        f'    There is a new comment at <a href="{origin}">{origin}</a>.\n'
        "    <br>\n"
        "    <br>\n"
        '    If you prefer, you may <a href="%mailing_list_unsubscribe_url%">unsubscribe</a>'
        " from future emails.<br>\n"
        "  </body>\n"
        "</html>\n"
    )
