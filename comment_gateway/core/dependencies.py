"""FastAPI dependencies and the factory for external clients."""

import logging
from typing import Annotated

import httpx
from fastapi import Depends, Request

from ..integrations import (
    AkismetClient,
    CaptchaVerifier,
    GitHubClient,
    GitLabClient,
    HostingClient,
    MailAgent,
    MailgunClient,
    RecaptchaClient,
    SpamChecker,
)
from ..schemas import GitService, SiteConfig
from .config import Settings, get_settings
from .errors import ConfigurationError
from .security import CryptoAuthenticator

logger = logging.getLogger(__name__)


class ClientFactory:
    """
    Builds the clients for hosting, mail, spam and captcha services.

    One instance lives for the whole process and owns the shared
    httpx.AsyncClient. Tests substitute a factory returning fakes.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.authenticator = CryptoAuthenticator(settings)

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def hosting(
        self,
        service: str,
        username: str,
        repository: str,
        branch: str | None = None,
        oauth_token: str | None = None,
    ) -> HostingClient:
        """Hosting client for one repository, optionally acting as an OAuth user."""
        if service == GitService.GITHUB.value:
            return GitHubClient(
                self.http_client,
                username,
                repository,
                branch=branch,
                token=oauth_token or self.settings.github_token,
                base_url=self.settings.github_base_url,
            )
        if service == GitService.GITLAB.value:
            return GitLabClient(
                self.http_client,
                username,
                repository,
                branch=branch,
                token=oauth_token or self.settings.gitlab_token,
                base_url=self.settings.gitlab_base_url,
                oauth=oauth_token is not None,
            )
        raise ConfigurationError("INVALID_SERVICE", data={"service": service})

    def mail_agent(self, api_key: str | None = None, domain: str | None = None) -> MailAgent:
        return MailgunClient(
            self.http_client,
            api_key=api_key or self.settings.email_api_key or "",
            domain=domain or self.settings.email_domain,
            base_url=self.settings.mailgun_base_url,
        )

    def mail_agent_for(self, site_config: SiteConfig) -> MailAgent:
        """
        Mail agent for a site.

        A site may bring its own Mailgun account: `notifications.apiKey` (encrypted
        with the service key) and `notifications.domain` both have to be set.
        """
        notifications = site_config.notifications
        if notifications.api_key and notifications.domain:
            api_key = self.authenticator.decrypt_text(notifications.api_key)
            return self.mail_agent(api_key, notifications.domain)
        return self.mail_agent()

    def spam_checker(self) -> SpamChecker | None:
        if not (self.settings.akismet_api_key and self.settings.akismet_site):
            return None
        return AkismetClient(
            self.http_client,
            api_key=self.settings.akismet_api_key,
            site=self.settings.akismet_site,
            bypass_value=self.settings.akismet_bypass_value,
        )

    def captcha(self) -> CaptchaVerifier:
        return RecaptchaClient(self.http_client)


def get_client_factory(request: Request) -> ClientFactory:
    """Factory created in the application lifespan."""
    return request.app.state.client_factory


SettingsDep = Annotated[Settings, Depends(get_settings)]
ClientFactoryDep = Annotated[ClientFactory, Depends(get_client_factory)]
