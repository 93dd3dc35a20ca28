"""Shared fixtures: service key, settings and in-memory collaborators."""

import copy
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from comment_gateway.core.config import Settings
from comment_gateway.core.dependencies import ClientFactory
from comment_gateway.core.security import CryptoAuthenticator
from comment_gateway.integrations import BranchNotFoundError, MailAgentError
from comment_gateway.schemas import RouteParameters


# =============================================================================
# KEYS AND SETTINGS
# =============================================================================


@pytest.fixture(scope="session")
def rsa_private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def settings(rsa_private_key_pem, tmp_path) -> Settings:
    return Settings(
        rsa_private_key=rsa_private_key_pem,
        crypto_pepper="test-pepper",
        exe_env=None,
        public_url="https://comments.example.com",
        email_domain="mail.example.com",
        email_from_address="noreply@example.com",
        email_from_name="Example Comments",
        github_webhook_secret=None,
        gitlab_webhook_secret=None,
        akismet_enabled=False,
    )


@pytest.fixture
def authenticator(settings) -> CryptoAuthenticator:
    return CryptoAuthenticator(settings)


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeMailAgent:
    """In-memory mailing lists that answer like Mailgun does."""

    def __init__(self, domain: str = "mail.example.com"):
        self.domain = domain
        self.lists: dict[str, dict[str, Any]] = {}
        self.members: dict[str, dict[str, dict[str, Any]]] = {}
        self.sent: list[dict[str, Any]] = []
        self.fail_list_members = False
        self.fail_send = False

    async def get_list(self, address: str) -> dict[str, Any] | None:
        return self.lists.get(address)

    async def create_list(self, payload: dict[str, Any]) -> dict[str, Any]:
        address = payload["address"]
        if address in self.lists:
            raise MailAgentError(upstream_status=400, data={"message": "Duplicate list"})
        self.lists[address] = dict(payload)
        self.members[address] = {}
        return {"list": self.lists[address], "message": "Mailing list has been created"}

    async def add_member(self, list_address: str, payload: dict[str, Any]) -> dict[str, Any]:
        members = self.members.setdefault(list_address, {})
        if payload["address"] in members:
            raise MailAgentError(upstream_status=400, data={"message": "Address already exists"})
        members[payload["address"]] = {**payload, "subscribed": True}
        return {"member": members[payload["address"]], "message": "Mailing list member has been created"}

    async def list_members(self, list_address: str) -> dict[str, Any]:
        if self.fail_list_members:
            raise MailAgentError(upstream_status=500)
        items = list(self.members.get(list_address, {}).values())
        return {"items": items, "total_count": len(items)}

    async def get_member(self, list_address: str, member_address: str) -> dict[str, Any]:
        member = self.members.get(list_address, {}).get(member_address)
        if member is None:
            raise MailAgentError(upstream_status=404)
        return member

    async def send_message(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.fail_send:
            raise MailAgentError(upstream_status=500)
        self.sent.append(payload)
        return {"id": f"<{len(self.sent)}@{self.domain}>", "message": "Queued. Thank you."}


class FakeHosting:
    """Repository files and reviews kept in memory."""

    def __init__(self, files: dict[str, Any] | None = None, user: dict[str, Any] | None = None):
        self.files = files or {}
        self.user = user or {"login": "octocat", "username": "octocat", "name": "The Octocat"}
        self.commits: list[dict[str, Any]] = []
        self.reviews: list[dict[str, Any]] = []
        self.deleted_branches: list[str] = []
        self.missing_branches: set[str] = set()

    async def read_file(self, path: str) -> Any:
        return copy.deepcopy(self.files[path])

    async def write_file(self, path: str, content: str, branch: str, message: str) -> Any:
        commit = {"path": path, "content": content, "branch": branch, "message": message}
        self.commits.append(commit)
        return commit

    async def write_file_and_open_review(
        self,
        path: str,
        content: str,
        new_branch: str,
        message: str,
        review_body: str,
    ) -> Any:
        review = {
            "path": path,
            "content": content,
            "branch": new_branch,
            "message": message,
            "body": review_body,
        }
        self.reviews.append(review)
        return review

    async def delete_branch(self, name: str) -> None:
        if name in self.missing_branches:
            raise BranchNotFoundError(data={"branch": name})
        self.deleted_branches.append(name)

    async def get_current_user(self) -> dict[str, Any]:
        return self.user


class FakeSpamChecker:
    def __init__(self, is_spam: bool = False):
        self.is_spam = is_spam
        self.calls: list[tuple[dict[str, Any], dict[str, Any]]] = []

    async def check_spam(self, fields: dict[str, Any], metadata: dict[str, Any]) -> bool:
        self.calls.append((fields, metadata))
        return self.is_spam


class FakeCaptcha:
    def __init__(self, valid: bool = True):
        self.valid = valid
        self.calls: list[tuple[str, str, str | None]] = []

    async def verify(self, secret: str, response: str, remote_ip: str | None = None) -> bool:
        self.calls.append((secret, response, remote_ip))
        return self.valid


class FakeClientFactory(ClientFactory):
    """Hands out the same fakes for every repository."""

    def __init__(self, settings: Settings, hosting: FakeHosting, mail_agent: FakeMailAgent):
        self.settings = settings
        self.authenticator = CryptoAuthenticator(settings)
        self.fake_hosting = hosting
        self.fake_mail_agent = mail_agent
        self.fake_spam_checker = FakeSpamChecker()
        self.fake_captcha = FakeCaptcha()
        self.hosting_requests: list[dict[str, Any]] = []

    async def aclose(self) -> None:
        return None

    def hosting(self, service, username, repository, branch=None, oauth_token=None):
        self.hosting_requests.append(
            {
                "service": service,
                "username": username,
                "repository": repository,
                "branch": branch,
                "oauth_token": oauth_token,
            }
        )
        return self.fake_hosting

    def mail_agent(self, api_key=None, domain=None):
        return self.fake_mail_agent

    def spam_checker(self):
        return self.fake_spam_checker

    def captcha(self):
        return self.fake_captcha


# =============================================================================
# SITE FIXTURES
# =============================================================================


def make_site_config(**overrides: Any) -> dict[str, Any]:
    """A `comments` block as a site would keep it in staticman.yml."""
    config: dict[str, Any] = {
        "allowedFields": ["name", "email", "message", "url"],
        "requiredFields": ["name", "message"],
        "branch": "main",
        "format": "yml",
        "path": "_data/comments/{options.slug}",
        "filename": "entry{@timestamp}",
        "name": "Example Blog",
        "moderation": True,
        "commitMessage": "New comment from {fields.name}",
        "generatedFields": {"date": {"type": "date", "options": {"format": "timestamp-seconds"}}},
        "transforms": {"email": "md5"},
        "notifications": {"enabled": True},
    }
    config.update(overrides)
    return config


@pytest.fixture
def site_config_raw() -> dict[str, Any]:
    return make_site_config()


@pytest.fixture
def hosting(site_config_raw) -> FakeHosting:
    return FakeHosting(files={"staticman.yml": {"comments": site_config_raw}})


@pytest.fixture
def mail_agent() -> FakeMailAgent:
    return FakeMailAgent()


@pytest.fixture
def factory(settings, hosting, mail_agent) -> FakeClientFactory:
    return FakeClientFactory(settings, hosting, mail_agent)


@pytest.fixture
def parameters() -> RouteParameters:
    return RouteParameters(
        service="github",
        username="jane",
        repository="blog",
        branch="main",
        property="comments",
    )
