"""Clients for the external services the gateway talks to."""

from .akismet import AkismetClient
from .base import (
    BranchNotFoundError,
    CaptchaVerifier,
    HostingClient,
    MailAgent,
    MailAgentError,
    SpamChecker,
)
from .github import GitHubClient
from .gitlab import GitLabClient
from .mailgun import MailgunClient
from .recaptcha import RecaptchaClient

__all__ = [
    "AkismetClient",
    "BranchNotFoundError",
    "CaptchaVerifier",
    "GitHubClient",
    "GitLabClient",
    "HostingClient",
    "MailAgent",
    "MailAgentError",
    "MailgunClient",
    "RecaptchaClient",
    "SpamChecker",
]
