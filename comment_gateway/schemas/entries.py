"""Schemas for entries, continuations, confirmations and webhook deliveries."""

from typing import Any

from pydantic import Field

from .base import CamelModel, GatewayBaseModel, GitService

CONTINUATION_VERSION = 1


class RouteParameters(GatewayBaseModel):
    """Values taken from the request path: which site and branch to act on."""

    service: GitService
    username: str
    repository: str
    branch: str
    property: str = ""


class ConfigPath(GatewayBaseModel):
    """Where the site config lives: a repository file and a key inside it."""

    file: str
    path: str = ""


class SubmissionRequest(GatewayBaseModel):
    """Raw fields and options as posted by a site's form."""

    fields: dict[str, Any]
    options: dict[str, Any] = {}


class RequestMetadata(GatewayBaseModel):
    """Client details forwarded to the spam and captcha checks."""

    ip: str | None = None
    user_agent: str | None = None
    referrer: str | None = None


class DeferredContinuation(CamelModel):
    """Everything needed to resume notification after a review is merged."""

    version: int = CONTINUATION_VERSION
    config_path: ConfigPath
    fields: dict[str, Any]
    extended_fields: dict[str, Any]
    options: dict[str, Any] = {}
    parameters: RouteParameters


class SecondaryErrors(GatewayBaseModel):
    """Side-channel failures reported alongside a successful entry."""

    subscribe_error: bool = Field(default=False, serialization_alias="subscribeError")
    subscribe_confirm_error: bool = Field(default=False, serialization_alias="subscribeConfirmError")
    notify_error: bool = Field(default=False, serialization_alias="notifyError")

    def any(self) -> bool:
        return self.subscribe_error or self.subscribe_confirm_error or self.notify_error


class EntryResult(GatewayBaseModel):
    """Outcome of a successfully processed entry."""

    fields: dict[str, Any]
    redirect: str | None = None
    secondary_errors: SecondaryErrors | None = None


class EntryResponse(GatewayBaseModel):
    """Response body returned to the submitting site."""

    success: bool
    fields: dict[str, Any] | None = None
    secondary_errors: dict[str, bool] | None = Field(default=None, serialization_alias="secondaryErrors")
    error_code: str | None = Field(default=None, serialization_alias="errorCode")
    message: str | None = None
    data: Any = None
    raw_error: Any = Field(default=None, serialization_alias="rawError")


class ConfirmationData(CamelModel):
    """Subscription context carried inside a confirmation link."""

    subscriber_email_address: str
    parent: str
    parent_name: str | None = None
    origin: str | None = None
    subscribe_consent_date: int | None = None
    subscribe_consent_url: str | None = None
    subscribe_consent_context: str | None = None
    subscribe_consent_text: str | None = None
    subscribe_confirm_context: str | None = None
    subscribe_confirm_text: str | None = None
    subscribe_confirm_redirect: str | None = None
    subscribe_confirm_redirect_error: str | None = None
    issued_at: int | None = None


class WebhookEvent(GatewayBaseModel):
    """One inbound webhook delivery from a hosting provider."""

    service: GitService
    event: str | None = None
    signature: str | None = None
    raw_body: bytes = b""
    payload: dict[str, Any] = {}


class MergeRequestInfo(GatewayBaseModel):
    """Provider-neutral view of a pull/merge request event payload."""

    number: int | None = None
    target_branch: str | None = None
    source_branch: str = ""
    body: str = ""
    merged: bool = False
