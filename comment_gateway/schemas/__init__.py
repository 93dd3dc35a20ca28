"""Comment Gateway schemas.

- base: common enums and base models
- site_config: per-site configuration read from the site repository
- entries: submissions, continuations, confirmations, webhook events
"""

from .base import (
    CamelModel,
    ConsentModel,
    ErrorResponse,
    FileFormat,
    GatewayBaseModel,
    GitService,
)
from .entries import (
    CONTINUATION_VERSION,
    ConfigPath,
    ConfirmationData,
    DeferredContinuation,
    EntryResponse,
    EntryResult,
    MergeRequestInfo,
    RequestMetadata,
    RouteParameters,
    SecondaryErrors,
    SubmissionRequest,
    WebhookEvent,
)
from .site_config import (
    DateGenerator,
    SiteConfig,
    SlugifyGenerator,
    UserGenerator,
    load_site_config,
)

__all__ = [
    # Base
    "CamelModel",
    "ConsentModel",
    "ErrorResponse",
    "FileFormat",
    "GatewayBaseModel",
    "GitService",
    # Entries
    "CONTINUATION_VERSION",
    "ConfigPath",
    "ConfirmationData",
    "DeferredContinuation",
    "EntryResponse",
    "EntryResult",
    "MergeRequestInfo",
    "RequestMetadata",
    "RouteParameters",
    "SecondaryErrors",
    "SubmissionRequest",
    "WebhookEvent",
    # Site config
    "DateGenerator",
    "SiteConfig",
    "SlugifyGenerator",
    "UserGenerator",
    "load_site_config",
]
