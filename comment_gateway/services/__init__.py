"""Business logic services for Comment Gateway."""

from .confirmation import ConfirmationFlow, redeem_confirmation_token
from .continuation import DeferredStateCodec
from .notifications import EmailTemplates, NotificationDispatcher
from .submission import SubmissionPipeline
from .subscriptions import (
    SubscriptionRegistry,
    build_consent_data,
    resolve_list_address,
)
from .webhooks import WebhookMergeCoordinator, WebhookOutcome

__all__ = [
    "ConfirmationFlow",
    "DeferredStateCodec",
    "EmailTemplates",
    "NotificationDispatcher",
    "SubmissionPipeline",
    "SubscriptionRegistry",
    "WebhookMergeCoordinator",
    "WebhookOutcome",
    "build_consent_data",
    "redeem_confirmation_token",
    "resolve_list_address",
]
