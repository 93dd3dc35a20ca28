"""Core application utilities.

FastAPI dependencies live in `core.dependencies`, which imports the clients
and so is kept out of this package namespace.
"""

from .config import Settings, get_settings
from .errors import (
    ERROR_MESSAGES,
    AuthenticityError,
    ConfigurationError,
    FieldValidationError,
    GatewayError,
    NoMailingListError,
    SpamRejectedError,
    TransportError,
)
from .security import (
    CryptoAuthenticator,
    authenticate_webhook,
    canonical_json,
    md5_hex,
    sign_webhook_body,
    verify_webhook_signature,
    verify_webhook_token,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "ERROR_MESSAGES",
    "AuthenticityError",
    "ConfigurationError",
    "FieldValidationError",
    "GatewayError",
    "NoMailingListError",
    "SpamRejectedError",
    "TransportError",
    # Security
    "CryptoAuthenticator",
    "authenticate_webhook",
    "canonical_json",
    "md5_hex",
    "sign_webhook_body",
    "verify_webhook_signature",
    "verify_webhook_token",
]
