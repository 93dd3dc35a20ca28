"""Error taxonomy shared by every service.

Each error carries a stable code (reported to the calling site as `errorCode`),
an HTTP status, optional structured `data` (e.g. offending field names) and the
underlying exception, if any, for diagnostics.
"""

from typing import Any

from fastapi import status

ERROR_MESSAGES: dict[str, str] = {
    "AUTH_TOKEN_INVALID": "The supplied authentication token is invalid.",
    "AUTH_TOKEN_MISSING": "The site requires authentication but no token was supplied.",
    "BRANCH_MISMATCH": "The branch in the request does not match the branch in the site configuration.",
    "CONFIRMATION_EXPIRED": "The subscription confirmation link has expired.",
    "ENCRYPTION_NOT_CONFIGURED": "No encryption key is configured for this service.",
    "ERROR_CREATING_SUBSCRIPTION": "An error occurred while creating the subscription.",
    "ERROR_PROCESSING_ENTRY": "An error occurred while processing the entry.",
    "ERROR_PROCESSING_MERGE": "An error occurred while processing the merged entry.",
    "HOSTING_API_ERROR": "The git hosting service returned an error.",
    "INVALID_CONFIG_FILE": "The site configuration file could not be parsed.",
    "INVALID_FIELDS": "One or more fields are not allowed by the site configuration.",
    "INVALID_FORMAT": "The site configuration specifies an invalid file format.",
    "INVALID_SERVICE": "Unsupported git hosting service.",
    "IS_SPAM": "The entry was rejected as spam.",
    "MISSING_CONFIG_BLOCK": "The site configuration block could not be found.",
    "MISSING_CONFIG_FIELDS": "The site configuration is missing required fields.",
    "MISSING_REQUIRED_FIELDS": "One or more required fields are missing.",
    "NO_CONFIG_PATH": "No site configuration path was set.",
    "NO_FRONTMATTER_CONTENT_TRANSFORM": "The frontmatter format requires a field with the frontmatterContent transform.",
    "NO_MAILING_LIST": "No mailing list exists for this entry.",
    "PAYLOAD_NOT_AUTHENTIC": "Unable to verify the authenticity of the request.",
    "RECAPTCHA_CONFIG_MISMATCH": "The reCAPTCHA credentials do not match the site configuration.",
    "RECAPTCHA_INVALID_INPUT_RESPONSE": "The reCAPTCHA response could not be verified.",
    "RECAPTCHA_MISSING_CREDENTIALS": "reCAPTCHA is enabled but no credentials were supplied.",
    "SPAM_CHECK_FAILED": "The spam check service returned an error.",
    "WEBHOOK_SECRET_MISSING": "No secret found in the webhook request.",
    "WEBHOOK_SIGNATURE_INVALID": "Unable to verify authenticity of request.",
}


class GatewayError(Exception):
    """Base exception for all gateway operations."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "ERROR_PROCESSING_ENTRY"

    def __init__(
        self,
        code: str | None = None,
        data: Any = None,
        cause: BaseException | None = None,
    ):
        self.code = code or self.default_code
        self.data = data
        self.cause = cause
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return ERROR_MESSAGES.get(self.code, self.code)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        if self.cause is not None:
            payload["cause"] = str(self.cause)
        return payload


class ConfigurationError(GatewayError):
    """Site or service configuration is missing or inconsistent."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "MISSING_CONFIG_BLOCK"


class AuthenticityError(GatewayError):
    """A signature, token, pepper or environment tag did not check out."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "PAYLOAD_NOT_AUTHENTIC"


class FieldValidationError(GatewayError):
    """Submitted fields are missing or not allowed."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_FIELDS"


class SpamRejectedError(GatewayError):
    """The spam checker flagged the entry."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "IS_SPAM"


class TransportError(GatewayError):
    """An external collaborator (hosting, spam, captcha API) failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "HOSTING_API_ERROR"


class NoMailingListError(GatewayError):
    """No mailing list exists for the entry; the caller decides if that matters."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NO_MAILING_LIST"
