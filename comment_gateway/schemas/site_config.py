"""Site configuration schema.

A site keeps its configuration in its own repository (by default in
`staticman.yml`, under a named property). Keys are camelCase on disk.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, field_validator

from ..core.errors import ConfigurationError
from .base import CamelModel, ConsentModel, FileFormat

REQUIRED_CONFIG_FIELDS = ("allowedFields", "branch", "format", "path")

DEFAULT_PULL_REQUEST_BODY = (
    "Dear human,\n\n"
    "Here's a new entry for your approval. :tada:\n\n"
    "Merge the pull request to accept it, or close it to send it away.\n\n"
    "---\n"
)


# =============================================================================
# GENERATED FIELDS
# =============================================================================


class DateOptions(CamelModel):
    # "timestamp" or "timestamp-seconds"; anything else is ISO-8601
    format: str = "iso8601"


class DateGenerator(CamelModel):
    """Current date/time in one of several formats."""

    type: Literal["date"]
    options: DateOptions = DateOptions()


class UserOptions(CamelModel):
    property: str | None = None


class UserGenerator(CamelModel):
    """Property of the authenticated submitter, by dotted path."""

    # "github" is the legacy name for the same generator
    type: Literal["user", "github"]
    options: UserOptions = UserOptions()


class SlugifyOptions(CamelModel):
    field: str | None = None


class SlugifyGenerator(CamelModel):
    """Slug derived from another field."""

    type: Literal["slugify"]
    options: SlugifyOptions = SlugifyOptions()


FieldGenerator = Annotated[
    Union[DateGenerator, UserGenerator, SlugifyGenerator],
    Field(discriminator="type"),
]

_generator_adapter = TypeAdapter(FieldGenerator)


def parse_generated_field(value: Any) -> FieldGenerator | Any:
    """
    Parse a `generatedFields` entry.

    Known generator objects become typed variants. Other objects are returned
    as-is and skipped by the caller; non-object values are constants.
    """
    if isinstance(value, dict) and value.get("type") in ("date", "user", "github", "slugify"):
        try:
            return _generator_adapter.validate_python(value)
        except ValueError as e:
            raise ConfigurationError("INVALID_CONFIG_FILE", data=value, cause=e) from e
    return value


# =============================================================================
# SECTIONS
# =============================================================================


class AkismetConfig(CamelModel):
    enabled: bool = False
    author: str | None = None
    author_email: str | None = None
    author_url: str | None = None
    content: str | None = None
    type: str = "comment"


class AuthConfig(CamelModel):
    required: bool = False


class ReCaptchaConfig(CamelModel):
    enabled: bool = False
    site_key: str | None = None
    # Encrypted with the service key
    secret: str | None = None


class NotificationsConfig(CamelModel):
    enabled: bool = False
    # Encrypted with the service key
    api_key: str | None = None
    domain: str | None = None
    double_opt_in: bool = False
    consent_model: ConsentModel = ConsentModel.NONE


class SiteConfig(CamelModel):
    """Per-site configuration, as read from the site's repository."""

    allowed_fields: list[str]
    branch: str
    format: FileFormat
    path: str
    required_fields: list[str] = []
    name: str | None = None
    filename: str = ""
    extension: str = ""
    commit_message: str = "Add Staticman data"
    moderation: bool = True
    pull_request_body: str = DEFAULT_PULL_REQUEST_BODY
    generated_fields: dict[str, Any] = {}
    transforms: dict[str, str | list[str]] = {}
    akismet: AkismetConfig = AkismetConfig()
    auth: AuthConfig = AuthConfig()
    re_captcha: ReCaptchaConfig = ReCaptchaConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    github_webhook_secret: str | None = None
    gitlab_webhook_secret: str | None = None

    @field_validator("format", mode="before")
    @classmethod
    def normalize_format(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @property
    def generators(self) -> dict[str, Any]:
        """Generated fields with generator entries parsed into typed variants."""
        return {name: parse_generated_field(value) for name, value in self.generated_fields.items()}

    def transforms_for(self, field: str) -> list[str]:
        names = self.transforms.get(field, [])
        return [names] if isinstance(names, str) else list(names)


def load_site_config(raw: Any) -> SiteConfig:
    """Validate a raw config block, reporting missing required keys by name."""
    if not isinstance(raw, dict):
        raise ConfigurationError("MISSING_CONFIG_BLOCK")

    missing = [key for key in REQUIRED_CONFIG_FIELDS if raw.get(key) is None]
    if missing:
        raise ConfigurationError("MISSING_CONFIG_FIELDS", data=missing)

    try:
        return SiteConfig.model_validate(raw)
    except ValueError as e:
        code = "INVALID_FORMAT" if "format" in str(e) else "MISSING_CONFIG_FIELDS"
        raise ConfigurationError(code, cause=e) from e
