"""Base schemas and common types for the Comment Gateway API."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================


class GitService(str, Enum):
    """Supported git hosting providers."""

    GITHUB = "github"
    GITLAB = "gitlab"


class ConsentModel(str, Enum):
    """Which audit fields are recorded with a subscription."""

    NONE = "none"
    SINGLE = "single"
    DOUBLE = "double"


class FileFormat(str, Enum):
    """Format of the files written for each entry."""

    JSON = "json"
    YAML = "yaml"
    YML = "yml"
    FRONTMATTER = "frontmatter"


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class GatewayBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
    )


class CamelModel(GatewayBaseModel):
    """Model whose wire format uses camelCase keys (site config, tokens)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorResponse(GatewayBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[Any] = []
    request_id: str | None = None
