"""Turning submitted fields into the file that gets committed."""

import hashlib
import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable

import yaml

from ..core.errors import ConfigurationError, FieldValidationError
from ..schemas import (
    DateGenerator,
    FileFormat,
    SiteConfig,
    SlugifyGenerator,
    UserGenerator,
)

logger = logging.getLogger(__name__)

FRONTMATTER_CONTENT = "frontmatterContent"

_PLACEHOLDER_RE = re.compile(r"{(.*?)}")
DATE_PLACEHOLDER = "@date:"


# =============================================================================
# VALIDATION
# =============================================================================


def validate_fields(fields: dict[str, Any], site_config: SiteConfig) -> dict[str, Any]:
    """
    Check fields against the site's allowed and required lists.

    Returns a copy with string values trimmed. Empty values of unknown fields
    are tolerated, since forms often post unused inputs.
    """
    cleaned: dict[str, Any] = {}
    invalid_fields: list[str] = []

    for name, value in fields.items():
        if name not in site_config.allowed_fields and value != "":
            invalid_fields.append(name)
        cleaned[name] = value.strip() if isinstance(value, str) else value

    missing_fields = [
        name for name in site_config.required_fields if cleaned.get(name) in (None, "")
    ]

    if missing_fields:
        raise FieldValidationError("MISSING_REQUIRED_FIELDS", data=missing_fields)
    if invalid_fields:
        raise FieldValidationError("INVALID_FIELDS", data=invalid_fields)
    return cleaned


# =============================================================================
# GENERATED FIELDS
# =============================================================================


def create_date(date_format: str = "iso8601", now: datetime | None = None) -> str | int:
    """Current date as a ms or s timestamp, or ISO-8601 for any other format."""
    now = now or datetime.now(timezone.utc)
    if date_format == "timestamp":
        return int(now.timestamp() * 1000)
    if date_format == "timestamp-seconds":
        return int(now.timestamp())
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def slugify(text: str) -> str:
    """Create URL-safe slug from text."""
    slug = text.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def get_path(obj: Any, dotted: str) -> Any:
    """Look up `a.b.c` in nested dicts; None when any step is missing."""
    current = obj
    for part in dotted.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


def apply_generated_fields(
    fields: dict[str, Any],
    site_config: SiteConfig,
    user: dict[str, Any] | None = None,
) -> dict[str, Any]:
    data = dict(fields)
    for name, generator in site_config.generators.items():
        if isinstance(generator, DateGenerator):
            data[name] = create_date(generator.options.format)
        elif isinstance(generator, UserGenerator):
            if user is not None and generator.options.property:
                data[name] = get_path(user, generator.options.property)
        elif isinstance(generator, SlugifyGenerator):
            source = generator.options.field
            if source and isinstance(data.get(source), str):
                data[name] = slugify(data[source])
        elif isinstance(generator, dict):
            logger.warning(f"Skipping generated field {name}: unknown type {generator.get('type')!r}")
        else:
            data[name] = generator
    return data


# =============================================================================
# TRANSFORMS
# =============================================================================

TRANSFORMS: dict[str, Callable[[Any], Any]] = {
    "md5": lambda value: hashlib.md5(str(value).encode()).hexdigest(),
    "upcase": lambda value: str(value).upper(),
    "downcase": lambda value: str(value).lower(),
    # Marks the field that becomes the frontmatter body
    FRONTMATTER_CONTENT: lambda value: value,
}


def apply_transforms(fields: dict[str, Any], site_config: SiteConfig) -> dict[str, Any]:
    data = dict(fields)
    for name in site_config.transforms:
        if not data.get(name):
            continue
        for transform_name in site_config.transforms_for(name):
            transform = TRANSFORMS.get(transform_name)
            if transform is None:
                logger.warning(f"Unknown transform {transform_name!r} for field {name}")
                continue
            data[name] = transform(data[name])
    return data


def apply_internal_fields(fields: dict[str, Any], uid: str, parent: str | None = None) -> dict[str, Any]:
    internal: dict[str, Any] = {"_id": uid}
    if parent:
        internal["_parent"] = parent
    return {**internal, **fields}


# =============================================================================
# FILES
# =============================================================================


def _frontmatter_field(site_config: SiteConfig) -> str | None:
    for name in site_config.transforms:
        if site_config.transforms_for(name) == [FRONTMATTER_CONTENT]:
            return name
    return None


def create_file(fields: dict[str, Any], site_config: SiteConfig) -> str:
    """Serialise an entry in the site's configured format."""
    file_format = site_config.format
    if file_format == FileFormat.JSON.value:
        return json.dumps(fields, separators=(",", ":"), ensure_ascii=False)

    if file_format in (FileFormat.YAML.value, FileFormat.YML.value):
        return yaml.safe_dump(fields, sort_keys=False, allow_unicode=True)

    if file_format == FileFormat.FRONTMATTER.value:
        content_field = _frontmatter_field(site_config)
        if content_field is None:
            raise ConfigurationError("NO_FRONTMATTER_CONTENT_TRANSFORM")
        attributes = {name: value for name, value in fields.items() if name != content_field}
        front = yaml.safe_dump(attributes, sort_keys=False, allow_unicode=True)
        return f"---\n{front}---\n{fields.get(content_field)}\n"

    raise ConfigurationError("INVALID_FORMAT")


def extension_for(site_config: SiteConfig) -> str:
    if site_config.extension:
        return site_config.extension
    if site_config.format == FileFormat.JSON.value:
        return "json"
    if site_config.format == FileFormat.FRONTMATTER.value:
        return "md"
    return "yml"


def resolve_placeholders(
    template: str,
    base: dict[str, Any],
    uid: str,
    now: datetime | None = None,
) -> str:
    """
    Replace `{...}` placeholders.

    `{@id}` is the entry id, `{@timestamp}` epoch milliseconds, `{@date:FMT}` the
    current date in strftime format; anything else is a dotted path into
    `base` (e.g. `{fields.name}`, `{options.slug}`), empty when missing.
    """
    now = now or datetime.now(timezone.utc)

    def replace(match: re.Match) -> str:
        prop = match.group(1)
        if prop == "@timestamp":
            return str(int(time.time() * 1000))
        if prop == "@id":
            return uid
        if prop.startswith(DATE_PLACEHOLDER):
            return now.strftime(prop[len(DATE_PLACEHOLDER):])
        value = get_path(base, prop)
        return "" if value in (None, "") else str(value)

    return _PLACEHOLDER_RE.sub(replace, template)


def new_file_path(
    fields: dict[str, Any],
    options: dict[str, Any],
    site_config: SiteConfig,
    uid: str,
) -> str:
    base = {"fields": fields, "options": options}
    filename = resolve_placeholders(site_config.filename, base, uid) if site_config.filename else uid
    path = resolve_placeholders(site_config.path, base, uid).rstrip("/")
    return f"{path}/{filename}.{extension_for(site_config)}"


# =============================================================================
# REVIEW BODY
# =============================================================================


def _table_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    return text.replace("|", "\\|").replace("\r\n", "<br>").replace("\n", "<br>")


def markdown_table(fields: dict[str, Any]) -> str:
    rows = [("Field", "Content"), *((name, fields[name]) for name in fields)]
    lines = [f"| {_table_cell(name)} | {_table_cell(value)} |" for name, value in rows]
    lines.insert(1, "| --- | --- |")
    return "\n".join(lines)


def build_review_body(site_config: SiteConfig, fields: dict[str, Any], marker: str | None = None) -> str:
    body = site_config.pull_request_body + markdown_table(fields)
    if marker:
        body += f"\n\n{marker}"
    return body
