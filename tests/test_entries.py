"""
Tests for field validation, generated fields, transforms and file output.
"""

import json
from datetime import datetime, timezone

import pytest
import yaml

from comment_gateway.core.errors import ConfigurationError, FieldValidationError
from comment_gateway.core.security import md5_hex
from comment_gateway.schemas import load_site_config
from comment_gateway.services.entries import (
    apply_generated_fields,
    apply_internal_fields,
    apply_transforms,
    build_review_body,
    create_date,
    create_file,
    get_path,
    markdown_table,
    new_file_path,
    resolve_placeholders,
    slugify,
    validate_fields,
)

from conftest import make_site_config

NOW = datetime(2024, 3, 5, 14, 7, 9, 123000, tzinfo=timezone.utc)


def site_config(**overrides):
    return load_site_config(make_site_config(**overrides))


# =============================================================================
# SITE CONFIG
# =============================================================================


class TestLoadSiteConfig:
    def test_missing_required_keys_are_named(self):
        raw = make_site_config()
        del raw["branch"]
        del raw["path"]

        with pytest.raises(ConfigurationError) as exc_info:
            load_site_config(raw)

        assert exc_info.value.code == "MISSING_CONFIG_FIELDS"
        assert exc_info.value.data == ["branch", "path"]

    def test_missing_block(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_site_config(None)
        assert exc_info.value.code == "MISSING_CONFIG_BLOCK"

    def test_unknown_format(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_site_config(make_site_config(format="xml"))
        assert exc_info.value.code == "INVALID_FORMAT"

    def test_camel_case_keys(self):
        config = site_config(reCaptcha={"enabled": True, "siteKey": "key"})
        assert config.allowed_fields == ["name", "email", "message", "url"]
        assert config.re_captcha.site_key == "key"
        assert config.notifications.enabled is True
        assert config.format == "yml"


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidateFields:
    def test_trims_values(self):
        cleaned = validate_fields({"name": "  Jane ", "message": "Hi\n"}, site_config())
        assert cleaned == {"name": "Jane", "message": "Hi"}

    def test_missing_required_field(self):
        with pytest.raises(FieldValidationError) as exc_info:
            validate_fields({"name": "Jane", "message": "   "}, site_config())
        assert exc_info.value.code == "MISSING_REQUIRED_FIELDS"
        assert exc_info.value.data == ["message"]

    def test_field_not_allowed(self):
        with pytest.raises(FieldValidationError) as exc_info:
            validate_fields({"name": "Jane", "message": "Hi", "admin": "yes"}, site_config())
        assert exc_info.value.code == "INVALID_FIELDS"
        assert exc_info.value.data == ["admin"]

    def test_missing_reported_before_invalid(self):
        with pytest.raises(FieldValidationError) as exc_info:
            validate_fields({"admin": "yes"}, site_config())
        assert exc_info.value.code == "MISSING_REQUIRED_FIELDS"

    def test_empty_unknown_field_tolerated(self):
        cleaned = validate_fields({"name": "Jane", "message": "Hi", "honeypot": ""}, site_config())
        assert cleaned["name"] == "Jane"


# =============================================================================
# GENERATED FIELDS
# =============================================================================


class TestGeneratedFields:
    def test_date_formats(self):
        assert create_date("iso8601", NOW) == "2024-03-05T14:07:09.123Z"
        whole_second = NOW.replace(microsecond=0)
        assert create_date("timestamp", whole_second) == 1709647629000
        assert create_date("timestamp-seconds", NOW) == 1709647629

    def test_unknown_date_format_is_iso8601(self):
        assert create_date("rfc2822", NOW) == "2024-03-05T14:07:09.123Z"

        config = site_config(generatedFields={"date": {"type": "date", "options": {"format": "rfc2822"}}})
        data = apply_generated_fields({"name": "Jane"}, config)

        assert datetime.fromisoformat(data["date"].replace("Z", "+00:00")).tzinfo is not None

    def test_unknown_generator_type_is_skipped(self, caplog):
        config = site_config(generatedFields={"mystery": {"type": "nope"}, "layout": "comment"})

        data = apply_generated_fields({"name": "Jane"}, config)

        assert "mystery" not in data
        assert data["layout"] == "comment"
        assert "mystery" in caplog.text

    def test_malformed_generator_options(self):
        config = site_config(generatedFields={"date": {"type": "date", "options": "iso8601"}})
        with pytest.raises(ConfigurationError) as exc_info:
            apply_generated_fields({"name": "Jane"}, config)
        assert exc_info.value.code == "INVALID_CONFIG_FILE"

    def test_slugify(self):
        assert slugify("  Hello, World!  It's me ") == "hello-world-its-me"

    def test_get_path(self):
        assert get_path({"a": {"b": {"c": 1}}}, "a.b.c") == 1
        assert get_path({"a": {}}, "a.b.c") is None

    def test_generators_and_constants(self):
        config = site_config(
            generatedFields={
                "date": {"type": "date", "options": {"format": "timestamp-seconds"}},
                "author": {"type": "user", "options": {"property": "login"}},
                "legacyAuthor": {"type": "github", "options": {"property": "name"}},
                "slug": {"type": "slugify", "options": {"field": "name"}},
                "layout": "comment",
            }
        )
        user = {"login": "octocat", "name": "The Octocat"}

        data = apply_generated_fields({"name": "Jane Doe"}, config, user)

        assert isinstance(data["date"], int)
        assert data["author"] == "octocat"
        assert data["legacyAuthor"] == "The Octocat"
        assert data["slug"] == "jane-doe"
        assert data["layout"] == "comment"

    def test_user_generator_without_user_is_skipped(self):
        config = site_config(generatedFields={"author": {"type": "user", "options": {"property": "login"}}})
        assert "author" not in apply_generated_fields({"name": "Jane"}, config)


class TestTransforms:
    def test_md5(self):
        data = apply_transforms({"email": "jane@example.com"}, site_config())
        assert data["email"] == md5_hex("jane@example.com")

    def test_chain(self):
        config = site_config(transforms={"name": ["downcase", "md5"]})
        assert apply_transforms({"name": "JANE"}, config)["name"] == md5_hex("jane")

    def test_empty_values_are_left_alone(self):
        assert apply_transforms({"email": ""}, site_config())["email"] == ""

    def test_internal_fields_come_first(self):
        extended = apply_internal_fields({"name": "Jane"}, "uid-1", "post-1")
        assert list(extended) == ["_id", "_parent", "name"]
        assert apply_internal_fields({"name": "Jane"}, "uid-1") == {"_id": "uid-1", "name": "Jane"}


# =============================================================================
# FILES
# =============================================================================


class TestCreateFile:
    FIELDS = {"_id": "uid-1", "name": "Jane", "message": "Hi there"}

    def test_json(self):
        content = create_file(self.FIELDS, site_config(format="json"))
        assert json.loads(content) == self.FIELDS
        assert " " not in content.replace("Hi there", "")

    def test_yaml(self):
        content = create_file(self.FIELDS, site_config(format="yaml"))
        assert yaml.safe_load(content) == self.FIELDS
        assert content.startswith("_id: uid-1\n")

    def test_frontmatter(self):
        config = site_config(format="frontmatter", transforms={"message": "frontmatterContent"})
        content = create_file(self.FIELDS, config)
        assert content == "---\n_id: uid-1\nname: Jane\n---\nHi there\n"

    def test_frontmatter_requires_content_field(self):
        with pytest.raises(ConfigurationError) as exc_info:
            create_file(self.FIELDS, site_config(format="frontmatter"))
        assert exc_info.value.code == "NO_FRONTMATTER_CONTENT_TRANSFORM"


class TestPaths:
    def test_placeholders(self):
        base = {"fields": {"name": "Jane"}, "options": {"slug": "post-1"}}
        result = resolve_placeholders("{options.slug}/{@id}-{fields.name}-{@date:%Y}-{missing}", base, "uid-1", NOW)
        assert result == "post-1/uid-1-Jane-2024-"

    def test_timestamp_placeholder(self):
        assert resolve_placeholders("entry{@timestamp}", {}, "uid-1").removeprefix("entry").isdigit()

    def test_file_path(self):
        path = new_file_path({"name": "Jane"}, {"slug": "post-1"}, site_config(filename="{@id}"), "uid-1")
        assert path == "_data/comments/post-1/uid-1.yml"

    def test_filename_defaults_to_id(self):
        config = site_config(filename="", format="json")
        assert new_file_path({}, {"slug": "post-1"}, config, "uid-1") == "_data/comments/post-1/uid-1.json"

    def test_explicit_extension(self):
        config = site_config(filename="{@id}", extension="yaml")
        assert new_file_path({}, {"slug": "p"}, config, "uid-1") == "_data/comments/p/uid-1.yaml"


class TestReviewBody:
    def test_table(self):
        table = markdown_table({"name": "Jane", "message": "a|b\nc"})
        assert table.splitlines() == [
            "| Field | Content |",
            "| --- | --- |",
            "| name | Jane |",
            "| message | a\\|b<br>c |",
        ]

    def test_body_with_marker(self):
        config = site_config(pullRequestBody="Please review:\n\n")
        body = build_review_body(config, {"name": "Jane"}, "<!--marker-->")
        assert body.startswith("Please review:\n\n| Field | Content |")
        assert body.endswith("| name | Jane |\n\n<!--marker-->")

    def test_body_without_marker(self):
        body = build_review_body(site_config(), {"name": "Jane"})
        assert body.startswith("Dear human,")
        assert "<!--" not in body
