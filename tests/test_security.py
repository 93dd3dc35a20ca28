"""
Tests for webhook authentication and token encryption.

These tests verify:
1. SIGNATURES: HMAC-SHA1 bodies verify only with the right secret and body
2. TOKENS: GitLab-style shared tokens, and the no-secret fallback
3. ENCRYPTION: ciphertexts decrypt only with the service key
4. SEALING: pepper and environment tag are re-checked on unseal
"""

import pytest

from comment_gateway.core.config import Settings
from comment_gateway.core.errors import AuthenticityError, ConfigurationError
from comment_gateway.core.security import (
    CryptoAuthenticator,
    authenticate_webhook,
    canonical_json,
    md5_hex,
    sign_webhook_body,
    verify_webhook_signature,
    verify_webhook_token,
)

BODY = b'{"action":"closed","number":7}'


# =============================================================================
# WEBHOOK SIGNATURES
# =============================================================================


class TestWebhookSignature:
    """HMAC-SHA1 signatures as sent by GitHub."""

    def test_signature_has_sha1_prefix(self):
        assert sign_webhook_body("s3cret", BODY).startswith("sha1=")

    def test_same_secret_verifies(self):
        signature = sign_webhook_body("s3cret", BODY)
        assert verify_webhook_signature("s3cret", BODY, signature)

    def test_other_secret_fails(self):
        signature = sign_webhook_body("s3cret", BODY)
        assert not verify_webhook_signature("other", BODY, signature)

    def test_altered_body_fails(self):
        signature = sign_webhook_body("s3cret", BODY)
        altered = BODY[:-2] + b"8}"
        assert not verify_webhook_signature("s3cret", altered, signature)

    def test_shared_token_compared_directly(self):
        assert verify_webhook_token("gl-token", "gl-token")
        assert not verify_webhook_token("gl-token", "gl-tokem")


class TestAuthenticateWebhook:
    def test_no_secret_means_trusted(self):
        assert authenticate_webhook("github", None, BODY, None) is False

    def test_missing_header_with_secret_raises(self):
        with pytest.raises(AuthenticityError) as exc_info:
            authenticate_webhook("github", "s3cret", BODY, None)
        assert exc_info.value.code == "WEBHOOK_SECRET_MISSING"

    def test_bad_signature_raises(self):
        with pytest.raises(AuthenticityError) as exc_info:
            authenticate_webhook("github", "s3cret", BODY, "sha1=deadbeef")
        assert exc_info.value.code == "WEBHOOK_SIGNATURE_INVALID"

    def test_valid_github_signature(self):
        assert authenticate_webhook("github", "s3cret", BODY, sign_webhook_body("s3cret", BODY))

    def test_gitlab_uses_token(self):
        assert authenticate_webhook("gitlab", "gl-token", BODY, "gl-token")
        with pytest.raises(AuthenticityError):
            authenticate_webhook("gitlab", "gl-token", BODY, sign_webhook_body("gl-token", BODY))


# =============================================================================
# HASHING
# =============================================================================


class TestHashing:
    def test_md5_hex(self):
        assert md5_hex("jane@example.com") == "9e26471d35a78862c17e467d87cddedf"

    def test_canonical_json_is_sorted_and_compact(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'


# =============================================================================
# ENCRYPTION
# =============================================================================


class TestEncryption:
    def test_decrypts_what_it_encrypts(self, authenticator):
        token = authenticator.encrypt_text("mailgun-key-123")
        assert authenticator.decrypt_text(token) == "mailgun-key-123"

    def test_large_payloads_fit(self, authenticator):
        text = "x" * 10_000
        assert authenticator.decrypt_text(authenticator.encrypt_text(text)) == text

    def test_ciphertext_is_comment_safe(self, authenticator):
        token = authenticator.encrypt_text("a" * 500)
        assert "-->" not in token

    def test_garbage_is_authenticity_error(self, authenticator):
        with pytest.raises(AuthenticityError):
            authenticator.decrypt_text("not-a-token")

    def test_foreign_key_is_authenticity_error(self, authenticator, settings):
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric import rsa

        other_pem = rsa.generate_private_key(public_exponent=65537, key_size=2048).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode()
        other = CryptoAuthenticator(settings.model_copy(update={"rsa_private_key": other_pem}))

        with pytest.raises(AuthenticityError):
            authenticator.decrypt_text(other.encrypt_text("hello"))

    def test_missing_key_is_configuration_error(self):
        authenticator = CryptoAuthenticator(Settings(rsa_private_key=None))
        with pytest.raises(ConfigurationError) as exc_info:
            authenticator.encrypt_text("hello")
        assert exc_info.value.code == "ENCRYPTION_NOT_CONFIGURED"

    def test_escaped_newlines_in_key_are_accepted(self, settings, rsa_private_key_pem):
        escaped = rsa_private_key_pem.replace("\n", "\\n")
        authenticator = CryptoAuthenticator(settings.model_copy(update={"rsa_private_key": escaped}))
        assert authenticator.decrypt_text(authenticator.encrypt_text("ok")) == "ok"


class TestSealing:
    def test_unseal_returns_payload_without_markers(self, authenticator):
        token = authenticator.seal({"parent": "post-1", "subscriberEmailAddress": "jane@example.com"})
        assert authenticator.unseal(token) == {
            "parent": "post-1",
            "subscriberEmailAddress": "jane@example.com",
        }

    def test_wrong_pepper_rejected(self, authenticator, settings):
        other = CryptoAuthenticator(settings.model_copy(update={"crypto_pepper": "other-pepper"}))
        token = other.seal({"parent": "post-1"})

        with pytest.raises(AuthenticityError) as exc_info:
            authenticator.unseal(token)
        assert exc_info.value.code == "PAYLOAD_NOT_AUTHENTIC"

    def test_other_environment_rejected(self, authenticator, settings):
        staging = CryptoAuthenticator(settings.model_copy(update={"exe_env": "staging"}))
        token = staging.seal({"parent": "post-1"})

        with pytest.raises(AuthenticityError):
            authenticator.unseal(token)

    def test_unsealed_plain_encryption_rejected(self, authenticator):
        # Anyone can produce this through the public encryption endpoint
        token = authenticator.encrypt_text('{"parent": "post-1"}')
        with pytest.raises(AuthenticityError):
            authenticator.unseal(token)
