"""Security utilities: webhook authentication, token encryption, hashing."""

import base64
import binascii
import hashlib
import hmac
import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .config import Settings
from .errors import AuthenticityError, ConfigurationError

logger = logging.getLogger(__name__)

GITHUB_SIGNATURE_PREFIX = "sha1="

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


# =============================================================================
# WEBHOOK AUTHENTICATION
# =============================================================================


def sign_webhook_body(secret: str, raw_body: bytes) -> str:
    """Compute the GitHub-style `X-Hub-Signature` value for a body."""
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha1).hexdigest()
    return GITHUB_SIGNATURE_PREFIX + digest


def verify_webhook_signature(secret: str, raw_body: bytes, signature: str) -> bool:
    """
    Verify an HMAC-SHA1 signed webhook body.

    See: https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
    """
    expected_sig = sign_webhook_body(secret, raw_body)
    return hmac.compare_digest(expected_sig.encode(), signature.encode())


def verify_webhook_token(secret: str, token: str) -> bool:
    """GitLab sends the shared secret as-is instead of signing the body."""
    return hmac.compare_digest(secret.encode(), token.encode())


def authenticate_webhook(
    service: str,
    secret: str | None,
    raw_body: bytes,
    provided: str | None,
) -> bool:
    """
    Authenticate an inbound webhook delivery.

    Returns False when no secret is configured: the request is then trusted
    without verification. Raises AuthenticityError when a secret is
    configured and the header is missing or does not match.
    """
    if not secret:
        return False

    if not provided:
        raise AuthenticityError("WEBHOOK_SECRET_MISSING")

    if service == "github":
        verified = verify_webhook_signature(secret, raw_body, provided)
    else:
        verified = verify_webhook_token(secret, provided)

    if not verified:
        raise AuthenticityError("WEBHOOK_SIGNATURE_INVALID")
    return True


# =============================================================================
# HASHING
# =============================================================================


def md5_hex(value: str) -> str:
    """MD5 hex digest, used for list addresses and hashed email fields."""
    return hashlib.md5(value.encode()).hexdigest()


def canonical_json(payload: Any) -> str:
    """Deterministic JSON encoding (sorted keys, no whitespace)."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


# =============================================================================
# ENCRYPTION
# =============================================================================


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class CryptoAuthenticator:
    """
    Encrypts and authenticates opaque tokens handed out to the public.

    Text is encrypted with a fresh Fernet key which is itself wrapped with the
    service's RSA public key, so arbitrarily large payloads fit. Ciphertexts
    are URL safe and never contain "-->", so they can be embedded in HTML
    comments.

    Because the encryption endpoint is public, anyone can produce a valid
    ciphertext. Sealed payloads therefore embed the pepper and the
    environment tag; `unseal` is the actual authenticity check.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._private_key: rsa.RSAPrivateKey | None = None

    def _key(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            if not self._settings.rsa_private_key:
                raise ConfigurationError("ENCRYPTION_NOT_CONFIGURED")
            # Handle keys passed through env vars with escaped newlines
            pem = self._settings.rsa_private_key.replace("\\n", "\n")
            try:
                key = serialization.load_pem_private_key(pem.encode(), password=None)
            except (ValueError, TypeError) as e:
                raise ConfigurationError("ENCRYPTION_NOT_CONFIGURED", cause=e) from e
            if not isinstance(key, rsa.RSAPrivateKey):
                raise ConfigurationError("ENCRYPTION_NOT_CONFIGURED")
            self._private_key = key
        return self._private_key

    def encrypt_text(self, text: str) -> str:
        """Encrypt text for later decryption by this service."""
        data_key = Fernet.generate_key()
        wrapped_key = self._key().public_key().encrypt(data_key, _OAEP)
        sealed = Fernet(data_key).encrypt(text.encode())
        return f"{_b64encode(wrapped_key)}.{sealed.decode()}"

    def decrypt_text(self, token: str) -> str:
        """Decrypt text; malformed input or a foreign key is an AuthenticityError."""
        private_key = self._key()
        try:
            wrapped_part, sealed_part = token.split(".", 1)
            data_key = private_key.decrypt(_b64decode(wrapped_part), _OAEP)
            return Fernet(data_key).decrypt(sealed_part.encode()).decode()
        except (ValueError, TypeError, binascii.Error, InvalidToken, UnicodeDecodeError) as e:
            logger.warning("Failed to decrypt token")
            raise AuthenticityError("PAYLOAD_NOT_AUTHENTIC", cause=e) from e

    def seal(self, payload: dict[str, Any]) -> str:
        """Encrypt a payload together with the pepper and environment tag."""
        if not self._settings.crypto_pepper:
            logger.warning("CRYPTO_PEPPER not configured - sealed payloads cannot be authenticated")
        body = dict(payload)
        body["pepper"] = self._settings.crypto_pepper
        body["exeEnv"] = self._settings.exe_env
        return self.encrypt_text(canonical_json(body))

    def unseal(self, token: str) -> dict[str, Any]:
        """Decrypt a sealed payload and verify its pepper and environment tag."""
        text = self.decrypt_text(token)
        try:
            body = json.loads(text)
        except ValueError as e:
            raise AuthenticityError("PAYLOAD_NOT_AUTHENTIC", cause=e) from e

        if not isinstance(body, dict):
            raise AuthenticityError("PAYLOAD_NOT_AUTHENTIC")

        pepper = body.pop("pepper", None)
        exe_env = body.pop("exeEnv", None)

        expected_pepper = self._settings.crypto_pepper or ""
        if not hmac.compare_digest(str(pepper or "").encode(), expected_pepper.encode()):
            logger.warning("Sealed payload rejected: pepper mismatch")
            raise AuthenticityError("PAYLOAD_NOT_AUTHENTIC")

        if exe_env != self._settings.exe_env:
            logger.warning(f"Sealed payload rejected: environment {exe_env!r} is not {self._settings.exe_env!r}")
            raise AuthenticityError("PAYLOAD_NOT_AUTHENTIC")

        return body
