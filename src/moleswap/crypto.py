"""Secret and hashlock management.

Secrets are 32 random bytes rendered as ``0x`` + 64 hex chars. The hashlock
is keccak256 over the raw bytes, matching what the escrow contracts compute.
Secrets are stored with AES-256-GCM (12-byte IV, 16-byte tag) and the
stored form is base64(iv || ciphertext || tag).
"""

import base64
import binascii
import logging
import os
import re
import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from eth_utils import keccak

from moleswap.errors import ConfigurationError, DecryptionError, ValidationError

logger = logging.getLogger(__name__)

SECRET_BYTES = 32
IV_BYTES = 12
TAG_BYTES = 16

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


@dataclass
class SecretBundle:
    """A freshly generated secret with its commitment."""

    secret: str
    hashlock: str
    encrypted_secret: str


def _validate_bytes32(value: str, label: str) -> None:
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    if not value.startswith("0x"):
        raise ValidationError(f"{label} must start with 0x")
    body = value[2:]
    if len(body) != SECRET_BYTES * 2:
        raise ValidationError(f"{label} must be exactly 32 bytes (64 hex characters)")
    if not _HEX_RE.match(body):
        raise ValidationError(f"{label} must be a valid hex string")


def validate_secret_format(secret: str) -> None:
    """Validate a secret string.

    Raises:
        ValidationError: describing the first problem found
    """
    _validate_bytes32(secret, "Secret")


def validate_hashlock_format(hashlock: str) -> None:
    """Validate a hashlock string.

    Raises:
        ValidationError: describing the first problem found
    """
    _validate_bytes32(hashlock, "Hashlock")


def normalize_hex32(value: str) -> str:
    """Return a lowercase ``0x``-prefixed form of a 32-byte hex value."""
    if isinstance(value, str) and value[:2].lower() == "0x":
        value = value[2:]
    return "0x" + str(value).lower()


def generate_secret() -> str:
    """Generate a new secret from the OS CSPRNG."""
    return "0x" + secrets.token_bytes(SECRET_BYTES).hex()


def hashlock(secret: str) -> str:
    """Compute the keccak256 hashlock of a secret.

    The ``0x`` prefix is optional; the digest covers the raw 32 bytes.
    """
    normalized = normalize_hex32(secret)
    validate_secret_format(normalized)
    return "0x" + keccak(bytes.fromhex(normalized[2:])).hex()


def verify_secret(secret: str, expected_hashlock: str) -> bool:
    """Check that a secret opens a hashlock.

    Malformed input is rejected before hashing.

    Raises:
        ValidationError: if either value is malformed
    """
    validate_secret_format(secret)
    validate_hashlock_format(expected_hashlock)
    return hashlock(secret) == expected_hashlock.lower()


def generate_secret_key() -> str:
    """Generate a new SECRET_KEY value (64 hex chars)."""
    return secrets.token_bytes(32).hex()


class SecretEncryptor:
    """Encrypts and decrypts secrets with AES-256-GCM.

    Usage:
        encryptor = SecretEncryptor(secret_key)
        stored = encryptor.encrypt("0x...")
        secret = encryptor.decrypt(stored)
    """

    def __init__(self, key_hex: str):
        """Initialize with the encryption key.

        Args:
            key_hex: 64 hex chars (32 bytes)
        """
        try:
            key = bytes.fromhex(key_hex)
        except (TypeError, ValueError):
            raise ConfigurationError(["SECRET_KEY must be 64 hex characters (32 bytes)"])
        if len(key) != 32:
            raise ConfigurationError(["SECRET_KEY must be 64 hex characters (32 bytes)"])
        self._aead = AESGCM(key)

    def encrypt(self, secret: str) -> str:
        """Encrypt a secret.

        Returns:
            base64(iv || ciphertext || tag)
        """
        iv = os.urandom(IV_BYTES)
        sealed = self._aead.encrypt(iv, secret.encode(), None)
        return base64.b64encode(iv + sealed).decode()

    def decrypt(self, encrypted: str) -> str:
        """Decrypt a stored secret.

        Raises:
            DecryptionError: wrong key or corrupted data
        """
        try:
            raw = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionError("Encrypted secret is not valid base64")
        if len(raw) < IV_BYTES + TAG_BYTES:
            raise DecryptionError("Encrypted secret is too short")
        try:
            plaintext = self._aead.decrypt(raw[:IV_BYTES], raw[IV_BYTES:], None)
        except InvalidTag:
            raise DecryptionError("Failed to decrypt secret: authentication failed")
        return plaintext.decode()

    def generate(self) -> SecretBundle:
        """Generate a secret, its hashlock and the encrypted form."""
        secret = generate_secret()
        return SecretBundle(
            secret=secret,
            hashlock=hashlock(secret),
            encrypted_secret=self.encrypt(secret),
        )


def get_encryptor(secret_key: Optional[str] = None) -> SecretEncryptor:
    """Get an encryptor using SECRET_KEY from settings.

    Raises:
        ConfigurationError: if no key is configured
    """
    if secret_key is None:
        from moleswap.config import get_settings

        secret_key = get_settings().secret_key

    if not secret_key:
        raise ConfigurationError(["SECRET_KEY is required"])

    return SecretEncryptor(secret_key)
