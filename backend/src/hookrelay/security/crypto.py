"""Secret encryption at rest and HMAC signature verification.

Secrets (Mollie API keys, next-gen shared secrets) are sealed with AES-256-GCM
under a key derived from the master ENCRYPTION_KEY with PBKDF2-SHA512 and a
random per-secret salt. The stored token is base64(salt | iv | tag | ciphertext).
"""
import base64
import hashlib
import hmac
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted with the master key."""


class SecretBox:
    """Symmetric encrypt/decrypt of short secrets with a master key."""

    def __init__(self, master_key: str, iterations: int = PBKDF2_ITERATIONS):
        """
        Initialize the box.

        Args:
            master_key: Master encryption key from configuration

        Raises:
            ValueError: If the master key is empty
        """
        if not master_key:
            raise ValueError("An encryption key is required")
        self._master_key = master_key.encode("utf-8")
        self._iterations = iterations

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret.

        Args:
            plaintext: Secret to seal

        Returns:
            Base64 token safe to store in a text column
        """
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag; the stored layout keeps it in front of the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, token: str) -> str:
        """
        Decrypt a token produced by encrypt().

        Args:
            token: Base64 token

        Returns:
            The original secret

        Raises:
            DecryptionError: If the token is malformed or was sealed with another key
        """
        try:
            data = base64.b64decode(token, validate=True)
        except (ValueError, TypeError) as e:
            raise DecryptionError("Encrypted value is not valid base64") from e

        header = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
        if len(data) < header:
            raise DecryptionError("Encrypted value is truncated")

        salt = data[:SALT_LENGTH]
        iv = data[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        tag = data[SALT_LENGTH + IV_LENGTH:header]
        ciphertext = data[header:]

        try:
            plaintext = AESGCM(self._derive_key(salt)).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError("Encrypted value failed authentication") from e

        return plaintext.decode("utf-8")


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def sign_payload(payload: str | bytes, secret: str) -> str:
    """Generate the hex HMAC-SHA256 signature of a payload."""
    return hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()


def verify_signature(payload: str | bytes, signature: str, secret: str) -> bool:
    """
    Verify a hex HMAC-SHA256 signature in constant time.

    Args:
        payload: Raw, unparsed request body
        signature: Signature received from the provider
        secret: Decrypted shared secret

    Returns:
        True if the signature matches the payload
    """
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(_to_bytes(signature), _to_bytes(expected))
