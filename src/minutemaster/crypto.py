"""
Machine-bound encryption for stored API keys.

API keys saved by the server are encrypted with AES-256-GCM. The key is
derived with PBKDF2-HMAC-SHA512 from a machine identifier, so an encrypted
value copied to another host cannot be decrypted there.

Encoded layout (base64): salt (64) | iv (16) | tag (16) | ciphertext
"""

import base64
import hashlib
import logging
import os
import platform
import socket
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
ITERATIONS = 100000

_SELF_TEST_VALUE = "test-api-key-12345"


class CryptoError(Exception):
    """Raised when the encryption self-test fails."""


def get_machine_key() -> str:
    """Derive a stable identifier for this machine from hostname, platform and architecture."""
    machine_id = f"{socket.gethostname()}-{platform.system().lower()}-{platform.machine()}"
    return hashlib.sha256(machine_id.encode("utf-8")).hexdigest()


def _derive_key(salt: bytes, machine_key: Optional[str] = None) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=ITERATIONS,
    )
    return kdf.derive((machine_key or get_machine_key()).encode("utf-8"))


def encrypt(text: str, machine_key: Optional[str] = None) -> str:
    """
    Encrypt text with a key bound to this machine.

    Args:
        text: Plaintext to encrypt (typically an API key)
        machine_key: Override for the machine identifier (tests)

    Returns:
        Base64 string of salt, IV, auth tag and ciphertext
    """
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(salt, machine_key)

    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt(encoded: str, machine_key: Optional[str] = None) -> Optional[str]:
    """
    Decrypt a value produced by encrypt().

    Returns:
        The plaintext, or None if the data is malformed, tampered with, or was
        encrypted on another machine.
    """
    try:
        data = base64.b64decode(encoded, validate=True)
        header = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
        if len(data) < header:
            raise ValueError("Encrypted payload is too short")

        salt = data[:SALT_LENGTH]
        iv = data[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
        tag = data[SALT_LENGTH + IV_LENGTH : header]
        ciphertext = data[header:]

        key = _derive_key(salt, machine_key)
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError, TypeError) as e:
        logger.error(f"Decryption failed: {type(e).__name__}")
        return None


def validate_crypto() -> bool:
    """
    Round-trip a known value through encrypt/decrypt.

    Raises:
        CryptoError: If the decrypted value does not match
    """
    encrypted = encrypt(_SELF_TEST_VALUE)
    if decrypt(encrypted) != _SELF_TEST_VALUE:
        raise CryptoError("Encryption validation failed")

    logger.info("Encryption self-test passed")
    return True
