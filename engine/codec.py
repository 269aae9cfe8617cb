"""
AEAD codec: AES-256-GCM over whole byte strings.

Container format (one per plaintext blob):
    [nonce 16B][GCM tag 16B][ciphertext]

Security Note:
    A fresh random nonce is drawn for every encrypt() call.
    Plaintext is only returned after the tag has verified.
"""
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from common.constants import CONTAINER_HEADER_LENGTH, KEY_LENGTH, NONCE_LENGTH, TAG_LENGTH
from engine.exceptions import ConfigurationError, IntegrityError, MalformedContainerError


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise ConfigurationError(f"Master key must be exactly {KEY_LENGTH} bytes")


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt plaintext into a nonce||tag||ciphertext container.

    Args:
        plaintext: Data to encrypt (may be empty).
        key: 32-byte AES key.

    Returns:
        Container bytes, 32 bytes longer than plaintext.
    """
    _check_key(key)
    nonce = os.urandom(NONCE_LENGTH)
    sealed = AESGCM(bytes(key)).encrypt(nonce, plaintext, None)
    # AESGCM appends the tag; the container stores it up front
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return nonce + tag + ciphertext


def decrypt(container: bytes, key: bytes) -> bytes:
    """Verify and decrypt a container produced by encrypt().

    Args:
        container: nonce||tag||ciphertext bytes.
        key: 32-byte AES key.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        MalformedContainerError: If the container is shorter than 32 bytes.
        IntegrityError: If the tag does not verify.
    """
    _check_key(key)
    if len(container) < CONTAINER_HEADER_LENGTH:
        raise MalformedContainerError(
            f"container too short: {len(container)} bytes "
            f"(minimum {CONTAINER_HEADER_LENGTH})"
        )
    nonce = container[:NONCE_LENGTH]
    tag = container[NONCE_LENGTH:CONTAINER_HEADER_LENGTH]
    ciphertext = container[CONTAINER_HEADER_LENGTH:]
    try:
        return AESGCM(bytes(key)).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise IntegrityError("authentication tag verification failed") from None


def generate_key() -> bytes:
    """Generate a random 32-byte key for provisioning."""
    return secrets.token_bytes(KEY_LENGTH)


def generate_key_hex() -> str:
    """Generate a random 32-byte key encoded as 64 hex characters."""
    return generate_key().hex()


class AeadCodec:
    """Codec bound to one injected key."""

    def __init__(self, key: bytes):
        _check_key(key)
        self._key = bytes(key)

    def __repr__(self) -> str:
        return "AeadCodec(key=***)"

    def encrypt(self, plaintext: bytes) -> bytes:
        return encrypt(plaintext, self._key)

    def decrypt(self, container: bytes) -> bytes:
        return decrypt(container, self._key)
