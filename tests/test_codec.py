"""Unit tests for the AES-256-GCM container codec."""

import pytest

from common.constants import CONTAINER_HEADER_LENGTH, NONCE_LENGTH
from engine.codec import AeadCodec, decrypt, encrypt, generate_key, generate_key_hex
from engine.exceptions import ConfigurationError, IntegrityError, MalformedContainerError


class TestEncryptDecrypt:
    """Round trips and container layout."""

    @pytest.mark.parametrize("plaintext", [b"", b"x", b"hello world", bytes(range(256)) * 300])
    def test_round_trip(self, master_key, plaintext):
        assert decrypt(encrypt(plaintext, master_key), master_key) == plaintext

    def test_container_is_32_bytes_longer(self, master_key):
        container = encrypt(b"abc", master_key)
        assert len(container) == CONTAINER_HEADER_LENGTH + 3

    def test_empty_plaintext_gives_bare_header(self, master_key):
        container = encrypt(b"", master_key)
        assert len(container) == CONTAINER_HEADER_LENGTH
        assert decrypt(container, master_key) == b""

    def test_same_plaintext_encrypts_differently(self, master_key):
        first = encrypt(b"same input", master_key)
        second = encrypt(b"same input", master_key)

        assert first != second
        assert first[:NONCE_LENGTH] != second[:NONCE_LENGTH]

    def test_layout_is_nonce_tag_ciphertext(self, master_key):
        from cryptography.hazmat.primitives.ciphers.aead import AESGCM

        container = encrypt(b"layout check", master_key)
        nonce, tag, ciphertext = container[:16], container[16:32], container[32:]

        assert AESGCM(master_key).decrypt(nonce, ciphertext + tag, None) == b"layout check"


class TestTamperDetection:
    """Any modification must fail authentication."""

    @pytest.mark.parametrize("position", [0, 15, 16, 31, 32, -1])
    def test_single_bit_flip_is_rejected(self, master_key, position):
        container = bytearray(encrypt(b"sensitive payload", master_key))
        container[position] ^= 0x01

        with pytest.raises(IntegrityError):
            decrypt(bytes(container), master_key)

    def test_truncated_ciphertext_is_rejected(self, master_key):
        container = encrypt(b"sensitive payload", master_key)

        with pytest.raises(IntegrityError):
            decrypt(container[:-1], master_key)

    def test_wrong_key_is_rejected(self, master_key):
        container = encrypt(b"secret", master_key)

        with pytest.raises(IntegrityError):
            decrypt(container, generate_key())

    @pytest.mark.parametrize("length", [0, 1, 16, 31])
    def test_short_container_is_malformed(self, master_key, length):
        with pytest.raises(MalformedContainerError):
            decrypt(b"\x00" * length, master_key)

    def test_header_only_container_fails_integrity(self, master_key):
        with pytest.raises(IntegrityError):
            decrypt(b"\x00" * CONTAINER_HEADER_LENGTH, master_key)


class TestKeys:
    """Key validation and generation."""

    @pytest.mark.parametrize("key", [b"", b"\x00" * 16, b"\x00" * 31, b"\x00" * 33])
    def test_wrong_key_length_rejected(self, key):
        with pytest.raises(ConfigurationError):
            encrypt(b"data", key)
        with pytest.raises(ConfigurationError):
            AeadCodec(key)

    def test_generate_key(self):
        assert len(generate_key()) == 32
        assert generate_key() != generate_key()

    def test_generate_key_hex(self):
        key_hex = generate_key_hex()
        assert len(key_hex) == 64
        assert len(bytes.fromhex(key_hex)) == 32

    def test_codec_repr_hides_key(self, master_key):
        assert master_key.hex() not in repr(AeadCodec(master_key))

    def test_codec_round_trip(self, codec):
        assert codec.decrypt(codec.encrypt(b"bound key")) == b"bound key"
