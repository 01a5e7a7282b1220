# tests/test_crypto.py

from __future__ import annotations

import base64
import os

import pytest

from sd_relay.core.crypto import IV_SIZE, decrypt, encrypt
from sd_relay.errors import CiphertextFormatError, CryptoError, InvalidKeyError


@pytest.mark.parametrize("key_size", [16, 24, 32])
@pytest.mark.parametrize("plaintext", ["", "abc123", "задача-42", "x" * 1000])
def test_encrypt_decrypt_round_trip(key_size: int, plaintext: str) -> None:
    key = base64.b64encode(os.urandom(key_size)).decode("ascii")
    assert decrypt(encrypt(plaintext, key), key) == plaintext


def test_ciphertext_is_urlsafe_iv_plus_stream(app_key: str) -> None:
    token = encrypt("abc123", app_key)
    raw = base64.urlsafe_b64decode(token)

    assert "+" not in token and "/" not in token
    assert len(raw) == IV_SIZE + len("abc123")


def test_fresh_iv_per_call(app_key: str) -> None:
    a = encrypt("abc123", app_key)
    b = encrypt("abc123", app_key)
    assert a != b
    assert decrypt(a, app_key) == decrypt(b, app_key) == "abc123"


@pytest.mark.parametrize("key_size", [0, 1, 15, 17, 31, 33, 64])
def test_invalid_key_length_is_key_error(key_size: int) -> None:
    key = base64.b64encode(b"k" * key_size).decode("ascii")
    with pytest.raises(InvalidKeyError):
        encrypt("abc", key)
    with pytest.raises(InvalidKeyError):
        decrypt("A" * 40, key)


def test_key_that_is_not_base64_is_key_error() -> None:
    with pytest.raises(InvalidKeyError):
        encrypt("abc", "not base64 at all!")


@pytest.mark.parametrize("n_bytes", [0, 1, IV_SIZE - 1])
def test_short_ciphertext_is_format_error(app_key: str, n_bytes: int) -> None:
    short = base64.urlsafe_b64encode(b"\x00" * n_bytes).decode("ascii")
    with pytest.raises(CiphertextFormatError):
        decrypt(short, app_key)


def test_crypto_errors_are_value_errors() -> None:
    assert issubclass(InvalidKeyError, CryptoError)
    assert issubclass(CiphertextFormatError, ValueError)
