# src/sd_relay/core/crypto.py

"""
Task id obfuscation.

AES in CFB mode with a random IV prepended to the ciphertext, encoded as
URL-safe base64. CFB is a stream mode, so the raw output is exactly
IV_SIZE + len(plaintext) bytes.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..errors import CiphertextFormatError, InvalidKeyError

IV_SIZE = 16
VALID_KEY_SIZES = (16, 24, 32)


def _decode_key(key: str) -> bytes:
    try:
        raw = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidKeyError(f"encryption key is not valid base64: {e}") from e
    if len(raw) not in VALID_KEY_SIZES:
        raise InvalidKeyError(f"invalid AES key size: {len(raw)} bytes")
    return raw


def _cipher(raw_key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(raw_key), modes.CFB(iv))


def encrypt(plaintext: str, key: str) -> str:
    """Encrypt plaintext with a base64-encoded AES key; returns URL-safe base64 of IV + ciphertext."""
    raw_key = _decode_key(key)
    iv = os.urandom(IV_SIZE)

    encryptor = _cipher(raw_key, iv).encryptor()
    body = encryptor.update(plaintext.encode("utf-8")) + encryptor.finalize()

    return base64.urlsafe_b64encode(iv + body).decode("ascii")


def decrypt(ciphertext: str, key: str) -> str:
    raw_key = _decode_key(key)

    try:
        raw = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
    except (binascii.Error, ValueError) as e:
        raise CiphertextFormatError(f"ciphertext is not valid base64: {e}") from e

    if len(raw) < IV_SIZE:
        raise CiphertextFormatError("ciphertext too short")

    iv, body = raw[:IV_SIZE], raw[IV_SIZE:]
    decryptor = _cipher(raw_key, iv).decryptor()
    plain = decryptor.update(body) + decryptor.finalize()

    try:
        return plain.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CiphertextFormatError("decrypted payload is not UTF-8 (wrong key?)") from e

