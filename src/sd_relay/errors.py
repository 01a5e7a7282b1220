# src/sd_relay/errors.py

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class CryptoError(RelayError, ValueError):
    pass


class InvalidKeyError(CryptoError):
    """Key is not standard base64 or has a length AES does not accept."""


class CiphertextFormatError(CryptoError):
    """Ciphertext is not URL-safe base64 or is shorter than one IV block."""


class ChannelConnectError(RelayError):
    pass


class ChannelWriteError(RelayError):
    pass


class BackendUnavailableError(RelayError):
    """The backend could not be reached at all (no HTTP response)."""


class JobDecodeError(RelayError):
    pass
