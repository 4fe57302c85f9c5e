"""Reversible obfuscation used by rclone configuration files.

An obscured value is the URL-safe base64 (no padding) encoding of a random
16 byte IV followed by the AES-256-CTR encryption of the plaintext under a
fixed, publicly known key. This hides secrets from casual reading only.
"""

import base64
import binascii
from typing import Callable, Dict, Optional

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes

from odpush.core.errors import ConfigError

_CRYPT_KEY = bytes(
    [
        0x9C, 0x93, 0x5B, 0x48, 0x73, 0x0A, 0x55, 0x4D,
        0x6B, 0xFD, 0x7C, 0x63, 0xC8, 0x86, 0xA9, 0x2B,
        0xD3, 0x90, 0x19, 0x8E, 0xB8, 0x12, 0x8A, 0xFB,
        0xF4, 0xDE, 0x16, 0x2B, 0x8B, 0x95, 0xF6, 0x38,
    ]
)
_IV_SIZE = AES.block_size


def _cipher(iv: bytes):
    return AES.new(_CRYPT_KEY, AES.MODE_CTR, nonce=b"", initial_value=iv)


def obscure(plaintext: str, iv: Optional[bytes] = None) -> str:
    """Obscure a value the way ``rclone obscure`` does."""
    iv = iv or get_random_bytes(_IV_SIZE)
    if len(iv) != _IV_SIZE:
        raise ValueError(f"IV must be {_IV_SIZE} bytes")
    ciphertext = _cipher(iv).encrypt(plaintext.encode("utf-8"))
    return base64.urlsafe_b64encode(iv + ciphertext).decode("ascii").rstrip("=")


def reveal(obscured: str) -> str:
    """Decode a value produced by :func:`obscure` (version 1)."""
    padded = obscured + "=" * (-len(obscured) % 4)
    try:
        raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ConfigError(f"Obscured value is not valid base64: {e}") from e

    if len(raw) < _IV_SIZE:
        raise ConfigError("Obscured value is too short")

    iv, ciphertext = raw[:_IV_SIZE], raw[_IV_SIZE:]
    try:
        return _cipher(iv).decrypt(ciphertext).decode("utf-8")
    except UnicodeDecodeError as e:
        raise ConfigError("Obscured value does not decode to text") from e


def plain(value: str) -> str:
    """Identity decoder for plain-text credential fixtures."""
    return value


DECODERS: Dict[int, Callable[[str], str]] = {1: reveal}


def get_decoder(version: int = 1) -> Callable[[str], str]:
    """Resolve a versioned decode strategy."""
    try:
        return DECODERS[version]
    except KeyError:
        raise ConfigError(f"Unknown obscure version: {version}") from None
