"""Token byte generation, transmission encoding and hashing."""

import base64
import binascii
import hashlib
import re
import secrets
from dataclasses import dataclass

from usertokens.tokens.errors import DecodeError

RAND_SIZE = 32
HASH_ALGORITHM = "sha256"

_URLSAFE_ALPHABET = re.compile(r"[A-Za-z0-9_-]*")


def generate_random_bytes(size: int = RAND_SIZE) -> bytes:
    """Generate cryptographically secure random bytes."""
    return secrets.token_bytes(size)


def encode_for_transmission(value: bytes) -> str:
    """Encode bytes as URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("ascii")


def decode_from_transmission(text: str) -> bytes:
    """Decode URL-safe unpadded base64.

    Only the canonical encoding of a byte string is accepted, so every
    token has exactly one valid textual form.

    Raises:
        DecodeError: If the text is not canonical unpadded URL-safe base64.
    """
    if not isinstance(text, str) or not _URLSAFE_ALPHABET.fullmatch(text):
        raise DecodeError("Token is not URL-safe base64")
    if len(text) % 4 == 1:
        raise DecodeError("Token has an invalid length")

    padded = text + "=" * (-len(text) % 4)
    try:
        value = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Token is not URL-safe base64") from e

    # Reject encodings with non-zero trailing bits
    if encode_for_transmission(value) != text:
        raise DecodeError("Token is not canonically encoded")
    return value


def digest(value: bytes) -> bytes:
    """One-way SHA-256 digest of token bytes."""
    return hashlib.new(HASH_ALGORITHM, value).digest()


@dataclass(frozen=True)
class RawValue:
    """Token bytes stored as-is."""

    value: bytes

    @property
    def lookup_column(self) -> str:
        return "token"

    @property
    def lookup_value(self) -> bytes:
        return self.value


@dataclass(frozen=True)
class HashedValue:
    """Digest of token bytes; the original bytes are unrecoverable."""

    digest: bytes

    @property
    def lookup_column(self) -> str:
        return "token"

    @property
    def lookup_value(self) -> bytes:
        return self.digest


@dataclass(frozen=True)
class EncryptedValue:
    """Ciphertext of token bytes plus a digest used for lookups.

    Ciphertext may be randomized, so only the digest is ever compared.
    """

    ciphertext: bytes
    digest: bytes

    @property
    def lookup_column(self) -> str:
        return "hashed_token"

    @property
    def lookup_value(self) -> bytes:
        return self.digest


StoredValue = RawValue | HashedValue | EncryptedValue
