"""Encryption at rest for reversible tokens."""

import logging
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from usertokens.config import settings
from usertokens.tokens.errors import DecryptionError, VaultConfigurationError

logger = logging.getLogger(__name__)


def generate_key() -> str:
    """Generate a new vault key."""
    return Fernet.generate_key().decode("ascii")


class Vault:
    """Symmetric encryption keyed by one or more Fernet keys.

    The first key encrypts; every key is tried when decrypting, so old keys
    can stay listed during rotation.
    """

    def __init__(self, keys: list[str]):
        if not keys:
            raise VaultConfigurationError("At least one vault key is required")
        try:
            self._fernet = MultiFernet([Fernet(key) for key in keys])
        except (ValueError, TypeError) as e:
            raise VaultConfigurationError(f"Invalid vault key: {e}") from e

    def encrypt(self, value: bytes) -> bytes:
        """Encrypt bytes. Output is randomized."""
        return self._fernet.encrypt(value)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt bytes produced by ``encrypt``.

        Raises:
            DecryptionError: If the ciphertext was tampered with or no key matches.
        """
        try:
            return self._fernet.decrypt(ciphertext)
        except (InvalidToken, TypeError) as e:
            raise DecryptionError("Unable to decrypt token") from e

    def rotate(self, ciphertext: bytes) -> bytes:
        """Re-encrypt ciphertext under the primary key."""
        try:
            return self._fernet.rotate(ciphertext)
        except (InvalidToken, TypeError) as e:
            raise DecryptionError("Unable to decrypt token") from e


@lru_cache
def get_vault() -> Vault:
    """Get the vault configured from settings."""
    logger.debug("Loading vault with %d key(s)", len(settings.vault_keys))
    return Vault(settings.vault_keys)
