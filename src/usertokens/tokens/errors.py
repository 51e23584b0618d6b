"""Token errors."""


class TokenError(Exception):
    """Base class for token errors."""

    pass


class UnknownContext(TokenError):
    """No policy exists for the given context.

    Raised for programmer errors; callers should not catch it.
    """

    def __init__(self, context: object):
        self.context = context
        super().__init__(f"Unknown token context: {context!r}")


class DecodeError(TokenError):
    """Presented token text is not a valid transmitted token."""

    pass


class DecryptionError(TokenError):
    """Stored ciphertext could not be decrypted."""

    pass


class VaultConfigurationError(TokenError):
    """The vault has no usable keys."""

    pass
