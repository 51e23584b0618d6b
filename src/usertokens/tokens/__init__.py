"""Token policy, encoding and errors."""

from usertokens.tokens.contexts import (
    ContextRef,
    Encoding,
    TokenContext,
    TokenPolicy,
    change_email_context,
    parse_context,
    resolve_policy,
)
from usertokens.tokens.errors import (
    DecodeError,
    DecryptionError,
    TokenError,
    UnknownContext,
    VaultConfigurationError,
)

__all__ = [
    "ContextRef",
    "DecodeError",
    "DecryptionError",
    "Encoding",
    "TokenContext",
    "TokenError",
    "TokenPolicy",
    "UnknownContext",
    "VaultConfigurationError",
    "change_email_context",
    "parse_context",
    "resolve_policy",
]
