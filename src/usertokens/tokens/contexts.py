"""Token contexts and their policies.

A context is a variant (``TokenContext``) plus an optional parameter. Only
``CHANGE_EMAIL`` is parameterized: its stored form is ``"change:<new email>"``.
"""

from dataclasses import dataclass
from enum import Enum

from usertokens.tokens.errors import UnknownContext


class TokenContext(str, Enum):
    """Known token contexts."""

    SESSION = "session"
    IMPERSONATE = "impersonate"
    CONFIRM = "confirm"
    RESET_PASSWORD = "reset_password"
    CHANGE_EMAIL = "change"
    ACCOUNT_INVITE = "account-invite"
    ACCOUNT_TEAM_INVITE = "account-team-invite"


class Encoding(str, Enum):
    """How token bytes are stored."""

    RAW = "raw"  # Stored and compared as-is
    HASHED = "hashed"  # SHA-256 digest stored, raw bytes transmitted
    ENCRYPTED = "encrypted"  # Ciphertext stored plus digest for lookup


PARAMETERIZED = frozenset({TokenContext.CHANGE_EMAIL})


@dataclass(frozen=True)
class TokenPolicy:
    """Lifecycle rules for a context."""

    encoding: Encoding
    validity_days: int
    requires_email_match: bool = False
    # Shorter freshness window for "is this the current one" lookups
    current_days: int | None = None


# It is very important to keep the reset password token expiry short,
# since someone with access to the email may take over the account.
RESET_PASSWORD_VALIDITY_DAYS = 1
CONFIRM_VALIDITY_DAYS = 7
CHANGE_EMAIL_VALIDITY_DAYS = 7
SESSION_VALIDITY_DAYS = 60
IMPERSONATE_VALIDITY_DAYS = 1
ACCOUNT_INVITE_VALIDITY_DAYS = 7
TEAM_INVITE_VALIDITY_DAYS = 7
TEAM_INVITE_CURRENT_DAYS = 1


@dataclass(frozen=True)
class ContextRef:
    """A context variant with its parameter, if any."""

    kind: TokenContext
    param: str | None = None

    def __post_init__(self) -> None:
        if self.kind in PARAMETERIZED:
            if not self.param:
                raise UnknownContext(f"{self.kind.value}:")
        elif self.param is not None:
            raise UnknownContext(f"{self.kind.value}:{self.param}")

    @property
    def value(self) -> str:
        """Stored string form of the context."""
        if self.param is not None:
            return f"{self.kind.value}:{self.param}"
        return self.kind.value

    def __str__(self) -> str:
        return self.value


def change_email_context(new_email: str) -> ContextRef:
    """Context for confirming a change to ``new_email``."""
    return ContextRef(TokenContext.CHANGE_EMAIL, new_email)


def parse_context(context: "ContextRef | TokenContext | str") -> ContextRef:
    """Resolve any accepted context form into a ``ContextRef``."""
    if isinstance(context, ContextRef):
        return context
    if isinstance(context, TokenContext):
        return ContextRef(context)
    if not isinstance(context, str):
        raise UnknownContext(context)

    name, sep, param = context.partition(":")
    try:
        kind = TokenContext(name)
    except ValueError:
        raise UnknownContext(context) from None
    return ContextRef(kind, param if sep else None)


def resolve_policy(context: "ContextRef | TokenContext | str") -> TokenPolicy:
    """Look up the policy for a context."""
    ref = parse_context(context)

    match ref.kind:
        case TokenContext.SESSION:
            return TokenPolicy(Encoding.RAW, SESSION_VALIDITY_DAYS)
        case TokenContext.IMPERSONATE:
            return TokenPolicy(Encoding.RAW, IMPERSONATE_VALIDITY_DAYS)
        case TokenContext.CONFIRM:
            return TokenPolicy(Encoding.HASHED, CONFIRM_VALIDITY_DAYS, requires_email_match=True)
        case TokenContext.RESET_PASSWORD:
            return TokenPolicy(
                Encoding.HASHED, RESET_PASSWORD_VALIDITY_DAYS, requires_email_match=True
            )
        case TokenContext.CHANGE_EMAIL:
            return TokenPolicy(Encoding.HASHED, CHANGE_EMAIL_VALIDITY_DAYS)
        case TokenContext.ACCOUNT_INVITE:
            return TokenPolicy(Encoding.HASHED, ACCOUNT_INVITE_VALIDITY_DAYS)
        case TokenContext.ACCOUNT_TEAM_INVITE:
            return TokenPolicy(
                Encoding.ENCRYPTED,
                TEAM_INVITE_VALIDITY_DAYS,
                current_days=TEAM_INVITE_CURRENT_DAYS,
            )

    raise UnknownContext(ref.value)
