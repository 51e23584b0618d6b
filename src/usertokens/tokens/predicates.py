"""Verification predicates for stored tokens.

A ``Predicate`` is a plain conjunction of constraints describing which
``users_tokens`` rows a presented token may match. Nothing here runs a
query: ``usertokens.store`` compiles predicates to SQL, and
``Predicate.matches`` evaluates them against in-memory records.

An expired or unknown token is not an error at this level. Its predicate
simply matches no rows.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Literal

from usertokens.models import UserRef, UserToken
from usertokens.tokens.codec import RAND_SIZE, decode_from_transmission, digest
from usertokens.tokens.contexts import (
    TEAM_INVITE_CURRENT_DAYS,
    ContextRef,
    Encoding,
    TokenContext,
    TokenPolicy,
    parse_context,
    resolve_policy,
)
from usertokens.tokens.errors import DecodeError

logger = logging.getLogger(__name__)


class Returns(str, Enum):
    """What the caller expects back when the predicate is executed."""

    TOKEN = "token"
    USER = "user"
    USER_AND_ANNOTATIONS = "user_and_annotations"
    INVITE_SUMMARY = "invite_summary"


@dataclass(frozen=True)
class FieldEquals:
    """``users_tokens.<field> = value``."""

    field: str
    value: Any

    def matches(self, record: UserToken, user: UserRef | None) -> bool:
        return getattr(record, self.field) == self.value

    def describe(self) -> str:
        return f"{self.field} = {_show(self.value)}"


@dataclass(frozen=True)
class FieldIn:
    """``users_tokens.<field> IN values``."""

    field: str
    values: tuple[Any, ...]

    def matches(self, record: UserToken, user: UserRef | None) -> bool:
        return getattr(record, self.field) in self.values

    def describe(self) -> str:
        return f"{self.field} IN ({', '.join(_show(v) for v in self.values)})"


@dataclass(frozen=True)
class CreatedAfter:
    """``users_tokens.created_at > cutoff``."""

    cutoff: datetime

    def matches(self, record: UserToken, user: UserRef | None) -> bool:
        return record.created_at > self.cutoff

    def describe(self) -> str:
        return f"created_at > {self.cutoff.isoformat()}"


@dataclass(frozen=True)
class AnnotationsContain:
    """``users_tokens.annotations @> values``."""

    values: Mapping[str, Any] = field(hash=False)

    def matches(self, record: UserToken, user: UserRef | None) -> bool:
        annotations = record.annotations or {}
        return all(k in annotations and annotations[k] == v for k, v in self.values.items())

    def describe(self) -> str:
        return f"annotations @> {dict(self.values)!r}"


@dataclass(frozen=True)
class SentToMatchesUserEmail:
    """``users_tokens.sent_to = users.email`` for the token's user.

    The email is read when the predicate is executed, so tokens sent to an
    old address stop matching as soon as the user's email changes.
    """

    def matches(self, record: UserToken, user: UserRef | None) -> bool:
        if user is None:
            raise ValueError("Matching sent_to requires the token's user")
        return user.id == record.user_id and record.sent_to == user.email

    def describe(self) -> str:
        return "sent_to = users.email"


Constraint = FieldEquals | FieldIn | CreatedAfter | AnnotationsContain | SentToMatchesUserEmail


@dataclass(frozen=True)
class Predicate:
    """A conjunction of constraints over ``users_tokens``."""

    constraints: tuple[Constraint, ...]
    returns: Returns = Returns.TOKEN

    @property
    def joins_user(self) -> bool:
        """Whether executing this predicate needs the ``users`` table."""
        return self.returns in (Returns.USER, Returns.USER_AND_ANNOTATIONS) or any(
            isinstance(c, SentToMatchesUserEmail) for c in self.constraints
        )

    def where(self, *constraints: Constraint) -> "Predicate":
        """Return a copy with additional constraints."""
        return Predicate(self.constraints + constraints, self.returns)

    def find(self, kind: type) -> list[Constraint]:
        """All constraints of the given type."""
        return [c for c in self.constraints if isinstance(c, kind)]

    def matches(self, record: UserToken, user: UserRef | None = None) -> bool:
        """Evaluate against a record and, when needed, its current user."""
        return all(c.matches(record, user) for c in self.constraints)

    def describe(self) -> str:
        return " AND ".join(c.describe() for c in self.constraints)


def _show(value: Any) -> str:
    # Never render token material
    if isinstance(value, bytes):
        return f"<{len(value)} bytes>"
    return repr(value)


def _cutoff(days: int, now: datetime | None) -> CreatedAfter:
    return CreatedAfter((now or datetime.now(UTC)) - timedelta(days=days))


def _lookup(policy: TokenPolicy, token: bytes | str) -> FieldEquals:
    """Constraint matching the stored form of a presented token."""
    if policy.encoding == Encoding.RAW:
        if not isinstance(token, bytes) or len(token) != RAND_SIZE:
            raise DecodeError("Invalid session token")
        return FieldEquals("token", token)

    hashed = digest(decode_from_transmission(token))  # type: ignore[arg-type]
    if policy.encoding == Encoding.HASHED:
        return FieldEquals("token", hashed)
    # Ciphertext is randomized, so encrypted tokens are only found by digest
    return FieldEquals("hashed_token", hashed)


def verify(
    token: bytes | str,
    context: ContextRef | TokenContext | str,
    *,
    now: datetime | None = None,
) -> Predicate:
    """Build the predicate a presented token must satisfy to be valid.

    Raises:
        UnknownContext: If the context has no policy.
        DecodeError: If the token is malformed. Treat as an invalid token.
    """
    ref = parse_context(context)
    policy = resolve_policy(ref)

    constraints: list[Constraint] = [
        FieldEquals("context", ref.value),
        _lookup(policy, token),
        _cutoff(policy.validity_days, now),
    ]

    if policy.requires_email_match:
        constraints.append(SentToMatchesUserEmail())
        returns = Returns.USER
    elif policy.encoding == Encoding.RAW:
        returns = Returns.USER_AND_ANNOTATIONS
    else:
        returns = Returns.TOKEN

    logger.debug("Built %s verification predicate", ref.kind.value)
    return Predicate(tuple(constraints), returns)


def _require_kind(context: ContextRef | TokenContext | str, kinds: set[TokenContext]) -> ContextRef:
    ref = parse_context(context)
    if ref.kind not in kinds:
        raise ValueError(f"Context {ref.value!r} is not one of {sorted(k.value for k in kinds)}")
    return ref


def verify_session_token(
    token: bytes,
    context: TokenContext | str = TokenContext.SESSION,
    *,
    now: datetime | None = None,
) -> Predicate:
    """Predicate for a session or impersonation token.

    Executing it yields the user and the token's annotations.
    """
    ref = _require_kind(context, {TokenContext.SESSION, TokenContext.IMPERSONATE})
    return verify(token, ref, now=now)


def verify_email_token(
    token: str, context: TokenContext | str, *, now: datetime | None = None
) -> Predicate:
    """Predicate for a confirmation or password reset token.

    Valid only while the user's email still equals the address the token
    was sent to.
    """
    ref = _require_kind(context, {TokenContext.CONFIRM, TokenContext.RESET_PASSWORD})
    return verify(token, ref, now=now)


def verify_change_email_token(
    token: str, context: ContextRef | str, *, now: datetime | None = None
) -> Predicate:
    """Predicate for an email change token.

    The user's email is expected to differ from the new address, so no
    email match is applied.
    """
    ref = _require_kind(context, {TokenContext.CHANGE_EMAIL})
    return verify(token, ref, now=now)


def verify_team_invite_token(token: str, *, now: datetime | None = None) -> Predicate:
    """Predicate for a team invite link over its full validity window."""
    return verify(token, TokenContext.ACCOUNT_TEAM_INVITE, now=now)


def current_team_invite(account_id: str, *, now: datetime | None = None) -> Predicate:
    """Predicate for an account's recently created team invite.

    Uses the shorter freshness window, so an invite can be valid without
    being current.
    """
    return Predicate(
        (
            FieldEquals("context", TokenContext.ACCOUNT_TEAM_INVITE.value),
            AnnotationsContain({"account_id": account_id}),
            _cutoff(TEAM_INVITE_CURRENT_DAYS, now),
        )
    )


def accept_invite(token: str, *, now: datetime | None = None) -> Predicate:
    """Predicate for redeeming an emailed account invite."""
    return verify(token, TokenContext.ACCOUNT_INVITE, now=now)


def by_token_and_context(token: bytes, context: ContextRef | TokenContext | str) -> Predicate:
    """Predicate for a stored token value in a context, ignoring expiry."""
    ref = parse_context(context)
    resolve_policy(ref)
    return Predicate((FieldEquals("context", ref.value), FieldEquals("token", token)))


def records_for_user(
    user: UserRef,
    contexts: Literal["all"] | ContextRef | str | Iterable[ContextRef | TokenContext | str] = "all",
) -> Predicate:
    """Predicate for a user's tokens, optionally limited to some contexts."""
    owner = FieldEquals("user_id", user.id)
    if contexts == "all":
        return Predicate((owner,))
    if isinstance(contexts, (str, ContextRef)):
        contexts = (contexts,)

    values = tuple(parse_context(c).value for c in contexts)  # type: ignore[union-attr]
    if not values:
        raise ValueError("contexts must be 'all' or a non-empty collection")
    return Predicate((owner, FieldIn("context", values)))


def account_invite_token(account_id: str, sent_to: str) -> Predicate:
    """Predicate for invites to an account sent to an address."""
    return Predicate(
        (
            FieldEquals("context", TokenContext.ACCOUNT_INVITE.value),
            AnnotationsContain({"account_id": account_id}),
            FieldEquals("sent_to", sent_to),
        )
    )


def pending_invites(account_id: str) -> Predicate:
    """Predicate listing an account's outstanding invites."""
    return Predicate(
        (
            FieldEquals("context", TokenContext.ACCOUNT_INVITE.value),
            AnnotationsContain({"account_id": account_id}),
        ),
        returns=Returns.INVITE_SUMMARY,
    )


def account_invite_by_user(user_id: str, token_id: str) -> Predicate:
    """Predicate for a specific invite issued by a user."""
    return Predicate(
        (
            FieldEquals("context", TokenContext.ACCOUNT_INVITE.value),
            FieldEquals("user_id", user_id),
            FieldEquals("id", token_id),
        )
    )
