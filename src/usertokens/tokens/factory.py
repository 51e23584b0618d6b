"""Token issuance and reveal.

Nothing here touches the database: builders return the value to hand to
the user together with an unsaved ``UserToken``; persisting it is up to
the caller.
"""

import logging
from collections.abc import Mapping
from typing import Any, NamedTuple

from usertokens.models import UserRef, UserToken
from usertokens.tokens.codec import (
    digest,
    encode_for_transmission,
    generate_random_bytes,
)
from usertokens.tokens.contexts import (
    ContextRef,
    Encoding,
    TokenContext,
    change_email_context,
    parse_context,
    resolve_policy,
)
from usertokens.tokens.errors import DecryptionError
from usertokens.tokens.vault import Vault, get_vault

logger = logging.getLogger(__name__)


class IssuedToken(NamedTuple):
    """A freshly issued token.

    ``value`` is raw bytes for RAW contexts and URL-safe text otherwise.
    """

    value: bytes | str
    record: UserToken


def issue(
    context: ContextRef | TokenContext | str,
    user: UserRef,
    *,
    sent_to: str | None = None,
    annotations: Mapping[str, Any] | None = None,
    vault: Vault | None = None,
) -> IssuedToken:
    """Issue a token for ``user`` in ``context``.

    Raises:
        UnknownContext: If the context has no policy.
        ValueError: If the context requires ``sent_to`` and none was given.
    """
    ref = parse_context(context)
    policy = resolve_policy(ref)

    if policy.requires_email_match and not sent_to:
        raise ValueError(f"Tokens for {ref.kind.value!r} must record where they were sent")

    raw = generate_random_bytes()
    record = UserToken(
        token=raw,
        context=ref.value,
        sent_to=sent_to,
        annotations=dict(annotations or {}),
        user_id=user.id,
    )

    value: bytes | str
    if policy.encoding == Encoding.RAW:
        value = raw
    elif policy.encoding == Encoding.HASHED:
        record.token = digest(raw)
        value = encode_for_transmission(raw)
    else:
        record.token = (vault or get_vault()).encrypt(raw)
        record.hashed_token = digest(raw)
        value = encode_for_transmission(raw)

    logger.debug("Issued %s token for user %s", ref.kind.value, user.id)
    return IssuedToken(value, record)


def build_session_token(
    user: UserRef, context: TokenContext | str = TokenContext.SESSION
) -> IssuedToken:
    """Build a token to be kept in a signed session or cookie.

    Sessions are stored so they can be expired individually, but since the
    cookie is signed the token itself does not need hashing.
    """
    return issue(context, user)


def build_email_token(user: UserRef, context: ContextRef | TokenContext | str) -> IssuedToken:
    """Build a hashed token to be delivered to the user's current email.

    Only the digest is stored, so read access to the database is not enough
    to use the token. Tokens sent to an address stop verifying once the user
    changes away from it.
    """
    return issue(context, user, sent_to=user.email)


def build_change_email_token(user: UserRef, new_email: str) -> IssuedToken:
    """Build a token confirming a change of address to ``new_email``.

    The token is delivered to the new address, which is also its context
    parameter.
    """
    return issue(change_email_context(new_email), user, sent_to=new_email)


def build_impersonation_token(impersonating_user: UserRef, impersonated_user: UserRef) -> IssuedToken:
    """Build a short-lived session token for acting as another user."""
    return issue(
        TokenContext.IMPERSONATE,
        impersonating_user,
        annotations={"impersonated_user_id": impersonated_user.id},
    )


def build_account_invite_token(user: UserRef, account_id: str, sent_to: str) -> IssuedToken:
    """Build an invite to join ``account_id``, emailed to ``sent_to``."""
    return issue(
        TokenContext.ACCOUNT_INVITE,
        user,
        sent_to=sent_to,
        annotations={"account_id": account_id},
    )


def build_team_invite_token(
    user: UserRef, account_id: str, vault: Vault | None = None
) -> IssuedToken:
    """Build a shareable team invite link token.

    The token is stored encrypted so the link can be shown again later.
    """
    return issue(
        TokenContext.ACCOUNT_TEAM_INVITE,
        user,
        annotations={"account_id": account_id},
        vault=vault,
    )


def reveal(record: UserToken, vault: Vault | None = None) -> str:
    """Recover the transmissible text of an encrypted token.

    Raises:
        ValueError: If the record's context is not stored encrypted.
        DecryptionError: If the ciphertext cannot be decrypted or does not
            match the record's lookup digest.
    """
    if resolve_policy(record.context).encoding != Encoding.ENCRYPTED:
        raise ValueError(f"Tokens for {record.context!r} cannot be revealed")

    try:
        stored = record.stored_value
        raw = (vault or get_vault()).decrypt(stored.ciphertext)  # type: ignore[union-attr]
        if digest(raw) != stored.digest:  # type: ignore[union-attr]
            raise DecryptionError("Decrypted token does not match its digest")
    except DecryptionError:
        logger.error("Failed to reveal %s token %s", record.context, record.id)
        raise

    return encode_for_transmission(raw)
