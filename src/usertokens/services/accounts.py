"""Account token flows.

Each flow issues or verifies a token through the core and executes the
resulting predicates with a ``TokenStore``. Expired, unknown and malformed
tokens all come back as ``None`` so callers can answer with one generic
"invalid or expired" response.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from usertokens.models import User, UserToken
from usertokens.store import TokenStore
from usertokens.tokens import DecodeError, TokenContext, parse_context, predicates
from usertokens.tokens.factory import (
    build_account_invite_token,
    build_change_email_token,
    build_email_token,
    build_impersonation_token,
    build_session_token,
    build_team_invite_token,
    reveal,
)
from usertokens.tokens.vault import Vault

logger = logging.getLogger(__name__)


# Session


async def generate_user_session_token(session: AsyncSession, user: User) -> bytes:
    """Create and store a session token for ``user``."""
    token, record = build_session_token(user)
    await TokenStore(session).add(record)
    return token  # type: ignore[return-value]


async def get_user_by_session_token(
    session: AsyncSession, token: bytes, context: TokenContext = TokenContext.SESSION
) -> tuple[User, dict[str, Any]] | None:
    """Get the user and annotations for a valid session token."""
    try:
        predicate = predicates.verify_session_token(token, context)
    except DecodeError:
        return None

    row = await TokenStore(session).fetch_one(predicate)
    if row is None:
        return None
    user, annotations = row
    return user, annotations or {}


async def delete_user_session_token(session: AsyncSession, token: bytes) -> None:
    """Delete a session token, e.g. on log out."""
    await TokenStore(session).delete_matching(
        predicates.by_token_and_context(token, TokenContext.SESSION)
    )


async def create_impersonation_token(
    session: AsyncSession, impersonating_user: User, impersonated_user: User
) -> bytes:
    """Create a session token for ``impersonating_user`` to act as another user."""
    token, record = build_impersonation_token(impersonating_user, impersonated_user)
    await TokenStore(session).add(record)
    logger.info("User %s started impersonating %s", impersonating_user.id, impersonated_user.id)
    return token  # type: ignore[return-value]


# Confirmation


async def deliver_user_confirmation_token(session: AsyncSession, user: User) -> str:
    """Create a confirmation token to be emailed to ``user``."""
    if user.confirmed_at is not None:
        raise ValueError("User is already confirmed")
    token, record = build_email_token(user, TokenContext.CONFIRM)
    await TokenStore(session).add(record)
    return token  # type: ignore[return-value]


async def confirm_user(session: AsyncSession, token: str) -> User | None:
    """Confirm the user a confirmation token was sent to.

    All of the user's confirmation tokens are deleted on success.
    """
    try:
        predicate = predicates.verify_email_token(token, TokenContext.CONFIRM)
    except DecodeError:
        return None

    store = TokenStore(session)
    user = await store.fetch_one(predicate)
    if user is None:
        return None

    user.confirmed_at = datetime.now(UTC)
    session.add(user)
    await store.delete_matching(predicates.records_for_user(user, [TokenContext.CONFIRM]))
    await session.flush()
    return user


# Password reset


async def deliver_reset_password_token(session: AsyncSession, user: User) -> str:
    """Create a password reset token to be emailed to ``user``."""
    token, record = build_email_token(user, TokenContext.RESET_PASSWORD)
    await TokenStore(session).add(record)
    return token  # type: ignore[return-value]


async def get_user_by_reset_password_token(session: AsyncSession, token: str) -> User | None:
    """Get the user for a valid password reset token."""
    try:
        predicate = predicates.verify_email_token(token, TokenContext.RESET_PASSWORD)
    except DecodeError:
        return None
    return await TokenStore(session).fetch_one(predicate)


async def reset_user_password(session: AsyncSession, user: User, hashed_password: str) -> User:
    """Store a new password and revoke every token the user holds."""
    user.hashed_password = hashed_password
    session.add(user)
    await TokenStore(session).delete_matching(predicates.records_for_user(user, "all"))
    await session.flush()
    return user


# Email change


async def deliver_update_email_token(session: AsyncSession, user: User, new_email: str) -> str:
    """Create a token confirming a change to ``new_email``.

    The token is delivered to, and scoped by, the new address.
    """
    token, record = build_change_email_token(user, new_email)
    await TokenStore(session).add(record)
    return token  # type: ignore[return-value]


async def update_user_email(session: AsyncSession, user: User, token: str) -> bool:
    """Apply an email change confirmed by ``token``.

    Every pending change token the user holds is deleted on success, so
    links to other addresses stop working too.

    Returns:
        True if the email was changed.
    """
    store = TokenStore(session)
    records = await store.fetch_all(predicates.records_for_user(user, "all"))
    refs = ((parse_context(r.context), r) for r in records)
    changes = [(ref, r) for ref, r in refs if ref.kind == TokenContext.CHANGE_EMAIL]

    for ref, record in changes:
        try:
            predicate = predicates.verify_change_email_token(token, ref)
        except DecodeError:
            return False
        if not predicate.matches(record):
            continue

        user.email = ref.param  # type: ignore[assignment]
        session.add(user)
        await store.delete_matching(
            predicates.Predicate(
                (
                    predicates.FieldEquals("user_id", user.id),
                    predicates.FieldIn("id", tuple(r.id for _, r in changes)),
                )
            )
        )
        await session.flush()
        logger.info("User %s changed email", user.id)
        return True

    return False


# Invites


async def invite_to_account(
    session: AsyncSession, user: User, account_id: str, sent_to: str
) -> str:
    """Create an emailed invite to ``account_id``, replacing earlier ones to the same address."""
    store = TokenStore(session)
    await store.delete_matching(predicates.account_invite_token(account_id, sent_to))
    token, record = build_account_invite_token(user, account_id, sent_to)
    await store.add(record)
    return token  # type: ignore[return-value]


async def list_pending_invites(session: AsyncSession, account_id: str) -> list[dict[str, Any]]:
    """Outstanding invites for an account."""
    rows = await TokenStore(session).fetch_all(predicates.pending_invites(account_id))
    return [{"sent_to": sent_to, "created_at": created_at, "id": id_} for sent_to, created_at, id_ in rows]


async def revoke_account_invite(session: AsyncSession, user: User, token_id: str) -> bool:
    """Delete an invite issued by ``user``."""
    deleted = await TokenStore(session).delete_matching(
        predicates.account_invite_by_user(user.id, token_id)
    )
    return deleted > 0


async def accept_account_invite(session: AsyncSession, token: str) -> UserToken | None:
    """Redeem an emailed account invite.

    The invite is deleted on success; its ``annotations["account_id"]``
    names the account to join.
    """
    try:
        predicate = predicates.accept_invite(token)
    except DecodeError:
        return None

    store = TokenStore(session)
    record = await store.fetch_one(predicate)
    if record is None:
        return None
    await store.delete_matching(predicates.Predicate((predicates.FieldEquals("id", record.id),)))
    return record


async def get_or_create_team_invite(
    session: AsyncSession, user: User, account_id: str, vault: Vault | None = None
) -> str:
    """The account's current team invite link token, issuing one if needed.

    Raises:
        DecryptionError: If the current invite cannot be decrypted.
    """
    store = TokenStore(session)
    current = await store.fetch_one(predicates.current_team_invite(account_id))
    if current is not None:
        return reveal(current, vault)

    token, record = build_team_invite_token(user, account_id, vault)
    await store.add(record)
    return token  # type: ignore[return-value]


async def accept_team_invite(session: AsyncSession, token: str) -> UserToken | None:
    """Look up a team invite link token. The link stays usable for others."""
    try:
        predicate = predicates.verify_team_invite_token(token)
    except DecodeError:
        return None
    return await TokenStore(session).fetch_one(predicate)
