"""Execute token predicates against the database."""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import ColumnElement, Select, delete, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from usertokens.models import User, UserToken
from usertokens.tokens.predicates import (
    AnnotationsContain,
    Constraint,
    CreatedAfter,
    FieldEquals,
    FieldIn,
    Predicate,
    Returns,
    SentToMatchesUserEmail,
)

logger = logging.getLogger(__name__)

_SINGLE_ENTITY = (Returns.TOKEN, Returns.USER)


def _column(name: str) -> Any:
    if name not in UserToken.model_fields:
        raise ValueError(f"Unknown token field: {name}")
    return col(getattr(UserToken, name))


def compile_constraint(constraint: Constraint) -> ColumnElement[bool]:
    """Translate one constraint into a SQL clause."""
    match constraint:
        case FieldEquals(field=name, value=value):
            return _column(name) == value
        case FieldIn(field=name, values=values):
            return _column(name).in_(values)
        case CreatedAfter(cutoff=cutoff):
            return col(UserToken.created_at) > cutoff
        case AnnotationsContain(values=values):
            return type_coerce(UserToken.annotations, JSONB).contains(dict(values))
        case SentToMatchesUserEmail():
            return col(UserToken.sent_to) == col(User.email)
    raise TypeError(f"Unsupported constraint: {constraint!r}")


def compile_predicate(predicate: Predicate) -> Select:
    """Build the SELECT statement for a predicate."""
    match predicate.returns:
        case Returns.TOKEN:
            stmt = select(UserToken)
        case Returns.USER:
            stmt = select(User)
        case Returns.USER_AND_ANNOTATIONS:
            stmt = select(User, UserToken.annotations)
        case Returns.INVITE_SUMMARY:
            stmt = select(UserToken.sent_to, UserToken.created_at, UserToken.id)

    if predicate.joins_user:
        stmt = stmt.select_from(UserToken).join(User, col(UserToken.user_id) == col(User.id))

    return stmt.where(*(compile_constraint(c) for c in predicate.constraints))


class TokenStore:
    """Persists tokens and runs predicates in an async session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, record: UserToken) -> UserToken:
        """Stage a newly issued token."""
        self._session.add(record)
        await self._session.flush()
        return record

    async def fetch_one(self, predicate: Predicate) -> Any:
        """First match for a predicate, or None.

        Returns a ``UserToken`` or ``User`` for single-entity predicates and a
        row otherwise.
        """
        result = await self._session.execute(compile_predicate(predicate).limit(1))
        if predicate.returns in _SINGLE_ENTITY:
            return result.scalars().first()
        return result.first()

    async def fetch_all(self, predicate: Predicate) -> Sequence[Any]:
        """All matches for a predicate."""
        result = await self._session.execute(compile_predicate(predicate))
        if predicate.returns in _SINGLE_ENTITY:
            return result.scalars().all()
        return result.all()

    async def delete_matching(self, predicate: Predicate) -> int:
        """Delete every token a predicate matches.

        Returns:
            Number of deleted rows.
        """
        if predicate.joins_user:
            raise ValueError("Cannot delete with a predicate that joins users")

        stmt = delete(UserToken).where(*(compile_constraint(c) for c in predicate.constraints))
        result = await self._session.execute(stmt)
        logger.debug("Deleted %d token(s)", result.rowcount)
        return result.rowcount
