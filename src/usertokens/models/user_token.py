"""Persisted user token model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, Index, LargeBinary
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from usertokens.models.base import generate_nanoid, utcnow
from usertokens.tokens.codec import EncryptedValue, HashedValue, RawValue, StoredValue
from usertokens.tokens.contexts import Encoding, resolve_policy
from usertokens.tokens.errors import DecryptionError

AnnotationsType = JSON().with_variant(JSONB(), "postgresql")


class UserToken(SQLModel, table=True):
    """A token issued to a user.

    ``token`` holds raw bytes, a digest or ciphertext depending on the
    context's encoding. ``hashed_token`` is only set for encrypted contexts.
    """

    __tablename__ = "users_tokens"
    __table_args__ = (
        Index("ix_users_tokens_context_token", "context", "token", unique=True),
        Index("ix_users_tokens_hashed_token", "hashed_token"),
    )

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    token: bytes = Field(sa_type=LargeBinary, nullable=False)  # type: ignore[call-overload]
    hashed_token: bytes | None = Field(default=None, sa_type=LargeBinary)  # type: ignore[call-overload]
    context: str = Field(max_length=255)
    sent_to: str | None = Field(default=None, max_length=255)
    annotations: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(AnnotationsType, nullable=False, default=dict),
    )
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE", max_length=21)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Timestamp when the token was issued",
    )

    @property
    def stored_value(self) -> StoredValue:
        """The stored columns as a typed value for this token's context."""
        encoding = resolve_policy(self.context).encoding
        if encoding == Encoding.RAW:
            return RawValue(self.token)
        if encoding == Encoding.HASHED:
            return HashedValue(self.token)
        if self.hashed_token is None:
            raise DecryptionError(f"Encrypted token {self.id} has no lookup digest")
        return EncryptedValue(self.token, self.hashed_token)
