"""User model."""

from datetime import datetime
from typing import Protocol

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from usertokens.models.base import TimestampMixin, generate_nanoid


class UserRef(Protocol):
    """The user fields tokens depend on."""

    id: str
    email: str


class User(TimestampMixin, SQLModel, table=True):
    """User account model."""

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    hashed_password: str | None = Field(default=None, max_length=255)
    confirmed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="When the user confirmed their email address",
    )
