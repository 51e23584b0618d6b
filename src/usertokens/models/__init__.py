"""SQLModel database models."""

from usertokens.models.base import TimestampMixin
from usertokens.models.user import User, UserRef
from usertokens.models.user_token import UserToken

__all__ = [
    "TimestampMixin",
    "User",
    "UserRef",
    "UserToken",
]
