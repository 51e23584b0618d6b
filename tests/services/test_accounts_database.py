"""Account token flow tests against the test database."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from usertokens.models import User
from usertokens.services import accounts
from usertokens.tokens.vault import Vault


class TestConfirmationDatabase:
    """Tests for email confirmation with real storage."""

    @pytest.mark.asyncio
    async def test_confirm_user(self, db_session: AsyncSession, db_user: User):
        token = await accounts.deliver_user_confirmation_token(db_session, db_user)

        confirmed = await accounts.confirm_user(db_session, token)

        assert confirmed is not None
        assert confirmed.id == db_user.id
        assert confirmed.confirmed_at is not None
        assert await accounts.confirm_user(db_session, token) is None

    @pytest.mark.asyncio
    async def test_confirm_after_email_change(self, db_session: AsyncSession, db_user: User):
        token = await accounts.deliver_user_confirmation_token(db_session, db_user)
        db_user.email = "moved@example.com"
        db_session.add(db_user)
        await db_session.flush()

        assert await accounts.confirm_user(db_session, token) is None


class TestEmailChangeDatabase:
    """Tests for email changes with real storage."""

    @pytest.mark.asyncio
    async def test_change_revokes_other_pending_changes(
        self, db_session: AsyncSession, db_user: User
    ):
        first = await accounts.deliver_update_email_token(db_session, db_user, "a@example.com")
        second = await accounts.deliver_update_email_token(db_session, db_user, "b@example.com")

        assert await accounts.update_user_email(db_session, db_user, first) is True
        assert await accounts.update_user_email(db_session, db_user, second) is False
        assert db_user.email == "a@example.com"


class TestAccountInvitesDatabase:
    """Tests for emailed account invites with real storage."""

    @pytest.mark.asyncio
    async def test_invite_list_and_accept(self, db_session: AsyncSession, db_user: User):
        await accounts.invite_to_account(db_session, db_user, "acct_1", "friend@example.com")
        token = await accounts.invite_to_account(db_session, db_user, "acct_1", "friend@example.com")

        pending = await accounts.list_pending_invites(db_session, "acct_1")
        assert [p["sent_to"] for p in pending] == ["friend@example.com"]

        record = await accounts.accept_account_invite(db_session, token)
        assert record is not None
        assert record.annotations == {"account_id": "acct_1"}
        assert await accounts.accept_account_invite(db_session, token) is None
        assert await accounts.list_pending_invites(db_session, "acct_1") == []

    @pytest.mark.asyncio
    async def test_revoke_invite(self, db_session: AsyncSession, db_user: User):
        await accounts.invite_to_account(db_session, db_user, "acct_1", "friend@example.com")
        [invite] = await accounts.list_pending_invites(db_session, "acct_1")

        assert await accounts.revoke_account_invite(db_session, db_user, invite["id"]) is True
        assert await accounts.revoke_account_invite(db_session, db_user, invite["id"]) is False


class TestTeamInvitesDatabase:
    """Tests for team invite links with real storage."""

    @pytest.mark.asyncio
    async def test_current_invite_is_reused(
        self, db_session: AsyncSession, db_user: User, vault: Vault
    ):
        token = await accounts.get_or_create_team_invite(db_session, db_user, "acct_1", vault)
        again = await accounts.get_or_create_team_invite(db_session, db_user, "acct_1", vault)
        other = await accounts.get_or_create_team_invite(db_session, db_user, "acct_2", vault)

        assert again == token
        assert other != token

        record = await accounts.accept_team_invite(db_session, token)
        assert record is not None
        assert record.annotations == {"account_id": "acct_1"}
