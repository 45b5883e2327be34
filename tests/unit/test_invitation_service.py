# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for staff invitations."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from src.domains.auth.password import PasswordHasher
from src.domains.user.invitation import (
    INVITATION_TTL,
    InvitationConflictError,
    InvitationInvalidError,
    InvitationNotFoundError,
    InvitationService,
    WeakPasswordError,
    build_invitation_email,
)
from src.infrastructure.database.models import Invitation, User
from src.utils.datetime import utc_now
from tests.conftest import result_with

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


async def fill_server_defaults(row) -> None:
    row.id = row.id or "generated-id"
    row.created_at = NOW
    if isinstance(row, User) and row.email_notifications_enabled is None:
        row.email_notifications_enabled = False


@pytest.fixture
def service(mock_db, agency_id) -> InvitationService:
    mock_db.refresh.side_effect = fill_server_defaults
    return InvitationService(mock_db, agency_id, hasher=PasswordHasher(rounds=4))


def make_invitation(agency_id: str, **overrides) -> MagicMock:
    invitation = MagicMock()
    invitation.id = "inv-1"
    invitation.agency_id = agency_id
    invitation.email = "new.staff@agency.com"
    invitation.role = "agency_user"
    invitation.is_used = False
    invitation.is_expired = False
    for key, value in overrides.items():
        setattr(invitation, key, value)
    return invitation


class TestCreateInvitation:
    """Tests for InvitationService.create_invitation."""

    @pytest.mark.asyncio
    async def test_creates_invitation_with_token(self, service, mock_db, agency_id) -> None:
        mock_db.execute.side_effect = [result_with(None), result_with(None)]

        response, token = await service.create_invitation(
            " New.Staff@Agency.com ", "agency_user", invited_by="admin-1"
        )

        invitation = mock_db.add.call_args.args[0]
        assert isinstance(invitation, Invitation)
        assert invitation.email == "new.staff@agency.com"
        assert invitation.token == token
        assert len(token) >= 32
        assert invitation.expires_at - utc_now() > INVITATION_TTL - timedelta(minutes=1)
        assert response.email == "new.staff@agency.com"
        assert response.role == "agency_user"

    @pytest.mark.asyncio
    async def test_existing_user_conflicts(self, service, mock_db) -> None:
        mock_db.execute.return_value = result_with("user-1")

        with pytest.raises(InvitationConflictError, match="already exists"):
            await service.create_invitation("taken@agency.com", "agency_user", "admin-1")

        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_pending_invitation_conflicts(self, service, mock_db) -> None:
        mock_db.execute.side_effect = [result_with(None), result_with("inv-9")]

        with pytest.raises(InvitationConflictError, match="pending"):
            await service.create_invitation("new@agency.com", "agency_user", "admin-1")


class TestAcceptInvitation:
    """Tests for InvitationService.accept_invitation."""

    @pytest.mark.asyncio
    async def test_creates_active_user(self, service, mock_db, agency_id) -> None:
        invitation = make_invitation(agency_id)
        mock_db.execute.side_effect = [result_with(invitation), result_with(None)]

        user = await service.accept_invitation("token", " New Staff ", "s3cure-Passw0rd")

        created = mock_db.add.call_args.args[0]
        assert isinstance(created, User)
        assert created.agency_id == agency_id
        assert created.full_name == "New Staff"
        assert created.password_hash.startswith("$2b$")
        assert invitation.used_at is not None
        assert user.status == "active"
        assert user.role == "agency_user"

    @pytest.mark.asyncio
    async def test_unknown_token(self, service, mock_db) -> None:
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(InvitationNotFoundError):
            await service.accept_invitation("nope", "Name", "s3cure-Passw0rd")

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [({"is_used": True}, "already been used"), ({"is_expired": True}, "expired")],
    )
    @pytest.mark.asyncio
    async def test_unusable_invitation(
        self, service, mock_db, agency_id, overrides, message
    ) -> None:
        mock_db.execute.return_value = result_with(make_invitation(agency_id, **overrides))

        with pytest.raises(InvitationInvalidError, match=message):
            await service.accept_invitation("token", "Name", "s3cure-Passw0rd")

        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_weak_password_is_rejected_before_lookup(self, service, mock_db) -> None:
        with pytest.raises(WeakPasswordError) as exc_info:
            await service.accept_invitation("token", "Name", "password")

        assert exc_info.value.details == {
            "missing": ["an uppercase letter", "a number", "a special character"]
        }
        mock_db.execute.assert_not_called()


class TestDeleteInvitation:
    """Tests for InvitationService.delete_invitation."""

    @pytest.mark.asyncio
    async def test_pending_invitation_is_deleted(self, service, mock_db, agency_id) -> None:
        invitation = make_invitation(agency_id)
        mock_db.execute.return_value = result_with(invitation)

        await service.delete_invitation("inv-1", deleted_by="admin-1")

        mock_db.delete.assert_awaited_once_with(invitation)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_used_invitation_is_kept(self, service, mock_db, agency_id) -> None:
        mock_db.execute.return_value = result_with(make_invitation(agency_id, is_used=True))

        with pytest.raises(InvitationInvalidError, match="Cannot delete used invitation"):
            await service.delete_invitation("inv-1", deleted_by="admin-1")

        mock_db.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_invitation(self, service, mock_db) -> None:
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(InvitationNotFoundError, match="Invitation not found"):
            await service.delete_invitation("inv-9", deleted_by="admin-1")


class TestInvitationEmail:
    """Tests for build_invitation_email."""

    def test_contains_accept_link(self) -> None:
        payload = build_invitation_email(
            "new@agency.com", "Smith & Co", "tok123", "https://app.pleeno.com/"
        )

        assert payload.recipient_email == "new@agency.com"
        assert payload.subject == "You're invited to join Smith & Co on Pleeno"
        assert "Smith &amp; Co" in payload.html
        assert "https://app.pleeno.com/accept-invitation?token=tok123" in payload.html
        assert "expires in 7 days" in payload.html
