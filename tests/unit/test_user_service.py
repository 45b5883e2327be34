# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for User service."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.domains.auth.password import PasswordHasher
from src.domains.user.invitation import WeakPasswordError
from src.domains.user.service import (
    IncorrectPasswordError,
    SelfModificationError,
    UserNotFoundError,
    UserService,
)
from src.infrastructure.database.models import ActivityLog, User
from src.models.user import PasswordChangeRequest
from tests.conftest import result_with

CREATED = datetime(2025, 1, 15, tzinfo=timezone.utc)


@pytest.fixture
def user_service(mock_db, agency_id):
    """Create user service with mock database."""
    return UserService(mock_db, agency_id)


def make_user(agency_id: str, user_id: str = "user-2", **overrides) -> User:
    fields = {
        "id": user_id,
        "agency_id": agency_id,
        "email": "sam@agency.com",
        "full_name": "Sam Lee",
        "role": "agency_user",
        "status": "active",
        "email_notifications_enabled": True,
        "created_at": CREATED,
    }
    fields.update(overrides)
    return User(**fields)


def activities(mock_db):
    return [c.args[0] for c in mock_db.add.call_args_list if isinstance(c.args[0], ActivityLog)]


class TestSelfModification:
    """An admin cannot lock themselves out."""

    @pytest.mark.asyncio
    async def test_admin_cannot_demote_themselves(self, user_service, mock_db):
        with pytest.raises(SelfModificationError, match="own role"):
            await user_service.update_role("admin-1", "agency_user", acting_user_id="admin-1")

        mock_db.execute.assert_not_called()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_can_keep_own_admin_role(self, user_service, mock_db, agency_id):
        mock_db.execute.return_value = result_with(
            make_user(agency_id, "admin-1", role="agency_admin")
        )

        response = await user_service.update_role(
            "admin-1", "agency_admin", acting_user_id="admin-1"
        )

        assert response.role == "agency_admin"

    @pytest.mark.parametrize("status", ["inactive", "suspended"])
    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_themselves(self, user_service, mock_db, status):
        with pytest.raises(SelfModificationError, match="deactivate"):
            await user_service.update_status("admin-1", status, acting_user_id="admin-1")

        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_cannot_delete_themselves(self, user_service, mock_db):
        with pytest.raises(SelfModificationError, match="delete"):
            await user_service.delete_user("admin-1", acting_user_id="admin-1")

        mock_db.delete.assert_not_called()

    def test_self_modification_is_forbidden(self):
        assert SelfModificationError("no").status_code == 403


class TestAdminChanges:
    """Tests for changes an admin makes to other users."""

    @pytest.mark.asyncio
    async def test_role_change_is_logged(self, user_service, mock_db, agency_id):
        user = make_user(agency_id)
        mock_db.execute.return_value = result_with(user)

        response = await user_service.update_role("user-2", "agency_admin", "admin-1")

        assert user.role == "agency_admin"
        assert response.role == "agency_admin"
        [entry] = activities(mock_db)
        assert entry.user_id == "admin-1"
        assert entry.metadata_ == {"previous_role": "agency_user", "role": "agency_admin"}
        assert entry.description == (
            "Changed role of sam@agency.com from agency_user to agency_admin"
        )

    @pytest.mark.asyncio
    async def test_deactivating_another_user(self, user_service, mock_db, agency_id):
        user = make_user(agency_id)
        mock_db.execute.return_value = result_with(user)

        response = await user_service.update_status("user-2", "inactive", "admin-1")

        assert response.status == "inactive"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deleting_another_user(self, user_service, mock_db, agency_id):
        user = make_user(agency_id)
        mock_db.execute.return_value = result_with(user)

        await user_service.delete_user("user-2", "admin-1")

        mock_db.delete.assert_awaited_once_with(user)
        [entry] = activities(mock_db)
        assert entry.action == "deleted"
        assert entry.description == "Removed user sam@agency.com"

    @pytest.mark.asyncio
    async def test_user_of_another_agency_is_not_found(self, user_service, mock_db):
        mock_db.execute.return_value = result_with(None)

        with pytest.raises(UserNotFoundError):
            await user_service.update_status("user-9", "inactive", "admin-1")


class TestChangePassword:
    """Tests for UserService.change_password."""

    hasher = PasswordHasher(rounds=4)

    @pytest.fixture
    def service(self, mock_db, agency_id):
        return UserService(mock_db, agency_id, hasher=self.hasher)

    @pytest.fixture
    def user(self, agency_id):
        return make_user(
            agency_id, "user-2", password_hash=self.hasher.hash("Old-Passw0rd")
        )

    @pytest.mark.asyncio
    async def test_password_is_changed_and_logged(self, service, mock_db, user):
        mock_db.execute.return_value = result_with(user)

        await service.change_password("user-2", "Old-Passw0rd", "N3w-Passw0rd!")

        assert self.hasher.verify("N3w-Passw0rd!", user.password_hash)
        assert not self.hasher.verify("Old-Passw0rd", user.password_hash)
        [entry] = activities(mock_db)
        assert entry.description == "Changed password"
        assert entry.metadata_ == {"change": "password"}
        assert "Passw0rd" not in str(entry.metadata_)
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, service, mock_db, user):
        original_hash = user.password_hash
        mock_db.execute.return_value = result_with(user)

        with pytest.raises(IncorrectPasswordError, match="incorrect") as exc_info:
            await service.change_password("user-2", "Wrong-Passw0rd", "N3w-Passw0rd!")

        assert exc_info.value.status_code == 400
        assert user.password_hash == original_hash
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_weak_new_password_is_rejected_before_lookup(self, service, mock_db):
        with pytest.raises(WeakPasswordError) as exc_info:
            await service.change_password("user-2", "Old-Passw0rd", "newpassword")

        assert exc_info.value.details == {
            "missing": ["an uppercase letter", "a number", "a special character"]
        }
        mock_db.execute.assert_not_called()

    def test_confirmation_must_match(self):
        with pytest.raises(PydanticValidationError, match="Passwords do not match"):
            PasswordChangeRequest(
                current_password="Old-Passw0rd",
                new_password="N3w-Passw0rd!",
                confirm_password="N3w-Passw0rd?",
            )
