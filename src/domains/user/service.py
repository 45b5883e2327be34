# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User service for agency staff management.

This module provides the UserService that handles:
- Listing and reading users of an agency
- Profile, password and email preference updates by the user
- Role and status changes by an admin
- User removal

Example:
    >>> user_service = UserService(db_session, agency_id)
    >>> users, total = await user_service.list_users(role="agency_user", limit=20)
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ForbiddenError, NotFoundError, ValidationError
from src.domains.activity.service import ActivityService
from src.domains.auth.password import PasswordHasher, password_problems
from src.domains.user.invitation import WeakPasswordError
from src.infrastructure.database.models import User
from src.models.user import UserResponse

logger = logging.getLogger(__name__)


class UserNotFoundError(NotFoundError):
    """Raised when a user is not found in the agency."""

    pass


class SelfModificationError(ForbiddenError):
    """Raised when an admin tries to demote, deactivate or delete themselves."""

    pass


class IncorrectPasswordError(ValidationError):
    """Raised when the current password given for a change is wrong."""

    pass


class UserService:
    """Service for managing agency users.

    Attributes:
        _db: Async database session.
        _agency_id: Caller's agency.
    """

    def __init__(
        self,
        db: AsyncSession,
        agency_id: str,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self._db = db
        self._agency_id = agency_id
        self._hasher = hasher or PasswordHasher()
        self._activity = ActivityService(db, agency_id)

    async def list_users(
        self,
        role: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[UserResponse], int]:
        """List users with optional filters.

        Args:
            role: Filter by role.
            status: Filter by status.
            limit: Maximum results.
            offset: Results to skip.

        Returns:
            Tuple of (users, total count).
        """
        stmt = select(User).where(User.agency_id == self._agency_id)
        if role:
            stmt = stmt.where(User.role == role)
        if status:
            stmt = stmt.where(User.status == status)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self._db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(User.created_at.desc()).offset(offset).limit(limit)
        result = await self._db.execute(stmt)
        users = result.scalars().all()

        return [UserResponse.model_validate(u) for u in users], total

    async def get_user(self, user_id: str) -> UserResponse:
        """Get a user by ID.

        Raises:
            UserNotFoundError: If the user is not in the agency.
        """
        return UserResponse.model_validate(await self._get_by_id(user_id))

    async def update_profile(self, user_id: str, full_name: str) -> UserResponse:
        """Update the caller's own profile."""
        user = await self._get_by_id(user_id)
        user.full_name = full_name
        await self._db.commit()
        await self._db.refresh(user)

        logger.info("User profile updated: %s", user_id)
        return UserResponse.model_validate(user)

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
    ) -> None:
        """Change the caller's own password.

        The activity entry records that the password changed, never the
        values.

        Raises:
            WeakPasswordError: If the new password misses a policy requirement.
            IncorrectPasswordError: If the current password is wrong.
            UserNotFoundError: If the user is not in the agency.
        """
        missing = password_problems(new_password)
        if missing:
            raise WeakPasswordError(
                "Password must contain " + ", ".join(missing), details={"missing": missing}
            )

        user = await self._get_by_id(user_id)
        if not self._hasher.verify(current_password, user.password_hash or ""):
            logger.warning("Password change with wrong current password: %s", user_id)
            raise IncorrectPasswordError("Current password is incorrect")

        try:
            user.password_hash = self._hasher.hash(new_password)
        except ValueError as e:
            raise WeakPasswordError(str(e)) from e

        self._activity.log_activity(
            entity_type="user",
            entity_id=user.id,
            action="updated",
            description="Changed password",
            user_id=user_id,
            metadata={"change": "password"},
        )
        await self._db.commit()

        logger.info("User password changed: %s", user_id)

    async def update_email_notifications(self, user_id: str, enabled: bool) -> UserResponse:
        """Opt the caller in or out of notification emails."""
        user = await self._get_by_id(user_id)
        user.email_notifications_enabled = enabled
        await self._db.commit()
        await self._db.refresh(user)

        logger.info("User %s email notifications set to %s", user_id, enabled)
        return UserResponse.model_validate(user)

    async def update_role(self, user_id: str, role: str, acting_user_id: str) -> UserResponse:
        """Change a user's role.

        Raises:
            SelfModificationError: If an admin demotes themselves.
            UserNotFoundError: If the user is not in the agency.
        """
        if user_id == acting_user_id and role != "agency_admin":
            raise SelfModificationError("You cannot change your own role")

        user = await self._get_by_id(user_id)
        previous = user.role
        user.role = role

        self._activity.log_activity(
            entity_type="user",
            entity_id=user.id,
            action="updated",
            description=f"Changed role of {user.email} from {previous} to {role}",
            user_id=acting_user_id,
            metadata={"previous_role": previous, "role": role},
        )
        await self._db.commit()
        await self._db.refresh(user)

        logger.info("User role updated: %s (%s -> %s)", user_id, previous, role)
        return UserResponse.model_validate(user)

    async def update_status(self, user_id: str, status: str, acting_user_id: str) -> UserResponse:
        """Activate, deactivate or suspend a user.

        Raises:
            SelfModificationError: If an admin deactivates themselves.
            UserNotFoundError: If the user is not in the agency.
        """
        if user_id == acting_user_id and status != "active":
            raise SelfModificationError("You cannot deactivate your own account")

        user = await self._get_by_id(user_id)
        previous = user.status
        user.status = status

        self._activity.log_activity(
            entity_type="user",
            entity_id=user.id,
            action="updated",
            description=f"Changed status of {user.email} from {previous} to {status}",
            user_id=acting_user_id,
            metadata={"previous_status": previous, "status": status},
        )
        await self._db.commit()
        await self._db.refresh(user)

        logger.info("User status updated: %s (%s -> %s)", user_id, previous, status)
        return UserResponse.model_validate(user)

    async def delete_user(self, user_id: str, acting_user_id: str) -> None:
        """Remove a user from the agency.

        Raises:
            SelfModificationError: If an admin deletes themselves.
            UserNotFoundError: If the user is not in the agency.
        """
        if user_id == acting_user_id:
            raise SelfModificationError("You cannot delete your own account")

        user = await self._get_by_id(user_id)
        email = user.email
        await self._db.delete(user)

        self._activity.log_activity(
            entity_type="user",
            entity_id=user_id,
            action="deleted",
            description=f"Removed user {email}",
            user_id=acting_user_id,
        )
        await self._db.commit()

        logger.info("User deleted: %s", user_id)

    async def _get_by_id(self, user_id: str) -> User:
        stmt = select(User).where(User.id == user_id, User.agency_id == self._agency_id)
        result = await self._db.execute(stmt)
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user
