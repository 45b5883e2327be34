# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invitation service.

Admins invite staff by email. The invitee follows a link containing a
single-use token that expires after seven days, chooses a password and
becomes an active user of the inviting agency.
"""

import logging
import secrets
from datetime import timedelta
from html import escape

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ConflictError, NotFoundError, ValidationError
from src.domains.auth.password import PasswordHasher, password_problems
from src.infrastructure.database.models import Agency, Invitation, User
from src.infrastructure.notifications.channels import NotificationPayload
from src.models.user import InvitationResponse, UserResponse
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

INVITATION_TTL = timedelta(days=7)


class InvitationNotFoundError(NotFoundError):
    """Raised when an invitation token or ID is unknown."""

    pass


class InvitationInvalidError(ValidationError):
    """Raised when an invitation is expired or already used."""

    pass


class InvitationConflictError(ConflictError):
    """Raised when the email already has a user or a pending invitation."""

    pass


class WeakPasswordError(ValidationError):
    """Raised when the chosen password does not meet the password policy."""

    pass


def generate_invitation_token() -> str:
    """Create an unguessable URL safe token."""
    return secrets.token_urlsafe(32)


class InvitationService:
    """Service for staff invitations.

    Attributes:
        _db: Async database session.
        _agency_id: Inviting agency. None for the public accept flow.
    """

    def __init__(
        self,
        db: AsyncSession,
        agency_id: str | None = None,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self._db = db
        self._agency_id = agency_id
        self._hasher = hasher or PasswordHasher()

    async def create_invitation(
        self,
        email: str,
        role: str,
        invited_by: str,
    ) -> tuple[InvitationResponse, str]:
        """Invite a new user.

        Args:
            email: Invitee email.
            role: Role the user will get.
            invited_by: Inviting admin.

        Returns:
            Tuple of (invitation, token). The token is only returned here so
            the caller can put it in the invitation email.

        Raises:
            InvitationConflictError: If a user with the email exists or a
                pending invitation is outstanding.
        """
        email = email.strip().lower()

        existing_user = await self._db.execute(
            select(User.id).where(func.lower(User.email) == email)
        )
        if existing_user.scalar_one_or_none():
            raise InvitationConflictError(f"A user with email {email} already exists")

        pending = await self._db.execute(
            select(Invitation.id).where(
                Invitation.agency_id == self._agency_id,
                func.lower(Invitation.email) == email,
                Invitation.used_at.is_(None),
                Invitation.expires_at > utc_now(),
            )
        )
        if pending.scalar_one_or_none():
            raise InvitationConflictError(f"A pending invitation for {email} already exists")

        token = generate_invitation_token()
        invitation = Invitation(
            agency_id=self._agency_id,
            email=email,
            role=role,
            token=token,
            invited_by=invited_by,
            expires_at=utc_now() + INVITATION_TTL,
        )
        self._db.add(invitation)
        await self._db.commit()
        await self._db.refresh(invitation)

        logger.info("Invitation created: %s (%s)", invitation.id, role)
        return InvitationResponse.model_validate(invitation), token

    async def resend_invitation(self, invitation_id: str) -> tuple[InvitationResponse, str]:
        """Issue a fresh token and expiry for an unused invitation.

        Raises:
            InvitationNotFoundError: If the invitation is not in the agency.
            InvitationInvalidError: If it was already accepted.
        """
        result = await self._db.execute(
            select(Invitation).where(
                Invitation.id == invitation_id,
                Invitation.agency_id == self._agency_id,
            )
        )
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise InvitationNotFoundError(f"Invitation {invitation_id} not found")
        if invitation.is_used:
            raise InvitationInvalidError("Invitation has already been accepted")

        token = generate_invitation_token()
        invitation.token = token
        invitation.expires_at = utc_now() + INVITATION_TTL
        await self._db.commit()
        await self._db.refresh(invitation)

        logger.info("Invitation resent: %s", invitation.id)
        return InvitationResponse.model_validate(invitation), token

    async def delete_invitation(self, invitation_id: str, deleted_by: str) -> None:
        """Withdraw an invitation that has not been accepted.

        Raises:
            InvitationNotFoundError: If the invitation is not in the agency.
            InvitationInvalidError: If it was already used.
        """
        result = await self._db.execute(
            select(Invitation).where(
                Invitation.id == invitation_id,
                Invitation.agency_id == self._agency_id,
            )
        )
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise InvitationNotFoundError("Invitation not found")
        if invitation.is_used:
            raise InvitationInvalidError("Cannot delete used invitation")

        await self._db.delete(invitation)
        await self._db.commit()

        logger.info(
            "Invitation deleted: %s (%s) by %s", invitation_id, invitation.email, deleted_by
        )

    async def list_invitations(
        self,
        pending_only: bool = False,
    ) -> tuple[list[InvitationResponse], int]:
        """List the agency's invitations, newest first."""
        stmt = select(Invitation).where(Invitation.agency_id == self._agency_id)
        if pending_only:
            stmt = stmt.where(Invitation.used_at.is_(None), Invitation.expires_at > utc_now())

        result = await self._db.execute(stmt.order_by(Invitation.created_at.desc()))
        invitations = result.scalars().all()
        return [InvitationResponse.model_validate(i) for i in invitations], len(invitations)

    async def accept_invitation(
        self,
        token: str,
        full_name: str,
        password: str,
    ) -> UserResponse:
        """Create the invited user and mark the invitation used.

        Args:
            token: Invitation token from the email link.
            full_name: Name chosen by the invitee.
            password: Password chosen by the invitee.

        Returns:
            The new user.

        Raises:
            InvitationNotFoundError: If the token is unknown.
            InvitationInvalidError: If the invitation expired or was used,
                or the password cannot be hashed.
            InvitationConflictError: If the email was registered meanwhile.
            WeakPasswordError: If the password misses a policy requirement.
        """
        missing = password_problems(password)
        if missing:
            raise WeakPasswordError(
                "Password must contain " + ", ".join(missing), details={"missing": missing}
            )

        result = await self._db.execute(select(Invitation).where(Invitation.token == token))
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise InvitationNotFoundError("Invitation not found")
        if invitation.is_used:
            raise InvitationInvalidError("Invitation has already been used")
        if invitation.is_expired:
            raise InvitationInvalidError("Invitation has expired")

        existing_user = await self._db.execute(
            select(User.id).where(func.lower(User.email) == invitation.email.lower())
        )
        if existing_user.scalar_one_or_none():
            raise InvitationConflictError(f"A user with email {invitation.email} already exists")

        try:
            password_hash = self._hasher.hash(password)
        except ValueError as e:
            raise InvitationInvalidError(str(e))

        user = User(
            agency_id=invitation.agency_id,
            email=invitation.email,
            full_name=full_name.strip(),
            password_hash=password_hash,
            role=invitation.role,
            status="active",
        )
        self._db.add(user)
        invitation.used_at = utc_now()
        await self._db.commit()
        await self._db.refresh(user)

        logger.info("Invitation accepted: %s -> user %s", invitation.id, user.id)
        return UserResponse.model_validate(user)

    async def get_agency_name(self) -> str:
        """Name of the inviting agency, used in the invitation email."""
        result = await self._db.execute(select(Agency.name).where(Agency.id == self._agency_id))
        return result.scalar_one_or_none() or "your agency"


def build_invitation_email(
    email: str,
    agency_name: str,
    token: str,
    public_url: str,
) -> NotificationPayload:
    """Render the invitation email with its accept link."""
    link = f"{public_url.rstrip('/')}/accept-invitation?token={token}"
    return NotificationPayload(
        recipient_email=email,
        subject=f"You're invited to join {agency_name} on Pleeno",
        html=(
            f"<p>You have been invited to join <strong>{escape(agency_name)}</strong> on Pleeno.</p>"
            f'<p><a href="{escape(link)}">Accept your invitation</a></p>'
            f"<p>This link expires in {INVITATION_TTL.days} days.</p>"
        ),
        metadata={"type": "invitation"},
    )
