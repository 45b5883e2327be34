# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication service.

Email and password sign in for agency staff, plus stateless refresh of
the JWT pair. Lookups here run before an agency is known, so they use an
unscoped session and filter on the user row itself.

Example:
    >>> auth_service = AuthService(db_session, jwt_manager)
    >>> user, tokens = await auth_service.login("admin@agency.com", "secret")
    >>> tokens = await auth_service.refresh_tokens(tokens.refresh_token)
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from src.domains.auth.jwt import InvalidTokenError, JWTManager, TokenExpiredError, TokenPair
from src.domains.auth.password import PasswordHasher
from src.infrastructure.database.models import User
from src.models.user import UserResponse
from src.utils.datetime import utc_now
from src.utils.logging import mask_email

logger = logging.getLogger(__name__)


class AuthenticationError(UnauthorizedError):
    """Raised when credentials are wrong."""

    pass


class AccountInactiveError(ForbiddenError):
    """Raised when account is not active."""

    pass


class TokenRefreshError(UnauthorizedError):
    """Raised when token refresh fails."""

    pass


class AuthService:
    """Authentication service.

    Attributes:
        _db: Database session for queries.
        _jwt_manager: JWT token manager.
        _hasher: Password hasher.
    """

    def __init__(
        self,
        db: AsyncSession,
        jwt_manager: JWTManager,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self._db = db
        self._jwt_manager = jwt_manager
        self._hasher = hasher or PasswordHasher()

    async def login(self, email: str, password: str) -> tuple[UserResponse, TokenPair]:
        """Sign in with email and password.

        Args:
            email: Account email, matched case-insensitively.
            password: Plain text password.

        Returns:
            Tuple of (user, token pair).

        Raises:
            AuthenticationError: If the email is unknown or password is wrong.
            AccountInactiveError: If the account is inactive or suspended.
        """
        stmt = select(User).where(func.lower(User.email) == email.strip().lower())
        result = await self._db.execute(stmt)
        user = result.scalar_one_or_none()

        # Same message for unknown email and wrong password
        if not user or not self._hasher.verify(password, user.password_hash or ""):
            logger.info("Failed login attempt for %s", mask_email(email))
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AccountInactiveError(f"Account is {user.status}")

        user.last_login_at = utc_now()
        await self._db.commit()
        await self._db.refresh(user)

        tokens = self._jwt_manager.create_token_pair(
            user_id=user.id,
            agency_id=user.agency_id,
            role=user.role,
            email=user.email,
        )

        logger.info("User logged in: %s (agency=%s)", user.id, user.agency_id)
        return UserResponse.model_validate(user), tokens

    async def refresh_tokens(self, refresh_token: str) -> TokenPair:
        """Issue a new token pair from a refresh token.

        Role and status are re-read so that a demoted or suspended user
        cannot keep refreshing stale claims.

        Raises:
            TokenRefreshError: If the token is invalid or expired, or the
                user no longer exists or is inactive.
        """
        try:
            payload = self._jwt_manager.decode_token(refresh_token, expected_type="refresh")
        except (TokenExpiredError, InvalidTokenError) as e:
            raise TokenRefreshError(f"Invalid refresh token: {e}") from e

        user = await self._get_user(payload.sub)
        if not user or user.agency_id != payload.agency_id or not user.is_active:
            raise TokenRefreshError("User not found or inactive")

        logger.info("Tokens refreshed for user: %s", user.id)
        return self._jwt_manager.create_token_pair(
            user_id=user.id,
            agency_id=user.agency_id,
            role=user.role,
            email=user.email,
        )

    async def get_current_user(self, user_id: str) -> UserResponse:
        """Get the signed-in user's profile.

        Raises:
            NotFoundError: If the user no longer exists.
        """
        user = await self._get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return UserResponse.model_validate(user)

    async def _get_user(self, user_id: str) -> User | None:
        result = await self._db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()
