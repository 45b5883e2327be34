# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Staff sign in.

    POST /auth/login     email and password, rate limited per IP
    POST /auth/refresh   refresh token for a new pair
    GET  /auth/me        the signed in user's profile
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_agency_db, get_db, get_jwt_manager, require_auth
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import get_ip_only, limiter, login_limit
from src.domains.auth.jwt import JWTManager, TokenPair
from src.domains.auth.service import AuthService
from src.models.auth import LoginRequest, LoginResponse, RefreshTokenRequest, TokenResponse
from src.models.user import UserResponse

router = APIRouter()


def _token_fields(tokens: TokenPair) -> dict:
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "expires_in": tokens.expires_in,
        "refresh_expires_in": tokens.refresh_expires_in,
    }


@router.post("/login", response_model=LoginResponse, summary="Login")
@limiter.limit(login_limit, key_func=get_ip_only)
async def login(
    request: Request,
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    jwt_manager: JWTManager = Depends(get_jwt_manager),
) -> LoginResponse:
    """Sign in and issue a token pair.

    Unknown email and wrong password both answer 401 with the same message;
    an inactive or suspended account answers 403.
    """
    user, tokens = await AuthService(db, jwt_manager).login(data.email, data.password)
    return LoginResponse(**_token_fields(tokens), user=user)


@router.post("/refresh", response_model=TokenResponse, summary="Refresh tokens")
async def refresh(
    data: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
    jwt_manager: JWTManager = Depends(get_jwt_manager),
) -> TokenResponse:
    tokens = await AuthService(db, jwt_manager).refresh_tokens(data.refresh_token)
    return TokenResponse(**_token_fields(tokens))


@router.get("/me", response_model=UserResponse, summary="Current user")
async def me(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_agency_db),
    jwt_manager: JWTManager = Depends(get_jwt_manager),
) -> UserResponse:
    return await AuthService(db, jwt_manager).get_current_user(current_user.id)
