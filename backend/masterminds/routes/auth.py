"""
MasterMinds Backend — Auth Route Handlers
==========================================

What:  POST /auth/register (alias /auth/signup), POST /auth/login
       (alias /auth/signin), GET /auth/me, POST /auth/logout,
       POST /auth/refresh.
How:   Thin handlers: the schema validates, AuthService decides, the handler
       shapes the success envelope. Errors are raised, never returned.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request

from masterminds.identity import AuthenticatedUser, ClientInfo
from masterminds.middleware.auth import client_info, get_current_user
from masterminds.schemas.auth import (
    AuthData,
    CurrentUserData,
    LoginRequest,
    RefreshData,
    RefreshRequest,
    RegisterRequest,
    SessionInfo,
    TokenBundle,
    TokenInfo,
    UserProfile,
)
from masterminds.schemas.common import Envelope, ErrorResponse, MessageResponse
from masterminds.services.auth_service import AuthResult, auth_service
from masterminds.storage import UserRecord, storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

ERRORS = {
    400: {"description": "Validation failed", "model": ErrorResponse},
    401: {"description": "Not authenticated", "model": ErrorResponse},
}


def to_profile(user: UserRecord) -> UserProfile:
    return UserProfile(**{name: getattr(user, name) for name in UserProfile.model_fields})


def to_auth_data(result: AuthResult) -> AuthData:
    lifetime = result.access.expires_at - result.access.issued_at
    return AuthData(
        user=to_profile(result.user),
        tokens=TokenBundle(
            access_token=result.access.token,
            refresh_token=result.refresh_token,
            expires_in=int(lifetime.total_seconds()),
        ),
    )


@router.post(
    "/register",
    status_code=201,
    response_model=Envelope[AuthData],
    responses={**ERRORS, 429: {"description": "Too many attempts", "model": ErrorResponse}},
    summary="Register a new user",
)
@router.post("/signup", status_code=201, response_model=Envelope[AuthData], include_in_schema=False)
async def register(
    payload: RegisterRequest,
    client: ClientInfo = Depends(client_info),
) -> Envelope[AuthData]:
    result = await auth_service.register(payload, client)
    return Envelope[AuthData](
        message="User registered successfully",
        data=to_auth_data(result),
        meta={"storageMode": storage.mode},
    )


@router.post(
    "/login",
    response_model=Envelope[AuthData],
    responses={**ERRORS, 423: {"description": "Account locked", "model": ErrorResponse}},
    summary="Log in with email and password",
)
@router.post("/signin", response_model=Envelope[AuthData], include_in_schema=False)
async def login(
    payload: LoginRequest,
    client: ClientInfo = Depends(client_info),
) -> Envelope[AuthData]:
    result = await auth_service.login(payload.email, payload.password, client)
    return Envelope[AuthData](
        message="Login successful",
        data=to_auth_data(result),
        meta={
            "storageMode": storage.mode,
            "loginTime": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get(
    "/me",
    response_model=Envelope[CurrentUserData],
    responses=ERRORS,
    summary="Current user's profile and token information",
)
async def me(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
) -> Envelope[CurrentUserData]:
    profile = await auth_service.get_profile(user.user_id)
    return Envelope[CurrentUserData](
        data=CurrentUserData(
            user=to_profile(profile),
            session=SessionInfo(
                last_access=request.state.last_access,
                token_info=TokenInfo(issued_at=user.issued_at, expires_at=user.expires_at),
            ),
        )
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    responses=ERRORS,
    summary="Revoke the presented access token and end its session",
)
async def logout(user: AuthenticatedUser = Depends(get_current_user)) -> MessageResponse:
    await auth_service.logout(
        user.token, user.token_id, user.expires_at, session_id=user.session_id
    )
    logger.info("User %s logged out", user.user_id)
    return MessageResponse(message="Logged out successfully", code="LOGOUT_SUCCESS")


@router.post(
    "/refresh",
    response_model=Envelope[RefreshData],
    responses=ERRORS,
    summary="Exchange a refresh token for a new access token",
)
async def refresh(payload: Optional[RefreshRequest] = None) -> Envelope[RefreshData]:
    access = await auth_service.refresh(payload.refresh_token if payload else None)
    lifetime = access.expires_at - access.issued_at
    return Envelope[RefreshData](
        message="Token refreshed successfully",
        data=RefreshData(access_token=access.token, expires_in=int(lifetime.total_seconds())),
    )
