"""
Authentication and Account Endpoints.

Endpoints Provided:
- `POST /api/auth/register`: Create an account; responds 201 with a token.
- `POST /api/auth/login`: Log in with username or email plus password.
- `POST /api/auth/logout`: Revoke the session behind the bearer token.
- `POST /api/auth/refresh`: Exchange a valid token for a fresh one.
- `GET /api/auth/me` / `PATCH /api/auth/me`: Read or edit the caller's profile.
- `DELETE /api/auth/account`: Delete the caller's account. Ratings and
  reviews stay (anonymised) so album statistics are unchanged; the response
  carries the deletion audit counts.

Registration and login use the stricter `auth` rate limit rule. Errors raised
by the services are rendered by the application's exception handlers.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, EmailStr, Field

from api.dependencies import (
    get_account_service,
    get_auth,
    get_bearer_token,
    get_current_user,
)
from api.responses import success_response
from core.auth import AuthenticationService
from core.logging_config import get_logger, log_function_call
from core.models import AccountProfile
from core.rate_limiter import RateLimit
from services.account_service import AccountService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"],
    dependencies=[Depends(RateLimit("api"))],
)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    username_or_email: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("username_or_email", "usernameOrEmail", "username", "email"),
    )
    password: str = Field(min_length=1, max_length=128)


class UpdateProfileRequest(BaseModel):
    display_name: Optional[str] = Field(
        default=None,
        max_length=100,
        validation_alias=AliasChoices("display_name", "displayName"),
    )
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = Field(
        default=None,
        max_length=1024,
        validation_alias=AliasChoices("avatar_url", "avatarUrl"),
    )


@router.post("/register", status_code=201, dependencies=[Depends(RateLimit("auth"))])
@log_function_call(logger)
async def register_user(
    request: RegisterRequest, auth: AuthenticationService = Depends(get_auth)
):
    """Register a new user"""
    token = await auth.register(request.username, request.email, request.password)
    return success_response(token, status_code=201, message="User registered successfully")


@router.post("/login", dependencies=[Depends(RateLimit("auth"))])
@log_function_call(logger)
async def login_user(request: LoginRequest, auth: AuthenticationService = Depends(get_auth)):
    """Authenticate user and return a token"""
    token = await auth.login(request.username_or_email, request.password)
    return success_response(token, message="Login successful")


@router.post("/logout")
@log_function_call(logger)
async def logout_user(
    token: str = Depends(get_bearer_token), auth: AuthenticationService = Depends(get_auth)
):
    """Logout user and revoke the session"""
    await auth.logout(token)
    return success_response(None, message="Logged out successfully")


@router.post("/refresh")
@log_function_call(logger)
async def refresh_token(
    token: str = Depends(get_bearer_token), auth: AuthenticationService = Depends(get_auth)
):
    """Issue a new token and revoke the old session"""
    new_token = await auth.refresh(token)
    return success_response(new_token, message="Token refreshed")


@router.get("/me")
@log_function_call(logger)
async def get_current_user_info(current_user: AccountProfile = Depends(get_current_user)):
    """Get current user information"""
    return success_response(current_user)


@router.patch("/me")
@log_function_call(logger)
async def update_current_user(
    request: UpdateProfileRequest,
    current_user: AccountProfile = Depends(get_current_user),
    auth: AuthenticationService = Depends(get_auth),
):
    """Edit display name, bio or avatar URL; omitted fields are left unchanged"""
    profile = await auth.update_profile(
        current_user.id, **request.model_dump(exclude_unset=True)
    )
    return success_response(profile, message="Profile updated")


@router.delete("/account")
@log_function_call(logger)
async def delete_account(
    current_user: AccountProfile = Depends(get_current_user),
    accounts: AccountService = Depends(get_account_service),
):
    """Delete the caller's account"""
    audit = await accounts.delete_account(current_user.id)
    logger.info(f"Account deleted: {current_user.username}")
    return success_response(
        {
            "user_id": audit.user_id,
            "deleted_at": audit.deleted_at,
            "ratings_count": audit.ratings_count,
            "reviews_count": audit.reviews_count,
            "follows_count": audit.follows_count,
        },
        message="Account deleted successfully",
    )
