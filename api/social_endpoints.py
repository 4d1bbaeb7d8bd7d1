"""
Social Graph Endpoints.

Endpoints Provided:
- `POST /api/social/follow`: Follow a user (201). Following yourself is a
  400; following twice is a 409.
- `DELETE /api/social/follow/{user_id}`: Unfollow. Idempotent; the response
  says whether an edge was removed.
- `GET /api/social/followers/{user_id}` / `GET /api/social/following/{user_id}`
- `GET /api/social/profile/{user_id}`: Public profile with follower counts,
  plus `is_following` when the caller is authenticated.
- `GET /api/social/is-following/{user_id}`
- `GET /api/social/mutual`: Users the caller follows who follow back.
- `GET /api/social/suggestions?limit=`: Users the caller might follow.
- `GET /api/social/search?q=&limit=`: Find users by username or display name.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field

from api.dependencies import get_current_user, get_optional_user, get_social_service
from api.responses import success_response
from core.logging_config import get_logger, log_function_call
from core.models import AccountProfile
from core.rate_limiter import RateLimit
from services.social_service import SocialService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/social",
    tags=["Social"],
    dependencies=[Depends(RateLimit("api"))],
)


class FollowRequest(BaseModel):
    user_id: str = Field(
        min_length=1, max_length=36, validation_alias=AliasChoices("user_id", "userId")
    )


@router.post("/follow", status_code=201)
@log_function_call(logger)
async def follow_user(
    request: FollowRequest,
    current_user: AccountProfile = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    edge = await social.follow(current_user.id, request.user_id)
    return success_response(edge, status_code=201, message="User followed")


@router.delete("/follow/{user_id}")
@log_function_call(logger)
async def unfollow_user(
    user_id: str,
    current_user: AccountProfile = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    removed = await social.unfollow(current_user.id, user_id)
    return success_response(
        {"removed": removed},
        message="User unfollowed" if removed else "Not following this user",
    )


@router.get("/followers/{user_id}")
@log_function_call(logger)
async def get_followers(user_id: str, social: SocialService = Depends(get_social_service)):
    return success_response(await social.get_followers(user_id))


@router.get("/following/{user_id}")
@log_function_call(logger)
async def get_following(user_id: str, social: SocialService = Depends(get_social_service)):
    return success_response(await social.get_following(user_id))


@router.get("/profile/{user_id}")
@log_function_call(logger)
async def get_profile(
    user_id: str,
    viewer: Optional[AccountProfile] = Depends(get_optional_user),
    social: SocialService = Depends(get_social_service),
):
    profile = (await social.get_profile_with_stats(user_id)).model_dump()
    if viewer is not None and viewer.id != user_id:
        profile["is_following"] = await social.is_following(viewer.id, user_id)
    return success_response(profile)


@router.get("/is-following/{user_id}")
@log_function_call(logger)
async def is_following(
    user_id: str,
    current_user: AccountProfile = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    following = await social.is_following(current_user.id, user_id)
    return success_response({"user_id": user_id, "is_following": following})


@router.get("/mutual")
@log_function_call(logger)
async def get_mutual_follows(
    current_user: AccountProfile = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return success_response(await social.get_mutual_follows(current_user.id))


@router.get("/suggestions")
@log_function_call(logger)
async def get_suggestions(
    limit: int = Query(10, ge=1, le=50),
    current_user: AccountProfile = Depends(get_current_user),
    social: SocialService = Depends(get_social_service),
):
    return success_response(await social.get_suggestions(current_user.id, limit))


@router.get("/search")
@log_function_call(logger)
async def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=50),
    viewer: Optional[AccountProfile] = Depends(get_optional_user),
    social: SocialService = Depends(get_social_service),
):
    users = await social.search_users(q, limit)
    if viewer is None:
        return success_response(users)

    following = await social.is_following_many(viewer.id, [u.id for u in users])
    results = []
    for user in users:
        entry = user.model_dump()
        entry["is_following"] = following.get(user.id, False)
        results.append(entry)
    return success_response(results)
