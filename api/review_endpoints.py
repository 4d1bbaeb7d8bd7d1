"""
Review Endpoints.

Endpoints Provided:
- `POST /api/reviews`: Review an album (201). A second review of the same
  album is refused with 409; edit the existing one instead.
- `PUT /api/reviews/{review_id}`: Edit one of the caller's reviews.
- `DELETE /api/reviews/{review_id}`: Delete one of the caller's reviews.
- `GET /api/reviews/user/{user_id}`: A user's reviews with album details.
- `GET /api/reviews/recent?limit=`: Latest reviews across all users.
- `GET /api/reviews/{review_id}`: One review with author and album.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field

from api.dependencies import get_album_service, get_current_user, get_review_service
from api.responses import success_response
from core.logging_config import get_logger, log_function_call
from core.models import REVIEW_MAX_LENGTH, AccountProfile
from core.rate_limiter import RateLimit
from services.album_service import AlbumService
from services.review_service import ReviewService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/reviews",
    tags=["Reviews"],
    dependencies=[Depends(RateLimit("api"))],
)


class CreateReviewRequest(BaseModel):
    album_id: str = Field(
        min_length=1, max_length=512, validation_alias=AliasChoices("album_id", "albumId")
    )
    content: str = Field(max_length=REVIEW_MAX_LENGTH)


class UpdateReviewRequest(BaseModel):
    content: str = Field(max_length=REVIEW_MAX_LENGTH)


@router.post("", status_code=201)
@log_function_call(logger)
async def create_review(
    request: CreateReviewRequest,
    current_user: AccountProfile = Depends(get_current_user),
    albums: AlbumService = Depends(get_album_service),
    reviews: ReviewService = Depends(get_review_service),
):
    album = await albums.get_by_reference(request.album_id)
    review = await reviews.create_review(current_user.id, album.id, request.content)
    return success_response(review, status_code=201, message="Review created")


@router.get("/recent")
@log_function_call(logger)
async def get_recent_reviews(
    limit: int = Query(6, ge=1, le=50),
    reviews: ReviewService = Depends(get_review_service),
):
    return success_response(await reviews.get_recent_reviews(limit))


@router.get("/user/{user_id}")
@log_function_call(logger)
async def get_user_reviews(user_id: str, reviews: ReviewService = Depends(get_review_service)):
    return success_response(await reviews.get_user_reviews(user_id))


@router.get("/{review_id}")
@log_function_call(logger)
async def get_review(review_id: str, reviews: ReviewService = Depends(get_review_service)):
    return success_response(await reviews.get_review(review_id))


@router.put("/{review_id}")
@log_function_call(logger)
async def update_review(
    review_id: str,
    request: UpdateReviewRequest,
    current_user: AccountProfile = Depends(get_current_user),
    reviews: ReviewService = Depends(get_review_service),
):
    review = await reviews.update_review(review_id, current_user.id, request.content)
    return success_response(review, message="Review updated")


@router.delete("/{review_id}")
@log_function_call(logger)
async def delete_review(
    review_id: str,
    current_user: AccountProfile = Depends(get_current_user),
    reviews: ReviewService = Depends(get_review_service),
):
    await reviews.delete_review(review_id, current_user.id)
    return success_response(None, message="Review deleted")
