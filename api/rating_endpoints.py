"""
Rating Endpoints.

Endpoints Provided:
- `POST /api/ratings`: Rate an album 1 to 5. Responds 201 for a first rating
  (which also appears in followers' feeds) and 200 when an existing rating
  was updated.
- `GET /api/ratings/user/{user_id}`: A user's ratings with album details.
- `DELETE /api/ratings/{rating_id}`: Delete one of the caller's ratings.

`album_id` accepts either the local album id or a catalog id.
"""

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field, StrictInt

from api.dependencies import (
    get_album_service,
    get_current_user,
    get_rating_service,
)
from api.responses import success_response
from core.logging_config import get_logger, log_function_call
from core.models import AccountProfile
from core.rate_limiter import RateLimit
from services.album_service import AlbumService
from services.rating_service import RatingService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/ratings",
    tags=["Ratings"],
    dependencies=[Depends(RateLimit("api"))],
)


class RatingRequest(BaseModel):
    album_id: str = Field(
        min_length=1, max_length=512, validation_alias=AliasChoices("album_id", "albumId")
    )
    rating: StrictInt


@router.post("")
@log_function_call(logger)
async def rate_album(
    request: RatingRequest,
    current_user: AccountProfile = Depends(get_current_user),
    albums: AlbumService = Depends(get_album_service),
    ratings: RatingService = Depends(get_rating_service),
):
    """Create or update the caller's rating of an album"""
    album = await albums.get_by_reference(request.album_id)
    rating, created = await ratings.upsert_rating(current_user.id, album.id, request.rating)
    return success_response(
        rating,
        status_code=201 if created else 200,
        message="Rating created" if created else "Rating updated",
    )


@router.get("/user/{user_id}")
@log_function_call(logger)
async def get_user_ratings(user_id: str, ratings: RatingService = Depends(get_rating_service)):
    return success_response(await ratings.get_user_ratings(user_id))


@router.delete("/{rating_id}")
@log_function_call(logger)
async def delete_rating(
    rating_id: str,
    current_user: AccountProfile = Depends(get_current_user),
    ratings: RatingService = Depends(get_rating_service),
):
    await ratings.delete_rating(rating_id, current_user.id)
    return success_response(None, message="Rating deleted")
