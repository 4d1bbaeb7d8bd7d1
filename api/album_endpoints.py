"""
Album Endpoints.

Endpoints Provided:
- `GET /api/albums/search?q=&limit=`: Search the music catalog.
- `GET /api/albums/{external_id}`: Album detail with rating stats. When the
  caller is authenticated the response also carries their own rating and
  review. The album is materialised locally on first access.
- `GET /api/albums/{external_id}/ratings`: Ratings of an album.
- `GET /api/albums/{external_id}/reviews`: Reviews of an album.

Catalog ids may contain slashes (Last.fm ids look like `AC/DC|Back in Black`),
so the id is matched with the `path` converter and the sub-resource routes
are declared before the detail route.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_album_service,
    get_catalog_service,
    get_optional_user,
    get_rating_service,
    get_review_service,
)
from api.responses import success_response
from core.logging_config import get_logger, log_function_call
from core.models import AccountProfile
from core.rate_limiter import RateLimit
from services.album_service import AlbumService
from services.music_service import MusicCatalogService
from services.rating_service import RatingService
from services.review_service import ReviewService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/albums",
    tags=["Albums"],
    dependencies=[Depends(RateLimit("api"))],
)


@router.get("/search")
@log_function_call(logger)
async def search_albums(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=50),
    catalog: MusicCatalogService = Depends(get_catalog_service),
):
    """Search albums by title or artist"""
    albums = await catalog.search_albums(q, limit)
    return success_response(albums)


@router.get("/{external_id:path}/ratings")
@log_function_call(logger)
async def get_album_ratings(
    external_id: str,
    albums: AlbumService = Depends(get_album_service),
    ratings: RatingService = Depends(get_rating_service),
):
    album = await albums.get_by_external_id(external_id)
    if album is None:
        return success_response([])
    return success_response(await ratings.get_album_ratings(album.id))


@router.get("/{external_id:path}/reviews")
@log_function_call(logger)
async def get_album_reviews(
    external_id: str,
    albums: AlbumService = Depends(get_album_service),
    reviews: ReviewService = Depends(get_review_service),
):
    album = await albums.get_by_external_id(external_id)
    if album is None:
        return success_response([])
    return success_response(await reviews.get_album_reviews(album.id))


@router.get("/{external_id:path}")
@log_function_call(logger)
async def get_album(
    external_id: str,
    albums: AlbumService = Depends(get_album_service),
    viewer: Optional[AccountProfile] = Depends(get_optional_user),
):
    """Album detail with average rating, rating count and review count"""
    detail = await albums.get_album_detail(external_id, viewer.id if viewer else None)
    return success_response(detail)
