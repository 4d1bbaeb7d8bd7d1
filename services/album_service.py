"""
Album Service.

Albums are materialised from the external music catalog the first time
anything references them (opening an album page, rating it) and are looked
up by their catalog id from then on. Only `refresh_metadata` changes an album
after it has been created.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from core.database import async_session, require_row, translate_store_errors
from core.exceptions import ConflictError
from core.models import Album, AlbumSummary, ReviewWithDetails, utc_now
from services.music_service import MusicCatalogService, get_music_service
from services.rating_service import RatingService
from services.review_service import ReviewService

logger = logging.getLogger(__name__)


class AlbumService:
    """Local album rows backed by the music catalog"""

    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        music_service: MusicCatalogService = None,
        rating_service: RatingService = None,
        review_service: ReviewService = None,
    ):
        self.session_factory = session_factory or async_session
        self._music_service = music_service
        self.ratings = rating_service or RatingService(self.session_factory)
        self.reviews = review_service or ReviewService(self.session_factory)

    @property
    def music(self) -> MusicCatalogService:
        return self._music_service or get_music_service()

    async def get_by_id(self, album_id: str) -> Album:
        async with translate_store_errors("get album"):
            async with self.session_factory() as session:
                return await require_row(session, Album, album_id, "album")

    async def get_by_external_id(self, external_id: str) -> Optional[Album]:
        async with translate_store_errors("get album by external id"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Album).where(Album.external_id == external_id)
                )
                return result.scalars().first()

    async def find_or_create(self, summary: AlbumSummary) -> Album:
        """Return the album for a catalog entry, inserting it on first sight"""
        existing = await self.get_by_external_id(summary.external_id)
        if existing is not None:
            return existing

        album = Album(
            external_id=summary.external_id,
            title=summary.title,
            artist=summary.artist,
            release_date=summary.release_date,
            image_url=summary.image_url,
            external_url=summary.external_url,
        )
        try:
            async with translate_store_errors("create album", conflict_resource="album"):
                async with self.session_factory() as session:
                    async with session.begin():
                        session.add(album)
        except ConflictError:
            # Another request materialised it first
            existing = await self.get_by_external_id(summary.external_id)
            if existing is None:
                raise
            return existing

        logger.info(f"Materialised album {album.external_id}: {album.artist} - {album.title}")
        return album

    async def refresh_metadata(self, album_id: str, summary: AlbumSummary) -> Album:
        async with translate_store_errors("refresh album"):
            async with self.session_factory() as session:
                async with session.begin():
                    album = await require_row(session, Album, album_id, "album")
                    album.title = summary.title
                    album.artist = summary.artist
                    album.release_date = summary.release_date
                    album.image_url = summary.image_url
                    album.external_url = summary.external_url
                    album.updated_at = utc_now()

        logger.info(f"Refreshed metadata for album {album.external_id}")
        return album

    async def resolve(self, external_id: str) -> Album:
        """Local album for a catalog id, fetching it from the catalog if needed"""
        album = await self.get_by_external_id(external_id)
        if album is not None:
            return album
        summary = await self.music.get_album(external_id)
        return await self.find_or_create(summary)

    async def get_by_reference(self, album_ref: str) -> Album:
        """Accept either a local album id or a catalog id"""
        async with translate_store_errors("get album"):
            async with self.session_factory() as session:
                album = await session.get(Album, album_ref)
        if album is not None:
            return album
        return await self.resolve(album_ref)

    async def get_album_detail(
        self, external_id: str, viewer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Album with rating stats; includes the viewer's own rating and review"""
        album = await self.resolve(external_id)
        stats = await self.ratings.get_album_stats(album.id)

        detail = album.model_dump()
        detail.update(
            average_rating=stats.average_rating,
            rating_count=stats.rating_count,
            review_count=await self.reviews.count_album_reviews(album.id),
        )

        if viewer_id:
            rating = await self.ratings.get_user_rating(viewer_id, album.id)
            review = await self.reviews.get_user_review(viewer_id, album.id)
            detail["user_rating"] = rating.rating if rating else None
            detail["user_review"] = (
                ReviewWithDetails(
                    id=review.id,
                    user_id=review.user_id,
                    album_id=review.album_id,
                    content=review.content,
                    created_at=review.created_at,
                    updated_at=review.updated_at,
                )
                if review
                else None
            )

        return detail

    async def seed(self, summaries: Iterable[AlbumSummary]) -> int:
        """Materialise catalog entries up front; returns how many were new"""
        created = 0
        for summary in summaries:
            if await self.get_by_external_id(summary.external_id) is None:
                await self.find_or_create(summary)
                created += 1
        logger.info(f"Seeded {created} albums")
        return created
