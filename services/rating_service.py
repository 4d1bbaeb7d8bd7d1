"""
Rating Service.

Star ratings (integers 1 to 5), at most one per user and album.

`upsert_rating` applies the write policy shared with reviews in a single
transaction: try an UPDATE keyed by (user, album); when no row changed,
INSERT and record a "rating" activity in the same transaction. Only that
first write emits an event, so re-rating an album never floods followers'
feeds. Two concurrent first ratings race on the unique constraint and the
loser receives a `ConflictError`, which the client may retry as an update.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from core.database import async_session, require_row, translate_store_errors
from core.exceptions import ForbiddenError, NotFoundError
from core.models import (
    ActorSummary,
    Album,
    AlbumBrief,
    AlbumStats,
    Rating,
    RatingActivity,
    RatingWithDetails,
    User,
    utc_now,
)
from core.validation import InputValidator
from services.activity_service import ActivityRecorder

logger = logging.getLogger(__name__)


def _rating_details(
    rating: Rating, user: Optional[User] = None, album: Optional[Album] = None
) -> RatingWithDetails:
    return RatingWithDetails(
        id=rating.id,
        user_id=rating.user_id,
        album_id=rating.album_id,
        rating=rating.rating,
        created_at=rating.created_at,
        updated_at=rating.updated_at,
        user=ActorSummary.from_user(user),
        album=AlbumBrief.from_album(album),
    )


class RatingService:
    """Album ratings"""

    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        activity_recorder: ActivityRecorder = None,
    ):
        self.session_factory = session_factory or async_session
        self.activities = activity_recorder or ActivityRecorder(self.session_factory)

    async def upsert_rating(
        self, user_id: str, album_id: str, value: int
    ) -> Tuple[Rating, bool]:
        """Create or update the user's rating; returns (rating, created)"""
        value = InputValidator.validate_rating(value)

        async with translate_store_errors("save rating", conflict_resource="rating"):
            async with self.session_factory() as session:
                async with session.begin():
                    await require_row(session, User, user_id, "user")
                    await require_row(session, Album, album_id, "album")

                    result = await session.execute(
                        update(Rating)
                        .where(Rating.user_id == user_id, Rating.album_id == album_id)
                        .values(rating=value, updated_at=utc_now())
                        .execution_options(synchronize_session=False)
                    )
                    created = result.rowcount == 0

                    if created:
                        rating = Rating(user_id=user_id, album_id=album_id, rating=value)
                        session.add(rating)
                        await session.flush()
                        await self.activities.record(
                            user_id,
                            "rating",
                            album_id,
                            RatingActivity(rating=value),
                            session=session,
                        )
                    else:
                        rating = (
                            await session.execute(
                                select(Rating).where(
                                    Rating.user_id == user_id, Rating.album_id == album_id
                                )
                            )
                        ).scalar_one()

        logger.info(
            f"User {user_id} {'created' if created else 'updated'} rating {value} for album {album_id}"
        )
        return rating, created

    async def get_user_rating(self, user_id: str, album_id: str) -> Optional[Rating]:
        async with translate_store_errors("get rating"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Rating).where(Rating.user_id == user_id, Rating.album_id == album_id)
                )
                return result.scalars().first()

    async def get_album_ratings(self, album_id: str) -> List[RatingWithDetails]:
        """Ratings of one album with rater profiles, most recently changed first"""
        async with translate_store_errors("get album ratings"):
            async with self.session_factory() as session:
                await require_row(session, Album, album_id, "album")
                result = await session.execute(
                    select(Rating, User)
                    .outerjoin(User, User.id == Rating.user_id)
                    .where(Rating.album_id == album_id)
                    .order_by(Rating.updated_at.desc(), Rating.id)
                )
                return [_rating_details(rating, user=user) for rating, user in result.all()]

    async def get_user_ratings(self, user_id: str) -> List[RatingWithDetails]:
        async with translate_store_errors("get user ratings"):
            async with self.session_factory() as session:
                await require_row(session, User, user_id, "user")
                result = await session.execute(
                    select(Rating, Album)
                    .join(Album, Album.id == Rating.album_id)
                    .where(Rating.user_id == user_id)
                    .order_by(Rating.updated_at.desc(), Rating.id)
                )
                return [_rating_details(rating, album=album) for rating, album in result.all()]

    async def get_album_stats(self, album_id: str) -> AlbumStats:
        """Average (2 decimals) and count. Ratings of deleted accounts still count."""
        async with translate_store_errors("get album stats"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.avg(Rating.rating), func.count(Rating.id)).where(
                        Rating.album_id == album_id
                    )
                )
                average, count = result.one()

        return AlbumStats(
            average_rating=round(float(average), 2) if average is not None else 0.0,
            rating_count=count or 0,
        )

    async def delete_rating(self, rating_id: str, user_id: str) -> None:
        """Delete the caller's own rating. Its activity event stays in the log."""
        async with translate_store_errors("delete rating"):
            async with self.session_factory() as session:
                async with session.begin():
                    rating = await session.get(Rating, rating_id)
                    if rating is None:
                        raise NotFoundError("rating", rating_id)
                    if rating.user_id != user_id:
                        raise ForbiddenError("rating", "You can only delete your own ratings")
                    await session.delete(rating)

        logger.info(f"User {user_id} deleted rating {rating_id}")
