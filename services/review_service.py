"""
Review Service.

Free-text album reviews, at most one per user and album. Content is trimmed,
must be non-empty and is limited to 5000 characters.

Writes follow the same policy as ratings: the first review of an album
records a "review" activity (carrying a 200-character preview) in the same
transaction; edits never emit events. `create_review` is the strict variant
used by `POST /api/reviews` and refuses to overwrite an existing review.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from core.database import async_session, require_row, translate_store_errors
from core.exceptions import ConflictError, ForbiddenError, NotFoundError
from core.models import (
    ActorSummary,
    Album,
    AlbumBrief,
    Review,
    ReviewActivity,
    ReviewWithDetails,
    User,
    utc_now,
)
from core.validation import InputValidator
from services.activity_service import ActivityRecorder

logger = logging.getLogger(__name__)

MAX_RECENT_REVIEWS = 50


def _review_details(
    review: Review, user: Optional[User] = None, album: Optional[Album] = None
) -> ReviewWithDetails:
    return ReviewWithDetails(
        id=review.id,
        user_id=review.user_id,
        album_id=review.album_id,
        content=review.content,
        created_at=review.created_at,
        updated_at=review.updated_at,
        user=ActorSummary.from_user(user),
        album=AlbumBrief.from_album(album),
    )


class ReviewService:
    """Album reviews"""

    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        activity_recorder: ActivityRecorder = None,
    ):
        self.session_factory = session_factory or async_session
        self.activities = activity_recorder or ActivityRecorder(self.session_factory)

    async def _insert(
        self, session: AsyncSession, user_id: str, album_id: str, content: str
    ) -> Review:
        review = Review(user_id=user_id, album_id=album_id, content=content)
        session.add(review)
        await session.flush()
        await self.activities.record(
            user_id,
            "review",
            album_id,
            ReviewActivity(content_preview=ActivityRecorder.build_review_preview(content)),
            session=session,
        )
        return review

    async def upsert_review(
        self, user_id: str, album_id: str, content: str
    ) -> Tuple[Review, bool]:
        """Create or replace the user's review; returns (review, created)"""
        content = InputValidator.validate_review_content(content)

        async with translate_store_errors("save review", conflict_resource="review"):
            async with self.session_factory() as session:
                async with session.begin():
                    await require_row(session, User, user_id, "user")
                    await require_row(session, Album, album_id, "album")

                    result = await session.execute(
                        update(Review)
                        .where(Review.user_id == user_id, Review.album_id == album_id)
                        .values(content=content, updated_at=utc_now())
                        .execution_options(synchronize_session=False)
                    )
                    created = result.rowcount == 0

                    if created:
                        review = await self._insert(session, user_id, album_id, content)
                    else:
                        review = (
                            await session.execute(
                                select(Review).where(
                                    Review.user_id == user_id, Review.album_id == album_id
                                )
                            )
                        ).scalar_one()

        logger.info(f"User {user_id} {'created' if created else 'updated'} review for album {album_id}")
        return review, created

    async def create_review(self, user_id: str, album_id: str, content: str) -> Review:
        """Create a review; ConflictError if the user already reviewed the album"""
        content = InputValidator.validate_review_content(content)

        async with translate_store_errors("create review", conflict_resource="review"):
            async with self.session_factory() as session:
                async with session.begin():
                    await require_row(session, User, user_id, "user")
                    await require_row(session, Album, album_id, "album")

                    existing = await session.execute(
                        select(Review.id).where(
                            Review.user_id == user_id, Review.album_id == album_id
                        )
                    )
                    if existing.first() is not None:
                        raise ConflictError("review", "You have already reviewed this album")

                    review = await self._insert(session, user_id, album_id, content)

        logger.info(f"User {user_id} reviewed album {album_id}")
        return review

    async def update_review(self, review_id: str, user_id: str, content: str) -> Review:
        content = InputValidator.validate_review_content(content)

        async with translate_store_errors("update review"):
            async with self.session_factory() as session:
                async with session.begin():
                    review = await self._owned_review(session, review_id, user_id, "edit")
                    review.content = content
                    review.updated_at = utc_now()

        return review

    async def delete_review(self, review_id: str, user_id: str) -> None:
        """Delete the caller's own review. Its activity event stays in the log."""
        async with translate_store_errors("delete review"):
            async with self.session_factory() as session:
                async with session.begin():
                    review = await self._owned_review(session, review_id, user_id, "delete")
                    await session.delete(review)

        logger.info(f"User {user_id} deleted review {review_id}")

    @staticmethod
    async def _owned_review(
        session: AsyncSession, review_id: str, user_id: str, action: str
    ) -> Review:
        review = await session.get(Review, review_id)
        if review is None:
            raise NotFoundError("review", review_id)
        if review.user_id != user_id:
            raise ForbiddenError("review", f"You can only {action} your own reviews")
        return review

    async def get_review(self, review_id: str) -> ReviewWithDetails:
        async with translate_store_errors("get review"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Review, User, Album)
                    .outerjoin(User, User.id == Review.user_id)
                    .join(Album, Album.id == Review.album_id)
                    .where(Review.id == review_id)
                )
                row = result.first()
        if row is None:
            raise NotFoundError("review", review_id)
        return _review_details(*row)

    async def get_user_review(self, user_id: str, album_id: str) -> Optional[Review]:
        async with translate_store_errors("get user review"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Review).where(Review.user_id == user_id, Review.album_id == album_id)
                )
                return result.scalars().first()

    async def get_album_reviews(self, album_id: str) -> List[ReviewWithDetails]:
        async with translate_store_errors("get album reviews"):
            async with self.session_factory() as session:
                await require_row(session, Album, album_id, "album")
                result = await session.execute(
                    select(Review, User)
                    .outerjoin(User, User.id == Review.user_id)
                    .where(Review.album_id == album_id)
                    .order_by(Review.created_at.desc(), Review.id)
                )
                return [_review_details(review, user=user) for review, user in result.all()]

    async def get_user_reviews(self, user_id: str) -> List[ReviewWithDetails]:
        async with translate_store_errors("get user reviews"):
            async with self.session_factory() as session:
                await require_row(session, User, user_id, "user")
                result = await session.execute(
                    select(Review, Album)
                    .join(Album, Album.id == Review.album_id)
                    .where(Review.user_id == user_id)
                    .order_by(Review.created_at.desc(), Review.id)
                )
                return [_review_details(review, album=album) for review, album in result.all()]

    async def get_recent_reviews(self, limit: int = 6) -> List[ReviewWithDetails]:
        limit = InputValidator.validate_limit(limit, MAX_RECENT_REVIEWS)
        async with translate_store_errors("get recent reviews"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Review, User, Album)
                    .outerjoin(User, User.id == Review.user_id)
                    .join(Album, Album.id == Review.album_id)
                    .order_by(Review.created_at.desc(), Review.id)
                    .limit(limit)
                )
                return [_review_details(*row) for row in result.all()]

    async def count_album_reviews(self, album_id: str) -> int:
        async with translate_store_errors("count album reviews"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(Review).where(Review.album_id == album_id)
                )
                return result.scalar_one()
