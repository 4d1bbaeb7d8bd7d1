"""
Account Deletion.

Deleting an account removes the user row and everything that identifies the
person, while keeping their contribution to album statistics:

1. Count the user's ratings, reviews and follow edges (both directions).
2. Append an `AccountDeletionAudit` row with those counts.
3. Detach ratings and reviews from the user (`user_id` becomes NULL), so
   album averages and review counts do not change.
4. Delete the user's activity events and follow edges.
5. Delete the user row.

Steps 1 to 5 run in one transaction. Once it commits, every login session of
the user is revoked so outstanding tokens stop working immediately.
"""

import logging

from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from core.auth import SessionStore
from core.database import async_session, require_row, translate_store_errors
from core.models import AccountDeletionAudit, Activity, Follow, Rating, Review, User

logger = logging.getLogger(__name__)


class AccountService:
    """Account lifecycle operations beyond authentication"""

    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        session_store: SessionStore = None,
    ):
        self.session_factory = session_factory or async_session
        self.session_store = session_store or SessionStore()

    async def delete_account(self, user_id: str) -> AccountDeletionAudit:
        async with translate_store_errors("delete account"):
            async with self.session_factory() as session:
                async with session.begin():
                    user = await require_row(session, User, user_id, "user")

                    ratings_count = (
                        await session.execute(
                            select(func.count()).select_from(Rating).where(Rating.user_id == user_id)
                        )
                    ).scalar_one()
                    reviews_count = (
                        await session.execute(
                            select(func.count()).select_from(Review).where(Review.user_id == user_id)
                        )
                    ).scalar_one()
                    follows_count = (
                        await session.execute(
                            select(func.count())
                            .select_from(Follow)
                            .where(or_(Follow.follower_id == user_id, Follow.followee_id == user_id))
                        )
                    ).scalar_one()

                    audit = AccountDeletionAudit(
                        user_id=user_id,
                        username=user.username,
                        ratings_count=ratings_count,
                        reviews_count=reviews_count,
                        follows_count=follows_count,
                    )
                    session.add(audit)

                    await session.execute(
                        update(Rating)
                        .where(Rating.user_id == user_id)
                        .values(user_id=None)
                        .execution_options(synchronize_session=False)
                    )
                    await session.execute(
                        update(Review)
                        .where(Review.user_id == user_id)
                        .values(user_id=None)
                        .execution_options(synchronize_session=False)
                    )
                    await session.execute(delete(Activity).where(Activity.user_id == user_id))
                    await session.execute(
                        delete(Follow).where(
                            or_(Follow.follower_id == user_id, Follow.followee_id == user_id)
                        )
                    )
                    await session.delete(user)

        revoked = await self.session_store.revoke_user_sessions(user_id)
        logger.info(
            f"Deleted account {user_id}: {ratings_count} ratings, {reviews_count} reviews, "
            f"{follows_count} follows anonymised or removed; {revoked} sessions revoked"
        )
        return audit
