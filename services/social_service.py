"""
Social Graph Service.

This module defines `SocialService`, which owns the directed follower to
followee relation between users.

Key Components:
- Edge writes: `follow` and `unfollow`. Self-follows are rejected before the
  store is touched; the store's unique and CHECK constraints back up the same
  rules for concurrent writers.
- Edge reads: follower/following identity lists (used by the feed) and the
  profile-bearing variants used by the HTTP layer, plus membership checks,
  counts, mutual follows, follow suggestions and user search.

Every call opens its own session from the injected factory, so the service
holds no per-request state and can be shared across requests.
"""

import logging
from typing import Dict, List

from sqlalchemy import and_, delete, func, or_
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import aliased
from sqlmodel import select

from core.database import async_session, require_row, translate_store_errors
from core.exceptions import ConflictError, InvalidOperationError
from core.models import Follow, ProfileWithStats, User, UserProfile
from core.validation import InputValidator

logger = logging.getLogger(__name__)

MAX_USER_LIST_LIMIT = 50


class SocialService:
    """Follow relationships between users"""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session

    async def follow(self, follower_id: str, followee_id: str) -> Follow:
        """Create the edge follower -> followee"""
        if follower_id == followee_id:
            raise InvalidOperationError("follow", "Users cannot follow themselves")

        async with translate_store_errors("follow user", conflict_resource="follow"):
            async with self.session_factory() as session:
                async with session.begin():
                    await require_row(session, User, follower_id, "user")
                    await require_row(session, User, followee_id, "user")

                    existing = await session.execute(
                        select(Follow.id).where(
                            Follow.follower_id == follower_id,
                            Follow.followee_id == followee_id,
                        )
                    )
                    if existing.first() is not None:
                        raise ConflictError("follow", "Already following this user")

                    edge = Follow(follower_id=follower_id, followee_id=followee_id)
                    session.add(edge)

        logger.info(f"User {follower_id} followed {followee_id}")
        return edge

    async def unfollow(self, follower_id: str, followee_id: str) -> bool:
        """Remove the edge if present; returns whether a row was removed"""
        async with translate_store_errors("unfollow user"):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(Follow).where(
                            Follow.follower_id == follower_id,
                            Follow.followee_id == followee_id,
                        )
                    )
                    removed = result.rowcount > 0

        if removed:
            logger.info(f"User {follower_id} unfollowed {followee_id}")
        return removed

    async def list_following_ids(self, user_id: str) -> List[str]:
        async with translate_store_errors("list following"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Follow.followee_id)
                    .where(Follow.follower_id == user_id)
                    .order_by(Follow.created_at.desc(), Follow.id)
                )
                return list(result.scalars().all())

    async def list_follower_ids(self, user_id: str) -> List[str]:
        async with translate_store_errors("list followers"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Follow.follower_id)
                    .where(Follow.followee_id == user_id)
                    .order_by(Follow.created_at.desc(), Follow.id)
                )
                return list(result.scalars().all())

    async def get_user(self, user_id: str) -> UserProfile:
        async with translate_store_errors("load user"):
            async with self.session_factory() as session:
                user = await require_row(session, User, user_id, "user")
        return UserProfile.from_user(user)

    async def get_following(self, user_id: str) -> List[UserProfile]:
        """Users that `user_id` follows, most recent follow first"""
        async with translate_store_errors("get following"):
            async with self.session_factory() as session:
                await require_row(session, User, user_id, "user")
                result = await session.execute(
                    select(User)
                    .join(Follow, Follow.followee_id == User.id)
                    .where(Follow.follower_id == user_id)
                    .order_by(Follow.created_at.desc(), Follow.id)
                )
                return [UserProfile.from_user(u) for u in result.scalars().all()]

    async def get_followers(self, user_id: str) -> List[UserProfile]:
        """Users following `user_id`, most recent follow first"""
        async with translate_store_errors("get followers"):
            async with self.session_factory() as session:
                await require_row(session, User, user_id, "user")
                result = await session.execute(
                    select(User)
                    .join(Follow, Follow.follower_id == User.id)
                    .where(Follow.followee_id == user_id)
                    .order_by(Follow.created_at.desc(), Follow.id)
                )
                return [UserProfile.from_user(u) for u in result.scalars().all()]

    async def is_following(self, follower_id: str, followee_id: str) -> bool:
        async with translate_store_errors("check follow"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Follow.id).where(
                        Follow.follower_id == follower_id,
                        Follow.followee_id == followee_id,
                    )
                )
                return result.first() is not None

    async def is_following_many(
        self, follower_id: str, user_ids: List[str]
    ) -> Dict[str, bool]:
        """Batch membership check, one query for the whole list"""
        if not user_ids:
            return {}

        async with translate_store_errors("check follows"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Follow.followee_id).where(
                        Follow.follower_id == follower_id,
                        Follow.followee_id.in_(user_ids),
                    )
                )
                followed = set(result.scalars().all())

        return {user_id: user_id in followed for user_id in user_ids}

    async def follower_count(self, user_id: str) -> int:
        async with translate_store_errors("count followers"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(Follow).where(Follow.followee_id == user_id)
                )
                return result.scalar_one()

    async def following_count(self, user_id: str) -> int:
        async with translate_store_errors("count following"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
                )
                return result.scalar_one()

    async def get_profile_with_stats(self, user_id: str) -> ProfileWithStats:
        profile = await self.get_user(user_id)
        return ProfileWithStats(
            **profile.model_dump(),
            follower_count=await self.follower_count(user_id),
            following_count=await self.following_count(user_id),
        )

    async def get_mutual_follows(self, user_id: str) -> List[UserProfile]:
        """Users who follow `user_id` and are followed back"""
        reverse = aliased(Follow)
        async with translate_store_errors("get mutual follows"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(User)
                    .join(Follow, Follow.followee_id == User.id)
                    .join(
                        reverse,
                        and_(reverse.follower_id == User.id, reverse.followee_id == user_id),
                    )
                    .where(Follow.follower_id == user_id)
                    .order_by(User.username)
                )
                return [UserProfile.from_user(u) for u in result.scalars().all()]

    async def get_suggestions(self, user_id: str, limit: int = 10) -> List[UserProfile]:
        """Newest users the viewer does not follow yet"""
        limit = InputValidator.validate_limit(limit, MAX_USER_LIST_LIMIT)
        already_following = select(Follow.followee_id).where(Follow.follower_id == user_id)

        async with translate_store_errors("get suggestions"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(User)
                    .where(User.id != user_id, User.id.not_in(already_following))
                    .order_by(User.created_at.desc(), User.username)
                    .limit(limit)
                )
                return [UserProfile.from_user(u) for u in result.scalars().all()]

    async def search_users(self, query: str, limit: int = 20) -> List[UserProfile]:
        """Case-insensitive substring match on username or display name"""
        needle = InputValidator.validate_search_query(query).lower()
        limit = InputValidator.validate_limit(limit, MAX_USER_LIST_LIMIT)

        async with translate_store_errors("search users"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(User)
                    .where(
                        or_(
                            func.lower(User.username).contains(needle, autoescape=True),
                            func.lower(User.display_name).contains(needle, autoescape=True),
                        )
                    )
                    .order_by(User.username)
                    .limit(limit)
                )
                return [UserProfile.from_user(u) for u in result.scalars().all()]
