"""
Activity Feed Assembly.

This module defines `FeedAssembler`, which builds fan-out-on-read feeds:
the viewer's followee set is resolved at read time and the followees'
activity events are merged newest first.

Key Components:
- `get_feed`: The viewer's home feed. At most two store round-trips: the
  followee list, then the events. A viewer who follows nobody gets an empty
  page without the event query being issued.
- `get_user_feed`: One user's own activity, used on profile pages.
- `get_recent_activity`: Public timeline across all users, optionally
  filtered by activity type.
- Pagination: Every fetch asks for one row more than the page size to decide
  `has_more`, then returns at most `limit` rows.

`total` is exact for single-user feeds (a COUNT query). For the followee and
public feeds it is a lower bound: the rows seen up to the end of this page,
plus one when another page exists. Clients should drive paging from
`has_more`, not from `total`.

Store failures propagate as `DependencyFailureError`; there are no retries
and no partial pages.
"""

import logging
from typing import Any, Dict, List, Optional

from core.metrics import timed
from core.models import ActivityWithDetails, FeedPage
from core.validation import InputValidator
from services.activity_service import ActivityRecorder
from services.social_service import SocialService

logger = logging.getLogger(__name__)

MAX_FEED_LIMIT = 100
DEFAULT_FEED_LIMIT = 20


def _page_number(limit: int, offset: int) -> int:
    return offset // limit + 1


def _build_page(
    rows: List[ActivityWithDetails], limit: int, offset: int, total: Optional[int] = None
) -> FeedPage:
    has_more = len(rows) > limit
    items = rows[:limit]
    if total is None:
        total = offset + len(items) + (1 if has_more else 0)
    return FeedPage(
        activities=items,
        page=_page_number(limit, offset),
        limit=limit,
        offset=offset,
        has_more=has_more,
        total=total,
    )


class FeedAssembler:
    """Builds paginated activity feeds"""

    def __init__(
        self,
        social_service: SocialService = None,
        activity_recorder: ActivityRecorder = None,
    ):
        self.social = social_service or SocialService()
        self.activities = activity_recorder or ActivityRecorder()

    @timed("feed.get_feed")
    async def get_feed(
        self, viewer_id: str, limit: int = DEFAULT_FEED_LIMIT, offset: int = 0
    ) -> FeedPage:
        """Events by the users `viewer_id` follows, newest first"""
        limit, offset = InputValidator.validate_pagination(limit, offset, MAX_FEED_LIMIT)

        followee_ids = await self.social.list_following_ids(viewer_id)
        if not followee_ids:
            logger.debug(f"User {viewer_id} follows nobody; returning empty feed")
            return FeedPage(
                activities=[],
                page=_page_number(limit, offset),
                limit=limit,
                offset=offset,
                has_more=False,
                total=0,
            )

        rows = await self.activities.list_by_actors(followee_ids, limit + 1, offset)
        page = _build_page(rows, limit, offset)
        logger.debug(
            f"Feed for {viewer_id}: {len(page.activities)} events from {len(followee_ids)} followees"
        )
        return page

    async def get_feed_page(
        self, viewer_id: str, page: int = 1, page_size: int = DEFAULT_FEED_LIMIT
    ) -> FeedPage:
        page = InputValidator.validate_page(page)
        page_size = InputValidator.validate_limit(page_size, MAX_FEED_LIMIT)
        return await self.get_feed(viewer_id, page_size, (page - 1) * page_size)

    @timed("feed.get_user_feed")
    async def get_user_feed(
        self, user_id: str, limit: int = DEFAULT_FEED_LIMIT, offset: int = 0
    ) -> FeedPage:
        """One user's own events, newest first, with an exact total"""
        limit, offset = InputValidator.validate_pagination(limit, offset, MAX_FEED_LIMIT)
        await self.social.get_user(user_id)

        rows = await self.activities.list_by_actor(user_id, limit + 1, offset)
        total = await self.activities.count_by_actor(user_id)
        return _build_page(rows, limit, offset, total=total)

    async def get_user_feed_page(
        self, user_id: str, page: int = 1, page_size: int = DEFAULT_FEED_LIMIT
    ) -> FeedPage:
        page = InputValidator.validate_page(page)
        page_size = InputValidator.validate_limit(page_size, MAX_FEED_LIMIT)
        return await self.get_user_feed(user_id, page_size, (page - 1) * page_size)

    async def get_recent_activity(
        self,
        limit: int = DEFAULT_FEED_LIMIT,
        offset: int = 0,
        activity_type: Optional[str] = None,
    ) -> FeedPage:
        """Public timeline across all users"""
        limit, offset = InputValidator.validate_pagination(limit, offset, MAX_FEED_LIMIT)
        if activity_type:
            rows = await self.activities.list_by_type(activity_type, limit + 1, offset)
        else:
            rows = await self.activities.list_recent(limit + 1, offset)
        return _build_page(rows, limit, offset)

    async def get_user_activity_stats(self, user_id: str) -> Dict[str, Any]:
        await self.social.get_user(user_id)
        count = await self.activities.count_by_actor(user_id)
        return {"user_id": user_id, "activity_count": count, "has_activities": count > 0}
