"""
Activity Feed Endpoints.

Endpoints Provided:
- `GET /api/feed`: The caller's home feed (events by followed users).
  Paged with `limit` (1-100, default 20) and either `offset` or a 1-based
  `page`; `page` wins when both are given.
- `GET /api/feed/user/{user_id}`: One user's own activity, paged the same way.
- `GET /api/feed/recent?type=&limit=&offset=`: Public timeline.
- `GET /api/feed/stats/{user_id}`: Activity count for a user.

Every page carries `has_more`; clients should page until it is false.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_feed_assembler
from api.responses import success_response
from core.logging_config import get_logger, log_function_call
from core.models import AccountProfile
from core.rate_limiter import RateLimit
from services.feed_service import FeedAssembler

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/feed",
    tags=["Feed"],
    dependencies=[Depends(RateLimit("api"))],
)


@router.get("")
@log_function_call(logger)
async def get_feed(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    page: Optional[int] = Query(None, ge=1),
    current_user: AccountProfile = Depends(get_current_user),
    feeds: FeedAssembler = Depends(get_feed_assembler),
):
    """Activity of the users the caller follows, newest first"""
    if page is not None:
        feed = await feeds.get_feed_page(current_user.id, page, limit)
    else:
        feed = await feeds.get_feed(current_user.id, limit, offset)
    return success_response(feed)


@router.get("/recent")
@log_function_call(logger)
async def get_recent_activity(
    type: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    feeds: FeedAssembler = Depends(get_feed_assembler),
):
    feed = await feeds.get_recent_activity(limit, offset, activity_type=type)
    return success_response(feed)


@router.get("/user/{user_id}")
@log_function_call(logger)
async def get_user_feed(
    user_id: str,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    page: Optional[int] = Query(None, ge=1),
    feeds: FeedAssembler = Depends(get_feed_assembler),
):
    if page is not None:
        feed = await feeds.get_user_feed_page(user_id, page, limit)
    else:
        feed = await feeds.get_user_feed(user_id, limit, offset)
    return success_response(feed)


@router.get("/stats/{user_id}")
@log_function_call(logger)
async def get_user_activity_stats(
    user_id: str, feeds: FeedAssembler = Depends(get_feed_assembler)
):
    return success_response(await feeds.get_user_activity_stats(user_id))
