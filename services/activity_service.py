"""
Activity Recorder.

Append-only log of feed events. An event is written when a user rates or
reviews an album for the first time; updates to an existing rating or review
never produce another event, and events are never edited afterwards.

Payloads are a tagged union discriminated by `type`:

    {"type": "rating", "rating": 4}
    {"type": "review", "content_preview": "First 200 characters..."}

Every read returns events newest first (`created_at DESC, id DESC`), joined
with the actor's public profile fields and the album's display fields.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from core.database import async_session, translate_store_errors
from core.exceptions import ValidationError
from core.models import (
    REVIEW_PREVIEW_LENGTH,
    Activity,
    ActivityWithDetails,
    ActorSummary,
    Album,
    AlbumBrief,
    User,
    activity_payload_adapter,
)
from core.validation import InputValidator

logger = logging.getLogger(__name__)

# Upper bound for a single read; callers fetching limit+1 rows stay below it
MAX_READ_LIMIT = 1000


class ActivityRecorder:
    """Writes and reads the activity log"""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session

    @staticmethod
    def build_review_preview(content: str) -> str:
        content = content.strip()
        if len(content) <= REVIEW_PREVIEW_LENGTH:
            return content
        return content[: REVIEW_PREVIEW_LENGTH - 3].rstrip() + "..."

    @staticmethod
    def _validate_payload(
        activity_type: str, payload: Union[BaseModel, Dict[str, Any]]
    ) -> Dict[str, Any]:
        InputValidator.validate_activity_type(activity_type)

        data = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
        data.setdefault("type", activity_type)
        if data["type"] != activity_type:
            raise ValidationError(
                "data", data["type"], f"Payload type does not match activity type '{activity_type}'"
            )

        try:
            parsed = activity_payload_adapter.validate_python(data)
        except PydanticValidationError as e:
            reason = "; ".join(err["msg"] for err in e.errors())
            raise ValidationError("data", data, reason) from e
        return parsed.model_dump()

    async def record(
        self,
        actor_id: str,
        activity_type: str,
        album_id: str,
        payload: Union[BaseModel, Dict[str, Any]],
        session: Optional[AsyncSession] = None,
    ) -> Activity:
        """
        Append one event.

        When `session` is given the insert joins the caller's open transaction,
        so the event commits or rolls back together with the rating or review
        that caused it.
        """
        activity = Activity(
            user_id=actor_id,
            type=activity_type,
            album_id=album_id,
            data=self._validate_payload(activity_type, payload),
        )

        if session is not None:
            session.add(activity)
            await session.flush()
        else:
            async with translate_store_errors("record activity"):
                async with self.session_factory() as own_session:
                    async with own_session.begin():
                        own_session.add(activity)

        logger.debug(f"Recorded {activity_type} activity {activity.id} for user {actor_id}")
        return activity

    @staticmethod
    def _detailed_select():
        return (
            select(Activity, User, Album)
            .join(User, User.id == Activity.user_id)
            .join(Album, Album.id == Activity.album_id)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
        )

    @staticmethod
    def to_details(activity: Activity, user: User, album: Album) -> ActivityWithDetails:
        return ActivityWithDetails(
            id=activity.id,
            type=activity.type,
            user_id=activity.user_id,
            album_id=activity.album_id,
            data=activity.data,
            created_at=activity.created_at,
            user=ActorSummary.from_user(user),
            album=AlbumBrief.from_album(album),
        )

    async def _fetch(self, operation: str, statement, limit: int, offset: int):
        limit, offset = InputValidator.validate_pagination(limit, offset, MAX_READ_LIMIT)
        async with translate_store_errors(operation):
            async with self.session_factory() as session:
                result = await session.execute(statement.limit(limit).offset(offset))
                return [self.to_details(*row) for row in result.all()]

    async def list_by_actor(
        self, actor_id: str, limit: int = 20, offset: int = 0
    ) -> List[ActivityWithDetails]:
        statement = self._detailed_select().where(Activity.user_id == actor_id)
        return await self._fetch("list activities by actor", statement, limit, offset)

    async def list_by_actors(
        self, actor_ids: List[str], limit: int = 20, offset: int = 0
    ) -> List[ActivityWithDetails]:
        if not actor_ids:
            return []
        statement = self._detailed_select().where(Activity.user_id.in_(actor_ids))
        return await self._fetch("list activities by actors", statement, limit, offset)

    async def list_by_type(
        self, activity_type: str, limit: int = 20, offset: int = 0
    ) -> List[ActivityWithDetails]:
        InputValidator.validate_activity_type(activity_type)
        statement = self._detailed_select().where(Activity.type == activity_type)
        return await self._fetch("list activities by type", statement, limit, offset)

    async def list_recent(self, limit: int = 20, offset: int = 0) -> List[ActivityWithDetails]:
        return await self._fetch("list recent activities", self._detailed_select(), limit, offset)

    async def count_by_actor(self, actor_id: str) -> int:
        async with translate_store_errors("count activities"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(Activity).where(Activity.user_id == actor_id)
                )
                return result.scalar_one()

    async def has_activities(self, actor_id: str) -> bool:
        async with translate_store_errors("check activities"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Activity.id).where(Activity.user_id == actor_id).limit(1)
                )
                return result.first() is not None

    async def delete_by_actor(self, actor_id: str) -> int:
        return await self._delete("delete activities by actor", Activity.user_id == actor_id)

    async def delete_by_album(self, album_id: str) -> int:
        return await self._delete("delete activities by album", Activity.album_id == album_id)

    async def _delete(self, operation: str, condition) -> int:
        async with translate_store_errors(operation):
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(delete(Activity).where(condition))
        logger.info(f"{operation}: removed {result.rowcount} events")
        return result.rowcount
