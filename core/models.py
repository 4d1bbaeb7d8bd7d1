"""
Core data models for JukeBoxd

Defines the SQLModel tables held in the relational store (users, albums,
ratings, reviews, follows, activities, account deletion audit), the typed
activity payloads, and the pydantic view models returned by the API.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, TypeAdapter
from pydantic import Field as PydanticField
from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field

RATING_MIN = 1
RATING_MAX = 5
REVIEW_MAX_LENGTH = 5000
REVIEW_PREVIEW_LENGTH = 200
ACTIVITY_TYPES = ("rating", "review")


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp. SQLite has no zone support, so values are
    stored there as naive UTC and tagged with UTC again on load."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class User(SQLModel, table=True):
    """Registered account. Only `UserProfile` / `AccountProfile` leave the service."""

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    username: str = Field(max_length=50, unique=True, index=True)
    email: str = Field(max_length=255, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = Field(default=None, max_length=1024)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class Album(SQLModel, table=True):
    """
    Album materialised from the external music catalog.

    Rows are created lazily the first time an album is referenced, or eagerly
    by seeding; only metadata refreshes modify them afterwards.
    """

    __tablename__ = "albums"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    external_id: str = Field(max_length=512, unique=True, index=True)
    title: str = Field(max_length=500)
    artist: str = Field(max_length=500, index=True)
    release_date: Optional[date] = Field(default=None)
    image_url: Optional[str] = Field(default=None, max_length=1024)
    external_url: Optional[str] = Field(default=None, max_length=1024)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class Rating(SQLModel, table=True):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "album_id", name="uq_ratings_user_album"),
        CheckConstraint(
            f"rating >= {RATING_MIN} AND rating <= {RATING_MAX}",
            name="ck_ratings_range",
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    # NULL once the author deleted their account; the row still counts for stats
    user_id: Optional[str] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL", index=True
    )
    album_id: str = Field(foreign_key="albums.id", ondelete="CASCADE", index=True)
    rating: int
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class Review(SQLModel, table=True):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "album_id", name="uq_reviews_user_album"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    user_id: Optional[str] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL", index=True
    )
    album_id: str = Field(foreign_key="albums.id", ondelete="CASCADE", index=True)
    content: str = Field(max_length=REVIEW_MAX_LENGTH)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class Follow(SQLModel, table=True):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "followee_id", name="uq_follows_edge"),
        CheckConstraint("follower_id <> followee_id", name="ck_follows_no_self"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    follower_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    followee_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class Activity(SQLModel, table=True):
    """
    Immutable feed event emitted by the first rating or review of an album.

    The integer primary key grows with insertion order and serves as the
    tie-break when two events share a timestamp.
    """

    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("type IN ('rating', 'review')", name="ck_activities_type"),
        Index("ix_activities_user_created", "user_id", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE")
    type: str = Field(max_length=20)
    album_id: str = Field(foreign_key="albums.id", ondelete="CASCADE", index=True)
    data: Dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)


class AccountDeletionAudit(SQLModel, table=True):
    __tablename__ = "account_deletion_audit"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    # plain column: the user row is gone by the time anyone reads this
    user_id: str = Field(max_length=36, index=True)
    username: Optional[str] = Field(default=None, max_length=50)
    deleted_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    ratings_count: int = Field(default=0)
    reviews_count: int = Field(default=0)
    follows_count: int = Field(default=0)


# Activity payloads: a tagged union discriminated by `type`


class RatingActivity(BaseModel):
    type: Literal["rating"] = "rating"
    rating: int = PydanticField(ge=RATING_MIN, le=RATING_MAX)


class ReviewActivity(BaseModel):
    type: Literal["review"] = "review"
    content_preview: str = PydanticField(max_length=REVIEW_PREVIEW_LENGTH)


ActivityPayload = Annotated[
    Union[RatingActivity, ReviewActivity], PydanticField(discriminator="type")
]
activity_payload_adapter = TypeAdapter(ActivityPayload)


# View models


class UserProfile(BaseModel):
    """Public profile fields, safe to show to any viewer"""

    id: str
    username: str
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            bio=user.bio,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
        )


class AccountProfile(UserProfile):
    """Profile as seen by its owner"""

    email: str
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "AccountProfile":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            display_name=user.display_name,
            bio=user.bio,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class ProfileWithStats(UserProfile):
    follower_count: int = 0
    following_count: int = 0


class ActorSummary(BaseModel):
    id: str
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: Optional[User]) -> Optional["ActorSummary"]:
        if user is None:
            return None
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
        )


class AlbumBrief(BaseModel):
    id: str
    external_id: str
    title: str
    artist: str
    image_url: Optional[str] = None

    @classmethod
    def from_album(cls, album: Optional[Album]) -> Optional["AlbumBrief"]:
        if album is None:
            return None
        return cls(
            id=album.id,
            external_id=album.external_id,
            title=album.title,
            artist=album.artist,
            image_url=album.image_url,
        )


class AlbumSummary(BaseModel):
    """Album metadata as delivered by a music catalog provider"""

    external_id: str
    title: str
    artist: str
    release_date: Optional[date] = None
    image_url: Optional[str] = None
    external_url: Optional[str] = None


class AlbumStats(BaseModel):
    average_rating: float = 0.0
    rating_count: int = 0


class ActivityWithDetails(BaseModel):
    id: int
    type: str
    user_id: str
    album_id: str
    data: ActivityPayload
    created_at: datetime
    user: ActorSummary
    album: AlbumBrief


class RatingWithDetails(BaseModel):
    id: str
    user_id: Optional[str] = None
    album_id: str
    rating: int
    created_at: datetime
    updated_at: datetime
    user: Optional[ActorSummary] = None
    album: Optional[AlbumBrief] = None


class ReviewWithDetails(BaseModel):
    id: str
    user_id: Optional[str] = None
    album_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    user: Optional[ActorSummary] = None
    album: Optional[AlbumBrief] = None


class FeedPage(BaseModel):
    activities: List[ActivityWithDetails] = []
    page: int = 1
    limit: int
    offset: int = 0
    has_more: bool = False
    # Exact for single-user feeds; a lower bound for followee feeds
    total: int = 0
