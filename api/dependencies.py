from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.auth import AuthenticationService, get_auth_service
from core.exceptions import AuthenticationError
from core.models import AccountProfile
from services.account_service import AccountService
from services.activity_service import ActivityRecorder
from services.album_service import AlbumService
from services.feed_service import FeedAssembler
from services.music_service import MusicCatalogService, get_music_service
from services.rating_service import RatingService
from services.review_service import ReviewService
from services.social_service import SocialService

bearer_scheme = HTTPBearer(auto_error=False)

social_service = SocialService()
activity_recorder = ActivityRecorder()
feed_assembler = FeedAssembler(social_service, activity_recorder)
rating_service = RatingService(activity_recorder=activity_recorder)
review_service = ReviewService(activity_recorder=activity_recorder)
album_service = AlbumService(rating_service=rating_service, review_service=review_service)
account_service = AccountService()


def get_social_service() -> SocialService:
    return social_service


def get_feed_assembler() -> FeedAssembler:
    return feed_assembler


def get_rating_service() -> RatingService:
    return rating_service


def get_review_service() -> ReviewService:
    return review_service


def get_album_service() -> AlbumService:
    return album_service


def get_account_service() -> AccountService:
    return account_service


def get_catalog_service() -> MusicCatalogService:
    return get_music_service()


def get_auth() -> AuthenticationService:
    return get_auth_service()


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    auth: AuthenticationService = Depends(get_auth),
) -> AccountProfile:
    """The authenticated viewer; 401 when the token is missing, invalid or revoked"""
    return await auth.validate_token(token)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthenticationService = Depends(get_auth),
) -> Optional[AccountProfile]:
    """The viewer when a valid token is supplied, otherwise None"""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await auth.validate_token(credentials.credentials)
    except AuthenticationError:
        return None
