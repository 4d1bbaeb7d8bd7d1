import os
import sys
import tempfile
from typing import Generator
from unittest.mock import Mock

import pytest

# Add the parent directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# The application engine is built at import time, so the environment has to be
# in place before anything from the project is imported.
API_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="jukeboxd-tests-"), "api.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{API_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["API_RATE_LIMIT"] = "100000"
os.environ["AUTH_RATE_LIMIT"] = "100000"
os.environ["MUSIC_CATALOG_PROVIDER"] = "lastfm"
os.environ["LASTFM_API_KEY"] = ""
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-jukeboxd-suite"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from core.cache import CacheManager, MemoryCacheBackend  # noqa: E402
from core.database import (  # noqa: E402
    build_engine,
    build_session_factory,
    create_db_and_tables,
)
from core.metrics import MetricsCollector  # noqa: E402
from core.models import Album, User  # noqa: E402
from providers.music_catalog import MOCK_ALBUMS  # noqa: E402
from services.activity_service import ActivityRecorder  # noqa: E402
from services.feed_service import FeedAssembler  # noqa: E402
from services.rating_service import RatingService  # noqa: E402
from services.review_service import ReviewService  # noqa: E402
from services.social_service import SocialService  # noqa: E402

TEST_PASSWORD = "Password123"


@pytest.fixture
async def db_engine(tmp_path):
    """An isolated SQLite database for one test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return build_session_factory(db_engine)


@pytest.fixture
def make_user(session_factory):
    """Insert a user row directly, skipping password hashing."""

    async def _make_user(username: str, **fields) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash="not-a-real-hash",
            **fields,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(user)
        return user

    return _make_user


@pytest.fixture
def make_album(session_factory):
    async def _make_album(summary) -> Album:
        album = Album(
            external_id=summary.external_id,
            title=summary.title,
            artist=summary.artist,
            release_date=summary.release_date,
            image_url=summary.image_url,
            external_url=summary.external_url,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(album)
        return album

    return _make_album


@pytest.fixture
async def sample_users(make_user):
    """Three users: alice, bob and carol."""
    return {name: await make_user(name) for name in ("alice", "bob", "carol")}


@pytest.fixture
async def sample_albums(make_album):
    """The first three demo albums, materialised locally."""
    return [await make_album(summary) for summary in MOCK_ALBUMS[:3]]


@pytest.fixture
def social_service(session_factory) -> SocialService:
    return SocialService(session_factory)


@pytest.fixture
def activity_recorder(session_factory) -> ActivityRecorder:
    return ActivityRecorder(session_factory)


@pytest.fixture
def feed_assembler(social_service, activity_recorder) -> FeedAssembler:
    return FeedAssembler(social_service, activity_recorder)


@pytest.fixture
def rating_service(session_factory, activity_recorder) -> RatingService:
    return RatingService(session_factory, activity_recorder)


@pytest.fixture
def review_service(session_factory, activity_recorder) -> ReviewService:
    return ReviewService(session_factory, activity_recorder)


@pytest.fixture
def cache_manager() -> CacheManager:
    """A cache manager over a fresh in-memory backend."""
    return CacheManager(MemoryCacheBackend())


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """A test client for the FastAPI app, backed by a fresh database."""
    if os.path.exists(API_DB_PATH):
        os.remove(API_DB_PATH)

    from main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def register_user(test_client):
    """Register through the API; returns (token, user dict)."""

    def _register(username: str, password: str = TEST_PASSWORD):
        response = test_client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return data["token"], data["user"]

    return _register


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    logger = Mock()
    logger.info = Mock()
    logger.error = Mock()
    logger.warning = Mock()
    logger.debug = Mock()
    return logger
