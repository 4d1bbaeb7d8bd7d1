"""
Unit tests for account deletion.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from core.auth import SessionStore
from core.exceptions import NotFoundError
from core.models import AccountDeletionAudit, Rating, Review, User
from services.account_service import AccountService


@pytest.fixture
def session_store(cache_manager) -> SessionStore:
    return SessionStore(cache=cache_manager)


@pytest.fixture
def account_service(session_factory, session_store) -> AccountService:
    return AccountService(session_factory, session_store)


@pytest.mark.unit
class TestDeleteAccount:
    async def test_deletion_keeps_album_stats(
        self,
        account_service,
        rating_service,
        review_service,
        social_service,
        activity_recorder,
        session_factory,
        sample_users,
        sample_albums,
    ):
        alice, bob, carol = (sample_users[n] for n in ("alice", "bob", "carol"))
        for album, value in zip(sample_albums, (5, 3, 4)):
            await rating_service.upsert_rating(alice.id, album.id, value)
        await rating_service.upsert_rating(bob.id, sample_albums[0].id, 3)
        await review_service.create_review(alice.id, sample_albums[0].id, "Masterpiece")
        await review_service.create_review(alice.id, sample_albums[1].id, "Overrated")
        await social_service.follow(alice.id, bob.id)
        await social_service.follow(carol.id, alice.id)

        before = await rating_service.get_album_stats(sample_albums[0].id)
        audit = await account_service.delete_account(alice.id)
        after = await rating_service.get_album_stats(sample_albums[0].id)

        assert audit.ratings_count == 3
        assert audit.reviews_count == 2
        assert audit.follows_count == 2
        assert audit.username == "alice"
        assert after == before
        assert await review_service.count_album_reviews(sample_albums[0].id) == 1

        # Contributions survive without an author
        async with session_factory() as session:
            orphaned = (
                await session.execute(select(Rating).where(Rating.user_id.is_(None)))
            ).scalars().all()
            orphaned_reviews = (
                await session.execute(select(Review).where(Review.user_id.is_(None)))
            ).scalars().all()
            audits = (await session.execute(select(AccountDeletionAudit))).scalars().all()
        assert len(orphaned) == 3
        assert len(orphaned_reviews) == 2
        assert [a.user_id for a in audits] == [alice.id]

        # Identity is gone
        with pytest.raises(NotFoundError):
            await social_service.get_user(alice.id)
        assert await activity_recorder.count_by_actor(alice.id) == 0
        assert await social_service.follower_count(bob.id) == 0
        assert await social_service.following_count(carol.id) == 0

    async def test_deletion_revokes_sessions(self, account_service, session_store, sample_users):
        alice, bob = sample_users["alice"], sample_users["bob"]
        alice_sid = await session_store.create(alice.id, alice.username)
        bob_sid = await session_store.create(bob.id, bob.username)

        await account_service.delete_account(alice.id)

        assert await session_store.get(alice_sid) is None
        assert await session_store.get(bob_sid) is not None

    async def test_deletion_completes_when_session_scan_fails(
        self, account_service, session_store, session_factory, sample_users
    ):
        alice = sample_users["alice"]
        await session_store.create(alice.id, alice.username)

        with patch.object(
            session_store.cache.backend,
            "keys",
            new=AsyncMock(side_effect=ConnectionError("redis down")),
        ):
            audit = await account_service.delete_account(alice.id)

        assert audit.user_id == alice.id
        async with session_factory() as session:
            assert await session.get(User, alice.id) is None

    async def test_unknown_account(self, account_service):
        with pytest.raises(NotFoundError):
            await account_service.delete_account("missing-user")
