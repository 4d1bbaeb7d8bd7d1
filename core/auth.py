"""
Core Authentication System.

Registration, login and token handling for JukeBoxd accounts.

Key Components:
- PasswordManager: bcrypt hashing and verification. The work factor comes
  from `BCRYPT_ROUNDS`.
- JWTManager: Issues and verifies HS256 JSON Web Tokens with PyJWT. Every
  token names the server-side session it belongs to (`sid` claim).
- SessionStore: Server-side sessions kept in the cache layer under
  `session:{sid}`. A token is only accepted while its session exists, which
  is what makes logout, refresh and account deletion revoke tokens
  immediately.
- AuthenticationService: Account lifecycle over the relational store:
  register, login, token validation, logout, refresh and profile edits.

The authenticated viewer is resolved once per request by
`api.dependencies.get_current_user` and handed to services explicitly.
"""

import os
import uuid
import asyncio
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select

from core.cache import CacheManager, cache_key, get_cache
from core.database import async_session, translate_store_errors
from core.exceptions import AuthenticationError, ConflictError, NotFoundError
from core.logging_config import get_logger
from core.models import AccountProfile, User
from core.validation import InputValidator

logger = get_logger(__name__)

SESSION_TTL = timedelta(days=7)


class AuthToken(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: AccountProfile


class PasswordManager:
    """Password hashing and verification"""

    @staticmethod
    def rounds() -> int:
        return int(os.getenv("BCRYPT_ROUNDS", "12"))

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash password using bcrypt"""
        InputValidator.validate_password(password)
        salt = bcrypt.gensalt(rounds=PasswordManager.rounds())
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        """Verify password against hash"""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification error: {e}")
            return False


class JWTManager:
    """JWT token management"""

    ISSUER = "jukeboxd"
    AUDIENCE = "jukeboxd-users"

    def __init__(
        self,
        secret_key: str = None,
        algorithm: str = "HS256",
        expires_in: timedelta = None,
    ):
        self.secret_key = (
            secret_key or os.getenv("JWT_SECRET_KEY") or self._generate_secret_key()
        )
        self.algorithm = algorithm
        self.expires_in = expires_in or timedelta(
            hours=int(os.getenv("JWT_EXPIRES_HOURS", "24"))
        )

    def _generate_secret_key(self) -> str:
        logger.warning(
            "Generated new JWT secret key. This should be set via JWT_SECRET_KEY environment variable."
        )
        return secrets.token_urlsafe(32)

    def create_token(
        self, user_id: str, username: str, session_id: str
    ) -> Tuple[str, datetime]:
        """Create a signed token bound to a session; returns (token, expires_at)"""
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + self.expires_in

        payload = {
            "sub": user_id,
            "username": username,
            "sid": session_id,
            "jti": secrets.token_urlsafe(16),
            "iat": issued_at,
            "exp": expires_at,
            "iss": self.ISSUER,
            "aud": self.AUDIENCE,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return token, expires_at

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify and decode JWT token"""
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.AUDIENCE,
                issuer=self.ISSUER,
                options={"require": ["exp", "sub", "sid"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {str(e)}")

        return payload


class SessionStore:
    """Server-side login sessions kept in the cache layer"""

    PREFIX = "session"

    def __init__(self, cache: Optional[CacheManager] = None, ttl: timedelta = SESSION_TTL):
        self._cache = cache
        self.ttl = ttl

    @property
    def cache(self) -> CacheManager:
        return self._cache or get_cache()

    def _key(self, session_id: str) -> str:
        return cache_key(self.PREFIX, session_id)

    async def create(self, user_id: str, username: str) -> str:
        session_id = str(uuid.uuid4())
        session = {
            "user_id": user_id,
            "username": username,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        stored = await self.cache.set(
            self._key(session_id), session, self.ttl.total_seconds()
        )
        if not stored:
            logger.error(f"Could not persist session for user {user_id}")
        return session_id

    async def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        return await self.cache.get(self._key(session_id))

    async def revoke(self, session_id: str) -> bool:
        return await self.cache.delete(self._key(session_id))

    async def revoke_user_sessions(self, user_id: str) -> int:
        """Delete every session belonging to a user"""
        revoked = 0
        for key in await self.cache.keys(f"{self.PREFIX}:*"):
            session = await self.cache.get(key)
            if session and session.get("user_id") == user_id:
                if await self.cache.delete(key):
                    revoked += 1
        logger.info(f"Revoked {revoked} sessions for user {user_id}")
        return revoked


class AuthenticationService:
    """Account registration, login and token lifecycle"""

    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        jwt_manager: JWTManager = None,
        session_store: SessionStore = None,
    ):
        self.session_factory = session_factory or async_session
        self.jwt_manager = jwt_manager or JWTManager()
        self.session_store = session_store or SessionStore()

    async def _issue_token(self, user: User) -> AuthToken:
        session_id = await self.session_store.create(user.id, user.username)
        token, expires_at = self.jwt_manager.create_token(
            user.id, user.username, session_id
        )
        return AuthToken(
            token=token, expires_at=expires_at, user=AccountProfile.from_user(user)
        )

    async def register(self, username: str, email: str, password: str) -> AuthToken:
        """Create an account and log it in"""
        username = InputValidator.validate_username(username)
        email = InputValidator.validate_email(email)
        InputValidator.validate_password(password)

        password_hash = await asyncio.to_thread(PasswordManager.hash_password, password)

        async with translate_store_errors("register user", conflict_resource="user"):
            async with self.session_factory() as session:
                async with session.begin():
                    existing = await session.execute(
                        select(User.username, User.email).where(
                            or_(
                                func.lower(User.username) == username.lower(),
                                User.email == email,
                            )
                        )
                    )
                    for row in existing:
                        if row.email == email:
                            raise ConflictError("user", "Email already exists")
                        raise ConflictError("user", "Username already exists")

                    user = User(username=username, email=email, password_hash=password_hash)
                    session.add(user)

        logger.info(f"Registered new user: {username}")
        return await self._issue_token(user)

    async def login(self, username_or_email: str, password: str) -> AuthToken:
        """Authenticate with username or email plus password"""
        identifier = (username_or_email or "").strip()
        if not identifier or not password:
            raise AuthenticationError("Invalid credentials")

        async with translate_store_errors("login"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(User).where(
                        or_(
                            func.lower(User.username) == identifier.lower(),
                            User.email == identifier.lower(),
                        )
                    )
                )
                user = result.scalars().first()

        if user is None or not await asyncio.to_thread(
            PasswordManager.verify_password, password, user.password_hash
        ):
            logger.warning("Login failed: invalid credentials")
            raise AuthenticationError("Invalid credentials")

        logger.info(f"User {user.username} logged in")
        return await self._issue_token(user)

    async def validate_token(self, token: str) -> AccountProfile:
        """Resolve a bearer token to the account it was issued for"""
        payload = self.jwt_manager.verify_token(token)

        session = await self.session_store.get(payload["sid"])
        if not session or session.get("user_id") != payload["sub"]:
            raise AuthenticationError("Session expired or revoked")

        async with translate_store_errors("validate token"):
            async with self.session_factory() as db:
                user = await db.get(User, payload["sub"])

        if user is None:
            await self.session_store.revoke(payload["sid"])
            raise AuthenticationError("User no longer exists")

        return AccountProfile.from_user(user)

    async def logout(self, token: str) -> None:
        try:
            payload = self.jwt_manager.verify_token(token)
        except AuthenticationError:
            return  # Token already invalid
        await self.session_store.revoke(payload["sid"])
        logger.info(f"User {payload.get('username')} logged out")

    async def refresh(self, token: str) -> AuthToken:
        """Swap a valid token for a new one, revoking the old session"""
        payload = self.jwt_manager.verify_token(token)
        await self.validate_token(token)

        async with translate_store_errors("refresh token"):
            async with self.session_factory() as session:
                user = await session.get(User, payload["sub"])
        if user is None:
            raise AuthenticationError("User no longer exists")

        await self.session_store.revoke(payload["sid"])
        return await self._issue_token(user)

    async def get_account(self, user_id: str) -> AccountProfile:
        async with translate_store_errors("load account"):
            async with self.session_factory() as session:
                user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("user", user_id)
        return AccountProfile.from_user(user)

    async def update_profile(self, user_id: str, **changes) -> AccountProfile:
        """Edit display name, bio and avatar URL. Only supplied fields change."""
        updates = {}
        if "display_name" in changes:
            value = changes["display_name"]
            updates["display_name"] = (
                InputValidator.sanitize_string(value, "display_name", max_length=100) or None
                if value is not None
                else None
            )
        if "bio" in changes:
            value = changes["bio"]
            updates["bio"] = (
                InputValidator.sanitize_string(value, "bio", max_length=500) or None
                if value is not None
                else None
            )
        if "avatar_url" in changes:
            updates["avatar_url"] = InputValidator.validate_url(
                changes["avatar_url"], "avatar_url"
            )

        async with translate_store_errors("update profile"):
            async with self.session_factory() as session:
                async with session.begin():
                    user = await session.get(User, user_id)
                    if user is None:
                        raise NotFoundError("user", user_id)
                    for field, value in updates.items():
                        setattr(user, field, value)
                    user.updated_at = datetime.now(timezone.utc)

        logger.info(f"Updated profile for user {user_id}: {sorted(updates)}")
        return AccountProfile.from_user(user)


# Global authentication service
_auth_service: Optional[AuthenticationService] = None


def get_auth_service() -> AuthenticationService:
    """Get global authentication service"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthenticationService()
    return _auth_service


def init_auth_service(**kwargs) -> AuthenticationService:
    """Initialize global authentication service"""
    global _auth_service
    _auth_service = AuthenticationService(**kwargs)
    logger.info("Initialized authentication service")
    return _auth_service
