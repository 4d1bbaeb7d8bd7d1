"""
Music Catalog Service.

This module defines `MusicCatalogService`, the single entry point the rest of
JukeBoxd uses to reach the external music metadata catalog.

Key Components:
- Provider selection: `build_catalog_provider` picks Last.fm or Spotify from
  `MUSIC_CATALOG_PROVIDER` and falls back to the built-in demo catalog when
  the credentials are missing or still set to placeholder values.
- Result cache: Search results are cached for 30 minutes under
  `music:search:{query}:{limit}` and single albums for one hour under
  `music:album:{id}`. The cache is advisory; a miss always goes to the
  provider.
- Throttling: Outgoing provider calls pass through a 5 requests/second token
  bucket. Callers wait for a token rather than being rejected.
- Degraded search: When the provider fails a search, the demo catalog answers
  instead so album discovery keeps working. Single-album lookups do not fall
  back; their failures propagate.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from core.cache import CacheManager, cache_key, get_cache
from core.exceptions import NotFoundError, ServiceUnavailableError, ValidationError
from core.metrics import timed
from core.models import AlbumSummary
from core.rate_limiter import TokenBucket
from core.validation import InputValidator
from providers.lastfm_provider import LastFmProvider
from providers.music_catalog import (
    PLACEHOLDER_CREDENTIALS,
    DemoCatalogProvider,
    MusicCatalogProvider,
)
from providers.spotify_provider import SpotifyProvider

logger = logging.getLogger(__name__)

SEARCH_CACHE_TTL = 1800
ALBUM_CACHE_TTL = 3600
MAX_SEARCH_LIMIT = 50
REQUESTS_PER_SECOND = 5


def build_catalog_provider() -> MusicCatalogProvider:
    """Create the provider named by MUSIC_CATALOG_PROVIDER, or the demo catalog"""
    provider = os.getenv("MUSIC_CATALOG_PROVIDER", "lastfm").lower()

    if provider == "spotify":
        client_id = os.getenv("SPOTIFY_CLIENT_ID", "")
        client_secret = os.getenv("SPOTIFY_CLIENT_SECRET", "")
        if client_id and client_secret and not client_id.startswith("your-"):
            logger.info("Music catalog: using Spotify Web API")
            return SpotifyProvider(client_id, client_secret)
        logger.warning("Spotify credentials not configured; music catalog running in demo mode")
        return DemoCatalogProvider()

    api_key = os.getenv("LASTFM_API_KEY", "")
    if api_key not in PLACEHOLDER_CREDENTIALS:
        logger.info(f"Music catalog: using Last.fm API with key {api_key[:8]}...")
        return LastFmProvider(api_key)

    logger.warning(
        "LASTFM_API_KEY not configured; music catalog running in demo mode with built-in albums"
    )
    return DemoCatalogProvider()


class MusicCatalogService:
    """Cached, throttled access to the configured music catalog"""

    def __init__(
        self,
        provider: MusicCatalogProvider = None,
        cache: Optional[CacheManager] = None,
        throttle: TokenBucket = None,
    ):
        self.provider = provider or build_catalog_provider()
        self.fallback = DemoCatalogProvider()
        self._cache = cache
        self.throttle = throttle or TokenBucket(
            capacity=REQUESTS_PER_SECOND, refill_rate=float(REQUESTS_PER_SECOND)
        )

    @property
    def cache(self) -> CacheManager:
        return self._cache or get_cache()

    @property
    def demo_mode(self) -> bool:
        return isinstance(self.provider, DemoCatalogProvider)

    def status(self) -> Dict[str, Any]:
        return {"provider": self.provider.source_name, "demo_mode": self.demo_mode}

    @timed("music.search_albums")
    async def search_albums(self, query: str, limit: int = 20) -> List[AlbumSummary]:
        """Search the catalog by album title or artist"""
        query = InputValidator.validate_search_query(query)
        limit = InputValidator.validate_limit(limit, MAX_SEARCH_LIMIT)

        if self.demo_mode:
            return await self.provider.search_albums(query, limit)

        key = cache_key("music", "search", query, limit)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug(f"Catalog search cache hit: {key}")
            return [AlbumSummary.model_validate(item) for item in cached]

        await self.throttle.acquire()
        try:
            albums = await self.provider.search_albums(query, limit)
        except (ServiceUnavailableError, NotFoundError) as e:
            logger.warning(
                f"{self.provider.source_name} search failed ({e.message}); serving demo results"
            )
            return await self.fallback.search_albums(query, limit)

        await self.cache.set(
            key, [album.model_dump(mode="json") for album in albums], SEARCH_CACHE_TTL
        )
        return albums

    @timed("music.get_album")
    async def get_album(self, external_id: str) -> AlbumSummary:
        """Fetch one album's metadata. Raises NotFoundError for unknown ids."""
        if not external_id or not external_id.strip():
            raise ValidationError("external_id", external_id, "Album ID is required")

        if self.demo_mode:
            return await self.provider.get_album(external_id)

        async def fetch():
            await self.throttle.acquire()
            album = await self.provider.get_album(external_id)
            return album.model_dump(mode="json")

        key = cache_key("music", "album", external_id)
        cached = await self.cache.get_or_set(key, fetch, ALBUM_CACHE_TTL)
        return AlbumSummary.model_validate(cached)

    async def close(self) -> None:
        await self.provider.close()


# Global music catalog service
_music_service: Optional[MusicCatalogService] = None


def get_music_service() -> MusicCatalogService:
    global _music_service
    if _music_service is None:
        _music_service = MusicCatalogService()
    return _music_service


def init_music_service(**kwargs) -> MusicCatalogService:
    global _music_service
    _music_service = MusicCatalogService(**kwargs)
    return _music_service
