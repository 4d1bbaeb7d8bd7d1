"""
Spotify Music Catalog Provider

Album search and lookup against the Spotify Web API using the
client-credentials flow. Access tokens are shared through the cache layer so
every worker reuses the same token until shortly before it expires.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from core.cache import CacheManager, cache_key, get_cache
from core.exceptions import NotFoundError, ServiceUnavailableError, ValidationError
from core.models import AlbumSummary
from providers.music_catalog import MusicCatalogProvider, parse_release_date

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = cache_key("music", "spotify", "token")
TOKEN_EXPIRY_MARGIN = 60  # seconds


class SpotifyProvider(MusicCatalogProvider):
    """Spotify album catalog"""

    API_URL = "https://api.spotify.com/v1"
    TOKEN_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        cache: Optional[CacheManager] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._cache = cache
        self.timeout = timeout

    @property
    def source_name(self) -> str:
        return "spotify"

    @property
    def cache(self) -> CacheManager:
        return self._cache or get_cache()

    async def search_albums(self, query: str, limit: int = 20) -> List[AlbumSummary]:
        if not query.strip():
            return []

        data = await self._request(
            "/search", params={"q": query, "type": "album", "limit": min(limit, 50)}
        )
        items = data.get("albums", {}).get("items", [])
        return [self.map_album(item) for item in items]

    async def get_album(self, external_id: str) -> AlbumSummary:
        if not external_id:
            raise ValidationError("external_id", external_id, "Album ID is required")
        data = await self._request(f"/albums/{external_id}", resource_id=external_id)
        return self.map_album(data)

    async def _get_access_token(self, force_refresh: bool = False) -> str:
        if not force_refresh:
            token = await self.cache.get(TOKEN_CACHE_KEY)
            if token:
                return token

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        auth = aiohttp.BasicAuth(self.client_id, self.client_secret)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.TOKEN_URL,
                    data={"grant_type": "client_credentials"},
                    auth=auth,
                ) as response:
                    if response.status != 200:
                        logger.error(f"Spotify token request failed: HTTP {response.status}")
                        raise ServiceUnavailableError(
                            "spotify", "Failed to authenticate with Spotify API"
                        )
                    payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ServiceUnavailableError("spotify", "Unable to reach Spotify accounts service") from e

        token = payload["access_token"]
        ttl = max(int(payload.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN, 1)
        await self.cache.set(TOKEN_CACHE_KEY, token, ttl)
        logger.info("Obtained Spotify access token")
        return token

    async def _request(
        self,
        path: str,
        params: Dict[str, Any] = None,
        resource_id: Optional[str] = None,
        retry_on_unauthorized: bool = True,
    ) -> Dict[str, Any]:
        token = await self._get_access_token()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {"Authorization": f"Bearer {token}"}

        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
                async with session.get(f"{self.API_URL}{path}", params=params) as response:
                    status = response.status
                    if status == 200:
                        return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Spotify request to {path} failed: {e}")
            raise ServiceUnavailableError("spotify", "Unable to connect to Spotify API") from e

        if status == 401 and retry_on_unauthorized:
            await self.cache.delete(TOKEN_CACHE_KEY)
            await self._get_access_token(force_refresh=True)
            return await self._request(
                path, params, resource_id, retry_on_unauthorized=False
            )
        if status in (400, 404) and resource_id:
            raise NotFoundError("album", resource_id)
        if status == 429:
            raise ServiceUnavailableError("spotify", "Spotify rate limit exceeded")
        raise ServiceUnavailableError("spotify", f"Spotify API error: HTTP {status}")

    @staticmethod
    def map_album(item: Dict[str, Any]) -> AlbumSummary:
        """Map a Spotify album object to AlbumSummary"""
        artists = item.get("artists") or []
        images = item.get("images") or []
        return AlbumSummary(
            external_id=item["id"],
            title=item.get("name", ""),
            artist=", ".join(a.get("name", "") for a in artists) or "Unknown Artist",
            release_date=parse_release_date(item.get("release_date")),
            image_url=images[0].get("url") if images else None,
            external_url=(item.get("external_urls") or {}).get("spotify"),
        )
