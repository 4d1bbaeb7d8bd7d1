"""
Last.fm Music Catalog Provider

Album search and lookup against the Last.fm web service
(`album.search` / `album.getinfo`).
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

import aiohttp

from core.exceptions import NotFoundError, ServiceUnavailableError, ValidationError
from core.models import AlbumSummary
from providers.music_catalog import MusicCatalogProvider, parse_release_date

logger = logging.getLogger(__name__)

IMAGE_SIZE_PREFERENCE = ("extralarge", "large", "medium")

# Error codes reported in the JSON body
LASTFM_NOT_FOUND = 6
LASTFM_INVALID_KEY = (10, 26)
LASTFM_RATE_LIMITED = 29


class LastFmProvider(MusicCatalogProvider):
    """Last.fm album catalog"""

    BASE_URL = "https://ws.audioscrobbler.com/2.0/"
    USER_AGENT = "JukeBoxd/1.0.0"

    def __init__(self, api_key: str, timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout

    @property
    def source_name(self) -> str:
        return "lastfm"

    async def search_albums(self, query: str, limit: int = 20) -> List[AlbumSummary]:
        if not query.strip():
            return []

        data = await self._request(
            {"method": "album.search", "album": query, "limit": min(limit, 50)}
        )
        matches = data.get("results", {}).get("albummatches", {}).get("album", [])
        albums = [self.map_album(item) for item in matches if item.get("name")]
        logger.info(f"Last.fm search '{query}' returned {len(albums)} albums")
        return albums[:limit]

    async def get_album(self, external_id: str) -> AlbumSummary:
        if not external_id:
            raise ValidationError("external_id", external_id, "Album ID is required")

        params = {"method": "album.getinfo"}
        if "|" in external_id:
            artist, album_name = external_id.split("|", 1)
            params.update(artist=artist, album=album_name)
        else:
            params["mbid"] = external_id

        data = await self._request(params, resource_id=external_id)
        album = data.get("album")
        if not album:
            raise NotFoundError("album", external_id)
        return self.map_album(album)

    async def _request(
        self, params: Dict[str, Any], resource_id: Optional[str] = None
    ) -> Dict[str, Any]:
        query = {**params, "api_key": self.api_key, "format": "json"}
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {"User-Agent": self.USER_AGENT}

        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
                async with session.get(self.BASE_URL, params=query) as response:
                    if response.status != 200:
                        message = await response.text()
                        raise self._error_for_status(response.status, message, resource_id)
                    data = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ServiceUnavailableError("lastfm", "Last.fm API request timeout") from e
        except aiohttp.ClientError as e:
            logger.error(f"Last.fm connection error: {e}")
            raise ServiceUnavailableError("lastfm", "Unable to connect to Last.fm API") from e

        if "error" in data:
            raise self._error_for_code(data["error"], data.get("message", ""), resource_id)
        return data

    @staticmethod
    def _error_for_status(status: int, message: str, resource_id: Optional[str]):
        if status == 404:
            return NotFoundError("album", resource_id or "unknown")
        if status == 400:
            return ServiceUnavailableError("lastfm", f"Bad request: {message[:200]}")
        if status == 403:
            return ServiceUnavailableError("lastfm", "Last.fm API key invalid or suspended")
        if status == 429:
            return ServiceUnavailableError("lastfm", "Last.fm rate limit exceeded")
        if status in (500, 502, 503):
            return ServiceUnavailableError("lastfm", "Last.fm service temporarily unavailable")
        return ServiceUnavailableError("lastfm", f"Last.fm API error: HTTP {status}")

    @staticmethod
    def _error_for_code(code: int, message: str, resource_id: Optional[str]):
        if code == LASTFM_NOT_FOUND:
            return NotFoundError("album", resource_id or "unknown")
        if code in LASTFM_INVALID_KEY:
            return ServiceUnavailableError("lastfm", "Last.fm API key invalid or suspended")
        if code == LASTFM_RATE_LIMITED:
            return ServiceUnavailableError("lastfm", "Last.fm rate limit exceeded")
        return ServiceUnavailableError("lastfm", f"Last.fm API error {code}: {message}")

    @staticmethod
    def map_album(item: Dict[str, Any]) -> AlbumSummary:
        """Map a Last.fm album object to AlbumSummary"""
        name = item.get("name", "")
        artist = item.get("artist", "")
        if isinstance(artist, dict):
            artist = artist.get("name", "")

        return AlbumSummary(
            external_id=item.get("mbid") or f"{artist}|{name}",
            title=name,
            artist=artist,
            release_date=parse_release_date((item.get("wiki") or {}).get("published")),
            image_url=LastFmProvider.pick_image(item.get("image") or []),
            external_url=item.get("url")
            or f"https://www.last.fm/music/{quote_plus(artist)}/{quote_plus(name)}",
        )

    @staticmethod
    def pick_image(images: List[Dict[str, str]]) -> Optional[str]:
        """Largest available image, upgraded to 640px where the CDN offers it"""
        by_size = {image.get("size"): image.get("#text") for image in images}
        url = next((by_size[size] for size in IMAGE_SIZE_PREFERENCE if by_size.get(size)), None)
        if url is None and images:
            url = images[0].get("#text")
        if not url:
            return None
        return url.replace("/300x300/", "/640x640/")
