"""
Music Catalog Provider Classes

Album metadata sources behind a common interface. Each provider turns its own
wire format into `AlbumSummary` values; caching, throttling and the fallback
to demo data are handled by `services.music_service.MusicCatalogService`.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from core.exceptions import NotFoundError
from core.models import AlbumSummary

logger = logging.getLogger(__name__)

PLACEHOLDER_CREDENTIALS = {"", "your-lastfm-api-key", "demo-mode"}


class MusicCatalogProvider(ABC):
    """Abstract base class for all music catalog providers"""

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Source identifier for this provider"""
        pass

    @abstractmethod
    async def search_albums(self, query: str, limit: int = 20) -> List[AlbumSummary]:
        """Search albums by title or artist"""
        pass

    @abstractmethod
    async def get_album(self, external_id: str) -> AlbumSummary:
        """Fetch one album. Raises NotFoundError when the catalog has no such album."""
        pass

    async def close(self) -> None:
        pass


def parse_release_date(value: Optional[str]) -> Optional[date]:
    """Parse the date formats catalogs use: 1969-09-26, 1969-09, 1969, "26 Sep 1969, 00:00"."""
    if not value:
        return None
    value = value.strip()

    for fmt in ("%Y-%m-%d", "%Y-%m", "%Y", "%d %b %Y, %H:%M", "%d %b %Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    match = re.search(r"\b(\d{4})\b", value)
    if match:
        return date(int(match.group(1)), 1, 1)
    return None


def _demo_album(number: int, title: str, artist: str, released: str, image: str, url: str):
    return AlbumSummary(
        external_id=f"mock-lastfm-{number}",
        title=title,
        artist=artist,
        release_date=date.fromisoformat(released),
        image_url=f"https://lastfm.freetls.fastly.net/i/u/640x640/{image}.png",
        external_url=f"https://www.last.fm/music/{url}",
    )


MOCK_ALBUMS: List[AlbumSummary] = [
    _demo_album(1, "Abbey Road", "The Beatles", "1969-09-26",
                "3b54885952161aaea4ce2965b2db1638", "The+Beatles/Abbey+Road"),
    _demo_album(2, "The Dark Side of the Moon", "Pink Floyd", "1973-03-01",
                "8b5cf1baf4b842b3c1d7bb84b7bb3991", "Pink+Floyd/The+Dark+Side+of+the+Moon"),
    _demo_album(3, "Thriller", "Michael Jackson", "1982-11-30",
                "c6f59c1e5e7240a4c0d427abd71f3dbb", "Michael+Jackson/Thriller"),
    _demo_album(4, "Back in Black", "AC/DC", "1980-07-25",
                "c14b155c696e4a82c59d158d54a5b7a6", "AC%2FDC/Back+in+Black"),
    _demo_album(5, "Hotel California", "Eagles", "1976-12-08",
                "2a96cbd8b46e442fc41c2b86b821562f", "Eagles/Hotel+California"),
    _demo_album(6, "Rumours", "Fleetwood Mac", "1977-02-04",
                "3b54885952161aaea4ce2965b2db1638", "Fleetwood+Mac/Rumours"),
    _demo_album(7, "Led Zeppelin IV", "Led Zeppelin", "1971-11-08",
                "c8a11e48c2a9357b0d58b5e6", "Led+Zeppelin/Led+Zeppelin+IV"),
    _demo_album(8, "The Wall", "Pink Floyd", "1979-11-30",
                "f05e5ac5b6c8b4b4b4b4b4b4", "Pink+Floyd/The+Wall"),
    _demo_album(9, "Born to Run", "Bruce Springsteen", "1975-08-25",
                "a3b4c5d6e7f8g9h0i1j2k3l4", "Bruce+Springsteen/Born+to+Run"),
    _demo_album(10, "Kind of Blue", "Miles Davis", "1959-08-17",
                "m5n6o7p8q9r0s1t2u3v4w5x6", "Miles+Davis/Kind+of+Blue"),
    _demo_album(11, "Nevermind", "Nirvana", "1991-09-24",
                "y7z8a9b0c1d2e3f4g5h6i7j8", "Nirvana/Nevermind"),
    _demo_album(12, "OK Computer", "Radiohead", "1997-06-16",
                "k9l0m1n2o3p4q5r6s7t8u9v0", "Radiohead/OK+Computer"),
]


class DemoCatalogProvider(MusicCatalogProvider):
    """Serves the built-in demo albums when no catalog credentials are configured"""

    def __init__(self, albums: List[AlbumSummary] = None):
        self.albums = list(albums if albums is not None else MOCK_ALBUMS)

    @property
    def source_name(self) -> str:
        return "demo"

    async def search_albums(self, query: str, limit: int = 20) -> List[AlbumSummary]:
        needle = query.strip().lower()
        if not needle:
            return []
        matches = [
            album
            for album in self.albums
            if needle in album.title.lower() or needle in album.artist.lower()
        ]
        logger.debug(f"Demo catalog search '{query}' matched {len(matches)} albums")
        return matches[:limit]

    async def get_album(self, external_id: str) -> AlbumSummary:
        for album in self.albums:
            if album.external_id == external_id:
                return album
        raise NotFoundError("album", external_id)
