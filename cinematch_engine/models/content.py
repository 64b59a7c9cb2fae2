"""Catalog metadata consumed by the engine."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cinematch_engine.models.rating import MediaKind

PLACEHOLDER_RATING = 5.0
PLACEHOLDER_RELEASE_DATE = "2000-01-01"


@dataclass
class CastMember:
    id: int
    name: str
    character: Optional[str] = None


@dataclass
class CrewMember:
    id: int
    name: str
    job: str


@dataclass
class ContentDetails:
    """Metadata for one movie or show, as returned by the content lookup."""

    item_id: int
    media_kind: MediaKind
    title: str = ""
    genre_ids: List[int] = field(default_factory=list)
    external_rating: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    adult: bool = False
    original_language: Optional[str] = None
    release_date: Optional[str] = None
    cast: List[CastMember] = field(default_factory=list)
    crew: List[CrewMember] = field(default_factory=list)
    is_placeholder: bool = False

    @property
    def release_year(self) -> Optional[int]:
        """Year parsed from the release date, None if missing or malformed."""
        if not self.release_date or len(self.release_date) < 4:
            return None
        try:
            return int(self.release_date[:4])
        except ValueError:
            return None

    @property
    def decade(self) -> Optional[str]:
        """Decade label such as '1990s'."""
        year = self.release_year
        if year is None:
            return None
        return decade_label(year)

    def top_cast(self, n: int) -> List[CastMember]:
        return self.cast[:n]

    @property
    def directors(self) -> List[CrewMember]:
        return [member for member in self.crew if member.job == "Director"]

    @classmethod
    def placeholder(cls, item_id: int, media_kind: MediaKind) -> "ContentDetails":
        """
        Build the stand-in record used when an item is no longer in the catalog.

        Neutral external rating, no genres or credits, so a rated item that
        disappeared upstream still yields a training sample.
        """
        label = "Movie" if media_kind == MediaKind.MOVIE else "TV Show"
        return cls(
            item_id=item_id,
            media_kind=media_kind,
            title=f"Unknown {label} ({item_id})",
            external_rating=PLACEHOLDER_RATING,
            original_language="en",
            release_date=PLACEHOLDER_RELEASE_DATE,
            is_placeholder=True,
        )

    @classmethod
    def from_api(cls, data: Dict, media_kind: MediaKind) -> "ContentDetails":
        """
        Parse a catalog API payload.

        Args:
            data: Details JSON (movie or tv) with optional appended credits
            media_kind: Kind of item requested

        Returns:
            ContentDetails
        """
        if data.get('genre_ids'):
            genre_ids = [int(g) for g in data['genre_ids']]
        else:
            genre_ids = [int(g['id']) for g in data.get('genres') or []]

        credits = data.get('credits') or {}
        cast = [
            CastMember(id=int(c['id']), name=c.get('name', ''), character=c.get('character'))
            for c in credits.get('cast') or []
        ]
        crew = [
            CrewMember(id=int(c['id']), name=c.get('name', ''), job=c.get('job', ''))
            for c in credits.get('crew') or []
        ]

        return cls(
            item_id=int(data['id']),
            media_kind=media_kind,
            title=data.get('title') or data.get('name') or "",
            genre_ids=genre_ids,
            external_rating=float(data.get('vote_average') or 0.0),
            vote_count=int(data.get('vote_count') or 0),
            popularity=float(data.get('popularity') or 0.0),
            adult=bool(data.get('adult', False)),
            original_language=data.get('original_language'),
            release_date=data.get('release_date') or data.get('first_air_date'),
            cast=cast,
            crew=crew,
        )


def decade_label(year: int) -> str:
    return f"{(year // 10) * 10}s"
