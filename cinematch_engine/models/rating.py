"""User ratings of catalog items."""
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Dict, Iterable, List, Union


class MediaKind(str, Enum):
    """Kind of catalog item."""

    MOVIE = "movie"
    SHOW = "show"


class RatingSentinel(str, Enum):
    """Non-numeric rating values kept for history but excluded from learning."""

    NOT_WATCHED = "not_watched"
    NOT_INTERESTED = "not_interested"
    SKIP = "skip"


MIN_RATING = 1
MAX_RATING = 10

RatingValue = Union[int, RatingSentinel]


def is_valid_value(value) -> bool:
    """True for integer ratings in [1, 10]."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_RATING <= value <= MAX_RATING


@dataclass
class Rating:
    """A single user rating. At most one per (item_id, media_kind)."""

    item_id: int
    media_kind: MediaKind
    value: RatingValue
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_valid(self) -> bool:
        return is_valid_value(self.value)

    @property
    def key(self) -> tuple:
        return self.item_id, self.media_kind

    def to_dict(self) -> Dict:
        value = self.value.value if isinstance(self.value, RatingSentinel) else self.value
        return {
            'item_id': self.item_id,
            'media_kind': self.media_kind.value,
            'value': value,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Rating":
        value = data['value']
        if isinstance(value, str):
            value = RatingSentinel(value)
        return cls(
            item_id=int(data['item_id']),
            media_kind=MediaKind(data.get('media_kind', MediaKind.MOVIE.value)),
            value=value,
            timestamp=datetime.fromisoformat(data['timestamp']),
        )


def valid_ratings(ratings: Iterable[Rating]) -> List[Rating]:
    """Filter to ratings that count for learning."""
    return [r for r in ratings if r.is_valid]


def upsert_rating(ratings: List[Rating], rating: Rating) -> List[Rating]:
    """
    Insert or replace a rating, keeping one rating per item.

    Args:
        ratings: Existing ratings
        rating: New rating

    Returns:
        New list with the rating replacing any earlier one for the same item
    """
    updated = [r for r in ratings if r.key != rating.key]
    updated.append(rating)
    return updated


def remove_rating(ratings: List[Rating], item_id: int, media_kind: MediaKind) -> List[Rating]:
    """Return ratings without the given item."""
    return [r for r in ratings if r.key != (item_id, media_kind)]
