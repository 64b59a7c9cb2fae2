"""Rating events consumed by the real-time learning loop."""
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Dict, Optional

from cinematch_engine.models.rating import MediaKind, RatingSentinel, RatingValue


class LearningEventKind(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass
class LearningEvent:
    """One entry of the append-only learning log."""

    kind: LearningEventKind
    item_id: int
    media_kind: MediaKind
    old_value: Optional[RatingValue] = None
    new_value: Optional[RatingValue] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def numeric_new_value(self) -> Optional[int]:
        return _numeric(self.new_value)

    @property
    def numeric_old_value(self) -> Optional[int]:
        return _numeric(self.old_value)

    def to_dict(self) -> Dict:
        return {
            'kind': self.kind.value,
            'item_id': self.item_id,
            'media_kind': self.media_kind.value,
            'old_value': _encode(self.old_value),
            'new_value': _encode(self.new_value),
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "LearningEvent":
        return cls(
            kind=LearningEventKind(data['kind']),
            item_id=int(data['item_id']),
            media_kind=MediaKind(data['media_kind']),
            old_value=_decode(data.get('old_value')),
            new_value=_decode(data.get('new_value')),
            timestamp=datetime.fromisoformat(data['timestamp']),
        )


def _numeric(value) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _encode(value):
    if isinstance(value, RatingSentinel):
        return value.value
    return value


def _decode(value):
    if isinstance(value, str):
        return RatingSentinel(value)
    return value
