"""User taste profile derived from ratings."""
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Dict, List, Optional


class LearningPhase(str, Enum):
    """Maturity stage of a profile. Ordered; only ever advances."""

    INITIAL = "initial"
    PROFILING = "profiling"
    TESTING = "testing"
    OPTIMIZING = "optimizing"

    @property
    def ordinal(self) -> int:
        return _PHASE_ORDER.index(self)

    @property
    def encoding(self) -> float:
        """Phase as a feature value in (0, 1]."""
        return (self.ordinal + 1) / len(_PHASE_ORDER)


_PHASE_ORDER = [
    LearningPhase.INITIAL,
    LearningPhase.PROFILING,
    LearningPhase.TESTING,
    LearningPhase.OPTIMIZING,
]


@dataclass
class GenreQuality:
    """Per-genre rating statistics kept for explanations."""

    average_external_rating: float
    average_user_rating: float
    count: int


@dataclass
class PersonAffinity:
    """Running sum of ratings for items featuring a person."""

    name: str
    weight: float = 0.0


@dataclass
class Demographics:
    age: Optional[int] = None
    gender: Optional[str] = None
    language: Optional[str] = None


@dataclass
class QualityTolerance:
    min_rating: Optional[float] = None
    min_vote_count: Optional[int] = None


@dataclass
class UserProfile:
    """Aggregated taste profile. Distributions are percentages summing to 100."""

    genre_distribution: Dict[int, float] = field(default_factory=dict)
    genre_quality_distribution: Dict[int, GenreQuality] = field(default_factory=dict)
    period_preference: Dict[str, float] = field(default_factory=dict)
    favorite_actors: Dict[int, PersonAffinity] = field(default_factory=dict)
    favorite_directors: Dict[int, PersonAffinity] = field(default_factory=dict)
    average_score: float = 0.0
    total_ratings: int = 0
    learning_phase: LearningPhase = LearningPhase.INITIAL
    accuracy_score: Optional[float] = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))
    demographics: Optional[Demographics] = None
    quality_tolerance: Optional[QualityTolerance] = None

    def top_genres(self, n: int) -> List[int]:
        """Genre ids ordered by preference, highest first."""
        ranked = sorted(self.genre_distribution.items(), key=lambda kv: kv[1], reverse=True)
        return [genre_id for genre_id, _ in ranked[:n]]

    def with_updates(self, **changes) -> "UserProfile":
        return replace(self, **changes)

    def to_dict(self) -> Dict:
        return {
            'genre_distribution': {str(k): v for k, v in self.genre_distribution.items()},
            'genre_quality_distribution': {
                str(k): {
                    'average_external_rating': v.average_external_rating,
                    'average_user_rating': v.average_user_rating,
                    'count': v.count,
                }
                for k, v in self.genre_quality_distribution.items()
            },
            'period_preference': dict(self.period_preference),
            'favorite_actors': {
                str(k): {'name': v.name, 'weight': v.weight} for k, v in self.favorite_actors.items()
            },
            'favorite_directors': {
                str(k): {'name': v.name, 'weight': v.weight} for k, v in self.favorite_directors.items()
            },
            'average_score': self.average_score,
            'total_ratings': self.total_ratings,
            'learning_phase': self.learning_phase.value,
            'accuracy_score': self.accuracy_score,
            'last_updated': self.last_updated.isoformat(),
            'demographics': vars(self.demographics) if self.demographics else None,
            'quality_tolerance': vars(self.quality_tolerance) if self.quality_tolerance else None,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "UserProfile":
        demographics = data.get('demographics')
        quality_tolerance = data.get('quality_tolerance')
        return cls(
            genre_distribution={int(k): float(v) for k, v in data.get('genre_distribution', {}).items()},
            genre_quality_distribution={
                int(k): GenreQuality(**v) for k, v in data.get('genre_quality_distribution', {}).items()
            },
            period_preference={k: float(v) for k, v in data.get('period_preference', {}).items()},
            favorite_actors={
                int(k): PersonAffinity(**v) for k, v in data.get('favorite_actors', {}).items()
            },
            favorite_directors={
                int(k): PersonAffinity(**v) for k, v in data.get('favorite_directors', {}).items()
            },
            average_score=float(data.get('average_score', 0.0)),
            total_ratings=int(data.get('total_ratings', 0)),
            learning_phase=LearningPhase(data.get('learning_phase', LearningPhase.INITIAL.value)),
            accuracy_score=data.get('accuracy_score'),
            last_updated=datetime.fromisoformat(data['last_updated']),
            demographics=Demographics(**demographics) if demographics else None,
            quality_tolerance=QualityTolerance(**quality_tolerance) if quality_tolerance else None,
        )
