"""Domain types and SQLAlchemy models"""

from cinematch_engine.models.base import Base
from cinematch_engine.models.content import CastMember, ContentDetails, CrewMember
from cinematch_engine.models.engine_state import EngineState
from cinematch_engine.models.learning_event import LearningEvent, LearningEventKind
from cinematch_engine.models.profile import (
    Demographics,
    GenreQuality,
    LearningPhase,
    PersonAffinity,
    QualityTolerance,
    UserProfile,
)
from cinematch_engine.models.rating import MediaKind, Rating, RatingSentinel

__all__ = [
    "Base",
    "CastMember",
    "ContentDetails",
    "CrewMember",
    "Demographics",
    "EngineState",
    "GenreQuality",
    "LearningEvent",
    "LearningEventKind",
    "LearningPhase",
    "MediaKind",
    "PersonAffinity",
    "QualityTolerance",
    "Rating",
    "RatingSentinel",
    "UserProfile",
]
