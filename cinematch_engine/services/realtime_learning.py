"""Incremental learning from individual rating events."""
import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd

from cinematch_engine.models import (
    LearningEvent,
    LearningEventKind,
    LearningPhase,
    Rating,
    UserProfile,
)
from cinematch_engine.models.rating import valid_ratings
from cinematch_engine.services.profile_builder import ProfileBuilder
from cinematch_engine.storage import EngineStorage

logger = logging.getLogger(__name__)

# Phase promotion on the incremental path. These differ from the profile
# builder's 50/70 thresholds and are kept separate.
PROFILING_TO_TESTING = 50
TESTING_TO_OPTIMIZING = 100

MIN_RATINGS_FOR_FULL_UPDATE = 10
MIN_RATINGS_FOR_RETRAIN = 20
RETRAIN_INTERVAL = timedelta(hours=24)
SIGNIFICANT_UPDATE_DELTA = 2

EXTREME_VALUES = (1, 10)
HIGH_RATING = 8
LOW_RATING = 4
GENRE_SHIFT_THRESHOLD = 5

BASE_CONFIDENCE_GAIN = 0.01
EXTREME_CONFIDENCE_GAIN = 0.02
ALIGNMENT_CONFIDENCE_SCALE = 0.01
PHASE_CHANGE_CONFIDENCE_GAIN = 0.05
CONFIDENCE_CHANGE_BOUNDS = (-0.05, 0.10)
# No per-item alignment signal exists yet; every rating counts as half aligned
NEUTRAL_ALIGNMENT = 0.5

LEARNING_RATE_STEP_UP = 0.01
LEARNING_RATE_STEP_DOWN = 0.005
LEARNING_RATE_BOUNDS = (0.05, 0.2)

RECENT_EVENT_WINDOW = timedelta(days=7)
RECENT_EVENT_LIMIT = 50
RECENT_RATINGS_FOR_INSIGHTS = 10


@dataclass
class AdaptiveLearningConfig:
    enable_real_time_updates: bool = True
    enable_neural_retraining: bool = True
    enable_confidence_adjustment: bool = True
    learning_rate: float = 0.1
    min_rating_for_learning: int = 3
    max_learning_events: int = 1000

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "AdaptiveLearningConfig":
        """Merge stored values over the defaults, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class LearningResult:
    updated_profile: Optional[UserProfile]
    insights: List[str] = field(default_factory=list)
    confidence_change: float = 0.0
    should_retrain: bool = False


class RealTimeLearningService:
    """
    Applies rating events to a profile as they happen.

    Keeps a capped, persisted event log, patches the profile immediately,
    rebuilds it in full once enough ratings exist, and decides when the
    learned scorer should be retrained.
    """

    def __init__(
            self,
            profile_builder: ProfileBuilder,
            storage: EngineStorage,
            neural_scorer=None,
            clock: Callable[[], datetime] = lambda: datetime.now(UTC),
            max_learning_events: Optional[int] = None
    ):
        """
        Initialize the learning loop from persisted state.

        Args:
            profile_builder: Builder used for full profile rebuilds
            storage: Engine storage for the event log and adaptive config
            neural_scorer: Learned scorer retrained by retrain_if_needed (optional)
            clock: Current time source
            max_learning_events: Override for the event log cap
        """
        self.profile_builder = profile_builder
        self.storage = storage
        self.neural_scorer = neural_scorer
        self._clock = clock

        self.config = AdaptiveLearningConfig.from_dict(storage.load_adaptive_config())
        if max_learning_events is not None:
            self.config.max_learning_events = max_learning_events

        self.events: List[LearningEvent] = storage.load_learning_events()
        self._confidence_changes: List[float] = []

        logger.info(f"Real-time learning initialized with {len(self.events)} stored events")

    # ===== EVENT PROCESSING =====

    def process_rating_event(
            self,
            event: LearningEvent,
            current_profile: UserProfile,
            all_ratings: Sequence[Rating]
    ) -> LearningResult:
        """
        Apply one rating event.

        Args:
            event: Rating added, updated or removed
            current_profile: Profile before the event
            all_ratings: Full rating history including the event's rating

        Returns:
            LearningResult with the updated profile, insights,
            confidence change and retrain decision
        """
        if not self.config.enable_real_time_updates:
            logger.debug("Real-time updates disabled, event ignored")
            return LearningResult(updated_profile=current_profile)

        self.add_learning_event(event)

        immediate_updates = self.calculate_immediate_updates(event, current_profile)
        updated_profile = self.generate_updated_profile(all_ratings, current_profile, immediate_updates)

        insights = self.generate_event_insights(event, current_profile, updated_profile)
        confidence_change = self.calculate_confidence_change(event, current_profile, updated_profile)
        should_retrain = self.should_retrain(event, all_ratings)

        self._confidence_changes.append(confidence_change)
        if self.config.enable_confidence_adjustment:
            self.adjust_learning_rate(confidence_change)

        logger.info(f"Real-time learning processed: {event.kind.value} for content {event.item_id}")

        return LearningResult(
            updated_profile=updated_profile,
            insights=insights,
            confidence_change=confidence_change,
            should_retrain=should_retrain,
        )

    def calculate_immediate_updates(self, event: LearningEvent, profile: UserProfile) -> Dict:
        """Profile fields that can be patched without fetching metadata."""
        value = event.numeric_new_value
        if event.kind != LearningEventKind.ADDED or value is None:
            return {}

        total = profile.total_ratings + 1
        updates: Dict = {
            'average_score': (profile.average_score * profile.total_ratings + value) / total,
            'total_ratings': total,
        }

        if total >= PROFILING_TO_TESTING and profile.learning_phase == LearningPhase.PROFILING:
            updates['learning_phase'] = LearningPhase.TESTING
        elif total >= TESTING_TO_OPTIMIZING and profile.learning_phase == LearningPhase.TESTING:
            updates['learning_phase'] = LearningPhase.OPTIMIZING

        updates['last_updated'] = self._clock()
        return updates

    def generate_updated_profile(
            self,
            all_ratings: Sequence[Rating],
            current_profile: UserProfile,
            immediate_updates: Dict
    ) -> UserProfile:
        """
        Full rebuild with the immediate patch merged on top.

        Below 10 valid ratings, or when the rebuild yields nothing, the
        current profile is returned unchanged.
        """
        if len(valid_ratings(all_ratings)) < MIN_RATINGS_FOR_FULL_UPDATE:
            return current_profile

        rebuilt = self.profile_builder.build_profile(all_ratings)
        if rebuilt is None:
            return current_profile

        return rebuilt.with_updates(**immediate_updates)

    def generate_event_insights(
            self,
            event: LearningEvent,
            old_profile: UserProfile,
            new_profile: UserProfile
    ) -> List[str]:
        insights: List[str] = []
        value = event.numeric_new_value
        if event.kind != LearningEventKind.ADDED or value is None:
            return insights

        if value >= HIGH_RATING:
            insights.append("High rating: we can recommend more content like this")
        elif value <= LOW_RATING:
            insights.append("Low rating: we will recommend less content like this")

        if new_profile.learning_phase != old_profile.learning_phase:
            insights.append(
                f"Learning phase updated: {old_profile.learning_phase.value} → {new_profile.learning_phase.value}"
            )

        genre_changes = self.analyze_genre_preference_changes(old_profile, new_profile)
        if genre_changes:
            insights.append(f"Genre preferences updated: {', '.join(genre_changes)}")

        return insights

    def analyze_genre_preference_changes(self, old_profile: UserProfile, new_profile: UserProfile) -> List[str]:
        """Genres whose share moved by more than 5 points."""
        changes = []
        for genre_id, new_share in new_profile.genre_distribution.items():
            change = new_share - old_profile.genre_distribution.get(genre_id, 0)
            if abs(change) > GENRE_SHIFT_THRESHOLD:
                changes.append(f"{genre_id}: {change:+.1f}%")
        return changes

    def calculate_confidence_change(
            self,
            event: LearningEvent,
            old_profile: UserProfile,
            new_profile: UserProfile
    ) -> float:
        change = 0.0
        value = event.numeric_new_value

        if event.kind == LearningEventKind.ADDED and value is not None:
            change += BASE_CONFIDENCE_GAIN
            if value in EXTREME_VALUES:
                change += EXTREME_CONFIDENCE_GAIN
            change += NEUTRAL_ALIGNMENT * ALIGNMENT_CONFIDENCE_SCALE
            if new_profile.learning_phase != old_profile.learning_phase:
                change += PHASE_CHANGE_CONFIDENCE_GAIN

        low, high = CONFIDENCE_CHANGE_BOUNDS
        return min(high, max(low, change))

    # ===== RETRAINING =====

    def should_retrain(self, event: LearningEvent, all_ratings: Sequence[Rating]) -> bool:
        """
        Retrain with 20+ valid ratings when a day has passed since the
        previous event or the change is significant.
        """
        if not self.config.enable_neural_retraining:
            return False
        if len(valid_ratings(all_ratings)) < MIN_RATINGS_FOR_RETRAIN:
            return False
        if len(self.events) < 2:
            return False

        previous = self.events[-2]
        if event.timestamp - previous.timestamp >= RETRAIN_INTERVAL:
            return True
        return self.is_significant_change(event)

    def is_significant_change(self, event: LearningEvent) -> bool:
        new_value = event.numeric_new_value
        if event.kind == LearningEventKind.ADDED and new_value is not None:
            return new_value in EXTREME_VALUES

        old_value = event.numeric_old_value
        if event.kind == LearningEventKind.UPDATED and new_value is not None and old_value is not None:
            return abs(new_value - old_value) >= SIGNIFICANT_UPDATE_DELTA

        return False

    def retrain_if_needed(self, should_retrain: bool, all_ratings: Sequence[Rating], profile: UserProfile):
        """
        Retrain the learned scorer when requested.

        Returns:
            Training future, or None when nothing was started
        """
        if not should_retrain or self.neural_scorer is None:
            return None

        logger.info("Starting neural network retraining...")
        future = self.neural_scorer.train_model_async(all_ratings, profile)
        future.add_done_callback(self._log_retrain_outcome)
        return future

    def _log_retrain_outcome(self, future) -> None:
        error = future.exception()
        if error is not None:
            logger.error(f"Neural network retraining failed: {error}")
        else:
            logger.info("✓ Neural network retraining completed")

    # ===== ADAPTIVE CONFIG =====

    def adjust_learning_rate(self, confidence_change: float) -> None:
        low, high = LEARNING_RATE_BOUNDS
        if confidence_change > 0:
            self.config.learning_rate = min(high, self.config.learning_rate + LEARNING_RATE_STEP_UP)
        elif confidence_change < 0:
            self.config.learning_rate = max(low, self.config.learning_rate - LEARNING_RATE_STEP_DOWN)
        self.storage.save_adaptive_config(self.config.to_dict())

    def update_config(self, **changes) -> AdaptiveLearningConfig:
        known = {f.name for f in fields(AdaptiveLearningConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown adaptive learning settings: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            setattr(self.config, key, value)
        self.storage.save_adaptive_config(self.config.to_dict())

        logger.info("Adaptive learning configuration updated")
        return self.get_config()

    def get_config(self) -> AdaptiveLearningConfig:
        return AdaptiveLearningConfig(**self.config.to_dict())

    # ===== EVENT LOG =====

    def add_learning_event(self, event: LearningEvent) -> None:
        """Append to the log, dropping the oldest events past the cap."""
        self.events.append(event)
        if len(self.events) > self.config.max_learning_events:
            self.events = self.events[-self.config.max_learning_events:]
        self.storage.save_learning_events(self.events)

    def clear_learning_history(self) -> None:
        self.events = []
        self._confidence_changes = []
        self.storage.save_learning_events(self.events)
        logger.info("Learning history cleared")

    def replay_ratings_as_learning_events(self, ratings: Sequence[Rating]) -> List[LearningEvent]:
        """Rebuild the event log from existing ratings, one second apart."""
        base = self._clock()
        self.events = [
            LearningEvent(
                kind=LearningEventKind.ADDED,
                item_id=rating.item_id,
                media_kind=rating.media_kind,
                new_value=rating.value,
                timestamp=base + timedelta(seconds=index),
            )
            for index, rating in enumerate(ratings)
            if rating.is_valid
        ]
        self.storage.save_learning_events(self.events)
        logger.info(f"Learning events replayed from {len(self.events)} rated items")
        return list(self.events)

    # ===== ANALYTICS =====

    def get_learning_analytics(self, profile: Optional[UserProfile] = None) -> Dict:
        """
        Snapshot of learning activity.

        Args:
            profile: Current profile, for the learning phase (optional)

        Returns:
            Dict with event totals, recent events, learning rate,
            average confidence change, per-kind counts and phase
        """
        cutoff = self._clock() - RECENT_EVENT_WINDOW
        recent_events = [e for e in self.events if e.timestamp > cutoff][-RECENT_EVENT_LIMIT:]

        recent_changes = self._confidence_changes[-RECENT_EVENT_LIMIT:]
        average_change = sum(recent_changes) / len(recent_changes) if recent_changes else 0.0

        event_counts = {kind.value: 0 for kind in LearningEventKind}
        for event in recent_events:
            event_counts[event.kind.value] += 1

        return {
            'total_events': len(self.events),
            'recent_events': recent_events,
            'learning_rate': self.config.learning_rate,
            'average_confidence_change': average_change,
            'event_counts': event_counts,
            'learning_phase': profile.learning_phase.value if profile else None,
        }

    def get_learning_insights(self, profile: UserProfile, recent_ratings: Sequence[Rating]) -> Dict:
        """
        Display insights about recent rating behaviour.

        Returns:
            Dict with up to 3 insights, up to 2 recommendations and a
            confidence value in [0, 1]
        """
        insights: List[str] = []
        recommendations: List[str] = []
        confidence = 0.5

        recent = valid_ratings(recent_ratings)[-RECENT_RATINGS_FOR_INSIGHTS:]
        if recent:
            values = pd.Series([r.value for r in recent], dtype=float)
            recent_average = values.mean()

            if recent_average > profile.average_score + 0.5:
                insights.append("Your recent ratings are above your average - your quality bar is rising")
                confidence += 0.1
            elif recent_average < profile.average_score - 0.5:
                insights.append("Your recent ratings are below your average - you are getting more selective")
                confidence += 0.05

            variance = values.var(ddof=0) if len(values) >= 2 else 0.0
            if variance < 1.0:
                insights.append("You rate consistently - we can offer reliable suggestions")
                confidence += 0.15

        if profile.learning_phase == LearningPhase.PROFILING:
            insights.append("You are in the profiling phase - rate more titles")
            recommendations.append("Rate titles from different genres to broaden your profile")
        elif profile.learning_phase == LearningPhase.TESTING:
            insights.append("You are in the testing phase - recommendation accuracy is being measured")
            recommendations.append("Rate unexpected titles too, to put the system to the test")
        elif profile.learning_phase == LearningPhase.OPTIMIZING:
            insights.append("You are in the optimizing phase - the system keeps learning")
            recommendations.append("Detailed ratings improve recommendation quality")
            confidence += 0.2

        genre_count = len(profile.genre_distribution)
        if genre_count < 10:
            insights.append("You have explored only a few genres - try increasing variety")
            recommendations.append("Rate titles in new genres to widen your discovery space")
        elif genre_count > 20:
            insights.append("You have experience across a wide range of genres")
            confidence += 0.1

        return {
            'insights': insights[:3],
            'recommendations': recommendations[:2],
            'confidence': min(1.0, max(0.0, confidence)),
        }
