"""Facade over the personalization engine components."""
import logging
import threading
from datetime import UTC, datetime
from typing import Callable, Dict, List, Optional, Sequence

from cinematch_engine.config import (
    get_cache_max_size,
    get_cache_ttl_seconds,
    get_max_learning_events,
    use_training_worker,
)
from cinematch_engine.ml.content_scorer import ContentBasedScorer, ContentRecommendation
from cinematch_engine.ml.neural_scorer import NeuralRecommendation, NeuralScorer, TrainingResult
from cinematch_engine.ml.training_worker import TrainingWorker
from cinematch_engine.models import (
    ContentDetails,
    LearningEvent,
    LearningEventKind,
    MediaKind,
    Rating,
    UserProfile,
)
from cinematch_engine.models.database import create_session_factory
from cinematch_engine.models.rating import remove_rating, upsert_rating, valid_ratings
from cinematch_engine.services.content_lookup import CachedContentLookup, ContentLookup, ContentLookupClient
from cinematch_engine.services.profile_builder import ProfileBuilder
from cinematch_engine.services.realtime_learning import (
    MIN_RATINGS_FOR_FULL_UPDATE,
    LearningResult,
    RealTimeLearningService,
)
from cinematch_engine.storage import BoundedCache, EngineStorage, KeyValueStore, SqlKeyValueStore

logger = logging.getLogger(__name__)


class PersonalizationEngine:
    """
    Single entry point for building profiles, scoring candidates and
    learning from rating events. Rating events are processed one at a time.
    """

    def __init__(
            self,
            content_lookup: CachedContentLookup,
            storage: EngineStorage,
            worker: Optional[TrainingWorker] = None,
            max_learning_events: Optional[int] = None,
            clock: Callable[[], datetime] = lambda: datetime.now(UTC),
            neural_scorer: Optional[NeuralScorer] = None
    ):
        """
        Wire up the engine components.

        Args:
            content_lookup: Cached catalog lookup shared by all components
            storage: Engine storage
            worker: Training worker (synchronous when None)
            max_learning_events: Event log cap override
            clock: Current time source
            neural_scorer: Pre-built learned scorer (optional)
        """
        self.content_lookup = content_lookup
        self.storage = storage
        self._clock = clock

        self.neural_scorer = neural_scorer or NeuralScorer(
            content_lookup, storage, clock=clock, worker=worker
        )
        self.content_scorer = ContentBasedScorer()
        self.profile_builder = ProfileBuilder(content_lookup, neural_scorer=self.neural_scorer, clock=clock)
        self.learning = RealTimeLearningService(
            self.profile_builder,
            storage,
            neural_scorer=self.neural_scorer,
            clock=clock,
            max_learning_events=max_learning_events,
        )

        self._event_lock = threading.Lock()

    @classmethod
    def from_config(
            cls,
            lookup: Optional[ContentLookup] = None,
            store: Optional[KeyValueStore] = None
    ) -> "PersonalizationEngine":
        """
        Build an engine from application configuration.

        Args:
            lookup: Catalog lookup (HTTP client from config if None)
            store: Key-value store (SQL store from config if None)

        Returns:
            PersonalizationEngine
        """
        cache = BoundedCache(max_size=get_cache_max_size(), ttl_seconds=get_cache_ttl_seconds())
        content_lookup = CachedContentLookup(lookup or ContentLookupClient(), cache)
        storage = EngineStorage(store or SqlKeyValueStore(create_session_factory()))

        return cls(
            content_lookup,
            storage,
            worker=TrainingWorker(enabled=use_training_worker()),
            max_learning_events=get_max_learning_events(),
        )

    # ===== PROFILE =====

    def build_profile(self, ratings: Sequence[Rating]) -> Optional[UserProfile]:
        """Build and persist a profile, None when there is not enough data."""
        profile = self.profile_builder.build_profile(ratings)
        if profile is not None:
            self.storage.save_profile(profile)
        return profile

    def get_profile(self) -> Optional[UserProfile]:
        return self.storage.load_profile()

    # ===== SCORING =====

    def score_candidates(
            self,
            profile: UserProfile,
            candidates: Sequence[ContentDetails],
            genre_names: Optional[Dict[int, str]] = None
    ) -> List[ContentRecommendation]:
        return self.content_scorer.score_candidates(profile, candidates, genre_names)

    def predict(self, item: ContentDetails, profile: UserProfile) -> float:
        """Predicted 1-10 rating for one item."""
        if self.neural_scorer.model is None:
            self.neural_scorer.initialize_model()
        return self.neural_scorer.predict_rating(item, profile)

    def recommend(
            self,
            profile: UserProfile,
            candidates: Sequence[ContentDetails],
            count: int = 20,
            languages: Optional[Sequence[str]] = None
    ) -> List[NeuralRecommendation]:
        return self.neural_scorer.generate_recommendations(candidates, profile, count, languages)

    def train_model(self, ratings: Sequence[Rating], profile: UserProfile) -> Optional[TrainingResult]:
        return self.neural_scorer.train_model(ratings, profile)

    # ===== LEARNING =====

    def process_rating_event(
            self,
            event: LearningEvent,
            profile: UserProfile,
            all_ratings: Sequence[Rating]
    ) -> LearningResult:
        """Apply one rating event; concurrent callers are serialized."""
        with self._event_lock:
            return self.learning.process_rating_event(event, profile, all_ratings)

    def record_rating(self, rating: Rating, profile: Optional[UserProfile] = None) -> LearningResult:
        """
        Store a rating and learn from it.

        Args:
            rating: New or changed rating
            profile: Current profile (stored profile if None)

        Returns:
            LearningResult for the generated event; its updated_profile is
            None while there is not enough data for a profile
        """
        ratings = self.storage.load_ratings()
        previous = next((r for r in ratings if r.key == rating.key), None)

        ratings = upsert_rating(ratings, rating)
        self.storage.save_ratings(ratings)

        event = LearningEvent(
            kind=LearningEventKind.UPDATED if previous else LearningEventKind.ADDED,
            item_id=rating.item_id,
            media_kind=rating.media_kind,
            old_value=previous.value if previous else None,
            new_value=rating.value,
            timestamp=rating.timestamp,
        )
        return self._learn(event, ratings, profile)

    def delete_rating(
            self,
            item_id: int,
            media_kind: MediaKind,
            profile: Optional[UserProfile] = None
    ) -> LearningResult:
        ratings = self.storage.load_ratings()
        previous = next((r for r in ratings if r.key == (item_id, media_kind)), None)

        ratings = remove_rating(ratings, item_id, media_kind)
        self.storage.save_ratings(ratings)

        event = LearningEvent(
            kind=LearningEventKind.REMOVED,
            item_id=item_id,
            media_kind=media_kind,
            old_value=previous.value if previous else None,
            timestamp=self._clock(),
        )
        return self._learn(event, ratings, profile)

    def _learn(
            self,
            event: LearningEvent,
            ratings: List[Rating],
            profile: Optional[UserProfile]
    ) -> LearningResult:
        """
        Apply an event to the current profile and persist the outcome.

        With no profile yet, the event only creates one once the builder has
        enough data. Below the full-update threshold the incremental loop
        keeps the profile as it was, so the stored copy is reconciled with a
        full rebuild and later patches start from the true totals.
        """
        current = profile or self.storage.load_profile()

        if current is None:
            with self._event_lock:
                self.learning.add_learning_event(event)
                created = self.profile_builder.build_profile(ratings)
            if created is None:
                logger.info("Not enough rating data for a profile yet")
                return LearningResult(updated_profile=None)

            self.storage.save_profile(created)
            return LearningResult(updated_profile=created)

        result = self.process_rating_event(event, current, ratings)

        if (self.learning.config.enable_real_time_updates
                and len(valid_ratings(ratings)) < MIN_RATINGS_FOR_FULL_UPDATE):
            rebuilt = self.profile_builder.build_profile(ratings)
            if rebuilt is not None:
                result.updated_profile = rebuilt

        self.storage.save_profile(result.updated_profile)

        self.learning.retrain_if_needed(result.should_retrain, ratings, result.updated_profile)
        return result

    # ===== ANALYTICS =====

    def get_analytics(self, profile: Optional[UserProfile] = None) -> Dict:
        """Learning activity, model state and cache statistics."""
        profile = profile or self.storage.load_profile()
        analytics = self.learning.get_learning_analytics(profile)

        model = self.neural_scorer.model
        analytics['model'] = {
            'initialized': model is not None,
            'version': model.version if model else 0,
            'accuracy': model.accuracy if model else 0.0,
            'last_trained_at': model.last_trained_at if model else None,
            'valid': model.is_valid(self._clock()) if model else False,
        }
        analytics['cache'] = self.content_lookup.cache.get_stats()
        return analytics

    def clear_data(self) -> None:
        """Delete all stored engine state and cached metadata."""
        self.storage.clear_all()
        self.content_lookup.cache.clear()
        self.learning.clear_learning_history()
        logger.info("✓ Cleared all personalization data")
