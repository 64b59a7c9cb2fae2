"""Service that builds a user taste profile from rating history."""
from datetime import UTC, datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

import pandas as pd

from cinematch_engine.errors import ContentLookupError
from cinematch_engine.models import (
    ContentDetails,
    GenreQuality,
    LearningPhase,
    PersonAffinity,
    Rating,
    UserProfile,
)
from cinematch_engine.models.rating import valid_ratings
from cinematch_engine.services.content_lookup import CachedContentLookup
from cinematch_engine.services.learning_service import (
    MIN_RATINGS_FOR_PROFILE,
    calculate_accuracy,
    determine_learning_phase,
    generate_phase_description,
)

logger = logging.getLogger(__name__)

QUALITY_BOOST = 1.2
QUALITY_PENALTY = 0.8
QUALITY_GAP = 2
TOP_CAST_FOR_PROFILE = 3
MIN_RESOLVED_FOR_TRAINING = 20


def quality_adjustment(avg_user_rating: float, avg_external_rating: float) -> float:
    """
    Genre affinity multiplier from the gap between user and external ratings.

    Loving a genre despite mediocre external ratings is a strong signal (1.2);
    disliking it despite high external ratings is a weak one (0.8).

    Args:
        avg_user_rating: User's mean rating for the genre (1-10)
        avg_external_rating: Catalog mean rating for the same items (1-10)

    Returns:
        1.2, 0.8 or 1.0
    """
    rating_diff = avg_user_rating - avg_external_rating
    if rating_diff > QUALITY_GAP:
        return QUALITY_BOOST
    if rating_diff < -QUALITY_GAP:
        return QUALITY_PENALTY
    return 1.0


def normalize_to_percentages(scores: Dict) -> Dict:
    """Rescale positive scores so they sum to 100."""
    total = sum(scores.values())
    if total <= 0:
        return dict(scores)
    return {key: (value / total) * 100 for key, value in scores.items()}


# noinspection PyMethodMayBeStatic
class ProfileBuilder:
    """
    Aggregates rating history plus catalog metadata into a UserProfile.
    Requires at least 5 valid ratings that resolve to catalog items.
    """

    def __init__(
            self,
            content_lookup: CachedContentLookup,
            neural_scorer=None,
            min_ratings: int = MIN_RATINGS_FOR_PROFILE,
            clock: Callable[[], datetime] = lambda: datetime.now(UTC)
    ):
        """
        Initialize the profile builder.

        Args:
            content_lookup: Cached catalog lookup
            neural_scorer: Learned scorer retrained on large enough histories (optional)
            min_ratings: Minimum valid ratings and resolved items for a profile
            clock: Current time source for last_updated
        """
        self.content_lookup = content_lookup
        self.neural_scorer = neural_scorer
        self.min_ratings = min_ratings
        self._clock = clock

    def _resolve_content(self, ratings: Sequence[Rating]) -> List[Tuple[ContentDetails, int]]:
        """Fetch metadata for each rating, skipping items that fail."""
        self.content_lookup.prefetch(ratings)

        resolved = []
        for rating in ratings:
            try:
                content = self.content_lookup.get_details(rating.item_id, rating.media_kind)
            except ContentLookupError as e:
                logger.warning(f"Skipping {rating.media_kind.value} {rating.item_id}: {e}")
                continue
            resolved.append((content, rating.value))
        return resolved

    def build_profile(self, ratings: Sequence[Rating]) -> Optional[UserProfile]:
        """
        Build a full profile from rating history.

        Args:
            ratings: All ratings, including sentinel values

        Returns:
            UserProfile, or None when there is not enough data
        """
        valid = valid_ratings(ratings)
        if len(valid) < self.min_ratings:
            logger.info(f"Not enough data for a profile: {len(valid)} valid ratings")
            return None

        logger.info(f"Generating profile for {len(valid)} valid ratings")

        resolved = self._resolve_content(valid)
        if len(resolved) < self.min_ratings:
            logger.warning(
                f"Not enough resolvable content for a profile: {len(resolved)}/{len(valid)}"
            )
            return None

        learning_phase = determine_learning_phase(ratings)
        genre_distribution, genre_quality = self._genre_preferences(resolved)

        profile = UserProfile(
            genre_distribution=genre_distribution,
            genre_quality_distribution=genre_quality,
            period_preference=self._period_preferences(resolved),
            average_score=sum(r.value for r in valid) / len(valid),
            total_ratings=len(valid),
            learning_phase=learning_phase,
            last_updated=self._clock(),
        )
        profile.favorite_actors, profile.favorite_directors = self._favorite_people(resolved)

        if learning_phase in (LearningPhase.TESTING, LearningPhase.OPTIMIZING):
            profile.accuracy_score = calculate_accuracy(ratings, profile)

        if len(resolved) >= MIN_RESOLVED_FOR_TRAINING and self.neural_scorer is not None:
            try:
                self.neural_scorer.train_model(ratings, profile)
                logger.info("Neural model trained with the new profile")
            except Exception as e:
                logger.warning(f"Neural model training failed: {e}")

        logger.info(
            f"✓ Built profile: {len(profile.genre_distribution)} genres, "
            f"phase={profile.learning_phase.value}, avg={profile.average_score:.2f}"
        )
        return profile

    def _genre_preferences(
            self,
            resolved: List[Tuple[ContentDetails, int]]
    ) -> Tuple[Dict[int, float], Dict[int, GenreQuality]]:
        """Quality-aware genre distribution plus per-genre statistics."""
        rows = [
            {'genre_id': genre_id, 'user_rating': rating, 'external_rating': content.external_rating}
            for content, rating in resolved
            for genre_id in content.genre_ids
        ]
        if not rows:
            return {}, {}

        stats = pd.DataFrame(rows).groupby('genre_id').agg(
            avg_user=('user_rating', 'mean'),
            avg_external=('external_rating', 'mean'),
            count=('user_rating', 'size'),
        )

        total_resolved = len(resolved)
        raw_scores: Dict[int, float] = {}
        quality: Dict[int, GenreQuality] = {}

        for genre_id, row in stats.iterrows():
            frequency = row['count'] / total_resolved
            adjustment = quality_adjustment(row['avg_user'], row['avg_external'])
            score = (row['avg_user'] / 10) * frequency * 100 * adjustment

            raw_scores[int(genre_id)] = float(score)
            quality[int(genre_id)] = GenreQuality(
                average_external_rating=float(row['avg_external']),
                average_user_rating=float(row['avg_user']),
                count=int(row['count']),
            )
            logger.debug(
                f"Genre {genre_id}: user={row['avg_user']:.2f}, external={row['avg_external']:.2f}, "
                f"freq={frequency:.2f}, quality_adj={adjustment:.2f}, score={score:.2f}"
            )

        return normalize_to_percentages(raw_scores), quality

    def _period_preferences(self, resolved: List[Tuple[ContentDetails, int]]) -> Dict[str, float]:
        """Decade distribution, same scoring as genres without quality adjustment."""
        rows = [
            {'decade': content.decade, 'user_rating': rating}
            for content, rating in resolved
            if content.decade is not None
        ]
        if not rows:
            return {}

        stats = pd.DataFrame(rows).groupby('decade')['user_rating'].agg(['mean', 'size'])
        total_resolved = len(resolved)

        raw_scores = {
            str(decade): float((row['mean'] / 10) * (row['size'] / total_resolved) * 100)
            for decade, row in stats.iterrows()
        }
        return normalize_to_percentages(raw_scores)

    def _favorite_people(
            self,
            resolved: List[Tuple[ContentDetails, int]]
    ) -> Tuple[Dict[int, PersonAffinity], Dict[int, PersonAffinity]]:
        """Accumulate rating values for top-billed cast and directors."""
        actors: Dict[int, PersonAffinity] = {}
        directors: Dict[int, PersonAffinity] = {}

        for content, rating in resolved:
            for actor in content.top_cast(TOP_CAST_FOR_PROFILE):
                actors.setdefault(actor.id, PersonAffinity(name=actor.name)).weight += rating
            for director in content.directors:
                directors.setdefault(director.id, PersonAffinity(name=director.name)).weight += rating

        return actors, directors


def generate_profile_description(profile: UserProfile, genre_names: Dict[int, str]) -> str:
    """Narrative summary of a profile for display."""
    top_genres = [genre_names.get(genre_id, "Unknown") for genre_id in profile.top_genres(3)]

    ranked_periods = sorted(profile.period_preference.items(), key=lambda kv: kv[1], reverse=True)
    top_period = ranked_periods[0][0] if ranked_periods else "2000s"

    top_actors = [
        person.name for person in
        sorted(profile.favorite_actors.values(), key=lambda p: p.weight, reverse=True)[:2]
    ]

    description = generate_phase_description(profile.learning_phase, profile.total_ratings) + "\n\n"

    if top_genres:
        description += f"You gravitate towards {', '.join(top_genres)}. "

    description += (
        f"You prefer titles from the {top_period} and give an average score of "
        f"{profile.average_score:.1f}. "
    )

    if top_actors:
        description += f"You especially enjoy work featuring {' and '.join(top_actors)}."

    if profile.learning_phase == LearningPhase.TESTING and profile.accuracy_score:
        description += f"\n\nReached {profile.accuracy_score:.1f}% accuracy in the testing phase!"

    quality_aware = [
        genre_id for genre_id, stats in profile.genre_quality_distribution.items()
        if abs(stats.average_user_rating - stats.average_external_rating) > 1
    ]
    if quality_aware:
        description += "\n\nYou judge content quality consistently and independently of the crowd."

    return description
