"""Feature encoding for the learned scorer."""
import math
from datetime import UTC, datetime
from typing import Callable, Dict, Sequence

import numpy as np

from cinematch_engine.models import ContentDetails, PersonAffinity, UserProfile


FEATURE_SIZE = 128
TOP_N_GENRES = 20
PERSON_SLOTS = 10
PERIOD_SLOTS = 10
QUALITY_SLOTS = 5
DEMOGRAPHIC_SLOTS = 10
TOP_CAST = 5
TOP_DIRECTORS = 3
PERSON_WEIGHT_CAP = 50
BASE_YEAR = 1900


# noinspection PyMethodMayBeStatic
class NeuralFeatureEncoder:
    """
    Encode a (candidate, profile) pair as a fixed-length vector in [0, 1].

    Layout:
        content (4) | top-genre one-hot (20) | temporal (3) | user (3) |
        cast (10) | directors (10) | period (10) | quality (5) |
        demographics (10) | zero padding up to feature_size
    """

    def __init__(
        self,
        feature_size: int = FEATURE_SIZE,
        top_n_genres: int = TOP_N_GENRES,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC)
    ):
        """
        Initialize feature encoder.

        Args:
            feature_size: Output vector length (pad or truncate)
            top_n_genres: Number of profile genres to one-hot encode
            clock: Source of the current date, for year normalization
        """
        self.feature_size = feature_size
        self.top_n_genres = top_n_genres
        self._clock = clock

    def content_features(self, content: ContentDetails) -> np.ndarray:
        """External rating, popularity, adult flag, genre count."""
        return np.array([
            (content.external_rating or 0) / 10,
            min(1.0, (content.vote_count or 0) / 10000),
            1.0 if content.adult else 0.0,
            min(1.0, len(content.genre_ids) / 5) if content.genre_ids else 0.0,
        ])

    def genre_features(self, content: ContentDetails, profile: UserProfile) -> np.ndarray:
        """One-hot presence against the profile's top genres."""
        features = np.zeros(self.top_n_genres)
        top_genres = profile.top_genres(self.top_n_genres)
        for genre_id in content.genre_ids:
            if genre_id in top_genres:
                features[top_genres.index(genre_id)] = 1.0
        return features

    def temporal_features(self, content: ContentDetails) -> np.ndarray:
        """Normalized year plus cyclical year-within-decade encoding."""
        year = content.release_year
        if year is None:
            return np.array([0.0, 0.5, 0.5])

        current_year = self._clock().year
        normalized_year = max(0.0, min(1.0, (year - BASE_YEAR) / (current_year - BASE_YEAR)))
        angle = 2 * math.pi * (year % 10) / 10
        return np.array([
            normalized_year,
            (math.sin(angle) + 1) / 2,
            (math.cos(angle) + 1) / 2,
        ])

    def user_features(self, profile: UserProfile) -> np.ndarray:
        return np.array([
            profile.average_score / 10,
            min(1.0, profile.total_ratings / 100),
            profile.learning_phase.encoding,
        ])

    def person_features(
        self,
        people: Sequence,
        favorites: Dict[int, PersonAffinity]
    ) -> np.ndarray:
        """Familiarity slots for the first few credited people."""
        features = np.zeros(PERSON_SLOTS)
        for index, person in enumerate(people[:PERSON_SLOTS]):
            affinity = favorites.get(person.id)
            if affinity is not None:
                features[index] = min(1.0, affinity.weight / PERSON_WEIGHT_CAP)
        return features

    def period_features(self, content: ContentDetails, profile: UserProfile) -> np.ndarray:
        features = np.zeros(PERIOD_SLOTS)
        decade = content.decade
        if decade is not None:
            features[0] = profile.period_preference.get(decade, 0) / 100
        return features

    def quality_features(self, content: ContentDetails, profile: UserProfile) -> np.ndarray:
        """Distance above the user's minimum rating and vote-count tolerance."""
        features = np.zeros(QUALITY_SLOTS)
        tolerance = profile.quality_tolerance
        if tolerance is None:
            return features

        if tolerance.min_rating:
            features[0] = max(0.0, min(1.0, (content.external_rating - tolerance.min_rating) / 10))
        if tolerance.min_vote_count:
            features[1] = max(0.0, min(1.0, content.vote_count / tolerance.min_vote_count))
        return features

    def demographic_features(self, content: ContentDetails, profile: UserProfile) -> np.ndarray:
        features = np.zeros(DEMOGRAPHIC_SLOTS)
        demographics = profile.demographics
        if demographics is None:
            return features

        if demographics.age:
            features[0] = demographics.age / 100
        if demographics.gender:
            features[1] = {'male': 1.0, 'female': 0.5}.get(demographics.gender, 0.25)
        if demographics.language and content.original_language:
            features[2] = 1.0 if demographics.language == content.original_language else 0.0
        return features

    def encode(self, content: ContentDetails, profile: UserProfile) -> np.ndarray:
        """
        Build the feature vector for one candidate.

        Args:
            content: Candidate metadata
            profile: User profile

        Returns:
            Array of length feature_size
        """
        features = np.concatenate([
            self.content_features(content),
            self.genre_features(content, profile),
            self.temporal_features(content),
            self.user_features(profile),
            self.person_features(content.top_cast(TOP_CAST), profile.favorite_actors),
            self.person_features(content.directors[:TOP_DIRECTORS], profile.favorite_directors),
            self.period_features(content, profile),
            self.quality_features(content, profile),
            self.demographic_features(content, profile),
        ])

        if len(features) < self.feature_size:
            features = np.pad(features, (0, self.feature_size - len(features)))
        return features[:self.feature_size]

    def encode_batch(
        self,
        contents: Sequence[ContentDetails],
        profile: UserProfile
    ) -> np.ndarray:
        """Stack feature vectors for many candidates."""
        if not contents:
            return np.zeros((0, self.feature_size))
        return np.vstack([self.encode(content, profile) for content in contents])
