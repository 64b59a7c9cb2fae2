"""Unit tests for cinematch_engine.services.learning_service."""
import pytest

from cinematch_engine.models import LearningPhase, MediaKind, Rating, RatingSentinel, UserProfile
from cinematch_engine.services.learning_service import (
    calculate_accuracy,
    determine_learning_phase,
    generate_learning_insights,
    generate_learning_metrics,
    generate_phase_description,
    phase_for_count,
    predict_rating_from_average,
)


class TestDetermineLearningPhase:
    """Tests for learning phase thresholds."""

    @pytest.mark.parametrize("count,expected", [
        (0, LearningPhase.INITIAL),
        (4, LearningPhase.INITIAL),
        (5, LearningPhase.PROFILING),
        (49, LearningPhase.PROFILING),
        (50, LearningPhase.TESTING),
        (69, LearningPhase.TESTING),
        (70, LearningPhase.OPTIMIZING),
        (150, LearningPhase.OPTIMIZING),
    ])
    def test_phase_for_count(self, count, expected):
        """Test phase boundaries."""
        assert phase_for_count(count) == expected

    def test_phase_never_moves_backwards(self):
        """Test monotonic progression as the count grows."""
        # Act
        ordinals = [phase_for_count(count).ordinal for count in range(0, 200)]

        # Assert
        assert ordinals == sorted(ordinals)

    def test_only_valid_ratings_count(self, ratings_factory):
        """Test that sentinel ratings do not advance the phase."""
        # Arrange
        ratings = ratings_factory(4) + [
            Rating(item_id=100 + i, media_kind=MediaKind.MOVIE, value=RatingSentinel.SKIP)
            for i in range(10)
        ]

        # Act & Assert
        assert determine_learning_phase(ratings) == LearningPhase.INITIAL


class TestAccuracy:
    """Tests for accuracy scoring."""

    @pytest.mark.parametrize("average,expected", [(7.5, 8), (7.49, 7), (0.2, 1), (12.0, 10)])
    def test_predict_rating_from_average(self, average, expected):
        """Test half-up rounding and clamping."""
        assert predict_rating_from_average(UserProfile(average_score=average)) == expected

    def test_calculate_accuracy_within_tolerance(self):
        """Test percentage of ratings within two points of the prediction."""
        # Arrange
        profile = UserProfile(average_score=7.0)
        ratings = [Rating(item_id=i, media_kind=MediaKind.MOVIE, value=v)
                   for i, v in enumerate([5, 7, 9, 10, 2])]

        # Act
        accuracy = calculate_accuracy(ratings, profile)

        # Assert
        assert accuracy == pytest.approx(60.0)

    def test_calculate_accuracy_without_ratings(self):
        """Test accuracy with nothing to check."""
        assert calculate_accuracy([], UserProfile(average_score=7.0)) == 0.0


class TestDescriptionsAndInsights:
    """Tests for narrative helpers."""

    def test_phase_descriptions_mention_progress(self):
        """Test descriptions for each phase."""
        # Assert
        assert "3/5" in generate_phase_description(LearningPhase.INITIAL, 3)
        assert "20/50" in generate_phase_description(LearningPhase.PROFILING, 20)
        assert "5/20" in generate_phase_description(LearningPhase.TESTING, 55)
        assert "120" in generate_phase_description(LearningPhase.OPTIMIZING, 120)

    def test_generous_rater_insight(self, sample_profile):
        """Test insight for mostly high ratings."""
        # Arrange
        ratings = [Rating(item_id=i, media_kind=MediaKind.SHOW, value=9) for i in range(10)]

        # Act
        insights = generate_learning_insights(sample_profile, ratings)

        # Assert
        assert any("generously" in i for i in insights)
        assert any("shows over movies" in i for i in insights)

    def test_critical_rater_insight(self, sample_profile):
        """Test insight for many low ratings."""
        # Arrange
        ratings = [Rating(item_id=i, media_kind=MediaKind.MOVIE, value=3 if i < 4 else 7) for i in range(10)]

        # Act
        insights = generate_learning_insights(sample_profile, ratings)

        # Assert
        assert any("critical" in i for i in insights)
        assert any("movie-focused" in i for i in insights)

    def test_genre_breadth_insights(self):
        """Test narrow and broad genre insights."""
        # Arrange
        narrow = UserProfile(genre_distribution={28: 60.0, 18: 40.0})
        broad = UserProfile(genre_distribution={g: 10.0 for g in range(10)})

        # Assert
        assert any("few genres" in i for i in generate_learning_insights(narrow, []))
        assert any("many genres" in i for i in generate_learning_insights(broad, []))

    def test_learning_metrics(self, sample_profile, sample_ratings):
        """Test metrics snapshot."""
        # Arrange
        sample_profile.accuracy_score = 80.0

        # Act
        metrics = generate_learning_metrics(sample_ratings, sample_profile)

        # Assert
        assert metrics['phase'] == LearningPhase.PROFILING
        assert metrics['total_ratings'] == 25
        assert metrics['accuracy_score'] == 80.0
        assert metrics['last_phase_change'] == sample_profile.last_updated
