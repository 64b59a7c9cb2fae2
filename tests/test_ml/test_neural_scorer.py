"""Unit tests for cinematch_engine.ml.neural_scorer."""
import math
from datetime import timedelta
from unittest.mock import patch

import numpy as np
import pytest

from cinematch_engine.errors import ModelNotInitializedError
from cinematch_engine.ml.neural_scorer import (
    NetworkConfig,
    NeuralModel,
    NeuralScorer,
    TrainingResult,
    initialize_biases,
    initialize_weights,
)
from cinematch_engine.services.content_lookup import CachedContentLookup
from cinematch_engine.storage import BoundedCache


@pytest.fixture
def scorer(cached_lookup, engine_storage, seeded_rng, clock):
    return NeuralScorer(cached_lookup, engine_storage, rng=seeded_rng, clock=clock)


def _model(last_trained_at=None, accuracy=0.0) -> NeuralModel:
    config = NetworkConfig()
    return NeuralModel(
        weights=initialize_weights(config, np.random.default_rng(0)),
        biases=initialize_biases(config),
        config=config,
        last_trained_at=last_trained_at,
        accuracy=accuracy,
    )


class TestModelInitialization:
    """Tests for weight initialization and the forward pass."""

    def test_layer_shapes_and_xavier_bounds(self, scorer):
        """Test (fan_out, fan_in) matrices within the Glorot bound."""
        # Act
        model = scorer.initialize_model()

        # Assert
        assert [w.shape for w in model.weights] == [(64, 128), (32, 64), (16, 32), (1, 16)]
        assert [b.shape for b in model.biases] == [(64,), (32,), (16,), (1,)]
        assert np.abs(model.weights[0]).max() <= math.sqrt(2 / (128 + 64))
        assert model.version == 0

    def test_predict_before_initialization_raises(self, scorer):
        """Test prediction without a model."""
        with pytest.raises(ModelNotInitializedError):
            scorer.predict_from_features(np.zeros(128))

    def test_zero_input_predicts_midpoint(self, scorer):
        """Test that zero features with zero biases give sigmoid(0)."""
        # Arrange
        scorer.initialize_model()

        # Act & Assert
        assert scorer.predict_from_features(np.zeros(128)) == pytest.approx(5.0)

    def test_prediction_is_clamped(self, scorer):
        """Test outputs stay within 1-10 for extreme inputs."""
        # Arrange
        scorer.initialize_model()

        # Act
        predictions = [scorer.predict_from_features(np.full(128, value)) for value in (1.0, 1000.0, -1000.0)]

        # Assert
        assert all(1.0 <= p <= 10.0 for p in predictions)


class TestModelValidity:
    """Tests for NeuralModel.is_valid."""

    @pytest.mark.parametrize("age_days,accuracy,expected", [
        (15, 0.9, False),
        (13, 0.3, True),
        (1, 0.2, False),
        (1, 0.25, False),
    ])
    def test_age_and_accuracy(self, fixed_now, age_days, accuracy, expected):
        """Test the 14-day window and minimum accuracy."""
        # Arrange
        model = _model(last_trained_at=fixed_now - timedelta(days=age_days), accuracy=accuracy)

        # Act & Assert
        assert model.is_valid(fixed_now) is expected

    def test_never_trained_is_invalid(self, fixed_now):
        assert _model().is_valid(fixed_now) is False


class TestFallbackPrediction:
    """Tests for the heuristic fallback."""

    def test_blend_of_external_and_average(self, scorer, content_factory, sample_profile):
        """Test 70/30 blend."""
        # Act
        rating = scorer.fallback_prediction(content_factory(1, external_rating=9.0), sample_profile)

        # Assert
        assert rating == pytest.approx(9.0 * 0.7 + 8.0 * 0.3)

    def test_missing_external_rating_defaults_to_five(self, scorer, content_factory, sample_profile):
        # Act
        rating = scorer.fallback_prediction(content_factory(1, external_rating=0.0), sample_profile)

        # Assert
        assert rating == pytest.approx(5.9)

    def test_predict_rating_without_model(self, scorer, content_factory, sample_profile):
        """Test that predict_rating falls back instead of raising."""
        # Arrange
        content = content_factory(1, external_rating=9.0)

        # Act & Assert
        assert scorer.predict_rating(content, sample_profile) == pytest.approx(8.7)


class TestTraining:
    """Tests for train_model method."""

    def test_train_on_sample_history(self, scorer, sample_ratings, sample_profile, engine_storage, fixed_now):
        """Test a full training run on 25 ratings."""
        # Act
        result = scorer.train_model(sample_ratings, sample_profile)

        # Assert
        assert isinstance(result, TrainingResult)
        assert result.samples == 25
        assert 0.30 <= result.accuracy <= 0.95
        assert result.version == 1
        assert scorer.model.last_trained_at == fixed_now
        assert scorer.model.is_valid(fixed_now)
        assert engine_storage.load_model_state()['version'] == 1

    def test_insufficient_samples(self, scorer, sample_ratings, sample_profile):
        """Test that fewer than ten samples leave the model untouched."""
        # Act
        result = scorer.train_model(sample_ratings[:9], sample_profile)

        # Assert
        assert result is None
        assert scorer.model.version == 0

    def test_missing_content_uses_cached_placeholder(
            self, lookup_factory, engine_storage, seeded_rng, clock, sample_ratings, sample_profile
    ):
        """Test that deleted catalog items still train as placeholders."""
        # Arrange
        gone = sample_ratings[0]
        lookup = CachedContentLookup(
            lookup_factory(sample_ratings, missing=[gone.key]),
            BoundedCache(max_size=500, ttl_seconds=3600),
        )
        scorer = NeuralScorer(lookup, engine_storage, rng=seeded_rng, clock=clock)

        # Act
        result = scorer.train_model(sample_ratings, sample_profile)

        # Assert
        assert result.samples == 25
        assert lookup.get_cached(gone.item_id, gone.media_kind).is_placeholder

    def test_failing_lookup_is_skipped(
            self, lookup_factory, engine_storage, seeded_rng, clock, sample_ratings, sample_profile
    ):
        """Test that transient lookup errors drop the sample."""
        # Arrange
        lookup = CachedContentLookup(
            lookup_factory(sample_ratings, failing=[sample_ratings[0].key]),
            BoundedCache(max_size=500, ttl_seconds=3600),
        )
        scorer = NeuralScorer(lookup, engine_storage, rng=seeded_rng, clock=clock)

        # Act
        result = scorer.train_model(sample_ratings, sample_profile)

        # Assert
        assert result.samples == 24

    def test_training_publishes_new_model(self, scorer, sample_ratings, sample_profile):
        """Test that readers holding the old model never see partial updates."""
        # Arrange
        before = scorer.initialize_model()
        snapshot = [w.copy() for w in before.weights]

        # Act
        scorer.train_model(sample_ratings, sample_profile)

        # Assert
        assert scorer.model is not before
        assert before.version == 0
        assert all(np.array_equal(old, w) for old, w in zip(snapshot, before.weights))

    def test_train_model_async_without_worker(self, scorer, sample_ratings, sample_profile):
        """Test that the synchronous path returns a completed future."""
        # Act
        future = scorer.train_model_async(sample_ratings, sample_profile)

        # Assert
        assert future.done()
        assert future.result().version == 1


class TestPersistence:
    """Tests for model save and load."""

    def test_reload_valid_model(self, scorer, cached_lookup, engine_storage, clock, sample_ratings, sample_profile):
        """Test that a fresh scorer picks up the saved model."""
        # Arrange
        scorer.train_model(sample_ratings, sample_profile)

        # Act
        reloaded = NeuralScorer(cached_lookup, engine_storage, clock=clock).initialize_model()

        # Assert
        assert reloaded.version == 1
        assert reloaded.config.hidden_layers == (64, 32, 16)
        assert np.allclose(reloaded.weights[0], scorer.model.weights[0])

    def test_stale_model_is_replaced(
            self, scorer, cached_lookup, engine_storage, clock, fixed_now, sample_ratings, sample_profile
    ):
        """Test that a model older than two weeks is reinitialized."""
        # Arrange
        scorer.train_model(sample_ratings, sample_profile)
        clock.now = fixed_now + timedelta(days=15)

        # Act
        model = NeuralScorer(cached_lookup, engine_storage, clock=clock).initialize_model()

        # Assert
        assert model.version == 0
        assert model.last_trained_at is None

    def test_save_without_model(self, scorer):
        assert scorer.save_model() is False


class TestConfidence:
    """Tests for calculate_confidence method."""

    def test_no_model(self, scorer):
        assert scorer.calculate_confidence() == 0.5

    @pytest.mark.parametrize("accuracy,expected", [(0.2, 0.5), (0.8, 0.8)])
    def test_from_accuracy(self, scorer, accuracy, expected):
        """Test low accuracies fall back to the default confidence."""
        # Arrange
        scorer.initialize_model().accuracy = accuracy

        # Act & Assert
        assert scorer.calculate_confidence() == pytest.approx(expected)


class TestGenerateRecommendations:
    """Tests for generate_recommendations method."""

    def test_minimum_predicted_rating(self, scorer, content_factory, sample_profile):
        """Test that 5.9 is dropped and 6.0 at default confidence is kept."""
        # Arrange
        candidates = [content_factory(1), content_factory(2)]

        # Act
        with patch.object(scorer, 'predict_rating', side_effect=[5.9, 6.0]):
            recommendations = scorer.generate_recommendations(candidates, sample_profile)

        # Assert
        assert [r.content.item_id for r in recommendations] == [2]
        assert recommendations[0].confidence == 0.5
        assert recommendations[0].recommendation_type == "serendipitous"

    def test_types_and_ordering(self, scorer, content_factory, sample_profile):
        """Test bucket labels and descending match score."""
        # Arrange
        candidates = [content_factory(i) for i in (1, 2, 3)]

        # Act
        with patch.object(scorer, 'predict_rating', side_effect=[7.0, 9.0, 8.0]):
            recommendations = scorer.generate_recommendations(candidates, sample_profile)

        # Assert
        assert [r.predicted_rating for r in recommendations] == [9.0, 8.0, 7.0]
        assert [r.recommendation_type for r in recommendations] == ["safe", "safe", "exploratory"]
        assert recommendations[0].match_score == pytest.approx(90.0)

    def test_count_limit(self, scorer, content_factory, sample_profile):
        # Arrange
        candidates = [content_factory(i) for i in range(10)]

        # Act
        with patch.object(scorer, 'predict_rating', return_value=7.5):
            recommendations = scorer.generate_recommendations(candidates, sample_profile, count=3)

        # Assert
        assert len(recommendations) == 3

    def test_language_filter(self, scorer, content_factory, sample_profile):
        """Test that only requested original languages are scored."""
        # Arrange
        candidates = [content_factory(1), content_factory(2, original_language="fr")]

        # Act
        with patch.object(scorer, 'predict_rating', return_value=7.5) as mock_predict:
            recommendations = scorer.generate_recommendations(candidates, sample_profile, languages=["fr"])

        # Assert
        assert [r.content.item_id for r in recommendations] == [2]
        mock_predict.assert_called_once()

    def test_novelty_diversity_and_reasons(self, scorer, content_factory, sample_profile):
        """Test the per-recommendation annotations."""
        # Arrange
        novel = content_factory(1, genre_ids=[28, 12])
        diverse = content_factory(2, genre_ids=[27, 53, 9648], external_rating=5.0)
        loved = content_factory(3, genre_ids=[28], external_rating=9.0)

        # Assert
        assert scorer.calculate_novelty(novel, sample_profile) == pytest.approx(0.5)
        assert scorer.calculate_diversity(diverse, sample_profile) == pytest.approx(1.0)
        assert scorer.generate_reasons(loved, sample_profile, 8.5) == [
            "Predicted rating: 8.5/10",
            "From genres you love",
            "Highly rated title",
        ]


class TestEvaluateModel:
    """Tests for evaluate_model method."""

    def test_metrics(self, scorer, sample_ratings, sample_profile):
        """Test accuracy, MAE, RMSE and coverage for a constant prediction."""
        # Arrange
        scorer.initialize_model()

        # Act
        with patch.object(scorer, 'predict_rating', return_value=8.0):
            metrics = scorer.evaluate_model(sample_ratings, sample_profile)

        # Assert
        assert metrics['accuracy'] == pytest.approx(0.6)
        assert metrics['mae'] == pytest.approx(1.2)
        assert metrics['rmse'] == pytest.approx(math.sqrt(2))
        assert metrics['coverage'] == pytest.approx(1.0)

    def test_without_model(self, scorer, sample_ratings, sample_profile):
        # Act
        metrics = scorer.evaluate_model(sample_ratings, sample_profile)

        # Assert
        assert metrics == {'accuracy': 0.0, 'mae': 0.0, 'rmse': 0.0, 'coverage': 0.0}
