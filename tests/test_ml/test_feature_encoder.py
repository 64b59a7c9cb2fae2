"""Unit tests for cinematch_engine.ml.feature_encoder."""
import math

import numpy as np
import pytest

from cinematch_engine.ml.feature_encoder import FEATURE_SIZE, NeuralFeatureEncoder
from cinematch_engine.models import CastMember, Demographics, QualityTolerance


@pytest.fixture
def encoder(clock):
    return NeuralFeatureEncoder(clock=clock)


class TestEncode:
    """Tests for encode method."""

    def test_vector_length_and_range(self, encoder, content_factory, sample_profile):
        """Test fixed size and [0, 1] values."""
        # Act
        features = encoder.encode(content_factory(3), sample_profile)

        # Assert
        assert features.shape == (FEATURE_SIZE,)
        assert features.min() >= 0.0
        assert features.max() <= 1.0

    def test_padding_is_zero(self, clock, content_factory, sample_profile):
        """Test that unused slots are zero-padded."""
        # Arrange
        encoder = NeuralFeatureEncoder(feature_size=200, clock=clock)

        # Act
        features = encoder.encode(content_factory(3), sample_profile)

        # Assert
        assert features.shape == (200,)
        assert np.all(features[75:] == 0.0)

    def test_truncation(self, clock, content_factory, sample_profile):
        """Test that a small feature size truncates the vector."""
        # Arrange
        encoder = NeuralFeatureEncoder(feature_size=10, clock=clock)

        # Act
        features = encoder.encode(content_factory(3), sample_profile)

        # Assert
        assert features.shape == (10,)

    def test_encode_batch(self, encoder, content_factory, sample_profile):
        """Test stacking several candidates."""
        # Act
        batch = encoder.encode_batch([content_factory(1), content_factory(2)], sample_profile)
        empty = encoder.encode_batch([], sample_profile)

        # Assert
        assert batch.shape == (2, FEATURE_SIZE)
        assert empty.shape == (0, FEATURE_SIZE)


class TestFeatureGroups:
    """Tests for individual feature groups."""

    def test_content_features(self, encoder, content_factory):
        """Test rating, popularity, adult flag and genre count."""
        # Arrange
        content = content_factory(1, external_rating=8.0, vote_count=20000, adult=True, genre_ids=[28, 12])

        # Act
        features = encoder.content_features(content)

        # Assert
        np.testing.assert_allclose(features, [0.8, 1.0, 1.0, 0.4])

    def test_genre_one_hot_against_top_genres(self, encoder, content_factory, sample_profile):
        """Test one-hot positions follow the profile's genre ranking."""
        # Arrange
        content = content_factory(1, genre_ids=[28, 12, 27])

        # Act
        features = encoder.genre_features(content, sample_profile)

        # Assert
        assert features[0] == 1.0
        assert features[5] == 1.0
        assert features.sum() == 2.0

    def test_temporal_features(self, encoder, content_factory):
        """Test normalized year and cyclical decade position."""
        # Arrange
        content = content_factory(1, release_date="2000-05-01")

        # Act
        features = encoder.temporal_features(content)

        # Assert
        np.testing.assert_allclose(features, [100 / 126, 0.5, 1.0])

    def test_temporal_features_without_date(self, encoder, content_factory):
        """Test the neutral default for unknown years."""
        # Act
        features = encoder.temporal_features(content_factory(1, release_date=None))

        # Assert
        np.testing.assert_allclose(features, [0.0, 0.5, 0.5])

    def test_user_features(self, encoder, sample_profile):
        """Test average, rating count and phase encoding."""
        # Act
        features = encoder.user_features(sample_profile)

        # Assert
        np.testing.assert_allclose(features, [0.8, 0.25, 0.5])

    def test_person_familiarity(self, encoder, sample_profile):
        """Test capped familiarity weights per credited slot."""
        # Arrange
        cast = [CastMember(id=1, name="Stranger"), CastMember(id=101, name="Actor 1")]

        # Act
        features = encoder.person_features(cast, sample_profile.favorite_actors)

        # Assert
        assert features[0] == 0.0
        assert features[1] == pytest.approx(20 / 50)

    def test_quality_and_demographics(self, encoder, content_factory, sample_profile):
        """Test optional profile sections."""
        # Arrange
        content = content_factory(1, external_rating=8.0, vote_count=50, original_language="fr")
        sample_profile.quality_tolerance = QualityTolerance(min_rating=6.0, min_vote_count=100)
        sample_profile.demographics = Demographics(age=30, gender="female", language="fr")

        # Act
        quality = encoder.quality_features(content, sample_profile)
        demographics = encoder.demographic_features(content, sample_profile)

        # Assert
        np.testing.assert_allclose(quality[:2], [0.2, 0.5])
        np.testing.assert_allclose(demographics[:3], [0.3, 0.5, 1.0])

    def test_optional_sections_absent(self, encoder, content_factory, sample_profile):
        """Test zeros when the profile has no tolerance or demographics."""
        # Act
        quality = encoder.quality_features(content_factory(1), sample_profile)
        demographics = encoder.demographic_features(content_factory(1), sample_profile)

        # Assert
        assert not quality.any()
        assert not demographics.any()

    def test_period_feature(self, encoder, content_factory, sample_profile):
        """Test the decade preference slot."""
        # Act
        features = encoder.period_features(content_factory(1, release_date="2003-01-01"), sample_profile)

        # Assert
        assert features[0] == pytest.approx(0.6)
        assert math.isclose(features[1:].sum(), 0.0)
