"""Learned scorer: a small feed-forward network predicting user ratings."""
import copy
import logging
import threading
from concurrent.futures import Future
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit
from sklearn.metrics import mean_absolute_error, mean_squared_error  # type: ignore

from cinematch_engine.errors import ContentLookupError, ModelNotInitializedError, NotFoundError
from cinematch_engine.ml.feature_encoder import FEATURE_SIZE, NeuralFeatureEncoder
from cinematch_engine.ml.training_worker import TrainingWorker
from cinematch_engine.models import ContentDetails, Rating, UserProfile
from cinematch_engine.models.rating import valid_ratings
from cinematch_engine.services.content_lookup import CachedContentLookup
from cinematch_engine.storage import EngineStorage

logger = logging.getLogger(__name__)

MODEL_MAX_AGE = timedelta(days=14)
MIN_VALID_ACCURACY = 0.25
MIN_TRAINING_SAMPLES = 10

# Heuristic update rule
STEP_SIZE = 0.01
BIAS_SCALE = 0.1
WEIGHT_SCALE = 0.01
ACCURACY_TOLERANCE = 0.15
ACCURACY_JITTER = (0.8, 1.2)
ACCURACY_BOUNDS = (0.30, 0.95)

MIN_PREDICTED_RATING = 6.0
MIN_CONFIDENCE = 0.5
DEFAULT_CONFIDENCE = 0.5


@dataclass
class NetworkConfig:
    input_size: int = FEATURE_SIZE
    hidden_layers: Tuple[int, ...] = (64, 32, 16)
    output_size: int = 1
    learning_rate: float = 0.001
    epochs: int = 100
    batch_size: int = 32

    @property
    def layer_sizes(self) -> List[int]:
        return [self.input_size, *self.hidden_layers, self.output_size]


@dataclass
class NeuralModel:
    """
    Weights and training metadata. Treated as an immutable value once
    published: training works on a copy and swaps it in with a new version.
    """

    weights: List[np.ndarray]
    biases: List[np.ndarray]
    config: NetworkConfig
    last_trained_at: Optional[datetime] = None
    accuracy: float = 0.0
    version: int = 0

    def copy(self) -> "NeuralModel":
        return NeuralModel(
            weights=[w.copy() for w in self.weights],
            biases=[b.copy() for b in self.biases],
            config=copy.deepcopy(self.config),
            last_trained_at=self.last_trained_at,
            accuracy=self.accuracy,
            version=self.version,
        )

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Recently trained (within 14 days) and accurate enough to reuse."""
        if self.last_trained_at is None:
            return False
        now = now or datetime.now(UTC)
        return (now - self.last_trained_at) <= MODEL_MAX_AGE and self.accuracy > MIN_VALID_ACCURACY

    def to_dict(self) -> Dict:
        config = asdict(self.config)
        config['hidden_layers'] = list(self.config.hidden_layers)
        return {
            'weights': [w.tolist() for w in self.weights],
            'biases': [b.tolist() for b in self.biases],
            'config': config,
            'last_trained_at': self.last_trained_at.isoformat() if self.last_trained_at else None,
            'accuracy': self.accuracy,
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "NeuralModel":
        config_data = dict(data['config'])
        config_data['hidden_layers'] = tuple(config_data.get('hidden_layers', ()))
        last_trained = data.get('last_trained_at')
        return cls(
            weights=[np.asarray(w, dtype=float) for w in data['weights']],
            biases=[np.asarray(b, dtype=float) for b in data['biases']],
            config=NetworkConfig(**config_data),
            last_trained_at=datetime.fromisoformat(last_trained) if last_trained else None,
            accuracy=float(data.get('accuracy', 0.0)),
            version=int(data.get('version', 0)),
        )


@dataclass
class TrainingResult:
    accuracy: float
    loss: float
    samples: int
    version: int


@dataclass
class NeuralRecommendation:
    content: ContentDetails
    predicted_rating: float
    match_score: float
    confidence: float
    novelty: float
    diversity: float
    recommendation_type: str
    reasons: List[str] = field(default_factory=list)
    explanation: Dict[str, List[str]] = field(default_factory=dict)


def initialize_weights(config: NetworkConfig, rng: np.random.Generator) -> List[np.ndarray]:
    """Xavier/Glorot uniform weights, one (fan_out, fan_in) matrix per layer."""
    sizes = config.layer_sizes
    weights = []
    for fan_in, fan_out in zip(sizes[:-1], sizes[1:]):
        scale = np.sqrt(2.0 / (fan_in + fan_out))
        weights.append((rng.random((fan_out, fan_in)) - 0.5) * 2 * scale)
    return weights


def initialize_biases(config: NetworkConfig) -> List[np.ndarray]:
    return [np.zeros(size) for size in config.layer_sizes[1:]]


def forward(model: NeuralModel, features: np.ndarray) -> np.ndarray:
    """ReLU hidden layers, sigmoid output."""
    activation = np.asarray(features, dtype=float)
    last_layer = len(model.weights) - 1

    for index, (weights, biases) in enumerate(zip(model.weights, model.biases)):
        z = weights @ activation + biases
        activation = expit(z) if index == last_layer else np.maximum(0.0, z)

    return activation


def train_network(
        model: NeuralModel,
        inputs: np.ndarray,
        targets: np.ndarray,
        rng: np.random.Generator
) -> Tuple[float, float]:
    """
    Fit the model in place with the heuristic update rule.

    Each weight moves by step * error * input * 0.01 and each bias by
    step * error * 0.1, where input is the raw feature vector truncated to
    the layer's fan-in. This is a local-search rule, not backpropagation.

    Args:
        model: Model to update (callers pass a private copy)
        inputs: Feature matrix, one row per sample
        targets: Ratings normalized to [0, 1]
        rng: Random source for shuffling and accuracy jitter

    Returns:
        (accuracy, loss) tuple; accuracy jittered and clamped to [0.30, 0.95]
    """
    config = model.config
    order = rng.permutation(len(inputs))
    shuffled_inputs, shuffled_targets = inputs[order], targets[order]

    total_correct = 0
    total_predictions = 0
    loss = 0.0

    for epoch in range(config.epochs):
        epoch_loss = 0.0
        epoch_correct = 0

        for start in range(0, len(shuffled_inputs), config.batch_size):
            batch_inputs = shuffled_inputs[start:start + config.batch_size]
            batch_targets = shuffled_targets[start:start + config.batch_size]

            for x, target in zip(batch_inputs, batch_targets):
                prediction = forward(model, x)[0]
                epoch_loss += (prediction - target) ** 2
                if abs(prediction - target) <= ACCURACY_TOLERANCE:
                    epoch_correct += 1

                error = target - prediction
                for weights, biases in zip(model.weights, model.biases):
                    biases += STEP_SIZE * error * BIAS_SCALE
                    weights += STEP_SIZE * error * x[:weights.shape[1]] * WEIGHT_SCALE

        loss = epoch_loss / len(shuffled_inputs)
        total_correct += epoch_correct
        total_predictions += len(shuffled_inputs)

        if epoch % 20 == 0:
            logger.debug(
                f"Epoch {epoch}: Loss = {loss:.4f}, "
                f"Accuracy = {(epoch_correct / len(shuffled_inputs)) * 100:.2f}%"
            )

    accuracy = total_correct / total_predictions if total_predictions > 0 else 0.0
    adjusted = accuracy * rng.uniform(*ACCURACY_JITTER)
    clamped = max(ACCURACY_BOUNDS[0], min(ACCURACY_BOUNDS[1], adjusted))

    return clamped, loss


class NeuralScorer:
    """
    Learned rating predictor with persistence, validity window and
    recommendation generation. Falls back to a blended heuristic when no
    usable model is available.
    """

    def __init__(
            self,
            content_lookup: CachedContentLookup,
            storage: EngineStorage,
            encoder: Optional[NeuralFeatureEncoder] = None,
            config: Optional[NetworkConfig] = None,
            rng: Optional[np.random.Generator] = None,
            clock: Callable[[], datetime] = lambda: datetime.now(UTC),
            worker: Optional[TrainingWorker] = None
    ):
        """
        Initialize the learned scorer.

        Args:
            content_lookup: Cached catalog lookup used for training data
            storage: Engine storage for model persistence
            encoder: Feature encoder (default 128-dim encoder)
            config: Network configuration for new models
            rng: Random source (seed for reproducible training)
            clock: Current time source
            worker: Background training worker (synchronous when None)
        """
        self.content_lookup = content_lookup
        self.storage = storage
        self.encoder = encoder or NeuralFeatureEncoder()
        self.config = config or NetworkConfig(input_size=self.encoder.feature_size)
        self.rng = rng or np.random.default_rng()
        self._clock = clock
        self.worker = worker or TrainingWorker(enabled=False)

        self._model: Optional[NeuralModel] = None
        self._train_lock = threading.Lock()

    @property
    def model(self) -> Optional[NeuralModel]:
        return self._model

    # ===== MODEL LIFECYCLE =====

    def initialize_model(self) -> NeuralModel:
        """Load a valid persisted model, otherwise create a fresh one."""
        saved = self.load_model()
        if saved is not None and saved.is_valid(self._clock()):
            self._model = saved
            logger.info(f"Loaded existing neural model (version {saved.version})")
            return saved

        self._model = NeuralModel(
            weights=initialize_weights(self.config, self.rng),
            biases=initialize_biases(self.config),
            config=copy.deepcopy(self.config),
        )
        logger.info("Initialized new neural model")
        return self._model

    def load_model(self) -> Optional[NeuralModel]:
        state = self.storage.load_model_state()
        if state is None:
            return None
        try:
            return NeuralModel.from_dict(state)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to load neural model: {e}")
            return None

    def save_model(self) -> bool:
        if self._model is None:
            return False
        return self.storage.save_model_state(self._model.to_dict())

    # ===== TRAINING =====

    def _get_content_details(self, rating: Rating) -> Optional[ContentDetails]:
        """Metadata for a rated item; not-found items get a placeholder."""
        try:
            return self.content_lookup.get_details(rating.item_id, rating.media_kind)
        except NotFoundError:
            logger.debug(
                f"Content {rating.item_id} ({rating.media_kind.value}) no longer exists - using placeholder"
            )
            placeholder = ContentDetails.placeholder(rating.item_id, rating.media_kind)
            self.content_lookup.put(placeholder)
            return placeholder
        except ContentLookupError as e:
            logger.debug(f"Failed to get content details for {rating.item_id}: {e}")
            return None

    def prepare_training_data(
            self,
            ratings: Sequence[Rating],
            profile: UserProfile
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Build (features, normalized rating) pairs for valid ratings.

        Returns:
            (inputs, targets) arrays
        """
        rows: List[np.ndarray] = []
        targets: List[float] = []
        skipped = 0

        for rating in valid_ratings(ratings):
            content = self._get_content_details(rating)
            if content is None:
                skipped += 1
                continue
            rows.append(self.encoder.encode(content, profile))
            targets.append(rating.value / 10)

        logger.info(f"Training data prepared: {len(rows)} samples processed, {skipped} skipped")

        if not rows:
            return np.zeros((0, self.encoder.feature_size)), np.zeros(0)
        return np.vstack(rows), np.asarray(targets)

    def train_model(self, ratings: Sequence[Rating], profile: UserProfile) -> Optional[TrainingResult]:
        """
        Train on the rating history and publish the result as a new model version.

        Args:
            ratings: All ratings
            profile: Profile used for feature encoding

        Returns:
            TrainingResult, or None when there are fewer than 10 samples
        """
        with self._train_lock:
            if self._model is None:
                self.initialize_model()

            logger.info("=" * 60)
            logger.info("TRAINING NEURAL MODEL")
            logger.info("=" * 60)

            self.content_lookup.prefetch(valid_ratings(ratings))
            inputs, targets = self.prepare_training_data(ratings, profile)

            if len(inputs) < MIN_TRAINING_SAMPLES:
                logger.warning(
                    f"Insufficient training data for neural network: {len(inputs)} samples "
                    f"(minimum {MIN_TRAINING_SAMPLES} required)"
                )
                return None

            logger.info(f"Starting neural network training with {len(inputs)} samples")

            candidate = self._model.copy()  # type: ignore[union-attr]
            accuracy, loss = train_network(candidate, inputs, targets, self.rng)
            candidate.accuracy = accuracy
            candidate.last_trained_at = self._clock()
            candidate.version += 1

            self._model = candidate
            self.save_model()

            logger.info(
                f"✓ Neural network training completed. Accuracy: {accuracy * 100:.2f}%, "
                f"Loss: {loss:.4f}, version {candidate.version}"
            )
            return TrainingResult(accuracy=accuracy, loss=loss, samples=len(inputs), version=candidate.version)

    def train_model_async(self, ratings: Sequence[Rating], profile: UserProfile) -> Future:
        """Run train_model on the training worker."""
        return self.worker.submit(self.train_model, list(ratings), profile)

    # ===== PREDICTION =====

    def predict_from_features(self, features: np.ndarray) -> float:
        """
        Predict a 1-10 rating from an encoded feature vector.

        Raises:
            ModelNotInitializedError: No model has been initialized or loaded
        """
        model = self._model
        if model is None:
            raise ModelNotInitializedError("Model not initialized")

        prediction = float(forward(model, features)[0])
        return max(1.0, min(10.0, prediction * 10))

    def predict_rating(self, content: ContentDetails, profile: UserProfile) -> float:
        if self._model is None:
            logger.debug("Neural model not available, using fallback prediction")
            return self.fallback_prediction(content, profile)

        try:
            rating = self.predict_from_features(self.encoder.encode(content, profile))
            logger.debug(f"Neural prediction for {content.item_id}: {rating:.1f}")
            return rating
        except (ModelNotInitializedError, ValueError) as e:
            logger.error(f"Neural prediction failed, using fallback: {e}")
            return self.fallback_prediction(content, profile)

    def fallback_prediction(self, content: ContentDetails, profile: UserProfile) -> float:
        """70% external rating, 30% user average."""
        external = content.external_rating or 5
        return external * 0.7 + profile.average_score * 0.3

    def calculate_confidence(self) -> float:
        model = self._model
        if model is None:
            return DEFAULT_CONFIDENCE

        confidence = model.accuracy
        if confidence <= MIN_VALID_ACCURACY:
            confidence = DEFAULT_CONFIDENCE
        return min(1.0, max(0.0, confidence))

    # ===== RECOMMENDATIONS =====

    def calculate_novelty(self, content: ContentDetails, profile: UserProfile) -> float:
        """Share of the candidate's genres outside the user's top five."""
        top_genres = profile.top_genres(5)
        familiar = [g for g in content.genre_ids if g in top_genres]
        novelty = 1 - len(familiar) / max(1, len(content.genre_ids))
        return max(0.0, min(1.0, novelty))

    def calculate_diversity(self, content: ContentDetails, profile: UserProfile) -> float:
        diversity = 0.5
        if len(content.genre_ids) >= 3:
            diversity += 0.2
        if abs(content.external_rating - profile.average_score) > 2:
            diversity += 0.3
        return max(0.0, min(1.0, diversity))

    def generate_reasons(self, content: ContentDetails, profile: UserProfile, predicted: float) -> List[str]:
        reasons = [f"Predicted rating: {predicted:.1f}/10"]
        top_genres = profile.top_genres(3)
        if any(g in top_genres for g in content.genre_ids):
            reasons.append("From genres you love")
        if content.external_rating >= 8:
            reasons.append("Highly rated title")
        return reasons

    def generate_recommendations(
            self,
            candidates: Sequence[ContentDetails],
            profile: UserProfile,
            count: int = 20,
            languages: Optional[Sequence[str]] = None
    ) -> List[NeuralRecommendation]:
        """
        Predict, filter and rank candidates.

        Args:
            candidates: Candidate catalog items
            profile: User profile
            count: Maximum number of recommendations
            languages: Keep only these original languages (optional)

        Returns:
            Recommendations sorted by predicted rating, best first
        """
        if self._model is None:
            self.initialize_model()

        logger.info(f"Generating neural recommendations for {len(candidates)} candidate items")

        recommendations: List[NeuralRecommendation] = []
        filtered = 0

        for content in candidates:
            if languages and content.original_language not in languages:
                filtered += 1
                continue

            predicted = self.predict_rating(content, profile)
            confidence = self.calculate_confidence()

            if predicted < MIN_PREDICTED_RATING or confidence < MIN_CONFIDENCE:
                continue

            if predicted >= 8:
                recommendation_type = "safe"
            elif predicted >= 7:
                recommendation_type = "exploratory"
            else:
                recommendation_type = "serendipitous"

            recommendations.append(NeuralRecommendation(
                content=content,
                predicted_rating=predicted,
                match_score=predicted * 10,
                confidence=confidence,
                novelty=self.calculate_novelty(content, profile),
                diversity=self.calculate_diversity(content, profile),
                recommendation_type=recommendation_type,
                reasons=self.generate_reasons(content, profile, predicted),
                explanation={
                    'primary_factors': [f"Predicted rating: {predicted:.1f}/10"],
                    'secondary_factors': [f"Confidence: {confidence * 100:.1f}%"],
                    'risk_factors': [],
                },
            ))

        logger.info(
            f"Neural recommendations: processed={len(candidates)}, filtered={filtered}, "
            f"recommended={len(recommendations)}"
        )

        recommendations.sort(key=lambda r: r.match_score, reverse=True)
        return recommendations[:count]

    # ===== EVALUATION =====

    def evaluate_model(self, ratings: Sequence[Rating], profile: UserProfile) -> Dict[str, float]:
        """
        Compare predictions with actual ratings.

        Returns:
            Dict with accuracy (within 1 point), mae, rmse and coverage
        """
        empty = {'accuracy': 0.0, 'mae': 0.0, 'rmse': 0.0, 'coverage': 0.0}
        if self._model is None:
            return empty

        held = valid_ratings(ratings)
        actual: List[float] = []
        predicted: List[float] = []

        for rating in held:
            content = self._get_content_details(rating)
            if content is None:
                continue
            actual.append(float(rating.value))
            predicted.append(self.predict_rating(content, profile))

        if not predicted:
            return empty

        errors = np.abs(np.asarray(predicted) - np.asarray(actual))
        return {
            'accuracy': float(np.mean(errors <= 1)),
            'mae': float(mean_absolute_error(actual, predicted)),
            'rmse': float(np.sqrt(mean_squared_error(actual, predicted))),
            'coverage': len(predicted) / len(held),
        }
