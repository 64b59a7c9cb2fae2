"""Scoring models"""

from cinematch_engine.ml.content_scorer import ContentBasedScorer, ContentRecommendation, GenreCombination
from cinematch_engine.ml.feature_encoder import NeuralFeatureEncoder
from cinematch_engine.ml.neural_scorer import NeuralModel, NeuralRecommendation, NeuralScorer, TrainingResult
from cinematch_engine.ml.training_worker import TrainingWorker

__all__ = [
    "ContentBasedScorer",
    "ContentRecommendation",
    "GenreCombination",
    "NeuralFeatureEncoder",
    "NeuralModel",
    "NeuralRecommendation",
    "NeuralScorer",
    "TrainingResult",
    "TrainingWorker",
]
