"""Learning-phase rules and profile-level learning insights."""
import math
from datetime import UTC, datetime
from typing import Dict, List, Sequence

from cinematch_engine.models import LearningPhase, MediaKind, Rating, UserProfile
from cinematch_engine.models.rating import valid_ratings

MIN_RATINGS_FOR_PROFILE = 5
PROFILING_THRESHOLD = 50
TESTING_WINDOW = 20
ACCURACY_TOLERANCE = 2


def determine_learning_phase(ratings: Sequence[Rating]) -> LearningPhase:
    """
    Learning phase for a full rating history, by valid-rating count.

    <5 initial, <50 profiling, <70 testing, otherwise optimizing.
    """
    return phase_for_count(len(valid_ratings(ratings)))


def phase_for_count(count: int) -> LearningPhase:
    if count < MIN_RATINGS_FOR_PROFILE:
        return LearningPhase.INITIAL
    if count < PROFILING_THRESHOLD:
        return LearningPhase.PROFILING
    if count < PROFILING_THRESHOLD + TESTING_WINDOW:
        return LearningPhase.TESTING
    return LearningPhase.OPTIMIZING


def predict_rating_from_average(profile: UserProfile) -> int:
    """Baseline prediction: the profile average, rounded and clamped to [1, 10]."""
    return max(1, min(10, math.floor(profile.average_score + 0.5)))


def calculate_accuracy(ratings: Sequence[Rating], profile: UserProfile) -> float:
    """
    Percentage of held ratings the profile predicts within ±2 points.

    Args:
        ratings: Rating history to check against
        profile: Freshly built profile

    Returns:
        Accuracy in [0, 100], 0 when there is nothing to check
    """
    held = valid_ratings(ratings)
    if not held:
        return 0.0

    predicted = predict_rating_from_average(profile)
    correct = sum(1 for r in held if abs(predicted - r.value) <= ACCURACY_TOLERANCE)

    return (correct / len(held)) * 100


def generate_phase_description(phase: LearningPhase, ratings_count: int) -> str:
    if phase == LearningPhase.INITIAL:
        return f"Getting to know your taste! {ratings_count}/{MIN_RATINGS_FOR_PROFILE} titles rated."
    if phase == LearningPhase.PROFILING:
        return (
            f"Refining your profile! {ratings_count}/{PROFILING_THRESHOLD} titles rated. "
            "Keep rating movies and shows from different genres."
        )
    if phase == LearningPhase.TESTING:
        return (
            "Testing phase: measuring how accurate my suggestions are. "
            f"{ratings_count - PROFILING_THRESHOLD}/{TESTING_WINDOW} test titles rated."
        )
    return (
        f"Continuous learning mode! You have rated {ratings_count} titles. "
        "Every new rating makes me smarter."
    )


def generate_learning_insights(profile: UserProfile, ratings: Sequence[Rating]) -> List[str]:
    """Narrative observations about rating behaviour and genre breadth."""
    insights: List[str] = []
    valid = valid_ratings(ratings)
    total_valid = len(valid)

    if total_valid:
        high_ratings = sum(1 for r in valid if r.value >= 8)
        low_ratings = sum(1 for r in valid if r.value <= 4)

        if high_ratings / total_valid > 0.7:
            insights.append("You tend to rate generously - you pick what you watch carefully!")
        elif low_ratings / total_valid > 0.3:
            insights.append("You take a critical approach - your quality bar is high!")

    rated_genres = len(profile.genre_distribution)
    if rated_genres >= 8:
        insights.append("You watch across many genres - an open-minded viewer!")
    elif rated_genres <= 3:
        insights.append("You focus on a few genres - your preferences are clear!")

    movie_ratings = sum(1 for r in valid if r.media_kind == MediaKind.MOVIE)
    show_ratings = sum(1 for r in valid if r.media_kind == MediaKind.SHOW)

    if show_ratings > movie_ratings:
        insights.append("You prefer shows over movies!")
    elif movie_ratings > show_ratings * 2:
        insights.append("You are a movie-focused viewer!")

    if profile.learning_phase == LearningPhase.TESTING and profile.accuracy_score:
        insights.append(f"Reached {profile.accuracy_score:.1f}% accuracy in the testing phase!")

    return insights


def generate_learning_metrics(ratings: Sequence[Rating], profile: UserProfile) -> Dict:
    """Phase and accuracy snapshot for the plan-do-check-act loop."""
    return {
        'phase': determine_learning_phase(ratings),
        'total_ratings': len(valid_ratings(ratings)),
        'accuracy_score': profile.accuracy_score or 0.0,
        'last_phase_change': profile.last_updated or datetime.now(UTC),
    }
