"""Content-based scoring of candidates against a taste profile."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from cinematch_engine.models import ContentDetails, UserProfile

logger = logging.getLogger(__name__)

# TMDB genre ids
ACTION, ADVENTURE, ANIMATION, COMEDY, CRIME = 28, 12, 16, 35, 80
DRAMA, FAMILY, FANTASY, HORROR, MYSTERY = 18, 10751, 14, 27, 9648
ROMANCE, SCIENCE_FICTION, THRILLER = 10749, 878, 53


@dataclass(frozen=True)
class GenreCombination:
    genres: Tuple[int, ...]
    name: str
    weight: float


GENRE_COMBINATIONS: List[GenreCombination] = [
    # Pairs
    GenreCombination((ACTION, SCIENCE_FICTION), "Action + Science Fiction", 1.3),
    GenreCombination((COMEDY, DRAMA), "Comedy + Drama", 1.2),
    GenreCombination((HORROR, THRILLER), "Horror + Thriller", 1.4),
    GenreCombination((ROMANCE, COMEDY), "Romance + Comedy", 1.2),
    GenreCombination((ACTION, ADVENTURE), "Action + Adventure", 1.3),
    GenreCombination((DRAMA, CRIME), "Drama + Crime", 1.3),
    GenreCombination((FANTASY, ADVENTURE), "Fantasy + Adventure", 1.2),
    GenreCombination((SCIENCE_FICTION, THRILLER), "Science Fiction + Thriller", 1.3),
    GenreCombination((ANIMATION, FAMILY), "Animation + Family", 1.1),
    GenreCombination((DRAMA, ROMANCE), "Drama + Romance", 1.2),
    GenreCombination((ACTION, CRIME), "Action + Crime", 1.3),
    GenreCombination((COMEDY, ROMANCE), "Comedy + Romance", 1.2),
    GenreCombination((FANTASY, DRAMA), "Fantasy + Drama", 1.2),
    GenreCombination((HORROR, MYSTERY), "Horror + Mystery", 1.3),
    GenreCombination((ADVENTURE, FAMILY), "Adventure + Family", 1.1),
    # Triples
    GenreCombination((ACTION, ADVENTURE, SCIENCE_FICTION), "Action + Adventure + Science Fiction", 1.5),
    GenreCombination((COMEDY, DRAMA, ROMANCE), "Comedy + Drama + Romance", 1.4),
    GenreCombination((HORROR, THRILLER, MYSTERY), "Horror + Thriller + Mystery", 1.6),
    GenreCombination((FANTASY, ADVENTURE, ACTION), "Fantasy + Adventure + Action", 1.5),
    GenreCombination((DRAMA, CRIME, THRILLER), "Drama + Crime + Thriller", 1.4),
    GenreCombination((ANIMATION, COMEDY, FAMILY), "Animation + Comedy + Family", 1.3),
    GenreCombination((SCIENCE_FICTION, ACTION, THRILLER), "Science Fiction + Action + Thriller", 1.5),
    GenreCombination((ROMANCE, COMEDY, DRAMA), "Romance + Comedy + Drama", 1.3),
]

# Signal weights; renormalized over the signals present for a candidate
COMBINATION_WEIGHT = 0.35
GENRE_WEIGHT = 0.25
CAST_WEIGHT = 0.20
DIRECTOR_WEIGHT = 0.10
PERIOD_WEIGHT = 0.07
QUALITY_WEIGHT = 0.03

TOP_GENRES_FOR_COMBINATIONS = 8
TOP_CAST_FOR_SCORING = 5
MIN_SIMILARITY = 0.1
MAX_RECOMMENDATIONS = 20


@dataclass
class ContentFeatures:
    genres: List[int]
    cast: List[int]
    crew: List[int]
    year: int
    rating: float
    popularity: int


@dataclass
class ContentRecommendation:
    content_id: int
    score: float
    matching_features: List[str] = field(default_factory=list)
    content: Optional[ContentDetails] = None


def extract_content_features(content: ContentDetails) -> ContentFeatures:
    """Reduce catalog metadata to the ids and numbers the scorer uses."""
    return ContentFeatures(
        genres=list(content.genre_ids),
        cast=[actor.id for actor in content.top_cast(TOP_CAST_FOR_SCORING)],
        crew=[director.id for director in content.directors],
        year=content.release_year or 0,
        rating=content.external_rating or 0.0,
        popularity=content.vote_count or 0,
    )


# noinspection PyMethodMayBeStatic
class ContentBasedScorer:
    """
    Scores candidates against a profile using single-genre, genre-combination,
    people, period and quality signals.
    """

    def __init__(
            self,
            combinations: Optional[Sequence[GenreCombination]] = None,
            min_similarity: float = MIN_SIMILARITY,
            max_results: int = MAX_RECOMMENDATIONS
    ):
        self.combinations = list(combinations) if combinations is not None else list(GENRE_COMBINATIONS)
        self.min_similarity = min_similarity
        self.max_results = max_results

    def combination_score(
            self,
            profile: UserProfile,
            candidate_genres: Sequence[int]
    ) -> Tuple[float, List[str]]:
        """
        Score the genre combinations fully present on a candidate.

        Args:
            profile: User profile
            candidate_genres: Candidate's genre ids

        Returns:
            (score, matched combination names) tuple
        """
        top_genres = {
            genre_id: profile.genre_distribution[genre_id]
            for genre_id in profile.top_genres(TOP_GENRES_FOR_COMBINATIONS)
        }
        candidate_set = set(candidate_genres)

        score = 0.0
        matched: List[str] = []

        for combination in self.combinations:
            if not candidate_set.issuperset(combination.genres):
                continue

            preferences = [top_genres[g] for g in combination.genres if g in top_genres]
            if not preferences:
                continue

            average_preference = sum(preferences) / len(preferences)
            combo_score = (average_preference / 100) * combination.weight * (len(combination.genres) * 0.2)
            score += combo_score
            matched.append(combination.name)

            logger.debug(f"Genre combination match: {combination.name}, score: {combo_score:.3f}")

        return score, matched

    def similarity(self, profile: UserProfile, features: ContentFeatures) -> float:
        """
        Weighted average over the signals present for this candidate.

        Returns:
            Similarity in [0, 1]
        """
        total_score = 0.0
        weight_sum = 0.0

        combo_score, _ = self.combination_score(profile, features.genres)
        if combo_score > 0:
            total_score += combo_score * COMBINATION_WEIGHT
            weight_sum += COMBINATION_WEIGHT

        if features.genres:
            genre_score = sum(
                profile.genre_distribution.get(g, 0) / 100 for g in features.genres
            ) / len(features.genres)
            total_score += genre_score * GENRE_WEIGHT
            weight_sum += GENRE_WEIGHT

        actor_scores = [
            min(1.0, profile.favorite_actors[a].weight / 10)
            for a in features.cast if a in profile.favorite_actors
        ]
        if actor_scores:
            total_score += (sum(actor_scores) / len(actor_scores)) * CAST_WEIGHT
            weight_sum += CAST_WEIGHT

        director_scores = [
            min(1.0, profile.favorite_directors[d].weight / 5)
            for d in features.crew if d in profile.favorite_directors
        ]
        if director_scores:
            total_score += (sum(director_scores) / len(director_scores)) * DIRECTOR_WEIGHT
            weight_sum += DIRECTOR_WEIGHT

        if features.year > 0:
            decade = f"{(features.year // 10) * 10}s"
            total_score += (profile.period_preference.get(decade, 0) / 100) * PERIOD_WEIGHT
            weight_sum += PERIOD_WEIGHT

        quality_diff = abs(features.rating - profile.average_score * 2)
        total_score += max(0.0, 1 - quality_diff / 10) * QUALITY_WEIGHT
        weight_sum += QUALITY_WEIGHT

        return total_score / weight_sum if weight_sum > 0 else 0.0

    def matching_features(
            self,
            profile: UserProfile,
            features: ContentFeatures,
            genre_names: Optional[Dict[int, str]] = None
    ) -> List[str]:
        """Human-readable reasons a candidate matched."""
        genre_names = genre_names or {}
        explanations: List[str] = []

        _, matched_combinations = self.combination_score(profile, features.genres)
        if matched_combinations:
            explanations.append(f"Combinations you love: {', '.join(matched_combinations)}")

        top_genres = profile.top_genres(3)
        matching_genres = [g for g in features.genres if g in top_genres]
        if matching_genres and not matched_combinations:
            names = [genre_names.get(g, "Unknown") for g in matching_genres]
            explanations.append(f"Genres you love: {', '.join(names)}")

        actors = [profile.favorite_actors[a].name for a in features.cast if a in profile.favorite_actors]
        if actors:
            explanations.append(f"Favorite actors: {', '.join(actors)}")

        directors = [
            profile.favorite_directors[d].name for d in features.crew if d in profile.favorite_directors
        ]
        if directors:
            explanations.append(f"Favorite directors: {', '.join(directors)}")

        if features.year > 0:
            decade = f"{(features.year // 10) * 10}s"
            if profile.period_preference.get(decade, 0) > 15:
                explanations.append(f"A period you enjoy: {decade}")

        if abs(features.rating - profile.average_score * 2) < 1:
            explanations.append(f"Matches your quality bar: {features.rating:.1f}/10")

        return explanations

    def score_candidates(
            self,
            profile: UserProfile,
            candidates: Sequence[ContentDetails],
            genre_names: Optional[Dict[int, str]] = None
    ) -> List[ContentRecommendation]:
        """
        Rank candidates by similarity to the profile.

        Args:
            profile: User profile
            candidates: Candidate catalog items
            genre_names: Genre id to display name, for explanations

        Returns:
            Up to max_results recommendations, best first
        """
        recommendations = []

        for content in candidates:
            features = extract_content_features(content)
            score = self.similarity(profile, features)

            if score > self.min_similarity:
                recommendations.append(ContentRecommendation(
                    content_id=content.item_id,
                    score=score,
                    matching_features=self.matching_features(profile, features, genre_names),
                    content=content,
                ))

        recommendations.sort(key=lambda r: r.score, reverse=True)

        logger.debug(f"Generated {len(recommendations)} content-based recommendations")
        return recommendations[:self.max_results]


def analyze_user_genre_combinations(profile: UserProfile) -> List[GenreCombination]:
    """
    Derive personal pair and triple combinations from the profile's top genres.

    Returns:
        Up to 10 combinations, heaviest first
    """
    top = [(g, profile.genre_distribution[g]) for g in profile.top_genres(6)]
    combinations: List[GenreCombination] = []

    for i in range(len(top)):
        for j in range(i + 1, len(top)):
            combined = (top[i][1] + top[j][1]) / 2
            if combined > 10:
                combinations.append(GenreCombination(
                    genres=(top[i][0], top[j][0]),
                    name=f"Genre {top[i][0]} + Genre {top[j][0]}",
                    weight=combined / 100,
                ))

    head = top[:4]
    for i in range(len(head)):
        for j in range(i + 1, len(head)):
            for k in range(j + 1, len(head)):
                combined = (head[i][1] + head[j][1] + head[k][1]) / 3
                if combined > 15:
                    combinations.append(GenreCombination(
                        genres=(head[i][0], head[j][0], head[k][0]),
                        name=f"Genre {head[i][0]} + Genre {head[j][0]} + Genre {head[k][0]}",
                        weight=(combined / 100) * 1.2,
                    ))

    combinations.sort(key=lambda c: c.weight, reverse=True)
    return combinations[:10]
