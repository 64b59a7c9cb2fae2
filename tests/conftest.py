"""Shared test fixtures and configuration for pytest."""
from datetime import UTC, datetime, timedelta
from typing import Dict, List, Tuple
from unittest.mock import Mock

import numpy as np
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cinematch_engine.errors import ContentLookupError, NotFoundError
from cinematch_engine.models import (
    CastMember,
    ContentDetails,
    CrewMember,
    LearningPhase,
    MediaKind,
    PersonAffinity,
    Rating,
    UserProfile,
)
from cinematch_engine.models.base import Base
from cinematch_engine.services.content_lookup import CachedContentLookup
from cinematch_engine.storage import BoundedCache, EngineStorage, InMemoryKeyValueStore

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

# Action/SciFi, Drama/Crime, Comedy/Romance, Action/Adventure/SciFi, Horror/Thriller
GENRE_CYCLE = [[28, 878], [18, 80], [35, 10749], [28, 12, 878], [27, 53]]


class FakeContentLookup:
    """In-memory catalog. Unknown items raise NotFoundError."""

    def __init__(self, catalog: Dict[Tuple[int, MediaKind], ContentDetails], failing=()):
        self.catalog = catalog
        self.failing = set(failing)
        self.calls: List[Tuple[int, MediaKind]] = []

    def get_details(self, item_id: int, media_kind: MediaKind) -> ContentDetails:
        self.calls.append((item_id, media_kind))
        if (item_id, media_kind) in self.failing:
            raise ContentLookupError(item_id, media_kind.value, "provider unavailable")
        content = self.catalog.get((item_id, media_kind))
        if content is None:
            raise NotFoundError(item_id, media_kind.value)
        return content


def make_content(item_id: int, media_kind: MediaKind = MediaKind.MOVIE, **overrides) -> ContentDetails:
    """Deterministic catalog item whose metadata varies with its id."""
    year = 1990 + (item_id % 30)
    fields = dict(
        item_id=item_id,
        media_kind=media_kind,
        title=f"Title {item_id}",
        genre_ids=list(GENRE_CYCLE[item_id % len(GENRE_CYCLE)]),
        external_rating=6.0 + (item_id % 4),
        vote_count=1000 * item_id,
        popularity=10.0 + item_id,
        original_language="en",
        release_date=f"{year}-06-01",
        cast=[
            CastMember(id=100 + item_id % 7, name=f"Actor {item_id % 7}"),
            CastMember(id=200 + item_id % 3, name=f"Supporting {item_id % 3}"),
        ],
        crew=[
            CrewMember(id=300 + item_id % 4, name=f"Director {item_id % 4}", job="Director"),
            CrewMember(id=400 + item_id, name=f"Writer {item_id}", job="Screenplay"),
        ],
    )
    fields.update(overrides)
    return ContentDetails(**fields)


def make_ratings(count: int, start: int = 1) -> List[Rating]:
    """Ratings 6-10 alternating movie and show, one minute apart."""
    return [
        Rating(
            item_id=i,
            media_kind=MediaKind.MOVIE if i % 2 else MediaKind.SHOW,
            value=6 + (i % 5),
            timestamp=FIXED_NOW - timedelta(minutes=count - i),
        )
        for i in range(start, start + count)
    ]


def catalog_for(ratings: List[Rating]) -> Dict[Tuple[int, MediaKind], ContentDetails]:
    return {r.key: make_content(r.item_id, r.media_kind) for r in ratings}


# ===== Database Fixtures =====

@pytest.fixture(scope="function")
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db_session(test_db_engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the in-memory engine."""
    return sessionmaker(bind=test_db_engine)


# ===== Clock Fixtures =====

@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    """Mutable clock; set clock.now to move time."""
    mock_clock = Mock(side_effect=lambda: mock_clock.now)
    mock_clock.now = FIXED_NOW
    return mock_clock


@pytest.fixture(autouse=True)
def no_prefetch_pause(monkeypatch):
    """Skip the inter-batch pause during cache warming."""
    monkeypatch.setattr("cinematch_engine.services.content_lookup.time.sleep", lambda _: None)


# ===== Sample Data Fixtures =====

@pytest.fixture
def sample_ratings() -> List[Rating]:
    """25 ratings between 6 and 10, mixed movies and shows."""
    return make_ratings(25)


@pytest.fixture
def sample_catalog(sample_ratings) -> Dict[Tuple[int, MediaKind], ContentDetails]:
    return catalog_for(sample_ratings)


@pytest.fixture
def content_factory():
    return make_content


@pytest.fixture
def ratings_factory():
    return make_ratings


@pytest.fixture
def lookup_factory():
    """Build a FakeContentLookup covering the given ratings."""
    def _factory(ratings, failing=(), missing=()):
        catalog = catalog_for(ratings)
        for key in missing:
            catalog.pop(key, None)
        return FakeContentLookup(catalog, failing=failing)
    return _factory


@pytest.fixture
def sample_profile(fixed_now) -> UserProfile:
    """Hand-built profile favouring action and science fiction."""
    return UserProfile(
        genre_distribution={28: 30.0, 878: 25.0, 18: 20.0, 80: 10.0, 35: 10.0, 12: 5.0},
        period_preference={"2000s": 60.0, "1990s": 40.0},
        favorite_actors={101: PersonAffinity(name="Actor 1", weight=20.0)},
        favorite_directors={301: PersonAffinity(name="Director 1", weight=8.0)},
        average_score=8.0,
        total_ratings=25,
        learning_phase=LearningPhase.PROFILING,
        last_updated=fixed_now,
    )


# ===== Collaborator Fixtures =====

@pytest.fixture
def fake_lookup(sample_catalog) -> FakeContentLookup:
    return FakeContentLookup(sample_catalog)


@pytest.fixture
def content_cache() -> BoundedCache:
    return BoundedCache(max_size=500, ttl_seconds=3600)


@pytest.fixture
def cached_lookup(fake_lookup, content_cache) -> CachedContentLookup:
    return CachedContentLookup(fake_lookup, content_cache)


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def engine_storage(memory_store) -> EngineStorage:
    return EngineStorage(memory_store)


@pytest.fixture
def seeded_rng() -> np.random.Generator:
    return np.random.default_rng(42)


# ===== Configuration Fixtures =====

@pytest.fixture
def mock_config(monkeypatch):
    """Mock configuration values."""
    monkeypatch.setenv('DATABASE_URL', 'sqlite:///:memory:')
    monkeypatch.setenv('CONTENT_API_URL', 'http://catalog.test/3')
    monkeypatch.setenv('CONTENT_API_KEY', 'test-key')
    monkeypatch.setenv('CACHE_TTL_SECONDS', '120')
    monkeypatch.setenv('CACHE_MAX_SIZE', '50')
    monkeypatch.setenv('MAX_LEARNING_EVENTS', '200')
    monkeypatch.setenv('USE_TRAINING_WORKER', 'false')
