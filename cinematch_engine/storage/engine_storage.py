"""Namespaced, JSON-encoded engine state on top of a key-value store."""

import json
import logging
from typing import Any, Dict, List, Optional

from cinematch_engine.models import LearningEvent, Rating, UserProfile
from cinematch_engine.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

RATINGS_KEY = "cinematch_ratings"
PROFILE_KEY = "cinematch_profile"
NEURAL_MODEL_KEY = "cinematch_neural_model"
LEARNING_EVENTS_KEY = "cinematch_learning_events"
ADAPTIVE_CONFIG_KEY = "cinematch_adaptive_config"

ALL_KEYS = [RATINGS_KEY, PROFILE_KEY, NEURAL_MODEL_KEY, LEARNING_EVENTS_KEY, ADAPTIVE_CONFIG_KEY]


class EngineStorage:
    """
    Best-effort persistence for engine state.

    Read failures are logged and return the default; write failures are
    logged and swallowed so the caller can continue.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _read_json(self, key: str) -> Optional[Any]:
        try:
            raw = self.store.get(key)
            if raw is None:
                return None
            return json.loads(raw.decode("utf-8"))
        except Exception as e:
            logger.error(f"Failed to read {key}: {e}")
            return None

    def _write_json(self, key: str, payload: Any) -> bool:
        try:
            self.store.set(key, json.dumps(payload).encode("utf-8"))
            return True
        except Exception as e:
            logger.error(f"Failed to write {key}: {e}")
            return False

    # ===== RATINGS =====

    def load_ratings(self) -> List[Rating]:
        data = self._read_json(RATINGS_KEY)
        if not data:
            return []
        try:
            return [Rating.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to decode ratings: {e}")
            return []

    def save_ratings(self, ratings: List[Rating]) -> bool:
        return self._write_json(RATINGS_KEY, [r.to_dict() for r in ratings])

    # ===== PROFILE =====

    def load_profile(self) -> Optional[UserProfile]:
        data = self._read_json(PROFILE_KEY)
        if not data:
            return None
        try:
            return UserProfile.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to decode profile: {e}")
            return None

    def save_profile(self, profile: UserProfile) -> bool:
        return self._write_json(PROFILE_KEY, profile.to_dict())

    # ===== LEARNED MODEL =====

    def load_model_state(self) -> Optional[Dict]:
        data = self._read_json(NEURAL_MODEL_KEY)
        return data if isinstance(data, dict) else None

    def save_model_state(self, state: Dict) -> bool:
        saved = self._write_json(NEURAL_MODEL_KEY, state)
        if saved:
            logger.debug("Neural model state saved")
        return saved

    # ===== LEARNING EVENTS =====

    def load_learning_events(self) -> List[LearningEvent]:
        data = self._read_json(LEARNING_EVENTS_KEY)
        if not data:
            return []
        try:
            return [LearningEvent.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to decode learning events: {e}")
            return []

    def save_learning_events(self, events: List[LearningEvent]) -> bool:
        return self._write_json(LEARNING_EVENTS_KEY, [e.to_dict() for e in events])

    # ===== ADAPTIVE CONFIG =====

    def load_adaptive_config(self) -> Dict:
        data = self._read_json(ADAPTIVE_CONFIG_KEY)
        return data if isinstance(data, dict) else {}

    def save_adaptive_config(self, config: Dict) -> bool:
        return self._write_json(ADAPTIVE_CONFIG_KEY, config)

    def clear_all(self) -> None:
        """Delete every engine key."""
        for key in ALL_KEYS:
            try:
                self.store.delete(key)
            except Exception as e:
                logger.error(f"Failed to delete {key}: {e}")
        logger.info("✓ Cleared engine state")
