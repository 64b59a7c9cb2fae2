"""Key-value persistence backends."""

import logging
from typing import Dict, Optional, Protocol

from sqlalchemy.orm import sessionmaker

from cinematch_engine.repos import StateRepository

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Byte-oriented key-value store consumed by the engine."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())


class SqlKeyValueStore:
    """
    Store backed by the engine_state table.
    Opens a short-lived session per call.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[bytes]:
        db = self.session_factory()
        try:
            return StateRepository(db).get_value(key)
        finally:
            db.close()

    def set(self, key: str, value: bytes) -> None:
        db = self.session_factory()
        try:
            StateRepository(db).set_value(key, value)
        finally:
            db.close()

    def delete(self, key: str) -> None:
        db = self.session_factory()
        try:
            StateRepository(db).delete_value(key)
        finally:
            db.close()
