"""Repository for persisted engine state blobs."""

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from cinematch_engine.models import EngineState

logger = logging.getLogger(__name__)


class StateRepository:
    """
    Repository for persisted engine state blobs.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_value(self, key: str) -> bytes | None:
        """Get the stored bytes for a key, None if absent."""
        row = self.db.query(EngineState).filter(EngineState.state_key == key).first()
        if row is None:
            return None
        return row.value  # type: ignore[return-value]

    def set_value(self, key: str, value: bytes) -> EngineState:
        """
        Store or update the value for a key.

        Args:
            key: Namespaced state key
            value: Serialized state

        Returns:
            EngineState object
        """
        existing = self.db.query(EngineState).filter(EngineState.state_key == key).first()

        if existing:
            existing.value = value  # type: ignore[assignment]
            existing.updated_at = datetime.now(UTC)  # type: ignore[assignment]
            state = existing
        else:
            state = EngineState(state_key=key, value=value, updated_at=datetime.now(UTC))
            self.db.add(state)

        self.db.commit()
        self.db.refresh(state)

        logger.debug(f"Stored {len(value)} bytes under {key}")
        return state

    def delete_value(self, key: str) -> bool:
        """
        Delete the value for a key.

        Returns:
            True if deleted, False if not found
        """
        count = self.db.query(EngineState).filter(EngineState.state_key == key).delete()
        self.db.commit()

        return count > 0

    # noinspection PyTypeChecker
    def list_keys(self) -> list[str]:
        """Get all stored keys."""
        result = self.db.query(EngineState.state_key).all()
        return [row[0] for row in result]
