"""Persisted engine state, one row per namespaced key."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, LargeBinary, String

from cinematch_engine.models.base import Base


class EngineState(Base):
    """Opaque engine state blob stored under a namespaced key.

    Holds ratings, the profile, learned-model weights, the learning-event log
    and adaptive config, each serialized by the storage layer.
    """

    __tablename__ = "engine_state"

    state_key = Column(String(128), primary_key=True)
    value = Column(LargeBinary, nullable=False)

    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    def __repr__(self):
        return f"<EngineState(state_key='{self.state_key}', size={len(self.value or b'')})>"
