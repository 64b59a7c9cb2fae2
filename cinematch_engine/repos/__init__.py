"""Repository classes"""

from cinematch_engine.repos.state_repository import StateRepository

__all__ = [
    "StateRepository",
]
