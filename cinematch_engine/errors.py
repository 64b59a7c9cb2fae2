"""Exception types raised by the engine."""


class EngineError(Exception):
    """Base class for engine errors."""


class ContentLookupError(EngineError):
    """Catalog metadata for an item could not be fetched."""

    def __init__(self, item_id: int, media_kind: str, message: str = ""):
        self.item_id = item_id
        self.media_kind = media_kind
        super().__init__(message or f"Failed to fetch {media_kind} {item_id}")


class NotFoundError(ContentLookupError):
    """The item no longer exists in the catalog."""

    def __init__(self, item_id: int, media_kind: str):
        super().__init__(item_id, media_kind, f"{media_kind} {item_id} not found")


class ModelNotInitializedError(EngineError):
    """A forward pass was requested before any model was initialized."""
