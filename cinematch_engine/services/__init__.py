"""Service classes"""

from .content_lookup import CachedContentLookup, ContentLookup, ContentLookupClient
from .profile_builder import ProfileBuilder
from .realtime_learning import AdaptiveLearningConfig, LearningResult, RealTimeLearningService

__all__ = [
    "AdaptiveLearningConfig",
    "CachedContentLookup",
    "ContentLookup",
    "ContentLookupClient",
    "LearningResult",
    "ProfileBuilder",
    "RealTimeLearningService",
]
