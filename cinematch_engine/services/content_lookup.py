"""Catalog metadata lookup: HTTP client and cached wrapper"""
from typing import Iterable, List, Optional, Protocol
import time
import logging
import requests

from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cinematch_engine.config import get_content_api_key, get_content_api_url
from cinematch_engine.errors import ContentLookupError, NotFoundError
from cinematch_engine.models import ContentDetails, MediaKind, Rating
from cinematch_engine.storage import BoundedCache, user_content_key

logger = logging.getLogger(__name__)

PREFETCH_BATCH_SIZE = 5
PREFETCH_PAUSE_SECONDS = 0.1


class ContentLookup(Protocol):
    """Anything that resolves an item id to catalog metadata."""

    def get_details(self, item_id: int, media_kind: MediaKind) -> ContentDetails:
        ...


class ContentLookupClient:
    """Client for the catalog metadata API (TMDB v3 compatible)."""

    def __init__(
            self,
            api_url: Optional[str] = None,
            api_key: Optional[str] = None,
            timeout: int = 10
    ):
        self.api_url = (api_url or get_content_api_url() or "").rstrip("/")
        self.api_key = api_key or get_content_api_key()
        self.timeout = timeout

        # Configure session with retries
        self.session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        # noinspection HttpUrlsUsage
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _details_url(self, item_id: int, media_kind: MediaKind) -> str:
        path = "movie" if media_kind == MediaKind.MOVIE else "tv"
        return f"{self.api_url}/{path}/{item_id}"

    def get_details(self, item_id: int, media_kind: MediaKind) -> ContentDetails:
        """
        Fetch details and credits for one item.

        Raises:
            NotFoundError: Item does not exist in the catalog
            ContentLookupError: Any other request failure
        """
        params = {'append_to_response': 'credits'}
        if self.api_key:
            params['api_key'] = self.api_key

        try:
            response = self.session.get(
                self._details_url(item_id, media_kind),
                params=params,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ContentLookupError(item_id, media_kind.value, str(e)) from e

        if response.status_code == 404:
            raise NotFoundError(item_id, media_kind.value)

        try:
            response.raise_for_status()
            return ContentDetails.from_api(response.json(), media_kind)
        except (requests.HTTPError, ValueError, KeyError) as e:
            raise ContentLookupError(item_id, media_kind.value, str(e)) from e


class CachedContentLookup:
    """
    Wraps a content lookup with the shared bounded cache.
    All engine components fetch metadata through this.
    """

    def __init__(self, lookup: ContentLookup, cache: BoundedCache):
        self.lookup = lookup
        self.cache = cache

    def get_cached(self, item_id: int, media_kind: MediaKind) -> Optional[ContentDetails]:
        return self.cache.get(user_content_key(item_id, media_kind.value))

    def put(self, content: ContentDetails) -> None:
        self.cache.set(user_content_key(content.item_id, content.media_kind.value), content)

    def get_details(self, item_id: int, media_kind: MediaKind) -> ContentDetails:
        """Fetch from cache, falling back to the wrapped lookup."""
        cached = self.get_cached(item_id, media_kind)
        if cached is not None:
            return cached

        content = self.lookup.get_details(item_id, media_kind)
        self.put(content)
        return content

    def prefetch(
            self,
            ratings: Iterable[Rating],
            batch_size: int = PREFETCH_BATCH_SIZE,
            pause_seconds: float = PREFETCH_PAUSE_SECONDS
    ) -> int:
        """
        Warm the cache for rated items in small batches.

        Args:
            ratings: Ratings whose items should be cached
            batch_size: Lookups per batch
            pause_seconds: Pause between batches

        Returns:
            Number of items fetched successfully
        """
        uncached: List[Rating] = [
            r for r in ratings
            if not self.cache.has(user_content_key(r.item_id, r.media_kind.value))
        ]

        if not uncached:
            logger.debug("All rated content already cached")
            return 0

        logger.info(f"Pre-caching {len(uncached)} rated content items...")

        fetched = 0
        for i in range(0, len(uncached), batch_size):
            batch = uncached[i:i + batch_size]

            for rating in batch:
                try:
                    self.get_details(rating.item_id, rating.media_kind)
                    fetched += 1
                except ContentLookupError as e:
                    logger.debug(f"Pre-cache skipped {rating.media_kind.value} {rating.item_id}: {e}")

            if i + batch_size < len(uncached):
                time.sleep(pause_seconds)  # Rate limiting

        logger.info(f"✓ Pre-cached {fetched}/{len(uncached)} items")
        return fetched
