"""
review_cache.py — content-addressed cache of review results.

Key: review:{sha256(project_context_blob || changes_blob)}  TTL 1h.

The key depends on content only, never on a session id, so identical
codebases reviewed against identical changes share one entry across
sessions and one-step reviews alike.

The cache is an optimization: lookup() turns store failures into misses and
store() reports failures as False instead of raising. Concurrent identical
misses may both write; the store's SET is last-writer-wins, so no locking.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from codereview.cache import REVIEW_TTL, EphemeralStore, make_review_key
from codereview.errors import StoreUnavailable
from codereview.fingerprint import fingerprint_parts
from codereview.review.schemas import CodeReviewResult

logger = logging.getLogger(__name__)


def review_fingerprint(project_context: str, changes_content: str) -> str:
    """Context first, then changes — swapping them yields a different key."""
    return fingerprint_parts(project_context, changes_content)


class ReviewCache:
    def __init__(self, store: EphemeralStore, ttl_seconds: int = REVIEW_TTL) -> None:
        self._store = store
        self._ttl = ttl_seconds

    async def lookup(self, project_context: str, changes_content: str) -> Optional[CodeReviewResult]:
        """Return the cached review, or None on miss, store failure or stale payload."""
        key = make_review_key(review_fingerprint(project_context, changes_content))
        try:
            raw = await self._store.get(key)
        except StoreUnavailable as exc:
            logger.warning("Review cache lookup failed, proceeding uncached key=%s: %s", key, exc)
            return None

        if raw is None:
            logger.info("Review cache miss key=%s", key)
            return None

        try:
            review = CodeReviewResult.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cached review key=%s", key)
            return None

        logger.info("Review cache hit key=%s", key)
        return review

    async def store(self, project_context: str, changes_content: str, review: CodeReviewResult) -> bool:
        """Cache a computed review. Returns False (and logs) if the store is unavailable."""
        key = make_review_key(review_fingerprint(project_context, changes_content))
        try:
            await self._store.put(key, review.to_json(), self._ttl)
        except StoreUnavailable as exc:
            logger.warning("Failed to cache review key=%s: %s", key, exc)
            return False
        logger.info("Review result cached key=%s ttl=%ds", key, self._ttl)
        return True
