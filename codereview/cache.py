"""
cache.py — ephemeral key/value store layer for CodeReview.

Namespace conventions:
  context:{session_id}        → flattened project context blob   TTL 24h (86400s)
  context-meta:{session_id}   → JSON context metadata            TTL 24h (86400s)
  review:{fingerprint}        → JSON review result               TTL 1h  (3600s)

Design:
  - EphemeralStore is the only persistence abstraction; two backends:
      RedisStore — redis.asyncio socket client (redis-py 5.x — do NOT use aioredis separately)
      RestStore  — Upstash-style REST endpoint over httpx.AsyncClient
  - Store created once in lifespan, stored on app.state.store, injected into services
  - Every backend failure surfaces as StoreUnavailable — never as "absent"
  - get() returns None for both never-written and expired keys (callers cannot tell them apart)
  - Logs only keys — never stored values (project source code)
"""
import abc
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from codereview.config import Settings
from codereview.errors import StoreUnavailable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# TTL constants (seconds)
# ---------------------------------------------------------------------------
SESSION_TTL: int = 86400   # 24 hours
REVIEW_TTL: int = 3600     # 1 hour

# ---------------------------------------------------------------------------
# Key prefix constants
# ---------------------------------------------------------------------------
CONTEXT_PREFIX = "context"
CONTEXT_META_PREFIX = "context-meta"
REVIEW_PREFIX = "review"


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------

def make_context_key(session_id: str) -> str:
    """Build key for a stored project context blob: context:{session_id}"""
    return f"{CONTEXT_PREFIX}:{session_id}"


def make_context_meta_key(session_id: str) -> str:
    """Build key for project context metadata: context-meta:{session_id}"""
    return f"{CONTEXT_META_PREFIX}:{session_id}"


def make_review_key(fingerprint: str) -> str:
    """Build key for a content-addressed review result: review:{fingerprint}"""
    return f"{REVIEW_PREFIX}:{fingerprint}"


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class EphemeralStore(abc.ABC):
    """
    Async key/value store with per-key TTL.

    All methods raise StoreUnavailable when the backend cannot be reached.
    Implementations must be safe for concurrent use from many coroutines.
    """

    backend: str = "abstract"

    @abc.abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key, overwriting any prior value and resetting its TTL."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value, or None if the key was never written or has expired."""

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abc.abstractmethod
    async def remaining_ttl(self, key: str) -> Optional[int]:
        """Seconds until key expires; None if absent or stored without expiry."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Best-effort delete; a missing key is not an error."""

    @abc.abstractmethod
    async def ping(self) -> None:
        ...

    async def aclose(self) -> None:
        """Release connections. Default: nothing to release."""


@contextmanager
def _unavailable_on(errors: tuple, operation: str) -> Iterator[None]:
    """Translate backend-specific failures into StoreUnavailable."""
    try:
        yield
    except errors as exc:
        raise StoreUnavailable(f"Cache store unavailable during {operation}: {exc}") from exc


# ---------------------------------------------------------------------------
# Socket backend — redis.asyncio
# ---------------------------------------------------------------------------

class RedisStore(EphemeralStore):
    """EphemeralStore over the Redis socket protocol (connection pool shared by all requests)."""

    backend = "redis"

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, timeout: float) -> "RedisStore":
        # Short socket timeouts: a dead store must fail fast so reviews can run uncached
        client = aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        with _unavailable_on((RedisError, OSError), "put"):
            await self._client.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        with _unavailable_on((RedisError, OSError), "get"):
            return await self._client.get(key)

    async def exists(self, key: str) -> bool:
        with _unavailable_on((RedisError, OSError), "exists"):
            return await self._client.exists(key) > 0

    async def remaining_ttl(self, key: str) -> Optional[int]:
        with _unavailable_on((RedisError, OSError), "ttl"):
            ttl = await self._client.ttl(key)
        # -2: key absent, -1: key has no expiry
        return ttl if ttl >= 0 else None

    async def delete(self, key: str) -> None:
        with _unavailable_on((RedisError, OSError), "delete"):
            await self._client.delete(key)

    async def ping(self) -> None:
        with _unavailable_on((RedisError, OSError), "ping"):
            await self._client.ping()

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# REST backend — Upstash-compatible HTTP API
# ---------------------------------------------------------------------------

class RestStore(EphemeralStore):
    """
    EphemeralStore over an Upstash-style REST endpoint.

    Each command is POSTed as a JSON array (["SET", key, value, "EX", ttl]) with
    bearer-token auth. Replies are {"result": ...} or {"error": "..."}.
    """

    backend = "rest"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_credentials(cls, url: str, token: str, timeout: float) -> "RestStore":
        client = httpx.AsyncClient(
            base_url=url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )
        return cls(client)

    async def _command(self, *args: Any) -> Any:
        operation = str(args[0]).lower()
        with _unavailable_on((httpx.HTTPError, ValueError), operation):
            response = await self._client.post("/", json=[str(a) for a in args])
            response.raise_for_status()
            body = response.json()
        if "error" in body:
            raise StoreUnavailable(f"Cache store rejected {operation}: {body['error']}")
        return body.get("result")

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._command("SET", key, value, "EX", ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        return await self._command("GET", key)

    async def exists(self, key: str) -> bool:
        return int(await self._command("EXISTS", key) or 0) > 0

    async def remaining_ttl(self, key: str) -> Optional[int]:
        ttl = int(await self._command("TTL", key))
        return ttl if ttl >= 0 else None

    async def delete(self, key: str) -> None:
        await self._command("DEL", key)

    async def ping(self) -> None:
        await self._command("PING")

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Store factory — called once in lifespan
# ---------------------------------------------------------------------------

def build_store(settings: Settings) -> EphemeralStore:
    """Select the backend: REST when url + token are set, socket store otherwise."""
    if settings.use_rest_store:
        return RestStore.from_credentials(
            settings.upstash_redis_rest_url,
            settings.upstash_redis_rest_token,
            settings.store_timeout_seconds,
        )
    return RedisStore.from_url(settings.redis_url, settings.store_timeout_seconds)


async def create_store(settings: Settings) -> EphemeralStore:
    """
    Build the configured store and verify connectivity with PING.
    An unreachable store is logged, not raised: reviews still run uncached,
    only session endpoints fail until the store comes back.
    """
    store = build_store(settings)
    try:
        await store.ping()
    except StoreUnavailable as exc:
        logger.warning("Cache store (%s) unreachable at startup — running without cache: %s", store.backend, exc)
    else:
        logger.info("Cache store connection established backend=%s", store.backend)
    return store
