"""
Test configuration for CodeReview tests.

Provides test doubles so no Redis, Upstash or Mistral is needed:
  - InMemoryStore  — EphemeralStore with a controllable clock for TTL tests
  - FailingStore   — every operation raises StoreUnavailable
  - FakeGateway    — AnalysisGateway returning canned text and counting calls
"""
import io
import json
import math
import zipfile
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from codereview.cache import EphemeralStore
from codereview.errors import StoreUnavailable
from codereview.review.llm_service import AnalysisGateway
from codereview.review.review_cache import ReviewCache
from codereview.review.service import ReviewService
from codereview.review.session import ContextSession


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class InMemoryStore(EphemeralStore):
    """Dict-backed store; advance(seconds) moves its clock forward."""

    backend = "memory"

    def __init__(self) -> None:
        self.now = 0.0
        self.data: dict[str, tuple[str, float]] = {}
        self.puts: list[str] = []

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _live(self, key: str) -> Optional[tuple[str, float]]:
        entry = self.data.get(key)
        if entry is None:
            return None
        if self.now >= entry[1]:
            del self.data[key]
            return None
        return entry

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self.puts.append(key)
        self.data[key] = (value, self.now + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def remaining_ttl(self, key: str) -> Optional[int]:
        entry = self._live(key)
        return math.ceil(entry[1] - self.now) if entry else None

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def ping(self) -> None:
        return None


class FailingStore(EphemeralStore):
    """Simulates an unreachable backend."""

    backend = "down"

    async def put(self, key, value, ttl_seconds):
        raise StoreUnavailable("connection refused")

    async def get(self, key):
        raise StoreUnavailable("connection refused")

    async def exists(self, key):
        raise StoreUnavailable("connection refused")

    async def remaining_ttl(self, key):
        raise StoreUnavailable("connection refused")

    async def delete(self, key):
        raise StoreUnavailable("connection refused")

    async def ping(self):
        raise StoreUnavailable("connection refused")


class FakeGateway(AnalysisGateway):
    def __init__(self, text: str) -> None:
        self.text = text
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------

SAMPLE_REVIEW = {
    "overallQuality": "Small, safe constant bump.",
    "summary": {"totalIssues": 2, "criticalIssues": 0, "filesReviewed": 1},
    "potentialBugs": [
        {
            "file": "a.ts",
            "line": 1,
            "severity": "medium",
            "issue": "Callers may rely on x being 1.",
            "suggestion": "Search for usages of x before merging.",
        }
    ],
    "performanceIssues": [],
    "securityVulnerabilities": [],
    "conventionViolations": [
        {
            "file": "a.ts",
            "line": None,
            "severity": "low",
            "issue": "Magic number.",
            "suggestion": "Name the constant.",
        }
    ],
    "improvements": [
        {"file": "a.ts", "line": None, "type": "refactoring", "suggestion": "Export x from a config module."}
    ],
    "positivePoints": ["Minimal diff."],
}


def make_zip(files: dict[str, bytes | str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def review_payload() -> dict:
    return json.loads(json.dumps(SAMPLE_REVIEW))


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def gateway(review_payload) -> FakeGateway:
    return FakeGateway(json.dumps(review_payload))


@pytest.fixture
def service(memory_store, gateway) -> ReviewService:
    return ReviewService(
        sessions=ContextSession(memory_store),
        cache=ReviewCache(memory_store),
        gateway=gateway,
        default_timeout=5.0,
    )


@pytest.fixture
def zip_factory():
    return make_zip


@pytest_asyncio.fixture
async def client(service, memory_store):
    """Async httpx client using ASGI transport — no live server, lifespan not run."""
    from codereview.main import app

    app.state.review_service = service
    app.state.store = memory_store
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def gateway_factory():
    return FakeGateway
