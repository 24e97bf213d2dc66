"""
End-to-end API tests for the /api/code-review endpoints.

Tests the full stack: multipart upload → extraction → ReviewService →
in-memory store / fake gateway → HTTP response. No Redis or Mistral needed;
the ReviewService is injected on app.state by the client fixture.
"""
import re

import pytest
from httpx import AsyncClient

from codereview.config import settings


async def _upload(client: AsyncClient, zip_bytes: bytes) -> str:
    response = await client.post(
        "/api/code-review/upload-context",
        files={"codebase": ("project.zip", zip_bytes, "application/zip")},
    )
    assert response.status_code == 200, response.text
    return response.json()["contextId"]


# ---------------------------------------------------------------------------
# Two-step flow
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_review_is_cached(client: AsyncClient, gateway, zip_factory) -> None:
    """Upload → context info → diff review → identical repeat served from cache."""
    context_id = await _upload(client, zip_factory({"a.ts": "const x=1;"}))
    assert re.fullmatch(r"[0-9a-f]{32}", context_id)

    info = await client.get(f"/api/code-review/context/{context_id}")
    assert info.status_code == 200
    body = info.json()
    assert body["exists"] is True
    assert body["stats"]["totalFiles"] == 1
    assert body["stats"]["totalLines"] == 1
    assert body["expiresIn"] > 0

    def review_request():
        return client.post(
            "/api/code-review/review-changes",
            data={"contextId": context_id, "changeDescription": "bump x"},
            files={"changes": ("change.diff", b"+++ b/a.ts\n+const x=2;", "text/x-diff")},
        )

    first = await review_request()
    assert first.status_code == 200, first.text
    first_body = first.json()
    assert first_body["review"]["summary"]["filesReviewed"] >= 1
    assert first_body["filesReviewed"] == ["a.ts"]
    assert first_body["cached"] is False
    assert first_body["stats"]["issuesBySeverity"]["medium"] == 1
    assert gateway.calls == 1

    second = await review_request()
    assert second.status_code == 200
    assert second.json()["cached"] is True
    assert second.json()["review"] == first_body["review"]
    assert gateway.calls == 1


@pytest.mark.asyncio
async def test_upload_context_reports_stats(client: AsyncClient, zip_factory) -> None:
    response = await client.post(
        "/api/code-review/upload-context",
        files={"codebase": ("p.zip", zip_factory({"a.ts": "x\ny", "logo.png": b"\x89PNG"}), "application/zip")},
    )
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats == {"totalFiles": 1, "totalLines": 2, "filesByExtension": {".ts": 1}}


@pytest.mark.asyncio
async def test_unknown_context_reports_not_exists(client: AsyncClient) -> None:
    response = await client.get(f"/api/code-review/context/{'f' * 32}")
    assert response.status_code == 200
    assert response.json() == {"contextId": "f" * 32, "exists": False}


@pytest.mark.asyncio
async def test_review_with_expired_context_is_404(client: AsyncClient, memory_store, gateway, zip_factory) -> None:
    context_id = await _upload(client, zip_factory({"a.ts": "const x=1;"}))
    memory_store.advance(24 * 3600)

    response = await client.post(
        "/api/code-review/review-changes",
        data={"contextId": context_id, "changeDescription": "bump x"},
        files={"changes": ("change.patch", b"+++ b/a.ts\n+const x=2;", "text/x-diff")},
    )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "CONTEXT_NOT_FOUND"
    assert gateway.calls == 0


@pytest.mark.asyncio
async def test_non_zip_codebase_is_400(client: AsyncClient) -> None:
    response = await client.post(
        "/api/code-review/upload-context",
        files={"codebase": ("p.zip", b"not a zip", "application/zip")},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "EXTRACT_ERROR"


@pytest.mark.asyncio
async def test_diff_without_files_is_400(client: AsyncClient, zip_factory) -> None:
    context_id = await _upload(client, zip_factory({"a.ts": "const x=1;"}))
    response = await client.post(
        "/api/code-review/review-changes",
        data={"contextId": context_id, "changeDescription": "nothing"},
        files={"changes": ("empty.diff", b"no headers here", "text/x-diff")},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_CHANGES"


@pytest.mark.asyncio
async def test_oversized_diff_is_413(client: AsyncClient, gateway, zip_factory, monkeypatch) -> None:
    context_id = await _upload(client, zip_factory({"a.ts": "const x=1;"}))
    monkeypatch.setattr(settings, "max_archive_size", 16)

    response = await client.post(
        "/api/code-review/review-changes",
        data={"contextId": context_id, "changeDescription": "bump x"},
        files={"changes": ("change.diff", b"+++ b/a.ts\n+const x=2; // padded", "text/x-diff")},
    )
    assert response.status_code == 413
    assert response.json()["error"]["code"] == "FILE_TOO_LARGE"
    assert gateway.calls == 0


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client: AsyncClient) -> None:
    response = await client.get("/api/code-review/nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"

    response = await client.get("/api/code-review/upload-context")
    assert response.status_code == 405
    assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"


@pytest.mark.asyncio
async def test_missing_description_is_validation_error(client: AsyncClient) -> None:
    response = await client.post(
        "/api/code-review/review-changes",
        data={"contextId": "abc"},
        files={"changes": ("c.diff", b"+++ b/a.ts\n+x", "text/x-diff")},
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# ---------------------------------------------------------------------------
# One-step flow
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_quick_review_with_zip_changes(client: AsyncClient, gateway, memory_store, zip_factory) -> None:
    response = await client.post(
        "/api/code-review/quick-review",
        data={"changeDescription": "bump x"},
        files={
            "codebase": ("p.zip", zip_factory({"a.ts": "const x=1;", "b.ts": "const y=1;"}), "application/zip"),
            "changes": ("c.zip", zip_factory({"a.ts": "const x=2;"}), "application/zip"),
        },
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["projectStats"]["totalFiles"] == 2
    assert body["filesReviewed"] == ["a.ts"]
    assert body["cached"] is False
    assert gateway.calls == 1
    # No session keys are written in one-step mode
    assert all(key.startswith("review:") for key in memory_store.data)


@pytest.mark.asyncio
async def test_malformed_analysis_is_502(client: AsyncClient, gateway, memory_store, zip_factory) -> None:
    gateway.text = '```json\n{"overallQuality": "ok"}\n```'
    response = await client.post(
        "/api/code-review/quick-review",
        data={"changeDescription": "bump x"},
        files={
            "codebase": ("p.zip", zip_factory({"a.ts": "const x=1;"}), "application/zip"),
            "changes": ("c.diff", b"+++ b/a.ts\n+const x=2;", "text/x-diff"),
        },
    )
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "MALFORMED_ANALYSIS_RESULT"
    assert memory_store.data == {}


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_reports_store(client: AsyncClient) -> None:
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["store"] == "ok"
