"""
service.py — review orchestration.

Two entry modes:
  review()        — two-step: stored session context + change set
  quick_review()  — one-step: ad hoc project context, no session created

Both run the same pipeline:
  1. build the changes blob
  2. ReviewCache lookup (store failure → miss)
  3. on miss: prompt → AnalysisGateway (bounded by timeout) → schema validation
  4. ReviewCache store (failure logged and discarded)

Concurrent identical requests may both miss and both call the gateway —
accepted, the cache saves cost and is not a correctness mechanism.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from codereview.errors import ContextNotFound, InvalidChanges
from codereview.review.llm_service import AnalysisGateway, run_analysis
from codereview.review.prompts import build_changes_content, build_project_context
from codereview.review.review_cache import ReviewCache
from codereview.review.schemas import (
    SEVERITIES,
    ChangedFile,
    CodeReviewResult,
    ContextInfo,
    ProjectFile,
    ReviewStats,
)
from codereview.review.session import ContextSession

logger = logging.getLogger(__name__)


@dataclass
class ReviewOutcome:
    review: CodeReviewResult
    cached: bool


def review_stats(review: CodeReviewResult) -> ReviewStats:
    """Count issues by severity and by category (improvements are not issues)."""
    categories = {
        "bugs": review.potential_bugs,
        "performance": review.performance_issues,
        "security": review.security_vulnerabilities,
        "convention": review.convention_violations,
    }
    by_severity = {severity: 0 for severity in SEVERITIES}
    for comments in categories.values():
        for comment in comments:
            by_severity[comment.severity] += 1

    return ReviewStats(
        total_issues=sum(by_severity.values()),
        issues_by_severity=by_severity,
        issues_by_category={name: len(comments) for name, comments in categories.items()},
    )


class ReviewService:
    """
    Coordinates ContextSession, ReviewCache and the AnalysisGateway.
    Constructed once in the lifespan with explicitly injected collaborators.
    """

    def __init__(
        self,
        sessions: ContextSession,
        cache: ReviewCache,
        gateway: AnalysisGateway,
        default_timeout: Optional[float] = None,
    ) -> None:
        self.sessions = sessions
        self.cache = cache
        self.gateway = gateway
        self.default_timeout = default_timeout

    # ── Sessions ─────────────────────────────────────────────────────────────

    async def create_context(self, project_files: Sequence[ProjectFile]) -> str:
        return await self.sessions.create_session(project_files)

    async def get_context_info(self, session_id: str) -> ContextInfo:
        return await self.sessions.get_session_info(session_id)

    # ── Reviews ──────────────────────────────────────────────────────────────

    async def review(
        self,
        session_id: str,
        changed_files: Sequence[ChangedFile],
        description: str,
        timeout: Optional[float] = None,
    ) -> ReviewOutcome:
        """Review changes against a stored session. Raises ContextNotFound if it expired."""
        project_context = await self.sessions.get_session_blob(session_id)
        if project_context is None:
            logger.info("Project context not found session_id=%s", session_id)
            raise ContextNotFound()
        logger.info("Project context retrieved session_id=%s", session_id)
        return await self._review_blob(project_context, changed_files, description, timeout)

    async def quick_review(
        self,
        project_files: Sequence[ProjectFile],
        changed_files: Sequence[ChangedFile],
        description: str,
        timeout: Optional[float] = None,
    ) -> ReviewOutcome:
        """One-step review: nothing is stored except the 1h review cache entry."""
        project_context = build_project_context(project_files)
        return await self._review_blob(project_context, changed_files, description, timeout)

    async def _review_blob(
        self,
        project_context: str,
        changed_files: Sequence[ChangedFile],
        description: str,
        timeout: Optional[float],
    ) -> ReviewOutcome:
        if not changed_files:
            raise InvalidChanges()
        changes_content = build_changes_content(changed_files)

        cached = await self.cache.lookup(project_context, changes_content)
        if cached is not None:
            return ReviewOutcome(review=cached, cached=True)

        review = await run_analysis(
            self.gateway,
            project_context,
            changes_content,
            description,
            timeout=timeout if timeout is not None else self.default_timeout,
        )

        # Shielded: a finished analysis is still cached if the client disconnects now.
        # The bool result is discarded; store() already logged any failure.
        await asyncio.shield(self.cache.store(project_context, changes_content, review))
        return ReviewOutcome(review=review, cached=False)
