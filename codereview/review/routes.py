"""
routes.py — Code review HTTP endpoints.

GET  /api/code-review/context/{context_id} — stored context status (exists, stats, expiresIn)
POST /api/code-review/upload-context      — step 1: upload codebase .zip → contextId
POST /api/code-review/review-changes      — step 2: contextId + changes (.zip/.patch/.diff) → review
POST /api/code-review/quick-review        — one step: codebase + changes → review (no session)

Routes only do I/O (read uploads, pick diff vs archive). Everything else lives
in ReviewService; failures are CodeReviewError subclasses rendered by main.py.
app.state.review_service is set in main.py lifespan.
"""
import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from codereview.config import settings
from codereview.ingest.archive import (
    extract_files,
    file_stats,
    validate_archive,
    validate_upload_size,
)
from codereview.ingest.diff import is_diff_filename, split_diff
from codereview.review.schemas import (
    ChangedFile,
    ContextInfo,
    ProjectFile,
    ReviewResponse,
    UploadContextResponse,
)
from codereview.review.service import ReviewService, review_stats

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/code-review", tags=["Code Review"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review_service


async def _read_codebase(upload: UploadFile) -> list[ProjectFile]:
    data = await upload.read()
    validate_archive(data, settings.max_archive_size)
    logger.info("Extracting codebase filename=%s bytes=%d", upload.filename, len(data))
    return extract_files(data)


async def _read_changes(upload: UploadFile) -> list[ChangedFile]:
    """A .patch/.diff upload is split per file; anything else must be a ZIP of changed files."""
    data = await upload.read()
    if is_diff_filename(upload.filename or ""):
        validate_upload_size(data, settings.max_archive_size)
        changes = split_diff(data.decode("utf-8", errors="replace"))
        logger.info("Parsed %d files from diff filename=%s", len(changes), upload.filename)
        return changes

    validate_archive(data, settings.max_archive_size)
    changes = [
        ChangedFile(path=f.path, content=f.content, is_diff=False)
        for f in extract_files(data)
    ]
    logger.info("Extracted %d changed files filename=%s", len(changes), upload.filename)
    return changes


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/context/{context_id}", response_model=ContextInfo, response_model_exclude_none=True)
async def get_context(
    context_id: str,
    service: ReviewService = Depends(get_review_service),
) -> ContextInfo:
    """
    Return context status for the frontend to check before a review.
    An unknown or expired id is not an error: it returns exists=false.
    """
    info = await service.get_context_info(context_id)
    logger.info("Context info request context_id=%s exists=%s", context_id, info.exists)
    return info


@router.post("/upload-context", response_model=UploadContextResponse)
async def upload_context(
    codebase: UploadFile = File(..., description="Codebase archive (.zip)"),
    service: ReviewService = Depends(get_review_service),
) -> UploadContextResponse:
    """Step 1: store the whole codebase for 24h and return its contextId."""
    project_files = await _read_codebase(codebase)
    stats = file_stats(project_files)
    context_id = await service.create_context(project_files)
    return UploadContextResponse(context_id=context_id, stats=stats)


@router.post("/review-changes", response_model=ReviewResponse)
async def review_changes(
    context_id: str = Form(..., alias="contextId", min_length=1),
    change_description: str = Form(..., alias="changeDescription", min_length=1),
    changes: UploadFile = File(..., description="Changes (.zip, .patch or .diff)"),
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """
    Step 2: review changes against a stored context.
    404 CONTEXT_NOT_FOUND when the context expired — the client must re-upload.
    """
    changed_files = await _read_changes(changes)
    outcome = await service.review(context_id, changed_files, change_description)
    return ReviewResponse(
        review=outcome.review,
        stats=review_stats(outcome.review),
        files_reviewed=[f.path for f in changed_files],
        cached=outcome.cached,
    )


@router.post("/quick-review", response_model=ReviewResponse)
async def quick_review(
    change_description: str = Form(..., alias="changeDescription", min_length=1),
    codebase: UploadFile = File(..., description="Codebase archive (.zip)"),
    changes: UploadFile = File(..., description="Changes (.zip, .patch or .diff)"),
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """One-step review: codebase and changes together, nothing stored except the review cache."""
    project_files = await _read_codebase(codebase)
    changed_files = await _read_changes(changes)
    outcome = await service.quick_review(project_files, changed_files, change_description)
    return ReviewResponse(
        review=outcome.review,
        stats=review_stats(outcome.review),
        project_stats=file_stats(project_files),
        files_reviewed=[f.path for f in changed_files],
        cached=outcome.cached,
    )
