"""
schemas.py — CodeReview Pydantic v2 data contracts.

Defines:
  - ProjectFile / ChangedFile   (extracted archive and diff records)
  - ContextMetadata / ContextInfo (stored session stats and status view)
  - ReviewComment / Improvement / ReviewSummary / CodeReviewResult
                                (fixed schema the analysis model must return)
  - ReviewStats                 (severity and category counts for a review)
  - Upload / review response envelopes

Wire format is camelCase (alias_generator) to match the model's JSON output
and the frontend; Python code uses snake_case attributes.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums (as Literals — kept in sync with the review prompt)
# ---------------------------------------------------------------------------

Severity = Literal["critical", "high", "medium", "low"]
ImprovementType = Literal["refactoring", "optimization", "best-practice"]

SEVERITIES: tuple = ("critical", "high", "medium", "low")


# ---------------------------------------------------------------------------
# Extracted files
# ---------------------------------------------------------------------------

class ProjectFile(CamelModel):
    """One non-binary file from an uploaded codebase."""
    path: str
    content: str


class ChangedFile(CamelModel):
    """One change record: either a per-file diff chunk or a full changed file."""
    path: str
    content: str
    is_diff: bool = False


class FileStats(CamelModel):
    """Aggregate statistics over a set of extracted files."""
    total_files: int
    total_lines: int
    files_by_extension: Dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Context session
# ---------------------------------------------------------------------------

class ContextMetadata(FileStats):
    """Metadata written next to a stored project context (context-meta:{id})."""
    size_in_bytes: int
    created_at: str  # ISO 8601 UTC


class ContextInfo(CamelModel):
    """
    Status view of a stored context.

    exists=False is returned for both unknown and expired ids. When the context
    exists but its metadata is missing, stats and created_at stay None.
    """
    context_id: str
    exists: bool
    stats: Optional[ContextMetadata] = None
    expires_in: Optional[int] = Field(default=None, description="Seconds until expiration")
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Review result — validated against the analysis model output
# ---------------------------------------------------------------------------

class ReviewComment(CamelModel):
    file: str
    line: Optional[int] = None  # null when the model cannot pin a line
    severity: Severity
    issue: str
    suggestion: str


class Improvement(CamelModel):
    file: str
    line: Optional[int] = None
    type: ImprovementType
    suggestion: str


class ReviewSummary(CamelModel):
    total_issues: int
    critical_issues: int
    files_reviewed: int


class CodeReviewResult(CamelModel):
    """Structured review returned by the analysis model. All fields are required."""
    overall_quality: str
    summary: ReviewSummary
    potential_bugs: List[ReviewComment]
    performance_issues: List[ReviewComment]
    security_vulnerabilities: List[ReviewComment]
    convention_violations: List[ReviewComment]
    improvements: List[Improvement]
    positive_points: List[str]

    def to_json(self) -> str:
        """Canonical serialization used for cache storage."""
        return self.model_dump_json(by_alias=True)


class ReviewStats(CamelModel):
    total_issues: int
    issues_by_severity: Dict[str, int]
    issues_by_category: Dict[str, int]


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------

class UploadContextResponse(CamelModel):
    context_id: str
    stats: FileStats
    message: str = (
        "Project context uploaded successfully. You can now submit code changes for review."
    )


class ReviewResponse(CamelModel):
    """
    cached=True means the review was served from the content-addressed review
    cache (TTL 1 hour) without calling the analysis model.
    """
    review: CodeReviewResult
    stats: ReviewStats
    files_reviewed: List[str]
    cached: bool = False
    project_stats: Optional[FileStats] = None  # quick-review only


__all__ = [
    "ChangedFile",
    "CodeReviewResult",
    "ContextInfo",
    "ContextMetadata",
    "FileStats",
    "Improvement",
    "ImprovementType",
    "ProjectFile",
    "ReviewComment",
    "ReviewResponse",
    "ReviewStats",
    "ReviewSummary",
    "SEVERITIES",
    "Severity",
    "UploadContextResponse",
]
