"""
prompts.py — review prompt template and context blob builders.

build_project_context() and build_changes_content() produce the exact blobs
that are stored per session and fed into the review fingerprint, so their
output format must stay byte-stable: changing a delimiter invalidates every
cached review and stored context.
"""
from typing import Iterable

from codereview.review.schemas import ChangedFile, ProjectFile

PROMPT_VERSION = {
    "version": "1.0.0",
    "description": "AI code review assistant prompt",
}


# ---------------------------------------------------------------------------
# Blob builders
# ---------------------------------------------------------------------------

def build_project_context(files: Iterable[ProjectFile]) -> str:
    """Flatten project files, in order, into one delimited text blob."""
    parts = []
    for f in files:
        parts.append(f"\n--- FILE: {f.path} ---\n{f.content}\n--- END FILE: {f.path} ---\n")
    return "".join(parts)


def build_changes_content(changes: Iterable[ChangedFile]) -> str:
    """Flatten a change set, in order, into one delimited text blob."""
    parts = []
    for change in changes:
        if change.is_diff:
            parts.append(f"\n--- DIFF ---\n{change.content}\n--- END DIFF ---\n")
        else:
            parts.append(
                f"\n--- CHANGED FILE: {change.path} ---\n{change.content}"
                f"\n--- END CHANGED FILE: {change.path} ---\n"
            )
    return "".join(parts)


# ---------------------------------------------------------------------------
# Review prompt
# ---------------------------------------------------------------------------

_COMMENT_SHAPE = """{
      "file": "file path",
      "line": <line number, or null if it cannot be determined>,
      "severity": "critical|high|medium|low",
      "issue": "description of the problem",
      "suggestion": "how to fix it"
    }"""

CODE_REVIEW_PROMPT = """You are a tech lead with 10 years of experience. Below is the **context of the whole project** and a **set of changes** for a new feature.

Using your understanding of the whole project, review these changes.

--- CHANGE DESCRIPTION ---
{change_description}
--- END DESCRIPTION ---

--- FULL PROJECT CONTEXT ---
{project_context}
--- END CONTEXT ---

--- CHANGES ---
{changes_content}
--- END CHANGES ---

Return a single JSON object with this structure (no markdown code block, JSON only):

{{
  "overallQuality": "1-2 sentence assessment of the change quality",
  "summary": {{
    "totalIssues": <number of issues found>,
    "criticalIssues": <number of critical issues>,
    "filesReviewed": <number of files reviewed>
  }},
  "potentialBugs": [
    {comment}
  ],
  "performanceIssues": [
    {comment}
  ],
  "securityVulnerabilities": [
    {comment}
  ],
  "conventionViolations": [
    {comment}
  ],
  "improvements": [
    {{
      "file": "file path",
      "line": <line number, or null if it cannot be determined>,
      "type": "refactoring|optimization|best-practice",
      "suggestion": "improvement suggestion"
    }}
  ],
  "positivePoints": ["good point 1", "good point 2"]
}}

Requirements:
1. Potential bugs: can this change cause a failure in any case?
2. Performance issues: slow queries, unnecessary loops, wasted allocations?
3. Security vulnerabilities: injection, XSS, unsafe handling of sensitive data?
4. Convention compliance: does the change follow the project's style and patterns?
5. Improvements: can the code be written more cleanly or maintainably?

Be specific about files and lines. Use "line": null when no line applies.
Also call out what the change does well."""


def build_review_prompt(project_context: str, changes_content: str, change_description: str) -> str:
    return CODE_REVIEW_PROMPT.format(
        change_description=change_description,
        project_context=project_context,
        changes_content=changes_content,
        comment=_COMMENT_SHAPE,
    )
