"""
archive.py — ZIP codebase extraction.

Pure function module — no FastAPI dependencies.
Entry point: extract_files(data: bytes) -> list[ProjectFile]

Filtering:
  - directories, binary/media extensions and vendor/build directories are skipped
  - entries that are not UTF-8 text (or contain NUL bytes) are skipped
  - corrupt entries (bad CRC, unsupported compression) are skipped with a warning
An archive that yields no readable file at all is an ExtractError.
"""
import io
import logging
import re
import zipfile
import zlib
from collections import Counter
from typing import Iterable, Optional

from codereview.errors import ArchiveTooLarge, ExtractError
from codereview.review.schemas import FileStats, ProjectFile
from codereview.review.session import count_lines, file_extension

logger = logging.getLogger(__name__)

SKIP_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".ico",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx",
    ".zip", ".tar", ".gz", ".rar",
    ".exe", ".dll", ".so", ".dylib",
    ".mp3", ".mp4", ".avi", ".mov",
    ".ttf", ".woff", ".woff2", ".eot",
})

SKIP_DIRS = (
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    "coverage/",
    ".next/",
    ".nuxt/",
    "vendor/",
    "__pycache__/",
)


def should_skip(name: str) -> bool:
    """True for binary/media files and anything under a vendor or build directory."""
    if file_extension(name) in SKIP_EXTENSIONS:
        return True
    normalized = "/" + name.replace("\\", "/")
    return any(f"/{d}" in normalized for d in SKIP_DIRS)


def validate_upload_size(data: bytes, max_size: int) -> None:
    if len(data) > max_size:
        raise ArchiveTooLarge(f"File too large. Maximum size: {max_size // (1024 * 1024)}MB")


def validate_archive(data: bytes, max_size: int) -> None:
    """Reject empty, oversized or non-ZIP uploads before extraction."""
    if not data:
        raise ExtractError("Uploaded archive is empty")
    validate_upload_size(data, max_size)
    if not zipfile.is_zipfile(io.BytesIO(data)):
        raise ExtractError("File must be in ZIP format")


def _decode_text(raw: bytes) -> Optional[str]:
    if b"\x00" in raw:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def extract_files(data: bytes, pattern: Optional[re.Pattern] = None) -> list[ProjectFile]:
    """
    Extract all readable text files from a ZIP archive, in archive order.
    pattern, when given, keeps only paths it matches (re.search semantics).
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ExtractError(f"Error parsing ZIP: {exc}") from exc

    files: list[ProjectFile] = []
    with archive:
        for info in archive.infolist():
            if info.is_dir() or should_skip(info.filename):
                continue
            if pattern is not None and not pattern.search(info.filename):
                continue
            try:
                raw = archive.read(info)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError) as exc:
                logger.warning("Skipping corrupt archive entry %s: %s", info.filename, exc)
                continue
            content = _decode_text(raw)
            if content is None:
                logger.debug("Skipping binary file %s", info.filename)
                continue
            files.append(ProjectFile(path=info.filename, content=content))

    if not files:
        raise ExtractError("ZIP file does not contain any readable code files")
    logger.info("Extracted %d files from archive", len(files))
    return files


def file_stats(files: Iterable[ProjectFile]) -> FileStats:
    """File count, newline-segment line count and extension histogram."""
    files = list(files)
    return FileStats(
        total_files=len(files),
        total_lines=sum(count_lines(f.content) for f in files),
        files_by_extension=dict(Counter(file_extension(f.path) for f in files)),
    )
