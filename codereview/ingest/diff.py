"""
diff.py — unified diff splitting.

Splits a diff/patch payload into one ChangedFile per "+++" file header.
Header lines (diff --git, ---, +++) and git metadata (index, mode, rename...)
are not part of any record's content; hunks belong to the file named by the
last "+++" (or the "---" path when the file was deleted).

Inside a hunk the @@ line counts decide where the hunk ends, so an added
"+++i;" or a removed "-- comment" line is content, not a header.
"""
import re

from codereview.review.schemas import ChangedFile

DIFF_SUFFIXES = (".patch", ".diff")

_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,(\d+))? \+\d+(?:,(\d+))? @@")

_GIT_METADATA_PREFIXES = (
    "index ",
    "old mode ",
    "new mode ",
    "deleted file mode ",
    "new file mode ",
    "similarity index ",
    "dissimilarity index ",
    "rename from ",
    "rename to ",
    "copy from ",
    "copy to ",
)

_DEV_NULL = "/dev/null"


def is_diff_filename(filename: str) -> bool:
    return filename.lower().endswith(DIFF_SUFFIXES)


def _header_path(header: str) -> str:
    path = header[3:].strip()
    # git appends a tab and timestamp in some formats
    path = path.split("\t", 1)[0]
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return path


def _hunk_sizes(line: str) -> tuple[int, int]:
    match = _HUNK_HEADER.match(line)
    if match is None:
        return 0, 0
    old_size, new_size = match.groups()
    return int(old_size or 1), int(new_size or 1)


def split_diff(text: str) -> list[ChangedFile]:
    """Return per-file diff records in the order they appear."""
    changes: list[ChangedFile] = []
    current_file = ""
    old_file = ""
    current_lines: list[str] = []
    old_left = new_left = 0

    def flush() -> None:
        if current_file and current_lines:
            changes.append(ChangedFile(path=current_file, content="\n".join(current_lines), is_diff=True))

    for line in text.split("\n"):
        if old_left > 0 or new_left > 0:
            if line.startswith("-"):
                old_left -= 1
            elif line.startswith("+"):
                new_left -= 1
            elif not line.startswith("\\"):
                old_left -= 1
                new_left -= 1
            current_lines.append(line)
            continue

        if line.startswith("diff --git") or line.startswith("---"):
            flush()
            current_lines = []
            current_file = ""
            old_file = _header_path(line) if line.startswith("---") else ""
        elif line.startswith("+++"):
            flush()
            current_lines = []
            target = _header_path(line)
            current_file = old_file if target == _DEV_NULL else target
        elif line.startswith(_GIT_METADATA_PREFIXES):
            continue
        else:
            if line.startswith("@@"):
                old_left, new_left = _hunk_sizes(line)
            current_lines.append(line)

    flush()
    return changes
