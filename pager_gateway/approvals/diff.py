"""
Write/Edit Diff Previews

Builds the unified-diff hunks shown on an approval card, before the tool
runs:

    Write → current file (empty if new) vs. tool_input["content"]
    Edit  → current file vs. the file with old_string replaced by new_string

Binary or oversized files yield a payload with ``is_binary`` set and no
hunks. Hunks stop being added once their combined text exceeds
``max_bytes`` (``is_truncated`` set). A preview is best effort: any
failure to read the file means no diff, never a failed request.
"""

import difflib
from pathlib import Path
from typing import Any

from loguru import logger

from ..constants import BINARY_EXTENSIONS, DIFF_CONTEXT_LINES, MAX_DIFF_BYTES
from ..protocol.message_types import DiffHunk, DiffPayload


def generate_diff(
    tool_name: str, tool_input: dict[str, Any], max_bytes: int = MAX_DIFF_BYTES
) -> DiffPayload | None:
    """
    Preview what a Write or Edit would change.

    Returns:
        DiffPayload, or None for other tools, incomplete input, or an Edit
        whose old_string is not in the file
    """
    try:
        if tool_name == "Write":
            return _write_diff(tool_input, max_bytes)
        if tool_name == "Edit":
            return _edit_diff(tool_input, max_bytes)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"[diff] Failed to generate diff for {tool_name}: {e}")
    return None


def _write_diff(tool_input: dict[str, Any], max_bytes: int) -> DiffPayload | None:
    file_path = tool_input.get("file_path")
    new_content = tool_input.get("content")
    if not isinstance(file_path, str) or not file_path or not isinstance(new_content, str):
        return None

    path = Path(file_path)
    if _is_binary_or_too_large(path, max_bytes):
        return DiffPayload(file_path=file_path, is_binary=True)

    old_content = path.read_text(encoding="utf-8") if path.exists() else ""
    return compute_diff(file_path, old_content, new_content, max_bytes)


def _edit_diff(tool_input: dict[str, Any], max_bytes: int) -> DiffPayload | None:
    file_path = tool_input.get("file_path")
    old_string = tool_input.get("old_string")
    new_string = tool_input.get("new_string")
    if not isinstance(file_path, str) or not file_path:
        return None
    if not isinstance(old_string, str) or not isinstance(new_string, str):
        return None

    path = Path(file_path)
    if not path.exists():
        return None

    content = path.read_text(encoding="utf-8")
    if tool_input.get("replace_all"):
        edited = content.replace(old_string, new_string)
    elif old_string in content:
        edited = content.replace(old_string, new_string, 1)
    else:
        return None

    return compute_diff(file_path, content, edited, max_bytes)


def compute_diff(
    file_path: str, old_content: str, new_content: str, max_bytes: int = MAX_DIFF_BYTES
) -> DiffPayload:
    """Structured unified diff (3 lines of context) between two texts."""
    old_lines = old_content.splitlines()
    new_lines = new_content.splitlines()
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    hunks: list[DiffHunk] = []
    additions = 0
    deletions = 0
    total_size = 0
    truncated = False

    for group in matcher.get_grouped_opcodes(DIFF_CONTEXT_LINES):
        lines: list[str] = []
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                lines.extend(f" {line}" for line in old_lines[i1:i2])
                continue
            if tag in ("replace", "delete"):
                lines.extend(f"-{line}" for line in old_lines[i1:i2])
            if tag in ("replace", "insert"):
                lines.extend(f"+{line}" for line in new_lines[j1:j2])

        hunk_additions = sum(1 for line in lines if line.startswith("+"))
        hunk_deletions = sum(1 for line in lines if line.startswith("-"))
        additions += hunk_additions
        deletions += hunk_deletions

        total_size += len("\n".join(lines))
        if total_size > max_bytes:
            truncated = True
            break

        first, last = group[0], group[-1]
        old_count = last[2] - first[1]
        new_count = last[4] - first[3]
        hunks.append(
            DiffHunk(
                # Unified diff numbering: an empty side starts one line earlier
                old_start=first[1] + 1 if old_count else first[1],
                old_lines=old_count,
                new_start=first[3] + 1 if new_count else first[3],
                new_lines=new_count,
                lines=lines,
            )
        )

    return DiffPayload(
        file_path=file_path,
        hunks=hunks,
        additions=additions,
        deletions=deletions,
        is_truncated=truncated,
    )


def _is_binary_or_too_large(path: Path, max_bytes: int) -> bool:
    if not path.exists():
        return False
    if path.stat().st_size > max_bytes:
        return True
    return path.suffix.lower() in BINARY_EXTENSIONS
