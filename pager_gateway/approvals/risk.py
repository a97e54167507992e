"""
Risk Classification

Pure functions run on every permission request before it is broadcast:

    classify_risk()   → safe / moderate / dangerous (drives auto-approval)
    summarize_tool()  → one-line description for the approval card
    extract_target()  → the path, command or pattern the tool acts on

Bash commands are classified by content, Write/Edit/NotebookEdit by target
path. Anything unrecognized (MCP tools, subagents) is moderate.
"""

import json
import re
from typing import Any

from ..constants import READ_ONLY_TOOLS
from ..protocol.message_types import RiskLevel


_DESTRUCTIVE_PATTERN = re.compile(
    r"\b(rm\s+-[^\s]*r|rm\s+-[^\s]*f|rmdir|dd\s+|mkfs|format\s+|git\s+push\s+--force"
    r"|git\s+push\s+-f|git\s+reset\s+--hard|git\s+clean\s+-[^\s]*f|drop\s+table"
    r"|drop\s+database|truncate\s+table|>\s*/dev/|shutdown|reboot|kill\s+-9"
    r"|pkill\s+-9|chmod\s+777|chown\s+root)\b",
    re.IGNORECASE,
)

_INSTALL_PATTERN = re.compile(
    r"\b(npm\s+install|npm\s+i\s|pnpm\s+(add|install)|yarn\s+add|pip\s+install"
    r"|pip3\s+install|brew\s+install|apt\s+install|apt-get\s+install|cargo\s+install"
    r"|go\s+install)\b",
    re.IGNORECASE,
)

_NETWORK_PATTERN = re.compile(
    r"\b(curl|wget|fetch|nc\s|ncat|ssh\s|scp\s|rsync\s|docker\s+pull|docker\s+push)\b",
    re.IGNORECASE,
)

_PLAIN_RM_PATTERN = re.compile(r"\brm\s")

_SYSTEM_PATH_PATTERN = re.compile(r"^/(etc|usr|var|boot|sys|proc)/")

_CREDENTIAL_FILE_PATTERN = re.compile(r"\.(env|pem|key|crt|p12|pfx|jks|keystore)$", re.IGNORECASE)

_MAX_SUMMARY_CHARS = 120
_MAX_TARGET_CHARS = 200


def _str_field(tool_input: dict[str, Any], key: str) -> str:
    value = tool_input.get(key)
    return value if isinstance(value, str) else ""


def _classify_path(path: str) -> RiskLevel:
    if _SYSTEM_PATH_PATTERN.search(path):
        return RiskLevel.DANGEROUS
    if _CREDENTIAL_FILE_PATTERN.search(path):
        return RiskLevel.MODERATE
    return RiskLevel.SAFE


def classify_risk(tool_name: str, tool_input: dict[str, Any]) -> RiskLevel:
    """
    Classify a tool invocation.

    Args:
        tool_name: Agent tool name (e.g. "Bash", "Write")
        tool_input: Tool arguments as sent by the hook

    Returns:
        RiskLevel of the invocation
    """
    if tool_name in READ_ONLY_TOOLS:
        return RiskLevel.SAFE

    if tool_name == "Bash":
        command = _str_field(tool_input, "command")
        if _DESTRUCTIVE_PATTERN.search(command):
            return RiskLevel.DANGEROUS
        # A plain rm is still a delete
        if _PLAIN_RM_PATTERN.search(command):
            return RiskLevel.MODERATE
        if _INSTALL_PATTERN.search(command) or _NETWORK_PATTERN.search(command):
            return RiskLevel.MODERATE
        return RiskLevel.SAFE

    if tool_name in ("Write", "Edit"):
        return _classify_path(_str_field(tool_input, "file_path"))

    if tool_name == "NotebookEdit":
        return _classify_path(_str_field(tool_input, "notebook_path"))

    return RiskLevel.MODERATE


def summarize_tool(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Human-readable one-liner for an approval card."""
    match tool_name:
        case "Bash":
            command = _str_field(tool_input, "command")
            if len(command) > _MAX_SUMMARY_CHARS:
                return command[: _MAX_SUMMARY_CHARS - 3] + "..."
            return command
        case "Write":
            return f"Write to {_str_field(tool_input, 'file_path') or 'unknown file'}"
        case "Edit":
            return f"Edit {_str_field(tool_input, 'file_path') or 'unknown file'}"
        case "Read":
            return f"Read {_str_field(tool_input, 'file_path') or 'unknown file'}"
        case "Glob":
            return f"Search for files: {_str_field(tool_input, 'pattern')}"
        case "Grep":
            return f"Search content: {_str_field(tool_input, 'pattern')}"
        case "NotebookEdit":
            return f"Edit notebook {_str_field(tool_input, 'notebook_path') or 'unknown'}"
        case _:
            return tool_name


def extract_target(tool_name: str, tool_input: dict[str, Any]) -> str:
    """The resource a tool acts on; truncated JSON of the input for unknown tools."""
    match tool_name:
        case "Bash":
            return _str_field(tool_input, "command")
        case "Write" | "Edit" | "Read":
            return _str_field(tool_input, "file_path")
        case "NotebookEdit":
            return _str_field(tool_input, "notebook_path")
        case "Glob" | "Grep":
            return _str_field(tool_input, "pattern")
        case _:
            return json.dumps(tool_input, separators=(",", ":"))[:_MAX_TARGET_CHARS]
