"""
Approvals - blocking hook requests awaiting a remote decision.

Components:
- ApprovalRegistry: Pending-request table with per-request timeouts
- ApprovalOutcome: Final decision delivered to the blocked hook
- classify_risk / summarize_tool / extract_target: approval card metadata
- generate_diff: Write/Edit preview
"""

from .diff import compute_diff, generate_diff
from .registry import (
    ApprovalOutcome,
    ApprovalRegistry,
    DuplicateApprovalError,
    PendingApproval,
)
from .risk import classify_risk, extract_target, summarize_tool


__all__ = [
    "ApprovalOutcome",
    "ApprovalRegistry",
    "DuplicateApprovalError",
    "PendingApproval",
    "classify_risk",
    "compute_diff",
    "extract_target",
    "generate_diff",
    "summarize_tool",
]
