"""
Hooks Layer - normalization of agent hook payloads.
"""

from .ingestion import normalize_hook_payload


__all__ = ["normalize_hook_payload"]
