"""
Protocol Layer - pydantic models for everything that crosses the wire.
"""

from .message_types import (
    ApproveAction,
    AuthAction,
    ClientAction,
    DecisionRequest,
    DenyAction,
    DiffHunk,
    DiffPayload,
    HookEvent,
    HookEventType,
    HookResponse,
    PairingPayload,
    PairRequest,
    PairResponse,
    PingAction,
    RelayPairingPayload,
    RiskLevel,
    parse_client_action,
)


__all__ = [
    "ApproveAction",
    "AuthAction",
    "ClientAction",
    "DecisionRequest",
    "DenyAction",
    "DiffHunk",
    "DiffPayload",
    "HookEvent",
    "HookEventType",
    "HookResponse",
    "PairRequest",
    "PairResponse",
    "PairingPayload",
    "PingAction",
    "RelayPairingPayload",
    "RiskLevel",
    "parse_client_action",
]
