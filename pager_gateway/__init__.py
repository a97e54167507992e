"""
Pager Gateway

Control plane that lets a paired remote operator approve or deny tool-use
actions requested by a coding agent, and streams the agent's terminal
output to that operator.

Components:
    - ApprovalRegistry: Blocks hook invocations until approved, denied or timed out
    - PairingAuthenticator: TOTP pairing with per-source brute-force limiting
    - FrameCoalescer: Batches terminal output into ~60fps frames
    - Gateway: Composition root used by the FastAPI apps in server.py
"""

from .approvals import ApprovalOutcome, ApprovalRegistry, DuplicateApprovalError
from .config import GatewayConfig, load_config
from .gateway import ClientConnection, Gateway
from .security import PairingAuthenticator
from .terminal import FrameCoalescer, ScrollbackBuffer


__all__ = [
    "ApprovalOutcome",
    "ApprovalRegistry",
    "ClientConnection",
    "DuplicateApprovalError",
    "FrameCoalescer",
    "Gateway",
    "GatewayConfig",
    "PairingAuthenticator",
    "ScrollbackBuffer",
    "load_config",
]
