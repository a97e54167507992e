"""
Terminal Layer - streaming agent terminal output to operator clients.

Components:
- FrameCoalescer: Batches output into ~16ms frames
- ScrollbackBuffer: Recent lines replayed to newly connected clients
"""

from .buffer import ScrollbackBuffer
from .pipeline import FrameCoalescer


__all__ = ["FrameCoalescer", "ScrollbackBuffer"]
