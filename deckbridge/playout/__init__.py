"""
CasparCG playout integration for deckbridge.

This package contains the downstream AMCP side:
- framing: matching framed replies to pipelined requests
- client: the shared, lazily connected AMCP client
"""

from deckbridge.playout.client import (
    ClipInfo,
    LayerStatus,
    PlayoutClient,
    PlayoutConnectionError,
    PlayoutError,
)

__all__ = [
    "ClipInfo",
    "LayerStatus",
    "PlayoutClient",
    "PlayoutConnectionError",
    "PlayoutError",
]
