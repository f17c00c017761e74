"""
Controller session management for deckbridge.

This package handles connected deck controllers and their per-connection
transport state.
"""

from deckbridge.session.client import DeckSession
from deckbridge.session.registry import SessionRegistry

__all__ = [
    "DeckSession",
    "SessionRegistry",
]
