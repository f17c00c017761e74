"""
Deck protocol implementation for deckbridge.

This package contains the controller-facing side:
- framing: splitting the byte stream into command lines
- commands: command parsing, typed parameters and reply builders
- handlers: the command dispatcher
- deck: the TCP listener (port 9993)
"""

from deckbridge.protocol.deck import DeckServer

__all__ = ["DeckServer"]
