"""
deckbridge - A HyperDeck-style deck emulator in front of CasparCG.

deckbridge accepts deck-protocol commands from studio controllers and
carries them out on a CasparCG playout server over AMCP, so equipment
that expects a tape-deck style recorder can drive software playout.
"""

__version__ = "0.1.0"
__author__ = "deckbridge Contributors"
__license__ = "GPL-2.0"

from deckbridge.server import DeckBridgeServer

__all__ = ["DeckBridgeServer", "__version__"]
