"""
Core domain logic for deckbridge.

This package contains the pieces that are independent of either wire
protocol:
- timecode: conversions between seconds, frames and HH:MM:SS:FF
- catalog: the cached, index-stable clip list
"""

from deckbridge.core.catalog import Clip, ClipCatalog

__all__ = ["Clip", "ClipCatalog"]
