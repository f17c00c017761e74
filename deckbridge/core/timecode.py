"""
Timecode helpers for deckbridge.

Deck controllers speak in HH:MM:SS:FF timecodes while the playout server
reports positions as fractional seconds and durations as frame counts.
These pure functions convert between the representations.

The frame component is always taken modulo the *rounded* frame rate, so
29.97 fps material counts frames 00-29 and 59.94 fps material 00-59. No
drop-frame correction is applied.
"""

from __future__ import annotations

import math

ZERO_TIMECODE = "00:00:00:00"


def _round_half_up(value: float) -> int:
    # 12.5 fps rounds to 13, not to the even 12
    return math.floor(value + 0.5)


def _rounded_fps(fps: float | None) -> int | None:
    """Return the integer frame base for a rate, or None if it is unusable."""
    if not fps:
        return None
    rounded = _round_half_up(fps)
    if rounded <= 0:
        return None
    return rounded


def _format(total_seconds: int, frame: int) -> str:
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}:{frame:02d}"


def seconds_to_timecode(seconds: float | None, fps: float | None) -> str | None:
    """
    Convert a position in seconds to a timecode.

    Args:
        seconds: Position in (fractional) seconds.
        fps: Frame rate of the material.

    Returns:
        "HH:MM:SS:FF", or None when seconds or fps is missing or fps is zero.
    """
    if seconds is None:
        return None
    base = _rounded_fps(fps)
    if base is None:
        return None

    total_frames = math.floor(seconds * fps)  # type: ignore[operator]
    return _format(total_frames // base, total_frames % base)


def frames_to_timecode(frames: int | None, fps: float | None) -> str | None:
    """
    Convert a frame count to a timecode.

    Returns None when frames or fps is missing or fps is zero.
    """
    if frames is None:
        return None
    base = _rounded_fps(fps)
    if base is None:
        return None

    return _format(frames // base, frames % base)


# Known 1080p rates, keyed by rounded fps
_VIDEO_FORMATS: dict[int, str] = {
    24: "1080p24",
    25: "1080p25",
    30: "1080p30",
    50: "1080p50",
    60: "1080p60",
}


def guess_video_format(fps: float | None) -> str | None:
    """Guess a deck video format label (e.g. "1080p25") from a frame rate."""
    if not fps:
        return None
    rounded = _round_half_up(fps)
    return _VIDEO_FORMATS.get(rounded, f"1080p{rounded}")
