"""
Clip catalog for deckbridge.

Deck controllers address clips by a 1-based "clip id". The catalog keeps a
snapshot of the playout server's media folder, numbered in listing order,
and rebuilds it wholesale from CLS + CINF at most once per refresh
interval. Readers always see a complete snapshot: the tuple is swapped in
one assignment once the rebuild finishes.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from deckbridge.config import ClipDefaults
from deckbridge.core.timecode import ZERO_TIMECODE

if TYPE_CHECKING:
    from deckbridge.playout.client import ClipInfo, PlayoutClient

logger = logging.getLogger(__name__)

# Minimum time between two catalog rebuilds
CLIP_REFRESH_INTERVAL_SECONDS = 15.0

_EXTENSION = re.compile(r"\.[^.]+$")


def playout_name(name: str) -> str:
    """Strip surrounding quotes and a trailing file extension from a clip name."""
    return _EXTENSION.sub("", name.strip('"'))


@dataclass(frozen=True)
class Clip:
    """One clip as reported to deck controllers."""

    index: int
    name: str
    file_format: str
    video_format: str
    duration_tc: str
    start_tc: str = ZERO_TIMECODE
    fps: float | None = None
    frames: int | None = None

    @property
    def playout_name(self) -> str:
        """Name to send to the playout server."""
        return playout_name(self.name)


def build_clips(
    entries: Sequence[tuple[str, "ClipInfo | None"]],
    defaults: ClipDefaults | None = None,
) -> tuple[Clip, ...]:
    """
    Number clips from 1 and fill in fallbacks for missing metadata.

    Args:
        entries: (name, metadata) pairs in listing order; metadata may be
            None when CINF failed for that clip.
        defaults: Fallback labels (file format, duration, video format).
    """
    defaults = defaults or ClipDefaults()
    clips = []
    for i, (name, info) in enumerate(entries, start=1):
        clips.append(
            Clip(
                index=i,
                name=name,
                file_format=defaults.file_format,
                video_format=(info and info.video_format) or defaults.fallback_video_format,
                duration_tc=(info and info.duration_tc) or defaults.fallback_duration,
                fps=info.fps if info else None,
                frames=info.frames if info else None,
            )
        )
    return tuple(clips)


class ClipCatalog:
    """
    Shared, refresh-throttled clip catalog.

    refresh() is fire-and-forget: it schedules a rebuild in the background
    and returns immediately, so callers answer from the current snapshot.
    """

    def __init__(
        self,
        playout: "PlayoutClient",
        *,
        defaults: ClipDefaults | None = None,
        refresh_interval: float = CLIP_REFRESH_INTERVAL_SECONDS,
    ) -> None:
        self._playout = playout
        self._defaults = defaults or ClipDefaults()
        self._refresh_interval = refresh_interval
        self._clips: tuple[Clip, ...] = ()
        self._last_refresh: float | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def clips(self) -> tuple[Clip, ...]:
        """The current snapshot."""
        return self._clips

    def __len__(self) -> int:
        return len(self._clips)

    def get(self, index: int) -> Clip | None:
        """Look up a clip by its 1-based index in the current snapshot."""
        clips = self._clips
        if 1 <= index <= len(clips):
            return clips[index - 1]
        return None

    def replace(self, clips: Sequence[Clip]) -> None:
        """Swap in a new snapshot."""
        self._clips = tuple(clips)

    def refresh(self, client_id: int | str = "-", *, force: bool = False) -> asyncio.Task[None] | None:
        """
        Schedule a catalog rebuild unless one ran within the refresh interval.

        The interval is measured from the last attempt, successful or not.

        Args:
            client_id: Session id used to prefix log lines.
            force: Rebuild even if the interval has not elapsed.

        Returns:
            The background task, or None if the refresh was throttled.
        """
        now = time.monotonic()
        if (
            not force
            and self._last_refresh is not None
            and now - self._last_refresh < self._refresh_interval
        ):
            return None

        self._last_refresh = now

        task = asyncio.create_task(self._rebuild(client_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _rebuild(self, client_id: int | str) -> None:
        try:
            names = await self._playout.list_clips()
        except Exception as e:
            logger.error("[client %s] Error refreshing clips from CasparCG: %s", client_id, e)
            return

        if not names:
            logger.info("[client %s] CasparCG returned no clips; keeping existing catalog", client_id)
            return

        entries: list[tuple[str, ClipInfo | None]] = []
        for name in names:
            try:
                info = await self._playout.get_clip_info(name)
            except Exception as e:
                logger.warning("[client %s] CINF failed for %r: %s", client_id, name, e)
                info = None
            entries.append((name, info))

        self.replace(build_clips(entries, self._defaults))
        logger.info("[client %s] Refreshed %d clips from CasparCG", client_id, len(entries))

    async def wait_idle(self) -> None:
        """Wait for any in-flight rebuild to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight rebuilds."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
