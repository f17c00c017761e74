"""
Tests for the clip catalog.
"""

from unittest.mock import AsyncMock

import pytest

from deckbridge.config import ClipDefaults
from deckbridge.core.catalog import Clip, ClipCatalog, build_clips, playout_name
from deckbridge.playout.client import ClipInfo, PlayoutClient, PlayoutConnectionError

INTRO_INFO = ClipInfo(fps=25.0, frames=250, duration_tc="00:00:10:00", video_format="1080p25")


@pytest.fixture
def playout() -> AsyncMock:
    """A mocked playout client with two clips."""
    mock = AsyncMock(spec=PlayoutClient)
    mock.list_clips.return_value = ["INTRO", "OUTRO"]
    mock.get_clip_info.return_value = INTRO_INFO
    return mock


class TestPlayoutName:
    """Tests for playout_name."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("INTRO", "INTRO"),
            ("INTRO.mov", "INTRO"),
            ('"INTRO.mov"', "INTRO"),
            ("show.final.mp4", "show.final"),
            ("folder/clip", "folder/clip"),
        ],
    )
    def test_strips_quotes_and_extension(self, name: str, expected: str) -> None:
        """Quotes and the last extension are removed."""
        assert playout_name(name) == expected

    def test_clip_property(self) -> None:
        """Clip.playout_name applies the same stripping."""
        clip = Clip(1, "A.mov", "QuickTimeProRes", "1080p25", "00:00:01:00")
        assert clip.playout_name == "A"


class TestBuildClips:
    """Tests for build_clips."""

    def test_numbers_from_one(self) -> None:
        """Clips are numbered in listing order starting at 1."""
        clips = build_clips([("A", INTRO_INFO), ("B", INTRO_INFO)])
        assert [(c.index, c.name) for c in clips] == [(1, "A"), (2, "B")]

    def test_known_metadata(self) -> None:
        """CINF fields are carried over."""
        [clip] = build_clips([("A", INTRO_INFO)])
        assert clip.video_format == "1080p25"
        assert clip.duration_tc == "00:00:10:00"
        assert clip.start_tc == "00:00:00:00"
        assert clip.file_format == "QuickTimeProRes"
        assert clip.fps == 25.0
        assert clip.frames == 250

    def test_missing_metadata_uses_fallbacks(self) -> None:
        """A clip without CINF data gets the fallback duration and format."""
        [clip] = build_clips([("A", None)])
        assert clip.duration_tc == "00:00:10:00"
        assert clip.video_format == "1080p30"
        assert clip.fps is None

    def test_partial_metadata(self) -> None:
        """Fields that CINF could not supply fall back individually."""
        [clip] = build_clips([("A", ClipInfo(frames=250))])
        assert clip.frames == 250
        assert clip.video_format == "1080p30"
        assert clip.duration_tc == "00:00:10:00"

    def test_custom_defaults(self) -> None:
        """Configured defaults replace the built-in labels."""
        defaults = ClipDefaults(
            file_format="H.264", fallback_duration="00:01:00:00", fallback_video_format="1080p25"
        )
        [clip] = build_clips([("A", None)], defaults)
        assert clip.file_format == "H.264"
        assert clip.duration_tc == "00:01:00:00"
        assert clip.video_format == "1080p25"


class TestClipCatalogLookup:
    """Tests for snapshot access."""

    def test_get(self, playout: AsyncMock) -> None:
        """get() is 1-based and returns None outside the range."""
        catalog = ClipCatalog(playout)
        catalog.replace(build_clips([("A", None), ("B", None)]))

        assert catalog.get(1).name == "A"
        assert catalog.get(2).name == "B"
        assert catalog.get(0) is None
        assert catalog.get(3) is None
        assert len(catalog) == 2

    def test_empty(self, playout: AsyncMock) -> None:
        """A new catalog has no clips."""
        catalog = ClipCatalog(playout)
        assert catalog.clips == ()
        assert catalog.get(1) is None


class TestClipCatalogRefresh:
    """Tests for background rebuilds."""

    async def test_refresh_builds_snapshot(self, playout: AsyncMock) -> None:
        """A refresh lists clips and fetches metadata for each one."""
        catalog = ClipCatalog(playout)
        task = catalog.refresh(1)
        assert task is not None
        await task

        assert [c.name for c in catalog.clips] == ["INTRO", "OUTRO"]
        assert playout.get_clip_info.await_count == 2
        playout.get_clip_info.assert_any_await("INTRO")
        playout.get_clip_info.assert_any_await("OUTRO")

    async def test_refresh_is_throttled(self, playout: AsyncMock) -> None:
        """A second refresh inside the interval does nothing."""
        catalog = ClipCatalog(playout)
        catalog.refresh()
        assert catalog.refresh() is None
        await catalog.wait_idle()

        playout.list_clips.assert_awaited_once()

    async def test_refresh_after_interval(self, playout: AsyncMock) -> None:
        """Once the interval has passed, a new rebuild runs."""
        catalog = ClipCatalog(playout, refresh_interval=15.0)
        assert catalog.refresh() is not None
        await catalog.wait_idle()

        catalog._last_refresh -= 16.0
        assert catalog.refresh() is not None
        await catalog.wait_idle()

        assert playout.list_clips.await_count == 2

    async def test_force_bypasses_throttle(self, playout: AsyncMock) -> None:
        """force=True always schedules a rebuild."""
        catalog = ClipCatalog(playout)
        catalog.refresh()
        assert catalog.refresh(force=True) is not None
        await catalog.wait_idle()

        assert playout.list_clips.await_count == 2

    async def test_failed_list_keeps_catalog(self, playout: AsyncMock) -> None:
        """A CLS failure is logged and the old snapshot stays."""
        catalog = ClipCatalog(playout)
        catalog.replace(build_clips([("OLD", None)]))
        playout.list_clips.side_effect = PlayoutConnectionError("refused")

        await catalog.refresh()

        assert [c.name for c in catalog.clips] == ["OLD"]

    async def test_failed_attempt_still_throttles(self, playout: AsyncMock) -> None:
        """The interval counts from the last attempt, not the last success."""
        catalog = ClipCatalog(playout)
        playout.list_clips.side_effect = PlayoutConnectionError("refused")

        await catalog.refresh()

        assert catalog.refresh() is None

    async def test_empty_list_keeps_catalog(self, playout: AsyncMock) -> None:
        """An empty CLS reply does not wipe the catalog."""
        catalog = ClipCatalog(playout)
        catalog.replace(build_clips([("OLD", None)]))
        playout.list_clips.return_value = []

        await catalog.refresh()

        assert [c.name for c in catalog.clips] == ["OLD"]
        playout.get_clip_info.assert_not_awaited()

    async def test_cinf_failure_degrades_one_clip(self, playout: AsyncMock) -> None:
        """A failed CINF leaves that clip with fallback metadata."""
        playout.get_clip_info.side_effect = [INTRO_INFO, PlayoutConnectionError("reset")]
        catalog = ClipCatalog(playout)

        await catalog.refresh()

        intro, outro = catalog.clips
        assert intro.video_format == "1080p25"
        assert outro.name == "OUTRO"
        assert outro.video_format == "1080p30"
        assert outro.duration_tc == "00:00:10:00"

    async def test_close_cancels_rebuild(self, playout: AsyncMock) -> None:
        """close() cancels a rebuild in flight."""
        catalog = ClipCatalog(playout)
        task = catalog.refresh()

        await catalog.close()

        assert task.cancelled()
        assert catalog.clips == ()
