"""
Deck command dispatcher.

Each parsed command is interpreted against the caller's DeckSession and
the shared ClipCatalog, and answered immediately. Anything that has to
talk to the playout server (PLAY, PAUSE, LOAD, INFO, catalog rebuilds) is
started as a background task whose outcome is only logged: controllers
expect an acknowledgement within a frame or two and must never wait on
CasparCG.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from deckbridge.config import DeckConfig, get_deck_config
from deckbridge.core.catalog import ClipCatalog
from deckbridge.core.timecode import ZERO_TIMECODE
from deckbridge.playout.client import PlayoutClient
from deckbridge.protocol.commands import (
    OK,
    REMOTE_DISABLED,
    UNSUPPORTED,
    ClipsGetParams,
    DeckCommand,
    GotoParams,
    NotifyParams,
    PlayParams,
    RemoteParams,
    bool_text,
    build_block,
    build_line,
)
from deckbridge.session.client import DeckSession, TransportStatus

logger = logging.getLogger(__name__)

# Minimum time between two INFO queries for the same session
TC_REFRESH_INTERVAL_SECONDS = 1.0

CommandHandler = Callable[[DeckSession, DeckCommand], None]


class CommandDispatcher:
    """
    Translate deck commands into session updates, replies and AMCP calls.

    The dispatcher is shared by all sessions; per-controller state lives in
    the DeckSession passed to handle().
    """

    def __init__(
        self,
        playout: PlayoutClient,
        catalog: ClipCatalog,
        config: DeckConfig | None = None,
        *,
        timecode_interval: float = TC_REFRESH_INTERVAL_SECONDS,
    ) -> None:
        self.playout = playout
        self.catalog = catalog
        self.config = config or get_deck_config()
        self._timecode_interval = timecode_interval
        self._tasks: set[asyncio.Task[Any]] = set()

        self._handlers: dict[str, CommandHandler] = {
            "ping": self._handle_ping,
            "quit": self._handle_quit,
            "device info": self._handle_device_info,
            "slot info": self._handle_slot_info,
            "disk": self._handle_disk_list,
            "disk list": self._handle_disk_list,
            "remote": self._handle_remote,
            "notify": self._handle_notify,
            "play": self._handle_play,
            "stop": self._handle_stop,
            "transport info": self._handle_transport_info,
            "clips count": self._handle_clips_count,
            "clips get": self._handle_clips_get,
            "goto": self._handle_goto,
        }

    def handle(self, session: DeckSession, command: DeckCommand) -> None:
        """Run one command. The reply is queued on the session before returning."""
        handler = self._handlers.get(command.name)
        if handler is None:
            logger.info(
                "[client %d] Unknown command: %s, sending %s", session.id, command.name, UNSUPPORTED
            )
            self._reply(session, UNSUPPORTED)
            return
        handler(session, command)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _reply(self, session: DeckSession, text: str) -> None:
        logger.debug("[client %d] < %s", session.id, text)
        session.send(build_line(text))

    def _ok(self, session: DeckSession) -> None:
        self._reply(session, OK)

    def _block(self, session: DeckSession, code: int, text: str, lines: list[str]) -> None:
        logger.debug("[client %d] < %d %s: (%d lines)", session.id, code, text, len(lines))
        session.send(build_block(code, text, lines))

    def _ensure_remote_allowed(self, session: DeckSession) -> bool:
        if not session.remote_allowed:
            self._reply(session, REMOTE_DISABLED)
            return False
        return True

    def _spawn(
        self,
        session: DeckSession,
        description: str,
        coro: Coroutine[Any, Any, Any],
    ) -> asyncio.Task[None]:
        """Run a playout call in the background, logging any failure."""

        async def _run() -> None:
            try:
                await coro
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("[client %d] ERROR sending %s to CasparCG: %s", session.id, description, e)

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def refresh_timecode(self, session: DeckSession) -> asyncio.Task[None] | None:
        """
        Update the session timecodes from the playout layer, at most once per interval.

        Returns:
            The background task, or None if throttled.
        """
        now = time.monotonic()
        last = session.last_timecode_refresh
        if last is not None and now - last < self._timecode_interval:
            return None
        session.last_timecode_refresh = now

        async def _refresh() -> None:
            try:
                status = await self.playout.get_layer_status()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("[client %d] ERROR fetching timecode from CasparCG: %s", session.id, e)
                return

            timecode = status.timecode if status else None
            if timecode:
                session.display_timecode = timecode
                session.timeline_timecode = timecode

        task = asyncio.create_task(_refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for all background playout calls to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel background playout calls."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()

    # -------------------------------------------------------------------------
    # Command handlers
    # -------------------------------------------------------------------------

    def _handle_ping(self, session: DeckSession, command: DeckCommand) -> None:
        self._ok(session)

    def _handle_quit(self, session: DeckSession, command: DeckCommand) -> None:
        self._ok(session)
        session.close_after_reply()

    def _handle_device_info(self, session: DeckSession, command: DeckCommand) -> None:
        device = self.config.device
        self._block(
            session,
            204,
            "device info",
            [
                f"protocol version: {device.protocol_version}",
                f"model: {device.model}",
                f"unique id: {device.unique_id}",
                f"slot count: {device.slot_count}",
                f"software version: {device.software_version}",
                f"name: {device.name}",
            ],
        )

    def _handle_slot_info(self, session: DeckSession, command: DeckCommand) -> None:
        slot = self.config.slot
        self._block(
            session,
            202,
            "slot info",
            [
                f"slot id: {slot.slot_id}",
                f"slot name: {slot.slot_name}",
                f"device name: {slot.device_name}",
                f"status: {slot.status}",
                f"volume name: {slot.volume_name}",
                f"recording time: {slot.recording_time}",
                f"video format: {slot.video_format}",
                f"blocked: {bool_text(slot.blocked)}",
                f"remaining size: {slot.remaining_size}",
                f"total size: {slot.total_size}",
            ],
        )

    def _handle_disk_list(self, session: DeckSession, command: DeckCommand) -> None:
        self.catalog.refresh(session.id)

        # {Clip ID}: {Name} {File format} {Video format} {Duration timecode}
        lines = [f"slot id: {self.config.slot.slot_id}"]
        lines.extend(
            f"{clip.index}: {clip.name} {clip.file_format} {clip.video_format} {clip.duration_tc}"
            for clip in self.catalog.clips
        )
        self._block(session, 206, "disk list", lines)

    def _handle_remote(self, session: DeckSession, command: DeckCommand) -> None:
        if not command.params:
            self._block(
                session,
                210,
                "remote info",
                [
                    f"enabled: {bool_text(session.remote_enabled)}",
                    f"override: {bool_text(session.remote_override)}",
                ],
            )
            return

        params = RemoteParams.from_params(command.params)
        if params.enable is not None:
            session.remote_enabled = params.enable
        if params.override is not None:
            session.remote_override = params.override
        self._ok(session)

    def _handle_notify(self, session: DeckSession, command: DeckCommand) -> None:
        notify = session.notify
        if not command.params:
            self._block(
                session,
                209,
                "notify",
                [
                    f"transport: {bool_text(notify.transport)}",
                    f"slot: {bool_text(notify.slot)}",
                    f"remote: {bool_text(notify.remote)}",
                    f"configuration: {bool_text(notify.configuration)}",
                ],
            )
            return

        for key, value in NotifyParams.from_params(command.params).flags.items():
            setattr(notify, key, value)
        self._ok(session)

    def _handle_play(self, session: DeckSession, command: DeckCommand) -> None:
        if not self._ensure_remote_allowed(session):
            return

        params = PlayParams.from_params(command.params)
        if params.clip_id is not None:
            session.current_clip_index = params.clip_id
        elif session.current_clip_index is None:
            session.current_clip_index = 1

        self.catalog.refresh(session.id)

        clip = self.catalog.get(session.current_clip_index)
        if clip:
            self._spawn(session, "PLAY", self.playout.play_clip(clip.playout_name))

        session.play_speed = params.speed
        if params.loop is not None:
            session.loop = params.loop
        if params.single_clip is not None:
            session.single_clip = params.single_clip

        session.transport_status = TransportStatus.PLAY

        self.refresh_timecode(session)
        self._ok(session)

    def _handle_stop(self, session: DeckSession, command: DeckCommand) -> None:
        if not self._ensure_remote_allowed(session):
            return

        session.stop_transport()
        self._ok(session)

        # PAUSE rather than STOP so the last frame stays on air
        self._spawn(session, "PAUSE", self.playout.pause())

    def _handle_transport_info(self, session: DeckSession, command: DeckCommand) -> None:
        slot = self.config.slot
        clip_id = session.current_clip_index if session.current_clip_index is not None else "none"

        self.refresh_timecode(session)

        self._block(
            session,
            208,
            "transport info",
            [
                f"status: {session.transport_status.value}",
                f"speed: {session.play_speed}",
                f"slot id: {slot.slot_id}",
                f"slot name: {slot.slot_name}",
                f"device name: {slot.device_name}",
                f"clip id: {clip_id}",
                f"single clip: {bool_text(session.single_clip)}",
                f"display timecode: {session.display_timecode}",
                f"timecode: {session.timeline_timecode}",
                f"video format: {slot.video_format}",
                f"loop: {bool_text(session.loop)}",
                "timeline: 0",
                f"input video format: {slot.video_format}",
                "dynamic range: Rec709",
                "reference locked: false",
            ],
        )

    def _handle_clips_count(self, session: DeckSession, command: DeckCommand) -> None:
        self.catalog.refresh(session.id)
        self._block(session, 214, "clips count", [f"clip count: {len(self.catalog)}"])

    def _handle_clips_get(self, session: DeckSession, command: DeckCommand) -> None:
        self.catalog.refresh(session.id)

        clips = self.catalog.clips
        params = ClipsGetParams.from_params(command.params)
        start = params.clip_id

        if start > len(clips):
            self._block(session, 205, "clips info", ["clip count: 0"])
            return

        remaining = len(clips) - (start - 1)
        count = params.count if 0 < params.count < remaining else remaining
        selected = clips[start - 1 : start - 1 + count]

        lines = [f"clip count: {len(clips)}"]
        lines.extend(
            f"{clip.index}: {clip.name} {clip.start_tc} {clip.duration_tc}" for clip in selected
        )
        self._block(session, 205, "clips info", lines)

    def _handle_goto(self, session: DeckSession, command: DeckCommand) -> None:
        params = GotoParams.from_params(command.params)

        if params.clip_id is not None:
            self.catalog.refresh(session.id)

            clip = self.catalog.get(params.clip_id)
            if clip:
                session.current_clip_index = params.clip_id
                self._spawn(session, "LOAD", self.playout.load_clip(clip.playout_name))
            else:
                logger.warning("[client %d] goto requested invalid clip id %d", session.id, params.clip_id)

        # goto cues the clip but does not play it
        session.stop_transport()
        session.display_timecode = ZERO_TIMECODE
        session.timeline_timecode = ZERO_TIMECODE

        self._ok(session)
