"""
Deck session representation for deckbridge.

This module defines the DeckSession class which represents one connected
deck controller (a vision mixer, automation system or a telnet user) and
the transport state it sees.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from deckbridge.core.timecode import ZERO_TIMECODE

if TYPE_CHECKING:
    from asyncio import StreamWriter

logger = logging.getLogger(__name__)

_session_ids = itertools.count(1)


class TransportStatus(Enum):
    """Transport states reported in "transport info"."""

    STOPPED = "stopped"
    PLAY = "play"


@dataclass
class NotifyFlags:
    """Asynchronous notification subscriptions requested by the controller."""

    transport: bool = False
    slot: bool = False
    remote: bool = False
    configuration: bool = False


class DeckSession:
    """
    State for one controller connection.

    Sessions are created when a controller connects and dropped when it
    disconnects. Only the dispatcher handling this connection mutates it.

    Attributes:
        id: Unique, monotonically increasing session number.
        remote_enabled: Controller enabled remote control.
        remote_override: Remote control forced on regardless of enable.
        transport_status: Current transport state.
        play_speed: Speed in percent; 0 while stopped.
        current_clip_index: Selected clip (1-based), or None.
    """

    def __init__(self, writer: "StreamWriter", session_id: int | None = None) -> None:
        self._writer = writer
        self.id = session_id if session_id is not None else next(_session_ids)

        # Remote state
        self.remote_enabled = True
        self.remote_override = True

        # Transport state
        self.transport_status = TransportStatus.STOPPED
        self.play_speed = 0
        self.current_clip_index: int | None = None
        self.single_clip = True
        self.loop = False
        self.display_timecode = ZERO_TIMECODE
        self.timeline_timecode = ZERO_TIMECODE
        self.last_timecode_refresh: float | None = None

        self.notify = NotifyFlags()

        # Connection metadata
        peername = writer.get_extra_info("peername")
        self._remote_ip = peername[0] if peername else "unknown"
        self._remote_port = peername[1] if peername else 0
        self._closed = False

    @property
    def remote_allowed(self) -> bool:
        """Remote control is permitted if either enable or override is set."""
        return self.remote_enabled or self.remote_override

    @property
    def remote_address(self) -> tuple[str, int]:
        """Get the remote IP address and port."""
        return (self._remote_ip, self._remote_port)

    @property
    def is_connected(self) -> bool:
        """Check if the controller connection is still open."""
        return not self._closed

    def stop_transport(self) -> None:
        """Put the transport in the stopped state."""
        self.transport_status = TransportStatus.STOPPED
        self.play_speed = 0

    def send(self, text: str) -> None:
        """
        Queue reply text on the connection.

        Writes are buffered by the transport; the read loop drains after
        each batch of commands.
        """
        if self._closed:
            logger.debug("[client %d] Dropping reply on closed connection", self.id)
            return
        self._writer.write(text.encode("utf-8"))

    async def drain(self) -> None:
        """Wait until queued replies are flushed to the socket."""
        if self._closed:
            return
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            logger.warning("[client %d] Failed to send: %s", self.id, e)
            await self.disconnect()

    def close_after_reply(self) -> None:
        """Mark the connection to be closed once pending replies are sent."""
        self._closed = True
        self._writer.close()

    async def disconnect(self) -> None:
        """Close the connection to this controller."""
        if self._closed:
            try:
                await self._writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            return

        logger.info("[client %d] Disconnecting", self.id)
        self._closed = True

        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError):
            pass  # Already disconnected

    def __repr__(self) -> str:
        """Return a string representation for debugging."""
        return (
            f"DeckSession(id={self.id}, remote={self._remote_ip}:{self._remote_port}, "
            f"status={self.transport_status.value}, clip={self.current_clip_index})"
        )
