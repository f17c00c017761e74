"""
CasparCG AMCP client for deckbridge.

One persistent TCP connection to the playout server is shared by every
deck session. Commands are pipelined: each one is written immediately and
its reply is matched to it in send order by the ResponseFramer.

The connection is opened lazily on the first request and re-opened lazily
on the next request after it drops. There is no background reconnect and
no per-request timeout: a reply that never arrives keeps its slot at the
head of the queue.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

from deckbridge.core.timecode import (
    frames_to_timecode,
    guess_video_format,
    seconds_to_timecode,
)
from deckbridge.playout.framing import ReplyShape, ResponseFramer

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

_TIMEBASE = re.compile(r"^([0-9]+)/([0-9]+)$")
_FRAME_COUNT = re.compile(r"[0-9]+")
_NAME_TAG = re.compile(r"<name>([^<]+)</name>")
_TIME_TAG = re.compile(r"<time>([0-9.]+)</time>")
_FILE_FPS = re.compile(r"<streams_0>[\s\S]*?<fps>([0-9]+)</fps>\s*<fps>([0-9]+)</fps>")
_LOOP_TAG = re.compile(r"<loop>(true|false)</loop>")
_PAUSED_TAG = re.compile(r"<paused>(true|false)</paused>")


class PlayoutError(Exception):
    """Base exception for playout server errors."""

    pass


class PlayoutConnectionError(PlayoutError):
    """The playout server could not be reached or the connection dropped."""

    pass


@dataclass(frozen=True)
class ClipInfo:
    """Clip metadata parsed from a CINF reply. Unknown fields are None."""

    fps: float | None = None
    frames: int | None = None
    duration_tc: str | None = None
    video_format: str | None = None


@dataclass(frozen=True)
class LayerStatus:
    """Live playback state of one channel-layer, parsed from INFO."""

    clip_name: str | None = None
    current_time: float | None = None
    total_time: float | None = None
    fps: float | None = None
    loop: bool | None = None
    paused: bool | None = None

    @property
    def timecode(self) -> str | None:
        """Current position as HH:MM:SS:FF, if both position and fps are known."""
        return seconds_to_timecode(self.current_time, self.fps)


def parse_clip_list(reply: str) -> list[str]:
    """
    Parse a CLS reply into bare clip names.

    The first line is the status line ("200 CLS OK"); each following line
    starts with either a quoted name or a bare token.
    """
    lines = [line for line in reply.splitlines() if line]
    if not lines:
        return []

    names: list[str] = []
    for line in lines[1:]:
        trimmed = line.strip()
        if not trimmed:
            continue

        if trimmed.startswith('"'):
            end_quote = trimmed.find('"', 1)
            if end_quote > 1:
                name = trimmed[1:end_quote]
            else:
                rest = trimmed[1:].split()
                name = rest[0] if rest else ""
        else:
            name = trimmed.split()[0]

        if name:
            names.append(name)

    return names


def parse_clip_info(reply: str) -> ClipInfo:
    """
    Parse a CINF reply.

    The data line looks like:
        "CLIP"  MOVIE  1148012508 20250124204929 35926 1001/60000

    The last token is the time base in seconds per frame (so fps is
    denominator/numerator) and the one before it is the frame count.
    """
    lines = [line for line in reply.splitlines() if line]
    if len(lines) < 2:
        return ClipInfo()

    tokens = lines[1].split()
    fps: float | None = None
    frames: int | None = None

    if len(tokens) >= 2:
        match = _TIMEBASE.match(tokens[-1])
        if match:
            num, den = int(match.group(1)), int(match.group(2))
            if num and den:
                fps = den / num

        if _FRAME_COUNT.fullmatch(tokens[-2]):
            frames = int(tokens[-2])

    duration_tc = None
    if fps and frames is not None:
        duration_tc = frames_to_timecode(frames, fps)

    return ClipInfo(
        fps=fps,
        frames=frames,
        duration_tc=duration_tc,
        video_format=guess_video_format(fps),
    )


def _to_float(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


def parse_layer_status(reply: str) -> LayerStatus | None:
    """
    Extract playback fields from an INFO reply.

    This is a tolerant pattern match, not an XML parse: each field is the
    first occurrence of its tag and anything missing comes back as None.
    """
    lines = [line for line in reply.splitlines() if line]
    if not lines:
        return None

    xml = "\n".join(lines[1:])

    name_match = _NAME_TAG.search(xml)
    times = _TIME_TAG.findall(xml)

    fps = None
    fps_match = _FILE_FPS.search(xml)
    if fps_match:
        num, den = int(fps_match.group(1)), int(fps_match.group(2))
        if den:
            fps = num / den

    loop_match = _LOOP_TAG.search(xml)
    paused_match = _PAUSED_TAG.search(xml)

    return LayerStatus(
        clip_name=name_match.group(1) if name_match else None,
        current_time=_to_float(times[0]) if len(times) > 0 else None,
        total_time=_to_float(times[1]) if len(times) > 1 else None,
        fps=fps,
        loop=loop_match.group(1) == "true" if loop_match else None,
        paused=paused_match.group(1) == "true" if paused_match else None,
    )


class PlayoutClient:
    """
    Pipelined AMCP client with a single shared connection.

    Attributes:
        host: Playout server host.
        port: Playout server AMCP port.
        channel: Default output channel for transport commands.
        layer: Default layer for transport commands.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 5250,
        *,
        channel: int = 1,
        layer: int = 1,
    ) -> None:
        self.host = host
        self.port = port
        self.channel = channel
        self.layer = layer

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._connecting: asyncio.Future[None] | None = None
        self._framer: ResponseFramer[asyncio.Future[str]] = ResponseFramer()

    @property
    def is_connected(self) -> bool:
        """Check if the connection is currently up."""
        return self._writer is not None

    @property
    def pending_requests(self) -> int:
        """Number of requests still waiting for a reply."""
        return self._framer.pending

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def ensure_connected(self) -> None:
        """
        Open the connection if it is not up.

        Concurrent callers share one in-flight connect attempt.

        Raises:
            PlayoutConnectionError: If the server cannot be reached.
        """
        if self.is_connected:
            return

        if self._connecting is None:
            self._connecting = asyncio.create_task(self._connect())

        connecting = self._connecting
        try:
            await asyncio.shield(connecting)
        finally:
            if self._connecting is connecting and connecting.done():
                self._connecting = None

    async def _connect(self) -> None:
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            logger.warning("Cannot connect to CasparCG at %s:%d: %s", self.host, self.port, e)
            raise PlayoutConnectionError(
                f"Cannot connect to {self.host}:{self.port}: {e}"
            ) from e

        self._reader = reader
        self._writer = writer
        if self._framer.buffered:
            logger.debug("Discarding %d stale bytes", len(self._framer.buffered))
        self._framer.reset_buffer()
        self._read_task = asyncio.create_task(self._read_loop(reader))
        logger.info("Connected to CasparCG at %s:%d", self.host, self.port)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Feed received bytes to the framer and resolve completed requests."""
        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    logger.info("CasparCG connection closed")
                    break
                for future, reply in self._framer.feed(chunk):
                    if not future.done():
                        future.set_result(reply)
        except asyncio.CancelledError:
            raise
        except (ConnectionError, OSError) as e:
            if self._reader is reader:
                self._fail_oldest(e)
        finally:
            if self._reader is reader:
                self._teardown()

    def _fail_oldest(self, error: Exception) -> None:
        """Fail the head-of-queue request with a socket error."""
        logger.warning("CasparCG socket error: %s", error)
        future = self._framer.pop_oldest()
        if future is not None and not future.done():
            exc = PlayoutConnectionError(str(error))
            exc.__cause__ = error
            future.set_exception(exc)

    def _teardown(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        self._read_task = None
        if writer is not None:
            writer.close()

    async def close(self) -> None:
        """Close the connection. Pending requests stay queued."""
        task = self._read_task
        writer = self._writer
        self._teardown()

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if writer is not None:
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass  # Already disconnected

    # -------------------------------------------------------------------------
    # Request primitive
    # -------------------------------------------------------------------------

    async def send_raw(self, command: str, shape: ReplyShape = ReplyShape.SINGLE) -> str:
        """
        Send one AMCP command and wait for its framed reply.

        Args:
            command: Command line without terminator.
            shape: Expected reply shape.

        Returns:
            The raw reply text.

        Raises:
            PlayoutConnectionError: If the connection cannot be opened or
                fails while this request is the oldest outstanding one.
        """
        await self.ensure_connected()
        writer = self._writer
        if writer is None:
            raise PlayoutConnectionError("Connection lost before sending")

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._framer.expect(shape, future)

        logger.debug("> %s", command)
        writer.write(f"{command}\r\n".encode("utf-8"))
        try:
            await writer.drain()
        except (ConnectionError, OSError) as e:
            self._fail_oldest(e)
            self._teardown()

        return await future

    # -------------------------------------------------------------------------
    # High-level operations
    # -------------------------------------------------------------------------

    def _target(self, channel: int | None, layer: int | None) -> str:
        ch = self.channel if channel is None else channel
        ly = self.layer if layer is None else layer
        return f"{ch}-{ly}"

    async def list_clips(self) -> list[str]:
        """Get the names of all clips in the playout server's media folder."""
        reply = await self.send_raw("CLS", ReplyShape.MULTI)
        lines = reply.splitlines()
        if lines:
            logger.debug("< %s", lines[0])
        return parse_clip_list(reply)

    async def get_clip_info(self, name: str) -> ClipInfo:
        """Get frame rate, frame count and derived duration for one clip."""
        reply = await self.send_raw(f'CINF "{name}"', ReplyShape.TWO)
        info = parse_clip_info(reply)
        if info.fps is None and info.frames is None:
            logger.debug("CINF gave no usable metadata for %r: %r", name, reply)
        return info

    async def get_layer_status(
        self, channel: int | None = None, layer: int | None = None
    ) -> LayerStatus | None:
        """Get live playback state for a channel-layer, or None on an empty reply."""
        reply = await self.send_raw(f"INFO {self._target(channel, layer)}", ReplyShape.MULTI)
        status = parse_layer_status(reply)
        if status is None:
            logger.debug("INFO reply was empty")
        return status

    async def load_clip(
        self, name: str, channel: int | None = None, layer: int | None = None
    ) -> str:
        """Load a clip paused on its first frame."""
        return await self.send_raw(f'LOAD {self._target(channel, layer)} "{name}"')

    async def play_clip(
        self, name: str | None = None, channel: int | None = None, layer: int | None = None
    ) -> str:
        """Play a clip, or resume whatever is loaded when name is None."""
        command = f"PLAY {self._target(channel, layer)}"
        if name:
            command = f'{command} "{name}"'
        return await self.send_raw(command)

    async def stop(self, channel: int | None = None, layer: int | None = None) -> str:
        """Stop and clear the layer."""
        return await self.send_raw(f"STOP {self._target(channel, layer)}")

    async def pause(self, channel: int | None = None, layer: int | None = None) -> str:
        """Pause the layer, keeping the current frame on air."""
        return await self.send_raw(f"PAUSE {self._target(channel, layer)}")
