"""
Deck Protocol Server for deckbridge.

This module implements the listening side of the HyperDeck-style text
protocol. Controllers (vision mixers, automation, telnet) connect on TCP
port 9993 and exchange CRLF-terminated lines.

Protocol Format:
    On connect the server sends an unsolicited "500 connection info:" block.
    Each following line from the controller is one command; each command
    gets exactly one reply (a status line or a block ending in a blank line).
"""

import asyncio
import logging

from deckbridge.config import DECK_PORT, DeckConfig, get_deck_config
from deckbridge.protocol.commands import build_block, parse_command
from deckbridge.protocol.framing import LineFramer
from deckbridge.protocol.handlers import CommandDispatcher
from deckbridge.session.client import DeckSession
from deckbridge.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096

# Commands that controllers poll continuously; logged at DEBUG only
NOISY_COMMANDS = ("slot info", "transport info", "clips count")


def is_noisy(line: str) -> bool:
    """Check whether a raw command line belongs to a polling command."""
    return line.strip().lower().startswith(NOISY_COMMANDS)


class DeckServer:
    """
    Deck protocol server for controller connections.

    The server is fully asynchronous using asyncio and can handle multiple
    concurrent controllers. Each connection gets its own DeckSession; the
    dispatcher, catalog and playout client are shared.

    Attributes:
        host: The host address to bind to.
        port: The TCP port to listen on (default 9993).
        dispatcher: Command dispatcher shared by all sessions.
        session_registry: Registry for tracking connected controllers.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        host: str = "0.0.0.0",
        port: int = DECK_PORT,
        session_registry: SessionRegistry | None = None,
        config: DeckConfig | None = None,
    ) -> None:
        """
        Initialize the deck server.

        Args:
            dispatcher: Command dispatcher shared by all sessions.
            host: Host address to bind to.
            port: TCP port to listen on.
            session_registry: Registry for session management (created if not provided).
            config: Device tables for the connection greeting.
        """
        self.dispatcher = dispatcher
        self.host = host
        self.port = port
        self.session_registry = (
            session_registry if session_registry is not None else SessionRegistry()
        )
        self.config = config or get_deck_config()

        self._server: asyncio.Server | None = None
        self._running = False
        self._client_tasks: dict[int, asyncio.Task[None]] = {}

    async def start(self) -> None:
        """Start the deck server and begin accepting connections."""
        if self._running:
            logger.warning("Deck server already running")
            return

        self._server = await asyncio.start_server(
            self._handle_connection,
            host=self.host,
            port=self.port,
            reuse_address=True,
        )

        self._running = True
        logger.info("Deck server listening on %s:%d", self.host, self.bound_port)

    @property
    def bound_port(self) -> int:
        """The port actually bound (useful when started with port 0)."""
        if self._server and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self.port

    async def stop(self) -> None:
        """Stop the server and close all connections."""
        if not self._running:
            return

        logger.info("Stopping deck server...")
        self._running = False

        # Close server
        if self._server:
            self._server.close()

        # Cancel all client handler tasks
        for task in self._client_tasks.values():
            task.cancel()

        if self._client_tasks:
            await asyncio.gather(*self._client_tasks.values(), return_exceptions=True)
            self._client_tasks.clear()

        if self._server:
            await self._server.wait_closed()
            self._server = None

        logger.info("Deck server stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """
        Handle a new incoming connection.

        This is called by asyncio for each new controller connection. We
        greet it, then process lines until disconnection.
        """
        session = DeckSession(writer)

        try:
            await self.session_registry.register(session)
            if task := asyncio.current_task():
                self._client_tasks[session.id] = task

            self._send_connection_info(session)
            await session.drain()

            await self._message_loop(session, reader)
        except asyncio.CancelledError:
            logger.debug("[client %d] Connection handler cancelled", session.id)
        except ConnectionResetError:
            logger.info("[client %d] Connection reset by peer", session.id)
        except Exception as e:
            logger.exception("[client %d] Error handling connection: %s", session.id, e)
        finally:
            self._client_tasks.pop(session.id, None)
            await self.session_registry.unregister(session.id)
            await session.disconnect()

    def _send_connection_info(self, session: DeckSession) -> None:
        device = self.config.device
        session.send(
            build_block(
                500,
                "connection info",
                [
                    f"protocol version: {device.protocol_version}",
                    f"model: {device.model}",
                ],
            )
        )

    async def _message_loop(
        self,
        session: DeckSession,
        reader: asyncio.StreamReader,
    ) -> None:
        """
        Main line processing loop for a connected controller.

        Reads chunks, frames them into lines and dispatches each one until
        the connection is closed.
        """
        framer = LineFramer()

        while self._running and session.is_connected:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:
                logger.debug("[client %d] EOF from controller", session.id)
                break

            for line in framer.feed(chunk):
                if not session.is_connected:
                    break
                self._process_line(session, line)

            await session.drain()

    def _process_line(self, session: DeckSession, line: str) -> None:
        """Parse and dispatch one command line."""
        level = logging.DEBUG if is_noisy(line) else logging.INFO
        logger.log(level, '[client %d] RAW > "%s"', session.id, line)

        command = parse_command(line)
        if command is None:
            logger.log(level, "[client %d] WARN could not parse line", session.id)
            return

        logger.log(level, "[client %d] CMD > %s params=%s", session.id, command.name, command.params)

        try:
            self.dispatcher.handle(session, command)
        except Exception as e:
            logger.error("[client %d] Error handling %s: %s", session.id, command.name, e)

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._running
