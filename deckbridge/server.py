"""
deckbridge - Main Server Module

This module contains the main DeckBridgeServer class that wires the deck
protocol listener to the CasparCG playout client and manages the
application lifecycle.
"""

import asyncio
import logging
import signal

from deckbridge.config import DECK_PORT, DeckConfig, PlayoutSettings, get_deck_config
from deckbridge.core.catalog import ClipCatalog
from deckbridge.playout.client import PlayoutClient
from deckbridge.protocol.deck import DeckServer
from deckbridge.protocol.handlers import CommandDispatcher
from deckbridge.session.registry import SessionRegistry

logger = logging.getLogger(__name__)


class DeckBridgeServer:
    """
    Main deckbridge server that coordinates all components.

    The server manages:
    - Deck protocol server (port 9993) for controller connections
    - One shared CasparCG AMCP client (lazily connected)
    - The shared clip catalog
    - Session registry for tracking connected controllers

    Every controller shares the same playout connection and catalog, so two
    controllers driving the bridge at once drive the same CasparCG layer.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = DECK_PORT,
        *,
        playout: PlayoutSettings | None = None,
        config: DeckConfig | None = None,
    ) -> None:
        """
        Initialize the deckbridge server.

        Args:
            host: Host address to bind to.
            port: Deck protocol port (default 9993).
            playout: CasparCG location (default: from environment).
            config: Device/slot tables (default: bundled device.toml).
        """
        self.host = host
        self.port = port
        self.playout_settings = playout or PlayoutSettings.from_env()
        self.config = config or get_deck_config()

        # Core components
        self.session_registry = SessionRegistry()

        self.playout = PlayoutClient(
            host=self.playout_settings.host,
            port=self.playout_settings.port,
            channel=self.playout_settings.channel,
            layer=self.playout_settings.layer,
        )

        self.catalog = ClipCatalog(self.playout, defaults=self.config.clips)

        self.dispatcher = CommandDispatcher(self.playout, self.catalog, self.config)

        self.deck_server = DeckServer(
            self.dispatcher,
            host=host,
            port=port,
            session_registry=self.session_registry,
            config=self.config,
        )

        # Server state
        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start all server components."""
        logger.info("Starting deckbridge on %s:%d", self.host, self.port)

        self._running = True
        self._shutdown_event = asyncio.Event()

        # Binding the deck port is the only fatal startup step
        await self.deck_server.start()

        logger.info("deckbridge started successfully")
        logger.info(
            "Deck: port %d | CasparCG: %s:%d (channel %d, layer %d)",
            self.deck_server.bound_port,
            self.playout_settings.host,
            self.playout_settings.port,
            self.playout_settings.channel,
            self.playout_settings.layer,
        )

    async def stop(self) -> None:
        """Stop all server components gracefully."""
        if not self._running:
            return

        logger.info("Stopping deckbridge...")
        self._running = False

        # Stop accepting controllers first
        await self.deck_server.stop()

        # Disconnect any controllers the listener did not close
        await self.session_registry.disconnect_all()

        # Drop background AMCP work, then the AMCP connection
        await self.dispatcher.close()
        await self.catalog.close()
        await self.playout.close()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("deckbridge stopped")

    async def run(self) -> None:
        """
        Run the server until shutdown is requested.

        This method starts all components and waits for a shutdown signal
        (SIGINT or SIGTERM).
        """
        await self.start()

        # Set up signal handlers for graceful shutdown
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        # Wait for shutdown
        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    @property
    def connected_clients(self) -> int:
        """Get the number of currently connected controllers."""
        return len(self.session_registry)
