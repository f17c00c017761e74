"""
Session Registry - Central repository for connected deck controllers.

Sessions never share state with each other; the registry only exists so
the server can report how many controllers are attached and disconnect
all of them at shutdown.
"""

import asyncio
import logging

from deckbridge.session.client import DeckSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Registry of live deck sessions, indexed by session id.

    Thread-safety: This class uses an asyncio lock for safe concurrent
    access from multiple coroutines.
    """

    def __init__(self) -> None:
        """Initialize an empty session registry."""
        self._sessions: dict[int, DeckSession] = {}
        self._lock = asyncio.Lock()

    async def register(self, session: DeckSession) -> None:
        """Register a newly connected session."""
        async with self._lock:
            self._sessions[session.id] = session
            ip, port = session.remote_address
            logger.info("[client %d] Client connected from %s %d", session.id, ip, port)

    async def unregister(self, session_id: int) -> DeckSession | None:
        """
        Remove a session from the registry.

        Returns:
            The removed session, or None if not found.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session:
                logger.info("[client %d] Client disconnected", session_id)
            return session

    async def get(self, session_id: int) -> DeckSession | None:
        """Look up a session by id."""
        async with self._lock:
            return self._sessions.get(session_id)

    async def get_all(self) -> list[DeckSession]:
        """Get a list of all connected sessions (copy, safe to iterate)."""
        async with self._lock:
            return list(self._sessions.values())

    async def disconnect_all(self) -> None:
        """
        Disconnect all sessions and clear the registry.

        This is typically called during server shutdown.
        """
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        # Disconnect outside the lock to avoid holding it during I/O
        for session in sessions:
            try:
                await session.disconnect()
            except Exception as e:
                logger.warning("[client %d] Error disconnecting: %s", session.id, e)

        logger.info("All clients disconnected (%d total)", len(sessions))

    def __len__(self) -> int:
        """Return the number of connected sessions."""
        return len(self._sessions)

    def __contains__(self, session_id: int) -> bool:
        """Check if a session with the given id is registered."""
        return session_id in self._sessions

    def __bool__(self) -> bool:
        """A registry instance is always truthy, even when empty."""
        return True
