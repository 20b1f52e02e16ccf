import logging
from typing import Awaitable, Callable

from serveme.auth.models.session import SessionSnapshot
from serveme.servers.models import ServerRecord

logger = logging.getLogger(__name__)


class CallbackManager:
    """Manages event callbacks for session and server list changes."""

    def __init__(self):
        # Direct callback assignment
        self.session_changed_handler: (
            Callable[[SessionSnapshot], Awaitable[None]] | None
        ) = None
        self.servers_changed_handler: (
            Callable[[list[ServerRecord]], Awaitable[None]] | None
        ) = None

    async def call_session_changed(self, snapshot: SessionSnapshot) -> None:
        """Invoke session changed callback with the new snapshot."""
        if self.session_changed_handler:
            try:
                await self.session_changed_handler(snapshot)
            except Exception as e:
                logger.error(f"Session changed callback failed: {e}")

    async def call_servers_changed(self, servers: list[ServerRecord]) -> None:
        """Invoke servers changed callback with the current server list."""
        if self.servers_changed_handler:
            try:
                await self.servers_changed_handler(servers)
            except Exception as e:
                logger.error(f"Servers changed callback failed: {e}")
