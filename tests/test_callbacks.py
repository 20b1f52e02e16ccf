from unittest.mock import AsyncMock

from serveme.auth.models.session import SessionSnapshot, SessionState
from serveme.callbacks import CallbackManager
from serveme.servers.models import ServerRecord


class TestCallbackManager:
    def setup_method(self):
        self.callbacks = CallbackManager()

    async def test_no_handler_is_a_no_op(self):
        # Act & Assert
        await self.callbacks.call_session_changed(
            SessionSnapshot(SessionState.UNAUTHENTICATED)
        )
        await self.callbacks.call_servers_changed([])

    async def test_handlers_receive_payload(self):
        # Arrange
        self.callbacks.session_changed_handler = AsyncMock()
        self.callbacks.servers_changed_handler = AsyncMock()
        snapshot = SessionSnapshot(SessionState.AUTHENTICATED, account="alice")
        servers = [ServerRecord("srv-1")]

        # Act
        await self.callbacks.call_session_changed(snapshot)
        await self.callbacks.call_servers_changed(servers)

        # Assert
        self.callbacks.session_changed_handler.assert_awaited_once_with(snapshot)
        self.callbacks.servers_changed_handler.assert_awaited_once_with(servers)

    async def test_handler_errors_are_contained(self):
        # Arrange
        self.callbacks.session_changed_handler = AsyncMock(
            side_effect=RuntimeError("view crashed")
        )

        # Act & Assert
        await self.callbacks.call_session_changed(
            SessionSnapshot(SessionState.AUTHENTICATED)
        )
