"""Application wiring.

`ServeMeApp` is the composition root: it builds exactly one store, backend
client, settings service, session manager and server registry, and injects
them into each other. Create one per process and close it on teardown so the
refresh timer and polling task never outlive the components they touch.
"""

from __future__ import annotations

import logging

from serveme.auth.services.session import SessionManager
from serveme.backend.client import BackendClient
from serveme.callbacks import CallbackManager
from serveme.config import ClientConfig
from serveme.servers.registry import ServerRegistry
from serveme.settings import SettingsService
from serveme.storage.store import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)


class ServeMeApp:
    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        store: KeyValueStore | None = None,
        backend: BackendClient | None = None,
    ):
        """Wire up the client components.

        Args:
            config: Client configuration; defaults to `ClientConfig()`
            store: Override for the JSON file store at `config.store_path`
            backend: Override for the HTTP backend client
        """
        self.config = config or ClientConfig()
        self.store = store or JsonFileStore(self.config.store_path)
        self.backend = backend or BackendClient(
            timeout=self.config.request_timeout,
            health_timeout=self.config.health_timeout,
            api_prefix=self.config.api_prefix,
        )
        self.callbacks = CallbackManager()

        self.settings = SettingsService(
            self.store, self.backend, default_url=self.config.server_url
        )
        self.session = SessionManager(
            self.store,
            self.backend,
            lead_time=self.config.lead_time,
            callbacks=self.callbacks,
        )
        self.servers = ServerRegistry(
            self.store, self.backend, callbacks=self.callbacks
        )

        self.backend.token_provider = lambda: self.session.access_token

    async def start(self) -> None:
        """Load settings, restore the session and load the server list."""
        self.settings.load()
        await self.session.init()
        await self.servers.load()

        if self.config.poll_interval:
            self.servers.start_polling(self.config.poll_interval)
        logger.info("Client started")

    async def close(self) -> None:
        """Stop background work and release the HTTP client."""
        await self.servers.stop_polling()
        await self.session.close()
        await self.backend.close()
        logger.info("Client stopped")

    async def __aenter__(self) -> ServeMeApp:
        try:
            await self.start()
        except Exception:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
