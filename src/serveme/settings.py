"""Backend URL settings.

Loads the persisted backend URL at startup and validates a new one with a
health check before saving it.
"""

from __future__ import annotations

import logging

from serveme.auth.models.errors import StorageError
from serveme.backend.client import BackendClient
from serveme.config import DEFAULT_SERVER_URL
from serveme.storage.store import SERVER_URL_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class SettingsService:
    def __init__(
        self,
        store: KeyValueStore,
        backend: BackendClient,
        *,
        default_url: str = DEFAULT_SERVER_URL,
    ):
        self._store = store
        self._backend = backend
        self.default_url = default_url

    @property
    def server_url(self) -> str | None:
        return self._backend.base_url

    def load(self) -> str:
        """Apply the saved backend URL, falling back to the default.

        Returns:
            The URL now in use
        """
        try:
            saved = self._store.get(SERVER_URL_KEY)
        except StorageError as e:
            logger.error(f"Failed to load settings: {e}")
            saved = None

        url = saved if isinstance(saved, str) and saved else self.default_url
        self._backend.base_url = url
        logger.info(f"Using backend {url}")
        return url

    async def update_server_url(self, candidate: str) -> str:
        """Validate, health-check and save a new backend URL.

        Nothing is changed unless the health check passes.

        Returns:
            The saved URL without a trailing slash

        Raises:
            ValueError: If the URL is not http(s)
            ServiceError: TIMED_OUT if the health check exceeds its deadline,
                otherwise the mapped failure
            StorageError: If the URL cannot be saved
        """
        candidate = candidate.strip()
        if not candidate.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")

        await self._backend.check_connection(candidate)

        clean_url = candidate.rstrip("/")
        self._store.set(SERVER_URL_KEY, clean_url)
        self._store.save()
        self._backend.base_url = clean_url
        logger.info(f"Backend URL changed to {clean_url}")
        return clean_url
