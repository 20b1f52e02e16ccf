"""Server registry synchronizer.

Maintains the list of known servers and reconciles each one's access status
with the backend. Only list mutations (`add`, `remove`) are persisted; status
is presentation state rebuilt from the backend and is never written to disk.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any

from serveme.auth.models.errors import ErrorCode, ServiceError, StorageError
from serveme.backend.client import BackendClient
from serveme.callbacks import CallbackManager
from serveme.servers.models import AccessStatus, ServerRecord
from serveme.storage.store import SERVERS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

_OFFLINE_CODES = frozenset({ErrorCode.NETWORK, ErrorCode.OFFLINE})
_KEEP: Any = object()


class ServerRegistry:
    """Owns the server list and its per-server access status."""

    def __init__(
        self,
        store: KeyValueStore,
        backend: BackendClient,
        *,
        callbacks: CallbackManager | None = None,
    ):
        self._store = store
        self._backend = backend
        self.callbacks = callbacks or CallbackManager()
        self._servers: list[ServerRecord] = []
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def servers(self) -> list[ServerRecord]:
        return list(self._servers)

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def get(self, identifier: str) -> ServerRecord | None:
        for record in self._servers:
            if record.identifier == identifier:
                return record
        return None

    # ================================
    # Persistence
    # ================================

    async def load(self) -> None:
        """Load the saved server list with every status reset to idle."""
        try:
            stored = self._store.get(SERVERS_KEY)
        except StorageError as e:
            logger.error(f"Failed to read saved servers: {e}")
            stored = None
        records: list[ServerRecord] = []
        seen: set[str] = set()

        if isinstance(stored, list):
            for entry in stored:
                record = ServerRecord.from_stored(entry)
                if record is None:
                    logger.warning(f"Skipping malformed saved server entry: {entry!r}")
                    continue
                if record.identifier in seen:
                    continue
                seen.add(record.identifier)
                records.append(record)
        elif stored is not None:
            logger.warning("Saved server list is not a list; ignoring it")

        self._servers = records
        logger.info(f"Loaded {len(records)} saved servers")
        await self._notify()

    def _persist(self) -> None:
        self._store.set(SERVERS_KEY, [record.to_dict() for record in self._servers])
        self._store.save()

    # ================================
    # Status reconciliation
    # ================================

    async def check_status(self, identifier: str) -> None:
        """Refresh one server's access status from the backend.

        Never raises: every failure degrades to a status value. An
        authorization failure sets idle and leaves logout policy to the caller.
        """
        try:
            result = await self._backend.access_status(identifier)
        except ServiceError as e:
            if e.code is ErrorCode.AUTH:
                logger.warning(f"Token rejected while polling {identifier}")
                status = AccessStatus.IDLE
            elif e.code in _OFFLINE_CODES:
                status = AccessStatus.OFFLINE
            else:
                logger.warning(f"Status check for {identifier} failed: {e.tag}")
                status = AccessStatus.IDLE
            await self._update(identifier, status=status)
            return
        except Exception:
            logger.exception(f"Unexpected error checking status of {identifier}")
            await self._update(identifier, status=AccessStatus.IDLE)
            return

        status = AccessStatus.ACCESS_GRANTED if result.is_active else AccessStatus.IDLE
        await self._update(
            identifier, status=status, time_remaining=result.time_remaining
        )

    async def sync_all(self) -> None:
        """Check every known server concurrently; failures stay isolated."""
        identifiers = [record.identifier for record in self._servers]
        if not identifiers:
            return

        results = await asyncio.gather(
            *(self.check_status(identifier) for identifier in identifiers),
            return_exceptions=True,
        )
        for identifier, result in zip(identifiers, results):
            if isinstance(result, BaseException):
                logger.error(f"Status sync for {identifier} failed: {result!r}")

    # ================================
    # List mutations
    # ================================

    async def add(self, identifier: str) -> ServerRecord:
        """Verify a server exists on the backend and add it to the list.

        Raises:
            ValueError: If identifier is empty
            ServiceError: DUPLICATE if already listed (no network call),
                NOT_FOUND if the backend does not know it, or any backend
                failure
        """
        identifier = identifier.strip()
        if not identifier:
            raise ValueError("Server identifier is required")

        if self.get(identifier) is not None:
            raise ServiceError(
                ErrorCode.DUPLICATE, f"Server '{identifier}' is already listed"
            )

        if not await self._backend.server_exists(identifier):
            raise ServiceError(
                ErrorCode.NOT_FOUND, f"Server '{identifier}' does not exist"
            )

        # Re-check after the network call in case a concurrent add won
        if self.get(identifier) is not None:
            raise ServiceError(
                ErrorCode.DUPLICATE, f"Server '{identifier}' is already listed"
            )

        record = ServerRecord(identifier=identifier)
        self._servers = [*self._servers, record]
        self._persist()
        logger.info(f"Added server {identifier}")
        await self._notify()
        return record

    async def request_access(self, identifier: str) -> None:
        """Request access to a server, then reconcile with the backend.

        Raises:
            ServiceError: If the access request is rejected
        """
        await self._backend.request_access(identifier)
        logger.info(f"Access requested for {identifier}")

        await self._update(identifier, status=AccessStatus.ACCESS_GRANTED)
        await self.check_status(identifier)

    async def remove(self, identifier: str) -> None:
        """Remove a server from the list."""
        self._servers = [r for r in self._servers if r.identifier != identifier]
        self._persist()
        logger.info(f"Removed server {identifier}")
        await self._notify()

    # ================================
    # Polling
    # ================================

    def start_polling(self, interval: float) -> None:
        """Run `sync_all()` every `interval` seconds in the background.

        Replaces any polling task already running.
        """
        if interval <= 0:
            raise ValueError("Polling interval must be positive")

        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = asyncio.create_task(self._poll_loop(interval))
        logger.debug(f"Server status polling every {interval}s")

    async def stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self, interval: float) -> None:
        while True:
            try:
                await self.sync_all()
            except Exception:
                logger.exception("Server status polling failed")
            await asyncio.sleep(interval)

    # ================================
    # Helpers
    # ================================

    async def _update(
        self,
        identifier: str,
        *,
        status: AccessStatus,
        time_remaining: str | None = _KEEP,
    ) -> None:
        """Replace one record's status; unknown identifiers are ignored."""
        changes: dict[str, object] = {"status": status}
        if time_remaining is not _KEEP:
            changes["time_remaining"] = time_remaining

        updated = False
        records = []
        for record in self._servers:
            if record.identifier == identifier:
                record = dataclasses.replace(record, **changes)
                updated = True
            records.append(record)

        if not updated:
            return
        self._servers = records
        await self._notify()

    async def _notify(self) -> None:
        await self.callbacks.call_servers_changed(self.servers)
