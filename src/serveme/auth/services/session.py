"""Session lifecycle management.

Owns the in-memory session, the refresh timer and the single-flight refresh
protocol. The persisted copy in the key-value store is written through after
every mutation; nothing else writes the session key.

State machine:

    UNAUTHENTICATED --login/init--> AUTHENTICATED --timer/refresh()--> REFRESHING
    REFRESHING --success--> AUTHENTICATED
    REFRESHING --failure--> UNAUTHENTICATED
    any --logout()--> UNAUTHENTICATED
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from serveme.auth.models.errors import (
    INCORRECT_CREDENTIALS_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    ErrorCode,
    ServiceError,
    StorageError,
    user_message,
)
from serveme.auth.models.session import (
    RefreshResult,
    Session,
    SessionSnapshot,
    SessionState,
)
from serveme.auth.primitives.tokens import expiry_of
from serveme.backend.client import BackendClient
from serveme.callbacks import CallbackManager
from serveme.storage.store import SESSION_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_LEAD_TIME = 30.0  # seconds before expiry to renew


class SessionManager:
    """Acquires, persists and renews the access/refresh token pair.

    One instance per process. Concurrent refresh triggers (an explicit call
    racing the timer) collapse into a single backend request; the losing
    caller gets `RefreshResult.NOT_PERFORMED` immediately.
    """

    def __init__(
        self,
        store: KeyValueStore,
        backend: BackendClient,
        *,
        lead_time: float = DEFAULT_LEAD_TIME,
        clock: Callable[[], float] = time.time,
        callbacks: CallbackManager | None = None,
    ):
        """Initialize the session manager.

        Args:
            store: Durable store holding the session record
            backend: Client used for login, refresh and logout calls
            lead_time: Seconds before token expiry at which to refresh
            clock: Returns the current Unix time
            callbacks: Receives a snapshot after every state change
        """
        self._store = store
        self._backend = backend
        self.lead_time = lead_time
        self._clock = clock
        self.callbacks = callbacks or CallbackManager()

        self._state = SessionState.UNAUTHENTICATED
        self._session: Session | None = None
        self._error_message = ""
        self._loading = False

        self._refresh_in_flight = False
        self._refresh_task: asyncio.Task[None] | None = None
        # Timer task whose refresh is running; detached from _refresh_task
        self._firing_task: asyncio.Task[None] | None = None
        self._scheduled_delay: float | None = None
        # Bumped when the session is replaced or cleared outside refresh(), and on close
        self._generation = 0

    # ================================
    # Observable state
    # ================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def account(self) -> str | None:
        return self._session.account if self._session else None

    @property
    def access_token(self) -> str | None:
        """Current access token for the backend's Authorization header."""
        return self._session.access_token if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    @property
    def error_message(self) -> str:
        return self._error_message

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def scheduled_delay(self) -> float | None:
        """Delay in seconds the pending refresh timer was armed with."""
        return self._scheduled_delay

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            account=self.account,
            error_message=self._error_message,
            loading=self._loading,
        )

    # ================================
    # Lifecycle
    # ================================

    async def init(self) -> None:
        """Restore the persisted session, refreshing it if it has expired.

        A session whose access token has no readable expiry is treated like an
        expired one: it is never restored without a successful refresh.
        """
        session = self._load_persisted()
        if session is None:
            logger.info("No stored session; starting unauthenticated")
            await self._notify()
            return

        expires_at = expiry_of(session.access_token)
        if expires_at is not None and expires_at > self._clock():
            self._session = session
            self._state = SessionState.AUTHENTICATED
            self._arm_refresh_timer(expires_at)
            logger.info(f"Session restored for {session.account}")
            await self._notify()
            return

        logger.info("Stored session expired or unverifiable; attempting refresh")
        self._session = session
        await self.refresh()

    async def login(self, identifier: str, secret: str) -> bool:
        """Authenticate with account credentials.

        Failures are surfaced through `error_message` rather than raised:
        rejected credentials give "Incorrect username or password.", every
        other backend failure gives the message mapped from its code.

        Returns:
            True if a new session was established

        Raises:
            ValueError: If identifier is empty
            StorageError: If the new session cannot be persisted
        """
        if not identifier:
            raise ValueError("identifier is required")

        self._loading = True
        self._error_message = ""
        await self._notify()

        try:
            tokens = await self._backend.login(identifier, secret)
        except ServiceError as e:
            logger.warning(f"Login failed for {identifier}: {e.tag}")
            if e.code is ErrorCode.AUTH:
                self._error_message = INCORRECT_CREDENTIALS_MESSAGE
            else:
                self._error_message = user_message(e)
            self._loading = False
            await self._notify()
            return False

        try:
            self._generation += 1
            self._acquire(
                Session(
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token,
                    account=identifier,
                )
            )
        finally:
            self._loading = False

        logger.info(f"Logged in as {identifier}")
        await self._notify()
        return True

    async def refresh(self) -> RefreshResult:
        """Exchange the refresh token for a new session.

        Single-flight: returns `NOT_PERFORMED` without contacting the backend
        if a refresh is already running. Any failure logs out.

        Returns:
            Outcome of the attempt
        """
        if self._refresh_in_flight:
            logger.debug("Refresh already in flight; skipping")
            return RefreshResult.NOT_PERFORMED

        session = self._session
        if session is None:
            logger.info("No refresh token available; logging out")
            await self.logout()
            return RefreshResult.FAILED

        self._refresh_in_flight = True
        generation = self._generation
        try:
            self._state = SessionState.REFRESHING
            await self._notify()

            try:
                tokens = await self._backend.refresh(
                    session.account, session.refresh_token
                )
                if generation != self._generation:
                    logger.info("Session replaced during refresh; discarding result")
                    return RefreshResult.FAILED
                self._acquire(
                    Session(
                        access_token=tokens.access_token,
                        refresh_token=tokens.refresh_token,
                        account=session.account,
                    )
                )
            except (ServiceError, StorageError) as e:
                if generation != self._generation:
                    return RefreshResult.FAILED
                reason = e.tag if isinstance(e, ServiceError) else str(e)
                logger.warning(f"Token refresh failed ({reason}); logging out")
                await self.logout()
                return RefreshResult.FAILED
        finally:
            self._refresh_in_flight = False

        logger.info(f"Session refreshed for {session.account}")
        await self._notify()
        return RefreshResult.REFRESHED

    async def logout(self) -> None:
        """End the session locally and, best effort, on the backend.

        Local state is always cleared, even if the backend call fails.
        """
        session = self._session
        self._generation += 1
        self._cancel_refresh_timer()

        try:
            if session is not None:
                await self._backend.logout(session.refresh_token)
        except ServiceError as e:
            logger.warning(f"Backend logout failed ({e.tag}); clearing local session")
        finally:
            self._session = None
            self._state = SessionState.UNAUTHENTICATED
            try:
                self._write_session(None)
            except StorageError as e:
                logger.error(f"Failed to clear stored session: {e}")
            logger.info("Logged out")
            await self._notify()

    async def close(self) -> None:
        """Cancel the refresh timer and any refresh it started.

        The persisted session is kept. A refresh that completes after close
        neither installs its tokens nor logs out.
        """
        self._generation += 1
        tasks = [self._refresh_task, self._firing_task]
        self._cancel_refresh_timer()
        self._firing_task = None

        for task in tasks:
            if task is None or task is asyncio.current_task():
                continue
            if not task.done():
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ================================
    # Refresh timer
    # ================================

    def _arm_refresh_timer(self, expires_at: float) -> None:
        """Schedule a refresh `lead_time` seconds before `expires_at`.

        A non-positive delay fires on the next loop iteration.
        """
        self._cancel_refresh_timer()
        delay = max(0.0, expires_at - self._clock() - self.lead_time)
        self._scheduled_delay = delay
        self._refresh_task = asyncio.create_task(self._run_refresh_timer(delay))
        logger.debug(f"Token refresh scheduled in {delay:.0f}s")

    def _cancel_refresh_timer(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        self._scheduled_delay = None
        if task is not None and not task.done():
            task.cancel()

    async def _run_refresh_timer(self, delay: float) -> None:
        await asyncio.sleep(delay)

        # Detach first so arming the next timer does not cancel this task
        if self._refresh_task is asyncio.current_task():
            self._refresh_task = None
            self._scheduled_delay = None
        self._firing_task = asyncio.current_task()

        try:
            await self._on_refresh_timer()
        except Exception:
            logger.exception("Automatic token refresh crashed")
        finally:
            if self._firing_task is asyncio.current_task():
                self._firing_task = None

    async def _on_refresh_timer(self) -> None:
        logger.info("Refresh timer elapsed")

        # Re-read the durable copy in case the in-memory one is stale
        stored = self._load_persisted()
        if stored is None:
            await self.logout()
            self._error_message = SESSION_EXPIRED_MESSAGE
            await self._notify()
            return

        self._session = stored
        result = await self.refresh()
        if result is RefreshResult.FAILED and not self.is_authenticated:
            self._error_message = SESSION_EXPIRED_MESSAGE
            await self._notify()

    # ================================
    # Persistence
    # ================================

    def _acquire(self, session: Session) -> None:
        """Install a freshly issued session and arm its refresh timer."""
        self._write_session(session)
        self._session = session
        self._state = SessionState.AUTHENTICATED

        expires_at = expiry_of(session.access_token)
        if expires_at is None:
            logger.warning("Access token has no readable expiry; auto-refresh disabled")
            self._cancel_refresh_timer()
        else:
            self._arm_refresh_timer(expires_at)

    def _load_persisted(self) -> Session | None:
        try:
            data = self._store.get(SESSION_KEY)
        except StorageError as e:
            logger.error(f"Failed to read stored session: {e}")
            return None

        if data is None:
            return None

        try:
            return Session.from_dict(data)
        except ValueError as e:
            logger.warning(f"Discarding malformed stored session: {e}")
            try:
                self._write_session(None)
            except StorageError as store_error:
                logger.error(f"Failed to clear stored session: {store_error}")
            return None

    def _write_session(self, session: Session | None) -> None:
        self._store.set(SESSION_KEY, session.to_dict() if session else None)
        self._store.save()

    async def _notify(self) -> None:
        await self.callbacks.call_session_changed(self.snapshot())
