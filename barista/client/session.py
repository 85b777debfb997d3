"""
Auth session manager.

Owns the one authenticated session of a client: login, restore from durable
storage, server-side validation, refresh and logout. Consumers get it
passed in explicitly; there is no module-level auth state.

Status transitions:

    ANONYMOUS --login--------------------------------> AUTHENTICATED
    ANONYMOUS --restore--> PROVISIONAL --validated---> AUTHENTICATED
                                       --rejected----> ANONYMOUS (storage cleared)
                                       --unreachable-> ANONYMOUS (storage kept)
    any       --logout---------------------------------> ANONYMOUS

Every transition that invalidates in-flight work bumps `generation`; a
response is applied only if the generation it started under is current.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from barista.rbac.permissions import PermissionEvaluator
from barista.utils import Logger
from barista.utils.exceptions import (
    AuthError,
    BaristaError,
    CorruptSessionError,
)
from .api import ApiClient
from .schemas import Session, User
from .storage import SessionStorage

logger = Logger("barista.client.session")

SessionListener = Callable[[str, Optional[Session]], None]


class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    LOADING = "loading"
    PROVISIONAL = "provisional"
    AUTHENTICATED = "authenticated"


class SessionManager:
    def __init__(self, api: ApiClient, storage: SessionStorage):
        self._api = api
        self._storage = storage
        self._session: Optional[Session] = None
        self._status = SessionStatus.ANONYMOUS
        self._generation = 0
        self._lock = asyncio.Lock()
        self._validation: Optional[asyncio.Task] = None
        self._listeners: list[SessionListener] = []

    # ── State ────────────────────────────────────────────────────

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user(self) -> Optional[User]:
        return self._session.user if self._session else None

    @property
    def token(self) -> Optional[str]:
        return self._session.token if self._session else None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self._status == SessionStatus.LOADING

    @property
    def is_provisional(self) -> bool:
        return self._status == SessionStatus.PROVISIONAL

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None and self._status in (
            SessionStatus.PROVISIONAL,
            SessionStatus.AUTHENTICATED,
        )

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register `listener(event, session)`. Returns a remover."""
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ── Permissions ──────────────────────────────────────────────

    def evaluator(self) -> PermissionEvaluator:
        """Evaluator for the current user; critical modules denied while provisional."""
        if not self.is_authenticated:
            return PermissionEvaluator.anonymous()
        user = self._session.user
        return PermissionEvaluator(
            role=user.role,
            overrides=user.permission_overrides,
            restrict_critical=self.is_provisional,
        )

    def has_permission(self, module: str, action) -> bool:
        return self.evaluator().has_permission(module, action)

    # ── Operations ───────────────────────────────────────────────

    async def login(self, identifier: str, password: str) -> Session:
        """
        Authenticate against the server.

        Raises AuthError on rejected credentials and NetworkError when the
        server cannot be reached. Nothing is stored on failure.
        """
        async with self._lock:
            token, user = await self._api.login(identifier, password)
            session = Session(token=token, user=user)
            self._storage.save(session)
            self._generation += 1
            self._cancel_validation()
            self._publish(session, SessionStatus.AUTHENTICATED)
            logger.info(f"Logged in as {user.identity} ({user.role})")
            self._emit("login")
            return session

    async def restore_session(self) -> Optional[Session]:
        """
        Load the persisted session and start validating it with the server.

        The restored session is PROVISIONAL until /api/auth/me confirms it.
        """
        async with self._lock:
            self._status = SessionStatus.LOADING
            stored = None
            try:
                stored = self._load_stored()
            finally:
                if stored is None:
                    self._status = SessionStatus.ANONYMOUS
            if stored is None:
                return None

            self._generation += 1
            self._cancel_validation()
            self._publish(stored, SessionStatus.PROVISIONAL)
            logger.info(f"Restored session for {stored.user.identity}, validating")
            self._emit("restored")
            self._validation = asyncio.create_task(
                self._validate(self._generation, stored.token)
            )
            return stored

    async def wait_until_validated(self) -> SessionStatus:
        """Wait for the in-flight restore validation, if any."""
        task = self._validation
        if task is not None:
            await asyncio.wait({task})
        return self._status

    async def logout(self) -> None:
        """
        Drop the session locally, then tell the server.

        Local state and storage are cleared even if the server call fails.
        """
        async with self._lock:
            token = self.token
            self._cancel_validation()
            self._teardown("logout", clear_storage=True)

        if token is None:
            return
        try:
            await self._api.logout(token)
        except BaristaError as e:
            logger.warning(f"Server logout failed (ignored): {e.message}")

    async def refresh_user_data(self) -> Optional[User]:
        """Re-fetch the current user (role, overrides) from the server."""
        session = self._session
        if session is None:
            return None
        generation = self._generation

        try:
            user = await self._api.me(session.token)
        except AuthError as e:
            if generation == self._generation:
                logger.warning(f"Token rejected during refresh: {e.message}")
                self._teardown("invalidated", clear_storage=True)
            return None
        except BaristaError as e:
            logger.warning(f"User refresh failed, keeping cached user: {e.message}")
            return self.user

        if generation != self._generation:
            logger.debug("Discarding stale user refresh")
            return self.user

        refreshed = self._session.with_user(user)
        self._storage.save(refreshed)
        self._publish(refreshed, SessionStatus.AUTHENTICATED)
        self._emit("refreshed")
        return user

    # ── Internals ────────────────────────────────────────────────

    def _load_stored(self) -> Optional[Session]:
        try:
            return self._storage.load()
        except CorruptSessionError as e:
            logger.warning(f"{e.message}; purging")
            self._storage.clear()
        except OSError as e:
            logger.error(f"Session storage unreadable: {e}")
        return None

    async def _validate(self, generation: int, token: str) -> None:
        try:
            user = await self._api.me(token)
        except AuthError as e:
            if generation == self._generation:
                logger.warning(f"Restored session rejected: {e.message}")
                self._teardown("invalidated", clear_storage=True)
            return
        except BaristaError as e:
            if generation == self._generation:
                logger.warning(
                    f"Could not validate restored session ({e.message}); staying logged out"
                )
                self._teardown("invalidated", clear_storage=False)
            return

        if generation != self._generation:
            logger.debug("Discarding stale session validation")
            return

        validated = self._session.with_user(user)
        self._storage.save(validated)
        self._publish(validated, SessionStatus.AUTHENTICATED)
        logger.info(f"Session validated for {user.identity}")
        self._emit("validated")

    def _publish(self, session: Optional[Session], status: SessionStatus) -> None:
        self._session, self._status = session, status

    def _teardown(self, event: str, clear_storage: bool) -> None:
        self._generation += 1
        self._publish(None, SessionStatus.ANONYMOUS)
        if clear_storage:
            self._storage.clear()
        self._emit(event)

    def _cancel_validation(self) -> None:
        task = self._validation
        self._validation = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception:
                logger.exception(f"Session listener failed on '{event}'")
