"""Callback Resolver: turns the browser's return into a final auth state.

The backend validates the ``state`` it sent to the provider before it
redirects back with ``token`` or ``error``. By default the resolver only
disposes of the CSRF record and classifies the outcome; with
``verify_state`` enabled it also requires the success redirect to echo
the stored token.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import hmac
import logging

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlencode, urlparse

from ..exceptions import StorageError
from ..log import redact_sensitive_data
from ..types import CallbackOutcome, CallbackResolution, ResolverStatus, StorageScope
from .initiator import DEFAULT_CSRF_KEY


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..config import FlowSettings
    from ..types import Navigate
    from .storage import FlowStorage


logger = logging.getLogger("oauth2flow.auth")

DEFAULT_CREDENTIAL_KEY = "session.credential"

STORAGE_FAILED_REASON = "credential_storage_failed"
STATE_MISMATCH_REASON = "state_mismatch"


def _first(params: Mapping[str, Any], name: str) -> str | None:
    """Return the first non-empty value of a query parameter."""
    value = params.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    value = str(value)
    return value or None


def classify(params: Mapping[str, Any]) -> CallbackOutcome:
    """Classify callback query parameters.

    A token takes precedence over an error; empty values count as absent.
    """
    if _first(params, "token"):
        return CallbackOutcome.TOKEN_PRESENT
    if _first(params, "error"):
        return CallbackOutcome.ERROR_PRESENT
    return CallbackOutcome.NEITHER


class CallbackResolver:
    """Resolves login callbacks through ``processing -> success | error``.

    Parameters
    ----------
    storage : FlowStorage
        Storage capability shared with the initiator.
    navigate : callable
        Navigation to an application route.
    home_route : str
        Route for authenticated users (default ``/home``).
    login_route : str
        Unauthenticated entry point (default ``/login``).
    success_delay : float
        Seconds to show the success indicator before navigating.
    error_delay : float
        Seconds to show the error indicator before navigating.
    verify_state : bool
        Require a success callback to echo the stored CSRF token.
    csrf_key, credential_key : str
        Storage keys of the CSRF token and the session credential.
    on_status : callable, optional
        Called with every status the resolver enters.
    sleep : callable, optional
        Awaitable delay function (default ``asyncio.sleep``).
    """

    def __init__(
        self,
        storage: FlowStorage,
        navigate: Navigate,
        home_route: str = "/home",
        login_route: str = "/login",
        success_delay: float = 1.0,
        error_delay: float = 2.0,
        verify_state: bool = False,
        csrf_key: str = DEFAULT_CSRF_KEY,
        credential_key: str = DEFAULT_CREDENTIAL_KEY,
        on_status: Callable[[ResolverStatus], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize the callback resolver."""
        self.storage = storage
        self.navigate = navigate
        self.home_route = home_route
        self.login_route = login_route
        self.success_delay = success_delay
        self.error_delay = error_delay
        self.verify_state = verify_state
        self.csrf_key = csrf_key
        self.credential_key = credential_key
        self.on_status = on_status
        self._sleep = sleep or asyncio.sleep

        self._status = ResolverStatus.PROCESSING
        self._last: tuple[tuple[str | None, ...], ResolverStatus] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: FlowSettings,
        storage: FlowStorage,
        navigate: Navigate,
        **kwargs: Any,
    ) -> CallbackResolver:
        """Create a resolver from the ``flow`` settings section."""
        return cls(
            storage=storage,
            navigate=navigate,
            home_route=settings.home_route,
            login_route=settings.login_route,
            success_delay=settings.success_delay,
            error_delay=settings.error_delay,
            verify_state=settings.verify_state,
            **kwargs,
        )

    @property
    def status(self) -> ResolverStatus:
        """Status of the most recent invocation."""
        return self._status

    async def resolve_url(self, url: str) -> CallbackResolution:
        """Resolve a callback from its full URL (or bare query string)."""
        is_url = "?" in url or "://" in url or url.startswith("/")
        query = urlparse(url).query if is_url else url
        return await self.resolve(parse_qs(query))

    async def resolve(self, params: Mapping[str, Any]) -> CallbackResolution:
        """Resolve a callback from its query parameters.

        Parameters
        ----------
        params : mapping
            Query parameters; values may be strings or lists of strings.

        Returns
        -------
        CallbackResolution
            The terminal status and the route navigated to.
        """
        self._restart()
        outcome = classify(params)
        signature = (
            _first(params, "token"),
            _first(params, "error"),
            _first(params, "state"),
        )

        previous = None
        if outcome is not CallbackOutcome.NEITHER and self._last is not None:
            last_signature, last_status = self._last
            # A pending CSRF record means a new attempt began after the last callback
            if signature == last_signature and not await self._attempt_pending():
                previous = last_status
        repeat = previous is not None

        resolution = await self._resolve(params, outcome, repeat, previous)
        self._last = (signature, resolution.status)
        return resolution

    async def _resolve(
        self,
        params: Mapping[str, Any],
        outcome: CallbackOutcome,
        repeat: bool,
        previous: ResolverStatus | None,
    ) -> CallbackResolution:
        logger.debug(
            "Resolving callback (%s): %s", outcome.value, redact_sensitive_data(dict(params))
        )

        if outcome is CallbackOutcome.NEITHER:
            # Malformed or directly visited: nothing in flight, nothing to clean
            return self._finish(
                ResolverStatus.ERROR, outcome, self.login_route, None, delay=None, repeat=repeat
            )

        if outcome is CallbackOutcome.ERROR_PRESENT:
            reason = _first(params, "error") or ""
            await self._discard_csrf()
            logger.warning("Login failed: %s", reason)
            return await self._finish_after_delay(
                ResolverStatus.ERROR, outcome, self._login_route_with(reason), reason, repeat
            )

        token = _first(params, "token") or ""

        # A repeat of an accepted callback no longer has a CSRF record to compare with
        check_state = self.verify_state and previous is not ResolverStatus.SUCCESS
        if check_state and not await self._state_matches(_first(params, "state")):
            await self._discard_csrf()
            logger.warning("Login callback rejected: state does not match the stored token")
            return await self._finish_after_delay(
                ResolverStatus.ERROR,
                outcome,
                self._login_route_with(STATE_MISMATCH_REASON),
                STATE_MISMATCH_REASON,
                repeat,
            )

        if not await self._persist_credential(token):
            await self._discard_csrf()
            return await self._finish_after_delay(
                ResolverStatus.ERROR,
                outcome,
                self._login_route_with(STORAGE_FAILED_REASON),
                STORAGE_FAILED_REASON,
                repeat,
            )

        await self._discard_csrf()
        logger.info("Login succeeded; session credential stored")
        return await self._finish_after_delay(
            ResolverStatus.SUCCESS, outcome, self.home_route, None, repeat
        )

    async def _attempt_pending(self) -> bool:
        try:
            return bool(await self.storage.get(StorageScope.SESSION, self.csrf_key))
        except StorageError as exc:
            logger.warning("Could not read CSRF token: %s", exc)
            return False

    async def _state_matches(self, echoed: str | None) -> bool:
        try:
            stored = await self.storage.get(StorageScope.SESSION, self.csrf_key)
        except StorageError as exc:
            logger.warning("Could not read CSRF token: %s", exc)
            return False
        if not stored or not echoed:
            return False
        return hmac.compare_digest(stored, echoed)

    async def _persist_credential(self, token: str) -> bool:
        """Write the credential and read it back.

        A credential that cannot be confirmed is removed again.
        """
        try:
            await self.storage.set(StorageScope.PERSISTENT, self.credential_key, token)
            stored = await self.storage.get(StorageScope.PERSISTENT, self.credential_key)
        except StorageError as exc:
            logger.error("Failed to persist session credential: %s", exc)
        else:
            if stored == token:
                return True
            logger.error("Session credential read-back did not match what was written")

        try:
            await self.storage.delete(StorageScope.PERSISTENT, self.credential_key)
        except StorageError as exc:
            logger.warning("Could not remove partially written credential: %s", exc)
        return False

    async def _discard_csrf(self) -> None:
        """Best-effort removal of the per-attempt CSRF record."""
        try:
            await self.storage.delete(StorageScope.SESSION, self.csrf_key)
        except StorageError as exc:
            logger.warning("Could not remove CSRF token: %s", exc)

    def _login_route_with(self, reason: str) -> str:
        separator = "&" if "?" in self.login_route else "?"
        return f"{self.login_route}{separator}{urlencode({'error': reason})}"

    async def _finish_after_delay(
        self,
        status: ResolverStatus,
        outcome: CallbackOutcome,
        route: str,
        error: str | None,
        repeat: bool,
    ) -> CallbackResolution:
        delay = self.success_delay if status is ResolverStatus.SUCCESS else self.error_delay
        self._set_status(status)
        if not repeat and delay > 0:
            await self._sleep(delay)
        return self._finish(status, outcome, route, error, delay=delay, repeat=repeat)

    def _finish(
        self,
        status: ResolverStatus,
        outcome: CallbackOutcome,
        route: str,
        error: str | None,
        delay: float | None,
        repeat: bool,
    ) -> CallbackResolution:
        self._set_status(status)
        if repeat:
            logger.debug("Callback already handled; not navigating again")
        else:
            logger.debug("Navigating to %s (delay=%s)", route, delay)
            self.navigate(route)
        return CallbackResolution(
            status=status,
            outcome=outcome,
            route=route,
            error=error,
            navigated=not repeat,
        )

    def _set_status(self, status: ResolverStatus) -> None:
        if status is self._status:
            return
        if self._status is not ResolverStatus.PROCESSING:
            # Terminal for this invocation; only resolve() restarts the machine
            msg = f"Illegal resolver transition {self._status.value} -> {status.value}"
            raise RuntimeError(msg)
        self._status = status
        if self.on_status is not None:
            self.on_status(status)

    def _restart(self) -> None:
        self._status = ResolverStatus.PROCESSING
        if self.on_status is not None:
            self.on_status(ResolverStatus.PROCESSING)
