"""Login flow orchestrator for applications without a browser router.

AuthFlowManager starts the loopback callback server, begins the login
through the FlowInitiator, waits for the backend's redirect, and hands
the captured parameters to the CallbackResolver. The callback server
runs on its own thread; storage is only touched from the event loop.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging
import threading

from typing import TYPE_CHECKING, Any

from ..exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    OAuth2FlowError,
    StorageError,
)
from ..types import AuthFlowState, StorageScope
from .backend import BackendClient
from .callback_server import OAuthCallbackServer
from .initiator import FlowInitiator
from .resolver import CallbackResolver


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import OAuth2FlowSettings
    from ..types import CallbackResolution, Navigate, Notify
    from .storage import FlowStorage


logger = logging.getLogger("oauth2flow.auth")


class AuthFlowManager:
    """Runs one complete login: initiate, wait for the callback, resolve.

    Parameters
    ----------
    initiator : FlowInitiator
        Starts the attempt and sends the browser to the provider.
    resolver : CallbackResolver
        Resolves the captured callback parameters.
    server_factory : callable, optional
        Returns a fresh, unstarted ``OAuthCallbackServer``
        (default: one on ``127.0.0.1:3000``).
    auth_timeout : float
        Seconds to wait for the browser to return (default ``120``).
    poll_interval : float
        Seconds between checks for the callback or a cancellation.
    """

    def __init__(
        self,
        initiator: FlowInitiator,
        resolver: CallbackResolver,
        server_factory: Callable[[], OAuthCallbackServer] | None = None,
        auth_timeout: float = 120.0,
        poll_interval: float = 0.1,
    ) -> None:
        """Initialize the auth flow manager."""
        self.initiator = initiator
        self.resolver = resolver
        self.server_factory = server_factory or OAuthCallbackServer
        self.auth_timeout = auth_timeout
        self.poll_interval = poll_interval

        self._flow_state = AuthFlowState.PENDING
        self._flow_id: str | None = None
        self._provider: str | None = None
        self._cancellation_event = threading.Event()
        self._callback_server: OAuthCallbackServer | None = None

    @classmethod
    def from_settings(
        cls,
        settings: OAuth2FlowSettings,
        storage: FlowStorage,
        navigate_route: Navigate,
        open_url: Navigate | None = None,
        notify: Notify | None = None,
        **backend_kwargs: Any,
    ) -> AuthFlowManager:
        """Assemble a manager and its components from settings.

        Parameters
        ----------
        settings : OAuth2FlowSettings
            Full settings object.
        storage : FlowStorage
            Storage shared by the initiator and the resolver.
        navigate_route : callable
            Navigation to an application route after the callback.
        open_url : callable, optional
            Opens the authorization URL (default: the system browser).
        notify : callable, optional
            Shows initiation failures to the user.
        **backend_kwargs : Any
            Extra arguments for ``BackendClient`` (e.g. ``transport``).
        """
        backend = BackendClient.from_settings(settings.backend, **backend_kwargs)
        initiator = FlowInitiator(
            backend=backend,
            storage=storage,
            navigate=open_url,
            notify=notify,
            csrf_key=settings.storage.csrf_key,
        )
        resolver = CallbackResolver.from_settings(
            settings.flow,
            storage=storage,
            navigate=navigate_route,
            csrf_key=settings.storage.csrf_key,
            credential_key=settings.storage.credential_key,
        )
        callback = settings.callback

        def _server() -> OAuthCallbackServer:
            return OAuthCallbackServer(host=callback.host, port=callback.port, paths=callback.paths)

        return cls(
            initiator=initiator,
            resolver=resolver,
            server_factory=_server,
            auth_timeout=callback.auth_timeout_seconds,
        )

    @property
    def flow_state(self) -> AuthFlowState:
        """Current state of the login run."""
        return self._flow_state

    @property
    def flow_id(self) -> str | None:
        """Attempt identifier of the current or last login run."""
        return self._flow_id

    async def login(self, provider: str) -> CallbackResolution:
        """Run a login for ``provider`` and wait for its outcome.

        Parameters
        ----------
        provider : str
            Provider name, as accepted by ``FlowInitiator.begin_login``.

        Returns
        -------
        CallbackResolution
            How the callback was resolved. An ``error`` resolution is
            returned, not raised; the resolver has already navigated.

        Raises
        ------
        AuthenticationError
            If the initiator could not obtain an authorization URL.
        AuthFlowTimeout
            If the browser did not return within ``auth_timeout``.
        AuthFlowCancelled
            If ``cancel()`` was called while waiting.
        UsageError, ConfigurationError
            Propagated unchanged from the initiator.
        """
        self._flow_id = None
        self._provider = provider
        self._flow_state = AuthFlowState.IN_PROGRESS
        self._cancellation_event.clear()

        server = self.server_factory()
        try:
            base_url = server.start()
        except OSError as exc:
            self._flow_state = AuthFlowState.FAILED
            msg = f"Could not start the callback server: {exc}"
            raise AuthenticationError(msg, provider=provider) from exc
        self._callback_server = server
        logger.info("Login flow: callback server listening at %s", base_url)

        try:
            result = await self.initiator.begin_login(provider)
            if result.attempt is not None:
                self._flow_id = result.attempt.attempt_id
                self._provider = result.attempt.provider
            if not result.success:
                self._flow_state = AuthFlowState.FAILED
                msg = f"Login failed: {result.error}"
                raise AuthenticationError(msg, provider=self._provider, flow_id=self._flow_id)

            params = await self._wait_for_callback()
            if params is None:
                self._flow_state = AuthFlowState.TIMED_OUT
                await self._discard_pending()
                msg = f"Authentication timed out after {self.auth_timeout}s"
                raise AuthFlowTimeout(
                    msg,
                    timeout=self.auth_timeout,
                    provider=self._provider,
                    flow_id=self._flow_id,
                )

            resolution = await self.resolver.resolve(params)
            self._flow_state = (
                AuthFlowState.COMPLETED if resolution.success else AuthFlowState.FAILED
            )
            logger.info("Login flow %s finished: %s", self._flow_id, resolution.status.value)
            return resolution

        except AuthFlowCancelled:
            self._flow_state = AuthFlowState.CANCELLED
            await self._discard_pending()
            raise
        except OAuth2FlowError:
            if self._flow_state is AuthFlowState.IN_PROGRESS:
                self._flow_state = AuthFlowState.FAILED
            raise
        finally:
            server.stop()
            self._callback_server = None

    def cancel(self) -> None:
        """Cancel the current login run.

        Safe to call from another thread; the waiting ``login()`` raises
        ``AuthFlowCancelled``.
        """
        self._flow_state = AuthFlowState.CANCELLED
        self._cancellation_event.set()

    async def _wait_for_callback(self) -> dict[str, Any] | None:
        """Poll the callback server and the cancellation event.

        Returns the callback parameters, or ``None`` on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.auth_timeout

        while loop.time() < deadline:
            if self._cancellation_event.is_set():
                msg = "Authentication flow was cancelled"
                raise AuthFlowCancelled(msg, provider=self._provider, flow_id=self._flow_id)

            server = self._callback_server
            if server is not None and server.received:
                return server.result

            await asyncio.sleep(self.poll_interval)

        return None

    async def _discard_pending(self) -> None:
        """Remove the CSRF record of an attempt that will never be resolved."""
        try:
            await self.initiator.storage.delete(StorageScope.SESSION, self.initiator.csrf_key)
        except StorageError as exc:
            logger.warning("Login flow %s: could not remove CSRF token: %s", self._flow_id, exc)
