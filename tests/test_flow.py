"""Integration tests for AuthFlowManager.

Drives the whole login over a real loopback callback server, with the
backend replaced by httpx.MockTransport and the browser simulated by a
background thread.
"""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import contextlib
import threading
import time

from unittest.mock import MagicMock
from urllib.parse import urlencode
from urllib.request import urlopen

import httpx
import pytest

from oauth2flow.auth.callback_server import OAuthCallbackServer
from oauth2flow.auth.flow import AuthFlowManager
from oauth2flow.auth.initiator import DEFAULT_CSRF_KEY, FlowInitiator
from oauth2flow.auth.resolver import DEFAULT_CREDENTIAL_KEY, CallbackResolver
from oauth2flow.auth.storage import FlowStorage
from oauth2flow.config import OAuth2FlowSettings
from oauth2flow.exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    UsageError,
)
from oauth2flow.types import AuthFlowState, ResolverStatus, StorageScope
from tests.helpers import (
    BACKEND_URL,
    PROVIDER_AUTH_URL,
    NoSleep,
    RecordingNavigator,
    json_response,
    make_backend,
    request_json,
)


# ── Helpers ─────────────────────────────────────────────────────────


def _authorize_ok(request: httpx.Request) -> httpx.Response:
    return json_response({"success": True, "result": {"authorizationUrl": PROVIDER_AUTH_URL}})


class _Browser:
    """Simulated browser: on navigation, the backend redirects to the callback server."""

    def __init__(self, params: dict[str, str] | None = None, delay: float = 0.1) -> None:
        self.params = params
        self.delay = delay
        self.manager: AuthFlowManager | None = None
        self.opened: list[str] = []

    def __call__(self, url: str) -> None:
        self.opened.append(url)
        if self.params is None or self.manager is None:
            return
        server = self.manager._callback_server
        assert server is not None
        callback = f"{server.base_url}/oauth2/redirect?{urlencode(self.params)}"

        def _send() -> None:
            time.sleep(self.delay)
            with contextlib.suppress(Exception):
                urlopen(callback, timeout=5)  # noqa: S310

        threading.Thread(target=_send, daemon=True).start()


def _make_manager(
    storage: FlowStorage,
    browser: _Browser,
    navigator: RecordingNavigator,
    handler=_authorize_ok,
    auth_timeout: float = 5.0,
    **resolver_kwargs,
) -> AuthFlowManager:
    initiator = FlowInitiator(
        backend=make_backend(handler),
        storage=storage,
        navigate=browser,
        notify=MagicMock(),
    )
    resolver = CallbackResolver(
        storage=storage, navigate=navigator, sleep=NoSleep(), **resolver_kwargs
    )
    manager = AuthFlowManager(
        initiator,
        resolver,
        server_factory=lambda: OAuthCallbackServer(port=0),
        auth_timeout=auth_timeout,
        poll_interval=0.02,
    )
    browser.manager = manager
    return manager


# ── Tests ───────────────────────────────────────────────────────────


class TestAuthFlowManager:
    """Tests for the complete login run."""

    def test_initial_state(self, storage: FlowStorage, navigator: RecordingNavigator) -> None:
        """Flow starts in PENDING state."""
        manager = _make_manager(storage, _Browser(), navigator)
        assert manager.flow_state is AuthFlowState.PENDING
        assert manager.flow_id is None

    @pytest.mark.asyncio
    async def test_login_success(self, storage: FlowStorage, navigator: RecordingNavigator) -> None:
        """Token callback stores the credential and completes the flow."""
        browser = _Browser({"token": "abc123"})
        manager = _make_manager(storage, browser, navigator)

        resolution = await manager.login("GitHub")

        assert resolution.success
        assert browser.opened == [PROVIDER_AUTH_URL]
        assert navigator.calls == ["/home"]
        assert manager.flow_state is AuthFlowState.COMPLETED
        assert manager.flow_id is not None
        assert await storage.get(StorageScope.PERSISTENT, DEFAULT_CREDENTIAL_KEY) == "abc123"
        assert await storage.get(StorageScope.SESSION, DEFAULT_CSRF_KEY) is None
        assert manager._callback_server is None

    @pytest.mark.asyncio
    async def test_login_with_state_verification(
        self, storage: FlowStorage, navigator: RecordingNavigator
    ) -> None:
        """The backend echoes the CSRF token as state and strict mode accepts it."""
        sent_state: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent_state.append(request_json(request)["state"])
            return _authorize_ok(request)

        browser = _Browser()
        manager = _make_manager(storage, browser, navigator, handler=handler, verify_state=True)

        original = browser.__call__

        def redirect_with_state(url: str) -> None:
            browser.params = {"token": "abc123", "state": sent_state[0]}
            original(url)

        manager.initiator.navigate = redirect_with_state

        resolution = await manager.login("github")

        assert resolution.success

    @pytest.mark.asyncio
    async def test_error_callback(self, storage: FlowStorage, navigator: RecordingNavigator) -> None:
        """An error callback is returned as an error resolution."""
        manager = _make_manager(storage, _Browser({"error": "access_denied"}), navigator)

        resolution = await manager.login("github")

        assert resolution.status is ResolverStatus.ERROR
        assert resolution.error == "access_denied"
        assert manager.flow_state is AuthFlowState.FAILED
        assert await storage.get(StorageScope.PERSISTENT, DEFAULT_CREDENTIAL_KEY) is None
        assert await storage.get(StorageScope.SESSION, DEFAULT_CSRF_KEY) is None

    @pytest.mark.asyncio
    async def test_timeout(self, storage: FlowStorage, navigator: RecordingNavigator) -> None:
        """No callback within the timeout raises and removes the CSRF token."""
        manager = _make_manager(storage, _Browser(), navigator, auth_timeout=0.3)

        with pytest.raises(AuthFlowTimeout) as exc_info:
            await manager.login("github")

        assert exc_info.value.timeout == 0.3
        assert exc_info.value.provider == "github"
        assert exc_info.value.flow_id == manager.flow_id
        assert manager.flow_state is AuthFlowState.TIMED_OUT
        assert await storage.get(StorageScope.SESSION, DEFAULT_CSRF_KEY) is None
        assert navigator.calls == []

    @pytest.mark.asyncio
    async def test_cancel(self, storage: FlowStorage, navigator: RecordingNavigator) -> None:
        """cancel() from another thread aborts the wait."""
        manager = _make_manager(storage, _Browser(), navigator, auth_timeout=5.0)

        def cancel_soon() -> None:
            time.sleep(0.2)
            manager.cancel()

        threading.Thread(target=cancel_soon, daemon=True).start()

        with pytest.raises(AuthFlowCancelled):
            await manager.login("github")

        assert manager.flow_state is AuthFlowState.CANCELLED
        assert await storage.get(StorageScope.SESSION, DEFAULT_CSRF_KEY) is None

    @pytest.mark.asyncio
    async def test_initiation_failure(
        self, storage: FlowStorage, navigator: RecordingNavigator
    ) -> None:
        """A failed authorization request raises AuthenticationError."""
        browser = _Browser({"token": "abc123"})
        manager = _make_manager(
            storage,
            browser,
            navigator,
            handler=lambda request: json_response({"success": False, "message": "Provider disabled"}),
        )

        with pytest.raises(AuthenticationError, match="Provider disabled"):
            await manager.login("github")

        assert manager.flow_state is AuthFlowState.FAILED
        assert browser.opened == []
        assert manager._callback_server is None

    @pytest.mark.asyncio
    async def test_usage_error_propagates(
        self, storage: FlowStorage, navigator: RecordingNavigator
    ) -> None:
        """Usage errors are not converted."""
        manager = _make_manager(storage, _Browser(), navigator)
        with pytest.raises(UsageError):
            await manager.login("")
        assert manager.flow_state is AuthFlowState.FAILED


class TestFromSettings:
    """Tests for AuthFlowManager.from_settings."""

    def test_components_follow_settings(self, storage: FlowStorage) -> None:
        """Settings reach the backend, resolver and callback server."""
        settings = OAuth2FlowSettings(
            backend={"api_base_url": BACKEND_URL},
            flow={"home_route": "/dashboard", "verify_state": True},
            storage={"csrf_key": "k.csrf", "credential_key": "k.cred"},
            callback={"port": 0, "paths": ["/cb"], "auth_timeout_seconds": 30},
        )
        manager = AuthFlowManager.from_settings(settings, storage, navigate_route=RecordingNavigator())

        assert manager.initiator.backend.base_url == BACKEND_URL
        assert manager.initiator.csrf_key == "k.csrf"
        assert manager.resolver.home_route == "/dashboard"
        assert manager.resolver.verify_state is True
        assert manager.resolver.credential_key == "k.cred"
        assert manager.auth_timeout == 30

        server = manager.server_factory()
        assert server._paths == frozenset({"/cb"})
        assert server._port == 0


class TestCallbackServerFailure:
    """Tests for a callback server that cannot bind."""

    @pytest.mark.asyncio
    async def test_port_in_use(self, storage: FlowStorage, navigator: RecordingNavigator) -> None:
        """A bind failure is reported as AuthenticationError before any storage write."""
        manager = _make_manager(storage, _Browser(), navigator)
        failing = MagicMock()
        failing.start.side_effect = OSError("Address already in use")
        manager.server_factory = lambda: failing

        with pytest.raises(AuthenticationError, match="callback server"):
            await manager.login("github")

        assert manager.flow_state is AuthFlowState.FAILED
        assert await storage.get(StorageScope.SESSION, DEFAULT_CSRF_KEY) is None
