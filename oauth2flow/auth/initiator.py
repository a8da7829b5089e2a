"""Flow Initiator: starts a login attempt and hands off to the provider.

The CSRF token is written to session storage before the backend is
contacted, and removed again if the backend does not produce an
authorization URL.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import secrets
import webbrowser

from typing import TYPE_CHECKING

from ..exceptions import BackendError, StorageError, UnknownProviderError, UsageError
from ..types import LoginAttempt, LoginResult, StorageScope
from .csrf import generate_csrf_token


if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..types import Navigate, Notify
    from .backend import BackendClient
    from .storage import FlowStorage


logger = logging.getLogger("oauth2flow.auth")

DEFAULT_CSRF_KEY = "oauth2.csrfToken"


def open_in_browser(url: str) -> None:
    """Navigate the system browser to ``url``.

    Logs the URL for manual navigation when no browser is available.
    """
    if not webbrowser.open(url):
        logger.info("Open this URL to authenticate: %s", url)


class FlowInitiator:
    """Begins OAuth2 login attempts.

    Parameters
    ----------
    backend : BackendClient
        Client for the backend's authorize endpoint.
    storage : FlowStorage
        Storage capability; the CSRF token goes to its session scope.
    navigate : callable, optional
        Full-page navigation to the authorization URL
        (default: open the system browser).
    notify : callable, optional
        Shows a one-line failure message to the user
        (default: log a warning).
    csrf_key : str
        Session-scope key of the CSRF token.
    advertised_providers : iterable of str, optional
        Providers the backend advertises. When given, any other provider
        is rejected with ``UnknownProviderError``.
    """

    def __init__(
        self,
        backend: BackendClient,
        storage: FlowStorage,
        navigate: Navigate | None = None,
        notify: Notify | None = None,
        csrf_key: str = DEFAULT_CSRF_KEY,
        advertised_providers: Iterable[str] | None = None,
    ) -> None:
        """Initialize the flow initiator."""
        self.backend = backend
        self.storage = storage
        self.navigate = navigate or open_in_browser
        self.notify = notify or logger.warning
        self.csrf_key = csrf_key
        self.advertised_providers = (
            None
            if advertised_providers is None
            else frozenset(p.lower() for p in advertised_providers)
        )

    def normalize_provider(self, provider: str) -> str:
        """Validate and lower-case a provider name.

        Raises
        ------
        UsageError
            If ``provider`` is not a non-empty string.
        UnknownProviderError
            If the provider is not among the advertised providers.
        """
        if not isinstance(provider, str) or not provider.strip():
            msg = "A provider name is required"
            raise UsageError(msg, provider=provider)

        normalized = provider.strip().lower()
        if self.advertised_providers is not None and normalized not in self.advertised_providers:
            msg = f"Provider '{normalized}' is not offered by the backend"
            raise UnknownProviderError(msg, provider=normalized)
        return normalized

    async def begin_login(self, provider: str) -> LoginResult:
        """Start a login attempt for ``provider``.

        On success the browser is sent to the provider's authorization
        page; nothing else happens until the callback arrives.

        Parameters
        ----------
        provider : str
            Provider name; normalized to lower case.

        Returns
        -------
        LoginResult
            ``success=False`` with a one-line ``error`` if the backend
            could not produce an authorization URL or navigation failed.

        Raises
        ------
        UsageError
            If the provider is empty or not advertised.
        ConfigurationError
            If no backend URL is configured.
        """
        provider = self.normalize_provider(provider)
        self.backend.ensure_configured()

        token = generate_csrf_token()
        attempt = LoginAttempt(
            attempt_id=secrets.token_urlsafe(8),
            provider=provider,
            csrf_token=token,
        )
        if token.degraded:
            logger.warning("Login attempt %s uses a degraded CSRF token", attempt.attempt_id)

        # The token must be recorded before the backend is contacted
        try:
            await self.storage.set(StorageScope.SESSION, self.csrf_key, token.value)
        except StorageError as exc:
            logger.error("Login attempt %s: could not record CSRF token: %s", attempt.attempt_id, exc)
            return self._fail(attempt, "Unable to record login state")

        try:
            authorization_url = await self.backend.request_authorization_url(provider, token.value)
        except BackendError as exc:
            logger.error("OAuth2 login failed for %s: %s", provider, exc)
            await self._discard_token(attempt)
            return self._fail(attempt, exc.message)

        logger.info("Login attempt %s: redirecting to %s", attempt.attempt_id, provider)
        try:
            self.navigate(authorization_url)
        except Exception as exc:
            logger.error("Login attempt %s: navigation failed: %s", attempt.attempt_id, exc)
            await self._discard_token(attempt)
            return self._fail(attempt, "Unable to open the provider's sign-in page")
        return LoginResult(success=True, authorization_url=authorization_url, attempt=attempt)

    async def _discard_token(self, attempt: LoginAttempt) -> None:
        try:
            await self.storage.delete(StorageScope.SESSION, self.csrf_key)
        except StorageError as exc:
            logger.warning(
                "Login attempt %s: could not remove CSRF token: %s", attempt.attempt_id, exc
            )

    def _fail(self, attempt: LoginAttempt, reason: str) -> LoginResult:
        self.notify(f"Login failed: {reason}. Please retry.")
        return LoginResult(success=False, error=reason, attempt=attempt)
