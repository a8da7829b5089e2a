"""HTTP client for the backend's OAuth2 endpoints.

The backend owns the provider integration: it builds the provider's
authorization URL (embedding our CSRF token as ``state``), owns the
redirect URI, and later redirects the browser back with ``token`` or
``error``.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any

import httpx

from ..exceptions import BackendProtocolError, BackendUnavailableError, ConfigurationError
from ..log import redact_sensitive_data
from ..types import ProviderList


if TYPE_CHECKING:
    from ..config import BackendSettings


logger = logging.getLogger("oauth2flow.auth")


class BackendClient:
    """Async client for ``/oauth2/providers`` and ``/oauth2/authorize``.

    Parameters
    ----------
    base_url : str
        Scheme and host of the backend (e.g. ``https://api.example.com``).
    api_path : str
        Path prefix of the user API (default ``/api/sys/user``).
    timeout : float, optional
        Request timeout in seconds. ``None`` disables the timeout.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport (e.g. ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str,
        api_path: str = "/api/sys/user",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backend client."""
        self.base_url = base_url.rstrip("/")
        self.api_path = api_path
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: BackendSettings, **kwargs: Any) -> BackendClient:
        """Create a client from the ``backend`` settings section."""
        return cls(
            base_url=settings.api_base_url,
            api_path=settings.api_path,
            timeout=settings.request_timeout,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        """Whether a backend base URL has been set."""
        return bool(self.base_url)

    def ensure_configured(self) -> None:
        """Raise ConfigurationError if no backend URL is set."""
        if not self.is_configured:
            msg = (
                "Backend URL is not configured; set OAUTH2FLOW_BACKEND__API_BASE_URL "
                "or [backend] api_base_url in oauth2flow.toml"
            )
            raise ConfigurationError(msg)

    def endpoint(self, name: str) -> str:
        """Build the absolute URL of an oauth2 endpoint."""
        return f"{self.base_url}{self.api_path}/oauth2/{name}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def get_providers(self) -> ProviderList:
        """Fetch the identity providers advertised by the backend.

        Failures are logged and yield empty lists, so a login screen can
        still render without third-party buttons.

        Returns
        -------
        ProviderList
            All known providers and the whitelisted subset.
        """
        try:
            self.ensure_configured()
            resp = await self._send("GET", "providers")
            data = self._parse(resp, default_error="Failed to fetch provider list")
        except (ConfigurationError, BackendUnavailableError, BackendProtocolError) as exc:
            logger.error("Failed to fetch OAuth2 providers: %s", exc)
            return ProviderList()

        result = data.get("result") or {}
        if not isinstance(result, dict):
            logger.error("Failed to fetch OAuth2 providers: unexpected result type %s", type(result).__name__)
            return ProviderList()
        return ProviderList(
            all_providers=_names(result.get("allProviders")),
            whitelist_providers=_names(result.get("whitelistProviders")),
        )

    async def request_authorization_url(self, provider: str, state: str) -> str:
        """Ask the backend for the provider's authorization URL.

        No redirect URI is sent; the backend owns it.

        Parameters
        ----------
        provider : str
            Lower-case provider name.
        state : str
            The CSRF token to embed as the provider's ``state``.

        Returns
        -------
        str
            The authorization URL to navigate to.

        Raises
        ------
        BackendUnavailableError
            If the backend cannot be reached.
        BackendProtocolError
            If the backend reports failure or omits the URL.
        """
        resp = await self._send("POST", "authorize", json={"provider": provider, "state": state})
        data = self._parse(resp, default_error="Authorization request failed")

        result = data.get("result") or {}
        if not isinstance(result, dict):
            msg = "Unexpected backend response"
            raise BackendProtocolError(msg, status_code=resp.status_code)

        authorization_url = result.get("authorizationUrl") or data.get("authorizationUrl")
        if not isinstance(authorization_url, str) or not authorization_url.strip():
            msg = "No authorization URL returned"
            raise BackendProtocolError(msg, status_code=resp.status_code)

        logger.info("OAuth2 authorization URL received for provider %s", provider)
        return authorization_url.strip()

    async def _send(self, method: str, name: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to BackendUnavailableError."""
        client = await self._get_client()
        try:
            return await client.request(method, self.endpoint(name), **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            msg = f"Backend unreachable: {exc}"
            raise BackendUnavailableError(msg) from exc

    @staticmethod
    def _parse(resp: httpx.Response, default_error: str) -> dict[str, Any]:
        """Decode a backend envelope, raising on any failure signal."""
        if not resp.is_success:
            message = None
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("message")
            msg = message or f"HTTP error! status: {resp.status_code}"
            raise BackendProtocolError(msg, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            msg = "Malformed JSON in backend response"
            raise BackendProtocolError(msg, status_code=resp.status_code) from exc

        if not isinstance(data, dict):
            msg = "Unexpected backend response"
            raise BackendProtocolError(msg, status_code=resp.status_code)

        logger.debug("Backend response: %s", redact_sensitive_data(data))

        if not data.get("success"):
            msg = data.get("message") or default_error
            raise BackendProtocolError(msg, status_code=resp.status_code)

        return data


def _names(value: Any) -> list[str]:
    """Provider names from an envelope field; anything but a list is ignored."""
    if not isinstance(value, list):
        return []
    return [name for name in value if isinstance(name, str)]
