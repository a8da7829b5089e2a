"""oauth2flow exception hierarchy.

All oauth2flow-specific exceptions inherit from OAuth2FlowError, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class OAuth2FlowError(Exception):
    """Base exception for all oauth2flow errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize oauth2flow exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, key, status_code, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(OAuth2FlowError):
    """Required configuration is missing or invalid.

    Raised immediately to the caller (e.g. no backend URL configured).
    Never retried.
    """


class UsageError(OAuth2FlowError):
    """The caller invoked an operation with invalid arguments."""


class UnknownProviderError(UsageError):
    """The requested provider is not one the backend advertises."""

    def __init__(self, message: str, provider: str | None = None, **context: Any) -> None:
        """Initialize unknown provider error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider name that was rejected.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class BackendError(OAuth2FlowError):
    """Base exception for failures talking to the backend.

    Raised by BackendClient and handled by the Initiator, which turns
    it into a failed LoginResult.
    """

    def __init__(self, message: str, status_code: int | None = None, **context: Any) -> None:
        """Initialize backend error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status code, when a response was received.
        **context : Any
            Additional context.
        """
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class BackendUnavailableError(BackendError):
    """The backend could not be reached (transport-level failure)."""


class BackendProtocolError(BackendError):
    """The backend answered, but not with a usable authorization URL.

    Covers HTTP error statuses, ``success: false``, malformed JSON,
    and responses that omit the authorization URL.
    """


class StorageError(OAuth2FlowError):
    """A storage backend failed to read, write, or delete a value."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        scope: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize storage error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        key : str, optional
            The storage key involved.
        scope : str, optional
            The storage scope ("session" or "persistent").
        **context : Any
            Additional context.
        """
        super().__init__(message, key=key, scope=scope, **context)
        self.key = key
        self.scope = scope


class AuthenticationError(OAuth2FlowError):
    """Base exception for login flow failures raised by AuthFlowManager."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The identity provider name (e.g., "google", "github").
        flow_id : str, optional
            The unique identifier of the login attempt that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


class AuthFlowCancelled(AuthenticationError):
    """Login flow was cancelled before the callback arrived."""


class AuthFlowTimeout(AuthenticationError):
    """Login flow timed out.

    Raised when the wait for the browser callback exceeds the
    configured timeout.
    """

    def __init__(
        self,
        message: str,
        timeout: float,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize timeout error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        timeout : float
            The timeout value in seconds.
        provider : str, optional
            The identity provider name.
        flow_id : str, optional
            The unique identifier of the login attempt.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, timeout=timeout, **context)
        self.timeout = timeout
