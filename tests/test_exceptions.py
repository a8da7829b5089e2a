"""Tests for oauth2flow.exceptions module.

These tests verify the exception hierarchy, message formatting and
context storage. No mocks needed.
"""

from __future__ import annotations

import pytest

from oauth2flow.exceptions import (
    AuthenticationError,
    AuthFlowCancelled,
    AuthFlowTimeout,
    BackendError,
    BackendProtocolError,
    BackendUnavailableError,
    ConfigurationError,
    OAuth2FlowError,
    StorageError,
    UnknownProviderError,
    UsageError,
)


class TestOAuth2FlowError:
    """Test base exception class behavior."""

    def test_message_only(self) -> None:
        """Exception with just a message stores it correctly."""
        exc = OAuth2FlowError("Something went wrong")
        assert exc.message == "Something went wrong"
        assert not exc.context
        assert str(exc) == "Something went wrong"

    def test_with_context(self) -> None:
        """Context appears in the string representation."""
        exc = OAuth2FlowError("Failed", provider="github", attempt=3)
        assert exc.context == {"provider": "github", "attempt": 3}
        exc_str = str(exc)
        assert exc_str.startswith("Failed (")
        assert "provider='github'" in exc_str
        assert "attempt=3" in exc_str

    def test_args_preserved(self) -> None:
        """Standard exception args are preserved."""
        assert OAuth2FlowError("message").args == ("message",)


class TestHierarchy:
    """Every error is catchable as OAuth2FlowError."""

    @pytest.mark.parametrize(
        "exc_type",
        [
            ConfigurationError,
            UsageError,
            UnknownProviderError,
            BackendError,
            BackendUnavailableError,
            BackendProtocolError,
            StorageError,
            AuthenticationError,
            AuthFlowCancelled,
        ],
    )
    def test_subclasses_base(self, exc_type: type[OAuth2FlowError]) -> None:
        """Subclass relationship to the base error."""
        assert issubclass(exc_type, OAuth2FlowError)

    def test_unknown_provider_is_usage_error(self) -> None:
        """UnknownProviderError is a UsageError and keeps the provider."""
        exc = UnknownProviderError("nope", provider="myspace")
        assert isinstance(exc, UsageError)
        assert exc.provider == "myspace"

    def test_backend_errors_keep_status(self) -> None:
        """BackendError subclasses store the HTTP status code."""
        exc = BackendProtocolError("HTTP error! status: 502", status_code=502)
        assert isinstance(exc, BackendError)
        assert exc.status_code == 502
        assert "status_code=502" in str(exc)
        assert BackendUnavailableError("down").status_code is None

    def test_storage_error_context(self) -> None:
        """StorageError keeps key and scope."""
        exc = StorageError("write failed", key="session.credential", scope="persistent")
        assert exc.key == "session.credential"
        assert exc.scope == "persistent"

    def test_timeout_error(self) -> None:
        """AuthFlowTimeout carries timeout, provider and flow id."""
        exc = AuthFlowTimeout("timed out", timeout=1.5, provider="github", flow_id="f1")
        assert isinstance(exc, AuthenticationError)
        assert exc.timeout == 1.5
        assert exc.provider == "github"
        assert exc.flow_id == "f1"
        assert "timeout=1.5" in str(exc)

    def test_cancelled_caught_as_authentication_error(self) -> None:
        """AuthFlowCancelled can be handled as AuthenticationError."""
        with pytest.raises(AuthenticationError):
            raise AuthFlowCancelled("cancelled", provider="google")
