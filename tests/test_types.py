"""Tests for shared type definitions."""

from __future__ import annotations

import dataclasses

import pytest

from oauth2flow.types import (
    CSRF_SCOPE,
    CallbackOutcome,
    CallbackResolution,
    CsrfToken,
    LoginAttempt,
    ProviderList,
    ResolverStatus,
    StorageScope,
)


class TestEnums:
    """String values used in logs and storage."""

    def test_values(self) -> None:
        assert StorageScope.SESSION.value == "session"
        assert StorageScope.PERSISTENT.value == "persistent"
        assert CallbackOutcome.TOKEN_PRESENT.value == "token-present"
        assert ResolverStatus.PROCESSING == "processing"


class TestCsrfToken:
    """Tests for CsrfToken."""

    def test_defaults(self) -> None:
        token = CsrfToken(value="abc")
        assert token.scope == CSRF_SCOPE
        assert token.degraded is False

    def test_frozen(self) -> None:
        """Tokens are immutable once minted."""
        token = CsrfToken(value="abc")
        with pytest.raises(dataclasses.FrozenInstanceError):
            token.value = "other"  # type: ignore[misc]


class TestResults:
    """Tests for result containers."""

    def test_resolution_success_flag(self) -> None:
        ok = CallbackResolution(ResolverStatus.SUCCESS, CallbackOutcome.TOKEN_PRESENT, "/home")
        failed = CallbackResolution(ResolverStatus.ERROR, CallbackOutcome.NEITHER, "/login")
        assert ok.success
        assert ok.navigated
        assert not failed.success

    def test_login_attempt_timestamp(self) -> None:
        attempt = LoginAttempt(attempt_id="a1", provider="github", csrf_token=CsrfToken("t"))
        assert attempt.started_at > 0

    def test_provider_list_defaults_are_independent(self) -> None:
        first, second = ProviderList(), ProviderList()
        first.all_providers.append("github")
        assert second.all_providers == []
