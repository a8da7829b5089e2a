"""Type definitions shared by the login flow components."""

from __future__ import annotations

import time

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


#: Logical scope tag carried by every CSRF token.
CSRF_SCOPE = "oauth2-state"


class StorageScope(str, Enum):
    """Lifetime of a stored value."""

    SESSION = "session"
    PERSISTENT = "persistent"


class CallbackOutcome(str, Enum):
    """Classification of the query parameters arriving at the callback."""

    TOKEN_PRESENT = "token-present"
    ERROR_PRESENT = "error-present"
    NEITHER = "neither"


class ResolverStatus(str, Enum):
    """Status of a single CallbackResolver invocation."""

    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class AuthFlowState(str, Enum):
    """State of a complete login run driven by AuthFlowManager."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class CsrfToken:
    """Anti-CSRF token round-tripped through the provider's ``state``.

    Attributes
    ----------
    value : str
        High-entropy opaque string.
    scope : str
        Logical purpose tag, always ``"oauth2-state"``.
    degraded : bool
        True when the token came from the non-cryptographic fallback.
    """

    value: str
    scope: str = CSRF_SCOPE
    degraded: bool = False


@dataclass(frozen=True)
class LoginAttempt:
    """Context of one login attempt, created by ``begin_login``.

    Attributes
    ----------
    attempt_id : str
        Identifier used in log lines and exceptions.
    provider : str
        Normalized (lower-case) provider name.
    csrf_token : CsrfToken
        The token recorded for this attempt.
    started_at : float
        Unix timestamp when the attempt started.
    """

    attempt_id: str
    provider: str
    csrf_token: CsrfToken
    started_at: float = field(default_factory=time.time)


@dataclass
class LoginResult:
    """Result of ``FlowInitiator.begin_login``.

    Attributes
    ----------
    success : bool
        Whether the browser was sent to the authorization URL.
    authorization_url : str or None
        The URL returned by the backend.
    error : str or None
        One-line reason when the attempt failed.
    attempt : LoginAttempt or None
        The attempt context (present once a token was minted).
    """

    success: bool
    authorization_url: str | None = None
    error: str | None = None
    attempt: LoginAttempt | None = None


@dataclass
class CallbackResolution:
    """Result of ``CallbackResolver.resolve``.

    Attributes
    ----------
    status : ResolverStatus
        Terminal status, ``SUCCESS`` or ``ERROR``.
    outcome : CallbackOutcome
        How the inbound parameters were classified.
    route : str
        Where the application was (or would have been) sent.
    error : str or None
        Reason shown to the user on failure.
    navigated : bool
        False when navigation was skipped for a repeated callback.
    """

    status: ResolverStatus
    outcome: CallbackOutcome
    route: str
    error: str | None = None
    navigated: bool = True

    @property
    def success(self) -> bool:
        """Whether the callback left the application authenticated."""
        return self.status is ResolverStatus.SUCCESS


@dataclass
class ProviderList:
    """Identity providers advertised by the backend.

    Attributes
    ----------
    all_providers : list[str]
        Every provider the backend knows about.
    whitelist_providers : list[str]
        Providers enabled for login.
    """

    all_providers: list[str] = field(default_factory=list)
    whitelist_providers: list[str] = field(default_factory=list)


# Full-page navigation to a URL or application route.
Navigate = Callable[[str], None]

# User-visible one-line message (the browser's alert()).
Notify = Callable[[str], None]
