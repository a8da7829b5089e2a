"""oauth2flow - client side of a backend-brokered OAuth2 login.

The backend builds the provider's authorization URL and later redirects
the browser back with an opaque session token. This package starts that
login (Flow Initiator), resolves the redirect (Callback Resolver), and
keeps the resulting credential in pluggable storage.
"""

from __future__ import annotations

from .auth import (
    AuthFlowManager,
    BackendClient,
    CallbackResolver,
    FlowInitiator,
    FlowStorage,
    MemoryStore,
    SessionManager,
)
from .config import OAuth2FlowSettings, get_settings
from .exceptions import (
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
from .log import enable_debug, get_logger
from .types import (
    AuthFlowState,
    CallbackOutcome,
    CallbackResolution,
    CsrfToken,
    LoginAttempt,
    LoginResult,
    ProviderList,
    ResolverStatus,
    StorageScope,
)


__version__ = "0.1.0"

__all__ = [
    "AuthFlowCancelled",
    "AuthFlowManager",
    "AuthFlowState",
    "AuthFlowTimeout",
    "AuthenticationError",
    "BackendClient",
    "BackendError",
    "BackendProtocolError",
    "BackendUnavailableError",
    "CallbackOutcome",
    "CallbackResolution",
    "CallbackResolver",
    "ConfigurationError",
    "CsrfToken",
    "FlowInitiator",
    "FlowStorage",
    "LoginAttempt",
    "LoginResult",
    "MemoryStore",
    "OAuth2FlowError",
    "OAuth2FlowSettings",
    "ProviderList",
    "ResolverStatus",
    "SessionManager",
    "StorageError",
    "StorageScope",
    "UnknownProviderError",
    "UsageError",
    "__version__",
    "enable_debug",
    "get_logger",
    "get_settings",
]
