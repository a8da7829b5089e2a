"""OAuth2 login flow for oauth2flow.

Provides the Flow Initiator and Callback Resolver, the backend client,
pluggable credential storage, session access, and the loopback flow
orchestration used outside a browser app.
"""

from __future__ import annotations

from .backend import BackendClient
from .callback_server import OAuthCallbackServer
from .csrf import generate_csrf_token
from .flow import AuthFlowManager
from .initiator import FlowInitiator, open_in_browser
from .resolver import CallbackResolver, classify
from .session import SessionManager
from .storage import (
    FlowStorage,
    KeyringStore,
    KeyValueStore,
    MemoryStore,
    RedisStore,
    create_persistent_store,
    create_storage,
)


__all__ = [
    "AuthFlowManager",
    "BackendClient",
    "CallbackResolver",
    "FlowInitiator",
    "FlowStorage",
    "KeyValueStore",
    "KeyringStore",
    "MemoryStore",
    "OAuthCallbackServer",
    "RedisStore",
    "SessionManager",
    "classify",
    "create_persistent_store",
    "create_storage",
    "generate_csrf_token",
    "open_in_browser",
]
