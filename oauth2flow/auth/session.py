"""Session credential access and logout.

The rest of the application reads the session credential through
SessionManager; only CallbackResolver writes it.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from ..types import StorageScope
from .initiator import DEFAULT_CSRF_KEY
from .resolver import DEFAULT_CREDENTIAL_KEY


if TYPE_CHECKING:
    from ..types import Navigate
    from .storage import FlowStorage


logger = logging.getLogger("oauth2flow.auth")


class SessionManager:
    """Read-side access to the session credential, plus logout.

    Parameters
    ----------
    storage : FlowStorage
        Storage capability shared with the login flow.
    navigate : callable, optional
        Navigation used after logout.
    login_route : str
        Route to navigate to after logout (default ``/login``).
    csrf_key, credential_key : str
        Storage keys of the CSRF token and the session credential.
    """

    def __init__(
        self,
        storage: FlowStorage,
        navigate: Navigate | None = None,
        login_route: str = "/login",
        csrf_key: str = DEFAULT_CSRF_KEY,
        credential_key: str = DEFAULT_CREDENTIAL_KEY,
    ) -> None:
        """Initialize the session manager."""
        self.storage = storage
        self.navigate = navigate
        self.login_route = login_route
        self.csrf_key = csrf_key
        self.credential_key = credential_key

    async def get_token(self) -> str | None:
        """Return the stored session credential, or None.

        The credential is opaque; it is never decoded here.
        """
        return await self.storage.get(StorageScope.PERSISTENT, self.credential_key)

    async def is_authenticated(self) -> bool:
        """Check whether a session credential is stored."""
        return await self.get_token() is not None

    async def logout(self) -> None:
        """Delete the session credential and any pending CSRF token.

        Navigates to the login route when a navigator was given.
        """
        await self.storage.delete(StorageScope.PERSISTENT, self.credential_key)
        await self.storage.delete(StorageScope.SESSION, self.csrf_key)
        logger.info("Session logged out")
        if self.navigate is not None:
            self.navigate(self.login_route)
