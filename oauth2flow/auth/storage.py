"""Pluggable key/value storage for the login flow.

Provides the KeyValueStore ABC with in-memory, OS keyring, and Redis
implementations, and FlowStorage which exposes the two logical scopes
(session and persistent) used by the Initiator and the Resolver.
"""

from __future__ import annotations

import asyncio
import logging

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..exceptions import ConfigurationError, StorageError
from ..types import StorageScope


if TYPE_CHECKING:
    from ..config import StorageSettings


logger = logging.getLogger("oauth2flow.auth")


class KeyValueStore(ABC):
    """Abstract base class for string key/value storage.

    All methods are async to support both local and network-backed stores.
    Implementations raise ``StorageError`` when the backend fails.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, overwriting any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``. Deleting an absent key is a no-op."""

    async def exists(self, key: str) -> bool:
        """Check if a value is stored under ``key``."""
        return await self.get(key) is not None


class MemoryStore(KeyValueStore):
    """In-memory store. Values live only as long as the process.

    Thread-safe via asyncio.Lock.
    """

    def __init__(self) -> None:
        """Initialize the memory store."""
        self._values: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        """Read a value from memory."""
        async with self._lock:
            return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        """Write a value to memory."""
        async with self._lock:
            self._values[key] = value

    async def delete(self, key: str) -> None:
        """Remove a value from memory."""
        async with self._lock:
            self._values.pop(key, None)

    async def exists(self, key: str) -> bool:
        """Check for a value in memory."""
        async with self._lock:
            return key in self._values


class KeyringStore(KeyValueStore):
    """OS keyring-backed store for credentials that survive restarts.

    This is the default persistent backend.

    Parameters
    ----------
    service_name : str
        Service name for keyring storage (default "oauth2flow").
    """

    def __init__(self, service_name: str = "oauth2flow") -> None:
        """Initialize the keyring store."""
        try:
            import keyring as _keyring
        except ImportError:
            msg = "Install keyring for persistent credential storage: pip install keyring"
            raise ImportError(msg) from None
        self._service_name = service_name
        self._keyring = _keyring

    async def get(self, key: str) -> str | None:
        """Read a value from the OS keyring."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, self._keyring.get_password, self._service_name, key
            )
        except Exception as exc:
            msg = f"Keyring read failed: {exc}"
            raise StorageError(msg, key=key) from exc

    async def set(self, key: str, value: str) -> None:
        """Write a value to the OS keyring."""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, self._keyring.set_password, self._service_name, key, value
            )
        except Exception as exc:
            msg = f"Keyring write failed: {exc}"
            raise StorageError(msg, key=key) from exc

    async def delete(self, key: str) -> None:
        """Delete a value from the OS keyring."""
        from keyring.errors import PasswordDeleteError

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, self._keyring.delete_password, self._service_name, key
            )
        except PasswordDeleteError:
            # Nothing stored under this key
            return
        except Exception as exc:
            msg = f"Keyring delete failed: {exc}"
            raise StorageError(msg, key=key) from exc


class RedisStore(KeyValueStore):
    """Redis-backed store for credentials shared across processes.

    Parameters
    ----------
    redis_url : str
        Redis connection URL.
    prefix : str
        Key prefix for namespacing (default "oauth2flow").
    pool_size : int
        Connection pool size (default 10).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "oauth2flow",
        pool_size: int = 10,
    ) -> None:
        """Initialize the Redis store."""
        try:
            from redis.asyncio import Redis as RedisClient
        except ImportError:
            msg = "Redis backend requires the 'redis' package. Install with: pip install oauth2flow[redis]"
            raise ImportError(msg) from None

        self._prefix = prefix
        self._redis: Any = RedisClient.from_url(
            redis_url,
            max_connections=pool_size,
            decode_responses=True,
        )

    def _key(self, key: str) -> str:
        """Build a Redis key with prefix."""
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> str | None:
        """Read a value from Redis."""
        from redis.exceptions import RedisError

        try:
            return await self._redis.get(self._key(key))
        except RedisError as exc:
            msg = f"Redis read failed: {exc}"
            raise StorageError(msg, key=key) from exc

    async def set(self, key: str, value: str) -> None:
        """Write a value to Redis."""
        from redis.exceptions import RedisError

        try:
            await self._redis.set(self._key(key), value)
        except RedisError as exc:
            msg = f"Redis write failed: {exc}"
            raise StorageError(msg, key=key) from exc

    async def delete(self, key: str) -> None:
        """Delete a value from Redis."""
        from redis.exceptions import RedisError

        try:
            await self._redis.delete(self._key(key))
        except RedisError as exc:
            msg = f"Redis delete failed: {exc}"
            raise StorageError(msg, key=key) from exc

    async def exists(self, key: str) -> bool:
        """Check for a value in Redis."""
        from redis.exceptions import RedisError

        try:
            return bool(await self._redis.exists(self._key(key)))
        except RedisError as exc:
            msg = f"Redis read failed: {exc}"
            raise StorageError(msg, key=key) from exc

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()


class FlowStorage:
    """Storage capability handed to the Initiator and the Resolver.

    Routes each operation to the store for the requested scope. The
    session store defaults to a fresh ``MemoryStore`` so session-scoped
    values never outlive the process.

    Parameters
    ----------
    persistent : KeyValueStore, optional
        Store for values that must survive restarts (default: memory).
    session : KeyValueStore, optional
        Store for per-attempt values (default: memory).
    """

    def __init__(
        self,
        persistent: KeyValueStore | None = None,
        session: KeyValueStore | None = None,
    ) -> None:
        """Initialize flow storage."""
        self.persistent = persistent if persistent is not None else MemoryStore()
        self.session = session if session is not None else MemoryStore()

    def store_for(self, scope: StorageScope) -> KeyValueStore:
        """Return the backing store for ``scope``."""
        if scope is StorageScope.SESSION:
            return self.session
        return self.persistent

    async def get(self, scope: StorageScope, key: str) -> str | None:
        """Read ``key`` from ``scope``."""
        return await self._call(scope, key, "get")

    async def set(self, scope: StorageScope, key: str, value: str) -> None:
        """Write ``value`` to ``key`` in ``scope``."""
        await self._call(scope, key, "set", value)
        logger.debug("Stored %s value under %r", scope.value, key)

    async def delete(self, scope: StorageScope, key: str) -> None:
        """Delete ``key`` from ``scope``. Absent keys are ignored."""
        await self._call(scope, key, "delete")

    async def exists(self, scope: StorageScope, key: str) -> bool:
        """Check whether ``key`` is present in ``scope``."""
        return bool(await self._call(scope, key, "exists"))

    async def close(self) -> None:
        """Close stores that hold connections (e.g. RedisStore)."""
        for store in {id(s): s for s in (self.session, self.persistent)}.values():
            close = getattr(store, "close", None)
            if close is not None:
                await close()

    async def _call(self, scope: StorageScope, key: str, method: str, *args: Any) -> Any:
        store = self.store_for(scope)
        try:
            return await getattr(store, method)(key, *args)
        except StorageError as exc:
            # Stores don't know which scope they serve
            if exc.scope is None:
                exc.scope = scope.value
                exc.context["scope"] = scope.value
            raise


def create_persistent_store(settings: StorageSettings) -> KeyValueStore:
    """Factory for the persistent-scope store.

    Parameters
    ----------
    settings : StorageSettings
        Storage configuration section.

    Returns
    -------
    KeyValueStore
        A configured store instance.

    Raises
    ------
    ConfigurationError
        If the backend name is unknown.
    """
    backend = settings.backend
    if backend == "memory":
        return MemoryStore()
    if backend == "keyring":
        return KeyringStore(service_name=settings.keyring_service)
    if backend == "redis":
        return RedisStore(
            redis_url=settings.redis_url,
            prefix=settings.redis_prefix,
            pool_size=settings.redis_pool_size,
        )
    msg = f"Unknown storage backend: {backend}"
    raise ConfigurationError(msg, backend=backend)


def create_storage(settings: StorageSettings) -> FlowStorage:
    """Build FlowStorage with an in-memory session scope and the
    configured persistent backend."""
    return FlowStorage(persistent=create_persistent_store(settings), session=MemoryStore())
