"""Shared test doubles and backend helpers."""

from __future__ import annotations

import json

from typing import TYPE_CHECKING, Any

import httpx

from oauth2flow.auth.backend import BackendClient
from oauth2flow.auth.storage import MemoryStore
from oauth2flow.exceptions import StorageError


if TYPE_CHECKING:
    from collections.abc import Callable


BACKEND_URL = "https://api.example.test"
AUTHORIZE_URL = f"{BACKEND_URL}/api/sys/user/oauth2/authorize"
PROVIDERS_URL = f"{BACKEND_URL}/api/sys/user/oauth2/providers"
PROVIDER_AUTH_URL = "https://github.com/login/oauth/authorize?client_id=abc"


# ── Test doubles ────────────────────────────────────────────────────


class RecordingNavigator:
    """Navigation capability that records every target."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, target: str) -> None:
        self.calls.append(target)

    @property
    def last(self) -> str | None:
        return self.calls[-1] if self.calls else None


class RecordingStore(MemoryStore):
    """MemoryStore that records operations and can be told to fail."""

    def __init__(self, fail_on: tuple[str, ...] = ()) -> None:
        super().__init__()
        self.operations: list[tuple[str, str]] = []
        self.fail_on = set(fail_on)

    def _record(self, op: str, key: str) -> None:
        self.operations.append((op, key))
        if op in self.fail_on:
            msg = f"simulated {op} failure"
            raise StorageError(msg, key=key)

    async def get(self, key: str) -> str | None:
        self._record("get", key)
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        self._record("set", key)
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        self._record("delete", key)
        await super().delete(key)

    @property
    def mutations(self) -> list[tuple[str, str]]:
        """Only the set/delete operations."""
        return [op for op in self.operations if op[0] in ("set", "delete")]


class NoSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    """Build a JSON response for a MockTransport handler."""
    return httpx.Response(status_code, json=payload)


def make_backend(handler: Callable[[httpx.Request], httpx.Response]) -> BackendClient:
    """BackendClient talking to ``handler`` through httpx.MockTransport."""
    return BackendClient(BACKEND_URL, transport=httpx.MockTransport(handler))


def request_json(request: httpx.Request) -> dict[str, Any]:
    """Decode the JSON body of a captured request."""
    return json.loads(request.content.decode("utf-8"))
