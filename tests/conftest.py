"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import os
import sys
import types

from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from oauth2flow.auth.storage import FlowStorage
from oauth2flow.config import clear_settings
from tests.helpers import NoSleep, RecordingNavigator, RecordingStore


if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Keep every test away from real config files and OAUTH2FLOW_ variables."""
    for name in list(os.environ):
        if name.startswith("OAUTH2FLOW_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("APPDATA", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    clear_settings()
    yield
    clear_settings()


class _PasswordDeleteError(Exception):
    """Stand-in for keyring.errors.PasswordDeleteError."""


@pytest.fixture(autouse=True)
def fake_keyring() -> Generator[tuple[MagicMock, dict[tuple[str, str], str]], None, None]:
    """Replace the OS keyring with a dict-backed vault for every test.

    The vault outlives individual stores, so it stands in for credentials
    kept between separate runs.
    """
    vault: dict[tuple[str, str], str] = {}
    module = MagicMock()
    module.get_password.side_effect = lambda service, key: vault.get((service, key))
    module.set_password.side_effect = lambda service, key, value: vault.__setitem__(
        (service, key), value
    )

    def _delete(service: str, key: str) -> None:
        if (service, key) not in vault:
            raise _PasswordDeleteError(key)
        del vault[(service, key)]

    module.delete_password.side_effect = _delete
    errors = types.ModuleType("keyring.errors")
    errors.PasswordDeleteError = _PasswordDeleteError  # type: ignore[attr-defined]
    module.errors = errors

    with patch.dict(sys.modules, {"keyring": module, "keyring.errors": errors}):
        yield module, vault


@pytest.fixture()
def session_store() -> RecordingStore:
    """Recording store backing the session scope."""
    return RecordingStore()


@pytest.fixture()
def persistent_store() -> RecordingStore:
    """Recording store backing the persistent scope."""
    return RecordingStore()


@pytest.fixture()
def storage(session_store: RecordingStore, persistent_store: RecordingStore) -> FlowStorage:
    """FlowStorage over the two recording stores."""
    return FlowStorage(persistent=persistent_store, session=session_store)


@pytest.fixture()
def navigator() -> RecordingNavigator:
    """Recording navigation capability."""
    return RecordingNavigator()


@pytest.fixture()
def no_sleep() -> NoSleep:
    """Sleep replacement for the resolver's display delays."""
    return NoSleep()
