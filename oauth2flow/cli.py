"""Command-line interface for running and inspecting oauth2flow logins."""

from __future__ import annotations

import argparse
import asyncio
import sys

from pathlib import Path
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .auth.session import SessionManager
    from .auth.storage import FlowStorage
    from .config import OAuth2FlowSettings
    from .types import CallbackResolution


def main() -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="oauth2flow",
        description="OAuth2 login through a backend-brokered provider",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (overrides [log] level)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # providers command
    subparsers.add_parser(
        "providers",
        help="List the identity providers the backend advertises",
    )

    # login command
    login_parser = subparsers.add_parser(
        "login",
        help="Log in through an identity provider",
    )
    login_parser.add_argument("provider", type=str, help="Provider name (e.g. github)")
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the authorization URL instead of opening a browser",
    )

    # logout command
    subparsers.add_parser(
        "logout",
        help="Remove the stored session credential",
    )

    # status command
    subparsers.add_parser(
        "status",
        help="Report whether a session credential is stored (exit 1 if not)",
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    settings = _load_settings(args)

    if args.command == "config":
        return handle_config(args, settings)
    if args.command == "providers":
        return handle_providers(args, settings)
    if args.command == "login":
        return handle_login(args, settings)
    if args.command == "logout":
        return handle_logout(args, settings)
    if args.command == "status":
        return handle_status(args, settings)
    parser.print_help()
    return 0


def _load_settings(args: argparse.Namespace) -> OAuth2FlowSettings:
    """Load settings and apply the log section to the package logger."""
    from . import log
    from .config import get_settings

    settings = get_settings()
    log.set_format(settings.log.format)
    if getattr(args, "debug", False):
        log.enable_debug()
    else:
        log.set_level(settings.log.level)
    return settings


def handle_config(args: argparse.Namespace, settings: OAuth2FlowSettings) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.
    settings : OAuth2FlowSettings
        Loaded settings.

    Returns
    -------
    int
        Exit code.
    """
    output = settings.to_env() if args.env else settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def handle_providers(args: argparse.Namespace, settings: OAuth2FlowSettings) -> int:  # noqa: ARG001
    """Handle the providers command.

    Returns
    -------
    int
        Exit code; 1 when the backend advertises nothing.
    """
    from .auth.backend import BackendClient

    async def _fetch() -> tuple[list[str], list[str]]:
        backend = BackendClient.from_settings(settings.backend)
        try:
            providers = await backend.get_providers()
        finally:
            await backend.close()
        return providers.all_providers, providers.whitelist_providers

    all_providers, whitelist = asyncio.run(_fetch())
    if not all_providers and not whitelist:
        print("No providers available (is the backend configured?)", file=sys.stderr)
        return 1

    print(f"{'Provider':<20} {'Enabled'}")
    print("-" * 30)
    for name in sorted(set(all_providers) | set(whitelist)):
        enabled = "yes" if name in whitelist else "no"
        print(f"{name:<20} {enabled}")
    return 0


def handle_login(args: argparse.Namespace, settings: OAuth2FlowSettings) -> int:
    """Handle the login command.

    Runs the whole flow: the authorization URL opens in the browser (or
    is printed), and the backend's redirect is captured on the loopback
    callback server.

    Returns
    -------
    int
        Exit code; 0 only when a session credential was stored.
    """
    from .auth.flow import AuthFlowManager
    from .auth.storage import create_storage
    from .exceptions import OAuth2FlowError

    def _print_url(url: str) -> None:
        print(f"Open this URL to sign in:\n  {url}")

    def _print_error(message: str) -> None:
        print(message, file=sys.stderr)

    async def _login() -> CallbackResolution:
        storage = create_storage(settings.storage)
        manager = AuthFlowManager.from_settings(
            settings,
            storage,
            navigate_route=lambda route: None,
            open_url=_print_url if args.no_browser else None,
            notify=_print_error,
        )
        try:
            return await manager.login(args.provider)
        finally:
            await manager.initiator.backend.close()
            await storage.close()

    try:
        resolution = asyncio.run(_login())
    except KeyboardInterrupt:
        print("\nLogin cancelled.", file=sys.stderr)
        return 1
    except OAuth2FlowError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except ImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if resolution.success:
        print("Logged in.")
        return 0
    print(f"Login failed: {resolution.error or 'no result received'}", file=sys.stderr)
    return 1


def handle_logout(args: argparse.Namespace, settings: OAuth2FlowSettings) -> int:  # noqa: ARG001
    """Handle the logout command."""
    from .auth.storage import create_storage
    from .exceptions import OAuth2FlowError

    async def _logout() -> None:
        storage = create_storage(settings.storage)
        try:
            await _session_manager(settings, storage).logout()
        finally:
            await storage.close()

    try:
        asyncio.run(_logout())
    except (OAuth2FlowError, ImportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Logged out.")
    return 0


def handle_status(args: argparse.Namespace, settings: OAuth2FlowSettings) -> int:  # noqa: ARG001
    """Handle the status command.

    Returns
    -------
    int
        0 when a session credential is stored, 1 otherwise.
    """
    from .auth.storage import create_storage
    from .exceptions import OAuth2FlowError

    async def _status() -> bool:
        storage = create_storage(settings.storage)
        try:
            return await _session_manager(settings, storage).is_authenticated()
        finally:
            await storage.close()

    try:
        authenticated = asyncio.run(_status())
    except (OAuth2FlowError, ImportError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if authenticated:
        print(f"Authenticated (storage: {settings.storage.backend})")
        return 0
    print(f"Not authenticated (storage: {settings.storage.backend})")
    return 1


def _session_manager(settings: OAuth2FlowSettings, storage: FlowStorage) -> SessionManager:
    from .auth.session import SessionManager

    return SessionManager(
        storage,
        login_route=settings.flow.login_route,
        csrf_key=settings.storage.csrf_key,
        credential_key=settings.storage.credential_key,
    )


if __name__ == "__main__":
    sys.exit(main())
