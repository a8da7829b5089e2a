"""Localhost HTTP listener for the backend's post-login redirect.

The backend redirects the browser to one of the application's callback
routes with ``token=...`` or ``error=...``. Outside a browser app this
server stands in for those routes: it answers the browser with a small
status page and hands the query parameters to the CallbackResolver.

Uses only stdlib (http.server, threading, urllib.parse).
"""

# pylint: disable=logging-too-many-args

# pylint: disable=C0103,W0212

from __future__ import annotations

import html
import logging
import threading

from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse


if TYPE_CHECKING:
    from collections.abc import Iterable


logger = logging.getLogger("oauth2flow.auth")

DEFAULT_CALLBACK_PATHS = ("/oauth2/redirect", "/oauth2/success", "/login")

_PAGE_STYLE = """
  body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f0f2f5; color: #1a1a2e; }}
  .card {{ text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }}
  h1 {{ font-size: 1.5rem; margin-bottom: 0.5rem; }}
  h1.error {{ color: #cc0000; }}
  p {{ color: #666; }}
"""

_PAGE_TEMPLATE = (
    "<!DOCTYPE html>\n<html>\n<head><title>{title}</title>\n<style>"
    + _PAGE_STYLE
    + "</style></head>\n<body><div class=\"card\">\n"
    "  <h1 class=\"{css_class}\">{heading}</h1>\n"
    "  <p>{detail}</p>\n</div></body></html>"
)


def _render(title: str, heading: str, detail: str, *, error: bool = False) -> str:
    return _PAGE_TEMPLATE.format(
        title=html.escape(title),
        heading=heading,
        detail=html.escape(detail, quote=True),
        css_class="error" if error else "",
    )


_SUCCESS_HTML = _render(
    "Signed In", "&#x2705; Signed in", "You can close this window and return to the application."
)
_MALFORMED_HTML = _render(
    "Sign-In Incomplete",
    "&#x26A0; Nothing to process",
    "This page was opened without a login result.",
    error=True,
)
_WAITING_HTML = _render(
    "Waiting for Sign-In",
    "Waiting for sign-in&hellip;",
    "Please complete the login in the browser window.",
)


def _error_html(reason: str) -> str:
    return _render("Sign-In Failed", "&#x274C; Sign-in failed", reason, error=True)


class OAuthCallbackServer:
    """Localhost HTTP server capturing the first login callback.

    Parameters
    ----------
    host : str
        Bind address (default ``"127.0.0.1"``).
    port : int
        Port number; must match the redirect URI the backend uses
        (``0`` auto-assigns, for tests).
    paths : iterable of str
        Request paths treated as callbacks.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3000,
        paths: Iterable[str] = DEFAULT_CALLBACK_PATHS,
    ) -> None:
        """Initialize the callback server."""
        self._host = host
        self._port = port
        self._paths = frozenset(paths)
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._result: dict[str, Any] | None = None
        self._result_event = threading.Event()
        self._actual_port: int = 0

    @property
    def base_url(self) -> str:
        """Origin the server listens on (e.g. ``http://127.0.0.1:3000``)."""
        return f"http://{self._host}:{self._actual_port}"

    @property
    def received(self) -> bool:
        """Whether a callback has been captured."""
        return self._result_event.is_set()

    @property
    def result(self) -> dict[str, Any] | None:
        """Captured query parameters, or None before the callback."""
        return self._result

    def start(self) -> str:
        """Start the callback server on a daemon thread.

        Returns
        -------
        str
            The server's base URL.
        """
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler for login callbacks."""

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)

                if parsed.path in server_ref._paths:
                    params = parse_qs(parsed.query)
                    result: dict[str, Any] = {
                        name: params.get(name, [None])[0]
                        for name in ("token", "error", "error_description", "state")
                    }
                    result["path"] = parsed.path

                    # Only capture the first callback
                    if not server_ref._result_event.is_set():
                        server_ref._result = result
                        server_ref._result_event.set()
                        threading.Thread(target=self._shutdown_server, daemon=True).start()

                    if result.get("token"):
                        self._send_html(_SUCCESS_HTML)
                    elif result.get("error"):
                        reason = result.get("error_description") or result["error"]
                        self._send_html(_error_html(str(reason)))
                    else:
                        self._send_html(_MALFORMED_HTML)

                elif parsed.path == "/":
                    self._send_html(_WAITING_HTML)
                else:
                    self.send_error(404)

            def _send_html(self, html_content: str) -> None:
                """Send an HTML response with security headers."""
                encoded = html_content.encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header("Referrer-Policy", "no-referrer")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                self.wfile.write(encoded)

            def _shutdown_server(self) -> None:
                """Shut down the HTTP server."""
                if server_ref._server:
                    server_ref._server.shutdown()

            def log_message(self, *args: Any) -> None:
                """Route request logging to the oauth2flow logger without the query."""
                if args:
                    logger.debug("OAuth callback server: %s", str(args[0] % args[1:]).split("?")[0])

        self._server = HTTPServer((self._host, self._port), _CallbackHandler)
        self._actual_port = self._server.server_address[1]

        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

        logger.debug("OAuth callback server started on %s", self.base_url)
        return self.base_url

    def stop(self) -> None:
        """Force-shutdown the callback server."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
