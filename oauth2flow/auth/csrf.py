"""Anti-CSRF token generation.

Tokens are 32 bytes from the operating system's CSPRNG, hex encoded.
When no strong source exists the weaker ``random`` module is used and
the token is marked as degraded.
"""

from __future__ import annotations

import logging
import random
import secrets
import string

from ..types import CsrfToken


logger = logging.getLogger("oauth2flow.auth")

_BASE36 = string.digits + string.ascii_lowercase


def _strong_value(nbytes: int) -> str:
    return secrets.token_hex(nbytes)


def _fallback_value(chunks: int = 4, chunk_length: int = 13) -> str:
    """Concatenate base-36 chunks from a non-cryptographic generator."""
    rng = random.Random()  # noqa: S311
    return "".join(rng.choice(_BASE36) for _ in range(chunks * chunk_length))


def generate_csrf_token(nbytes: int = 32) -> CsrfToken:
    """Generate a new CSRF token.

    Parameters
    ----------
    nbytes : int
        Number of random bytes (default 32, i.e. 64 hex characters).

    Returns
    -------
    CsrfToken
        The token. ``degraded`` is True if the fallback generator was used.
    """
    try:
        return CsrfToken(value=_strong_value(nbytes))
    except NotImplementedError:
        logger.warning(
            "No cryptographically strong random source available; "
            "CSRF token generated with a weak pseudo-random fallback"
        )
        return CsrfToken(value=_fallback_value(), degraded=True)
