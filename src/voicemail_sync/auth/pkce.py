"""PKCE (RFC 7636) verifier/challenge generation."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import secrets

_VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_verifier() -> str:
    """Return a fresh URL-safe code verifier built from 32 random bytes."""
    return _b64url(secrets.token_bytes(_VERIFIER_BYTES))


def _challenge(verifier: str) -> str:
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


async def derive_challenge(verifier: str) -> str:
    """Return the S256 code challenge for ``verifier``.

    The digest runs in a worker thread so the event loop is never held up.
    """
    return await asyncio.to_thread(_challenge, verifier)
