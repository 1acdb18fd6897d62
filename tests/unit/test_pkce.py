"""Unit tests for PKCE verifier/challenge generation."""

import re

import pytest

from voicemail_sync.auth.pkce import derive_challenge, generate_verifier

_URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


def test_verifier_is_url_safe_and_long_enough() -> None:
    verifier = generate_verifier()

    # 32 random bytes -> 43 base64url characters without padding
    assert len(verifier) == 43
    assert _URL_SAFE.match(verifier)


def test_verifiers_are_unique() -> None:
    assert len({generate_verifier() for _ in range(50)}) == 50


@pytest.mark.asyncio
async def test_challenge_matches_rfc7636_example() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

    assert await derive_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


@pytest.mark.asyncio
async def test_challenge_is_deterministic() -> None:
    verifier = generate_verifier()

    assert await derive_challenge(verifier) == await derive_challenge(verifier)


@pytest.mark.asyncio
async def test_different_verifiers_give_different_challenges() -> None:
    first = await derive_challenge(generate_verifier())
    second = await derive_challenge(generate_verifier())

    assert first != second
    assert _URL_SAFE.match(first)
    assert "=" not in first
