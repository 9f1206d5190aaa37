"""
Unit tests for sol_arb/decimals.py
"""

import pytest

from fakes import WSOL, FakeClient, new_key

from sol_arb.decimals import FALLBACK_DECIMALS, DecimalsResolver


@pytest.mark.asyncio
async def test_lookup_is_cached():
    client = FakeClient()
    mint = new_key()
    client.mint_decimals[mint] = 6
    resolver = DecimalsResolver()

    assert await resolver.get_decimals(client, mint) == 6
    assert await resolver.get_decimals(client, mint) == 6

    assert client.calls["get_token_supply"] == 1
    assert resolver.cached(mint) == 6
    assert len(resolver) == 1


@pytest.mark.asyncio
async def test_mints_cached_separately():
    client = FakeClient()
    token = new_key()
    client.mint_decimals[token] = 6
    client.mint_decimals[WSOL] = 9
    resolver = DecimalsResolver()

    assert await resolver.get_decimals(client, token) == 6
    assert await resolver.get_decimals(client, WSOL) == 9
    assert len(resolver) == 2


@pytest.mark.asyncio
async def test_failed_lookup_returns_fallback(caplog):
    client = FakeClient()
    mint = new_key()
    resolver = DecimalsResolver()

    decimals = await resolver.get_decimals(client, mint)

    assert decimals == 9
    assert decimals == FALLBACK_DECIMALS
    assert "Failed to fetch decimals" in caplog.text


@pytest.mark.asyncio
async def test_fallback_is_not_cached():
    client = FakeClient()
    mint = new_key()
    resolver = DecimalsResolver()

    assert await resolver.get_decimals(client, mint) == 9
    assert resolver.cached(mint) is None

    client.mint_decimals[mint] = 6
    assert await resolver.get_decimals(client, mint) == 6
    assert client.calls["get_token_supply"] == 2
