"""
Mint precision lookup with a process-lifetime cache.

Decimals of a mint never change on-chain, so entries never expire. A failed
lookup degrades to native SOL's precision instead of raising; the fallback is
not cached so the next call retries.
"""

from typing import Dict, Optional

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from .exceptions import DecimalsFetchError
from .utils import get_logger

logger = get_logger(__name__)

FALLBACK_DECIMALS = 9


class DecimalsResolver:
    """Resolves and caches the decimal precision of token mints."""

    def __init__(self, fallback: int = FALLBACK_DECIMALS):
        self.fallback = fallback
        self._cache: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def cached(self, mint: Pubkey) -> Optional[int]:
        """Cached precision for a mint, without I/O."""
        return self._cache.get(str(mint))

    async def get_decimals(self, client: AsyncClient, mint: Pubkey) -> int:
        """
        Precision of a mint.

        Args:
            client: Ledger RPC client
            mint: Token mint address

        Returns:
            The mint's decimals, or the fallback (9) if the lookup failed
        """
        key = str(mint)
        if key in self._cache:
            return self._cache[key]

        try:
            decimals = await self._fetch(client, mint)
        except DecimalsFetchError as e:
            logger.error(f"Failed to fetch decimals for mint {key}: {e}")
            return self.fallback

        # concurrent misses for one mint may both land here; the value is the same
        self._cache[key] = decimals
        return decimals

    @staticmethod
    async def _fetch(client: AsyncClient, mint: Pubkey) -> int:
        try:
            resp = await client.get_token_supply(mint)
            return int(resp.value.decimals)
        except Exception as e:
            raise DecimalsFetchError(str(e), mint=str(mint)) from e
