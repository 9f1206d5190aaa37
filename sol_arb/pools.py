"""
Pool state fetching with a single cached slot per venue.

Each fetcher keeps exactly one decoded descriptor. A fetch inside the cache
window returns that descriptor without I/O; outside it the account is read,
decoded and the slot replaced wholesale.
"""

import asyncio
from typing import Callable, Generic, Optional, TypeVar

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from .exceptions import PoolNotFoundError
from .layouts import (
    Record,
    decode_lb_pair_manual,
    decode_lb_pair_schema,
    decode_pumpswap_pool_manual,
    decode_pumpswap_pool_schema,
    decode_with_fallback,
)
from .types import DlmmPool, PumpSwapPool, Venue
from .utils import get_logger, monotonic_ms

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CACHE_DURATION_MS = 60000


class SingleSlotCache(Generic[T]):
    """
    One value and the time it was stored.

    The value is fresh while ``clock() - stored_at < ttl_ms``. The clock
    returns milliseconds and is injectable for tests.
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_CACHE_DURATION_MS,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._value: Optional[T] = None
        self._stored_at: Optional[float] = None

    def get(self) -> Optional[T]:
        """The stored value if still fresh, else None."""
        if self._value is None or self._stored_at is None:
            return None
        if self._clock() - self._stored_at < self.ttl_ms:
            return self._value
        return None

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self._clock()

    def peek(self) -> Optional[T]:
        """The stored value regardless of age."""
        return self._value

    def clear(self) -> None:
        self._value = None
        self._stored_at = None


async def fetch_account_data(
    client: AsyncClient, address: Pubkey, venue: Venue
) -> bytes:
    """
    Raw data of an account.

    Raises:
        PoolNotFoundError: If the address holds no account data
    """
    resp = await client.get_account_info(address)
    account = resp.value
    if account is None or not account.data:
        raise PoolNotFoundError(
            f"{venue.value} pool account not found: {address}",
            venue=venue.value,
            address=str(address),
        )
    return bytes(account.data)


class _PoolFetcher(Generic[T]):
    """Shared fetch-through-cache logic; subclasses decode."""

    venue: Venue

    def __init__(
        self,
        cache_duration_ms: int = DEFAULT_CACHE_DURATION_MS,
        clock: Callable[[], float] = monotonic_ms,
    ):
        self.cache: SingleSlotCache[T] = SingleSlotCache(cache_duration_ms, clock)
        self.fetch_count = 0

    async def fetch(self, client: AsyncClient, address: Pubkey) -> T:
        """
        Pool descriptor for ``address``, from the cache when fresh.

        Raises:
            PoolNotFoundError: If the address holds no account data
            PoolDecodeError: If neither decoder can read the account
        """
        cached = self.cache.get()
        if cached is not None:
            if cached.address != address:
                # single pool per venue; a different address still gets the cached pool
                logger.warning(
                    f"{self.venue.value} cache holds pool {cached.address}, "
                    f"requested {address}; returning cached pool"
                )
            return cached

        data = await fetch_account_data(client, address, self.venue)
        pool = await self._build(client, address, data)
        self.fetch_count += 1
        self.cache.set(pool)
        logger.debug(f"Fetched {self.venue.value} pool {address}")
        return pool

    def clear(self) -> None:
        """Drop the cached descriptor."""
        self.cache.clear()

    async def _build(self, client: AsyncClient, address: Pubkey, data: bytes) -> T:
        raise NotImplementedError


class PumpSwapPoolFetcher(_PoolFetcher[PumpSwapPool]):
    venue = Venue.PUMPSWAP

    @staticmethod
    def decode(address: Pubkey, data: bytes) -> PumpSwapPool:
        record = decode_with_fallback(
            data,
            decode_pumpswap_pool_schema,
            decode_pumpswap_pool_manual,
            Venue.PUMPSWAP.value,
            str(address),
        )
        return pumpswap_pool_from_record(address, record)

    async def _build(
        self, client: AsyncClient, address: Pubkey, data: bytes
    ) -> PumpSwapPool:
        return self.decode(address, data)


class DlmmPoolFetcher(_PoolFetcher[DlmmPool]):
    """Fetches the LbPair account and the balances of its two reserves."""

    venue = Venue.DLMM

    @staticmethod
    def decode(address: Pubkey, data: bytes) -> Record:
        return decode_with_fallback(
            data,
            decode_lb_pair_schema,
            decode_lb_pair_manual,
            Venue.DLMM.value,
            str(address),
        )

    async def _build(
        self, client: AsyncClient, address: Pubkey, data: bytes
    ) -> DlmmPool:
        record = self.decode(address, data)
        reserve_x = Pubkey.from_bytes(record["reserve_x"])
        reserve_y = Pubkey.from_bytes(record["reserve_y"])
        amount_x, amount_y = await asyncio.gather(
            token_account_amount(client, reserve_x),
            token_account_amount(client, reserve_y),
        )
        return dlmm_pool_from_record(address, record, amount_x, amount_y)


async def token_account_amount(client: AsyncClient, account: Pubkey) -> int:
    """Raw token balance of an SPL token account."""
    resp = await client.get_token_account_balance(account)
    return int(resp.value.amount)


def pumpswap_pool_from_record(address: Pubkey, record: Record) -> PumpSwapPool:
    return PumpSwapPool(
        address=address,
        pool_bump=record["pool_bump"],
        index=record["index"],
        creator=Pubkey.from_bytes(record["creator"]),
        base_mint=Pubkey.from_bytes(record["base_mint"]),
        quote_mint=Pubkey.from_bytes(record["quote_mint"]),
        lp_mint=Pubkey.from_bytes(record["lp_mint"]),
        pool_base_token_account=Pubkey.from_bytes(record["pool_base_token_account"]),
        pool_quote_token_account=Pubkey.from_bytes(
            record["pool_quote_token_account"]
        ),
        lp_supply=record["lp_supply"],
        coin_creator=Pubkey.from_bytes(record["coin_creator"]),
    )


def dlmm_pool_from_record(
    address: Pubkey, record: Record, reserve_x_amount: int, reserve_y_amount: int
) -> DlmmPool:
    return DlmmPool(
        address=address,
        token_x_mint=Pubkey.from_bytes(record["token_x_mint"]),
        token_y_mint=Pubkey.from_bytes(record["token_y_mint"]),
        reserve_x=Pubkey.from_bytes(record["reserve_x"]),
        reserve_y=Pubkey.from_bytes(record["reserve_y"]),
        reserve_x_amount=reserve_x_amount,
        reserve_y_amount=reserve_y_amount,
        active_id=record["active_id"],
        bin_step=record["bin_step"],
        base_factor=record["base_factor"],
        base_fee_power_factor=record["base_fee_power_factor"],
        variable_fee_control=record["variable_fee_control"],
        volatility_accumulator=record["volatility_accumulator"],
        protocol_share=record["protocol_share"],
        min_bin_id=record["min_bin_id"],
        max_bin_id=record["max_bin_id"],
        status=record["status"],
        pair_type=record["pair_type"],
    )
