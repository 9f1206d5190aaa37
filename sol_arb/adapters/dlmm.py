"""
Meteora DLMM adapter for the bin-liquidity venue.

Liquidity sits in discrete bins; bin ``i`` trades at
``(1 + bin_step / 10000) ** i`` (token Y per token X, raw units). A swap
consumes bins outward from the active bin, paying the pair's fee rate in
each one, until the input is used up.
"""

import asyncio
import struct
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from ..decimals import DecimalsResolver
from ..exceptions import QuoteError
from ..layouts import MAX_BIN_PER_ARRAY, BinArrayRecord, BinRecord, decode_bin_array
from ..pools import DlmmPoolFetcher
from ..types import (
    BinDirection,
    BinInfo,
    BinSnapshot,
    DlmmPool,
    DlmmPoolStats,
    Quote,
    RawQuote,
    Venue,
)
from ..utils import (
    Number,
    d,
    from_raw_amount,
    get_logger,
    slippage_to_bps,
    to_raw_amount,
)

logger = get_logger(__name__)

DLMM_PROGRAM_ID = Pubkey.from_string("LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo")

BASIS_POINT_MAX = 10000
FEE_PRECISION = 1_000_000_000
MAX_FEE_RATE = 100_000_000  # 10%
DEFAULT_BIN_ARRAY_COUNT = 4

Q64 = Decimal(2) ** 64
REFERENCE_AMOUNT = Decimal(1)


def bin_price(bin_id: int, active_id: int, bin_step: int) -> Decimal:
    """
    Price of ``bin_id`` relative to the active bin.

    Examples:
        >>> bin_price(101, 100, 10)
        Decimal('1.001')
    """
    return (1 + Decimal(bin_step) / BASIS_POINT_MAX) ** (bin_id - active_id)


def bin_id_to_bin_array_index(bin_id: int) -> int:
    """Index of the bin array holding ``bin_id`` (floor division)."""
    return bin_id // MAX_BIN_PER_ARRAY


def derive_bin_array_address(lb_pair: Pubkey, index: int) -> Pubkey:
    address, _ = Pubkey.find_program_address(
        [b"bin_array", bytes(lb_pair), struct.pack("<q", index)], DLMM_PROGRAM_ID
    )
    return address


def base_fee_rate(pool: DlmmPool) -> int:
    """Base fee rate in 1e9 precision."""
    return pool.base_factor * pool.bin_step * 10 * 10**pool.base_fee_power_factor


def variable_fee_rate(pool: DlmmPool) -> int:
    """Volatility fee rate in 1e9 precision, rounded up."""
    if pool.variable_fee_control <= 0:
        return 0
    square_vfa_bin = (pool.volatility_accumulator * pool.bin_step) ** 2
    v_fee = square_vfa_bin * pool.variable_fee_control
    return (v_fee + 99_999_999_999) // 100_000_000_000


def fee_rate(pool: DlmmPool) -> int:
    """Total swap fee rate in 1e9 precision, capped at 10%."""
    return min(base_fee_rate(pool) + variable_fee_rate(pool), MAX_FEE_RATE)


def bin_direction_for(pool: DlmmPool, input_mint: Pubkey) -> BinDirection:
    """
    X/Y direction for spending ``input_mint``.

    Raises:
        QuoteError: If the mint is neither token of the pair
    """
    if input_mint == pool.token_x_mint:
        return BinDirection.X_TO_Y
    if input_mint == pool.token_y_mint:
        return BinDirection.Y_TO_X
    raise QuoteError(
        f"Mint {input_mint} is not traded by {Venue.DLMM.value} pair {pool.address}",
        venue=Venue.DLMM.value,
        details={
            "token_x_mint": str(pool.token_x_mint),
            "token_y_mint": str(pool.token_y_mint),
        },
    )


def _ceil(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class DlmmQuoter:
    """Swap quotes computed from the pair's bin arrays."""

    async def get_bin_arrays_for_swap(
        self,
        client: AsyncClient,
        pool: DlmmPool,
        swap_for_y: bool,
        count: int = DEFAULT_BIN_ARRAY_COUNT,
    ) -> List[BinArrayRecord]:
        """
        Bin arrays a swap would walk through, starting at the active bin.

        Selling X moves the price down (lower bin ids); selling Y moves it up.
        Uninitialized arrays are skipped.
        """
        start = bin_id_to_bin_array_index(pool.active_id)
        step = -1 if swap_for_y else 1
        indexes = [start + step * i for i in range(count)]
        return await fetch_bin_arrays(client, pool.address, indexes)

    def swap_quote(
        self,
        amount_in: int,
        swap_for_y: bool,
        slippage_bps: int,
        bin_arrays: Sequence[BinArrayRecord],
        pool: DlmmPool,
    ) -> RawQuote:
        """
        Walk bins from the active one until ``amount_in`` is consumed.

        Args:
            amount_in: Raw input amount (fee included)
            swap_for_y: True to sell X for Y
            slippage_bps: Tolerance applied to the minimum output
            bin_arrays: Arrays from get_bin_arrays_for_swap
            pool: Pair descriptor

        Returns:
            RawQuote with the total fee in input units

        Raises:
            QuoteError: If the loaded bins cannot absorb the input
        """
        direction = BinDirection.X_TO_Y if swap_for_y else BinDirection.Y_TO_X
        if amount_in <= 0:
            raise QuoteError(
                f"amount_in must be positive: {amount_in}",
                venue=Venue.DLMM.value,
                direction=direction.value,
            )

        bins: Dict[int, BinRecord] = {
            b.bin_id: b for array in bin_arrays for b in array.bins
        }
        rate = Decimal(fee_rate(pool)) / FEE_PRECISION
        step = -1 if swap_for_y else 1

        amount_left = amount_in
        total_out = 0
        total_fee = 0
        bin_id = pool.active_id

        while amount_left > 0:
            current = bins.get(bin_id)
            if current is None or not pool.min_bin_id <= bin_id <= pool.max_bin_id:
                raise QuoteError(
                    f"Insufficient liquidity: {amount_left} of {amount_in} "
                    f"unfilled at bin {bin_id}",
                    venue=Venue.DLMM.value,
                    direction=direction.value,
                    details={"active_id": pool.active_id, "last_bin": bin_id},
                )

            max_out = current.amount_y if swap_for_y else current.amount_x
            if max_out > 0:
                price = self._price_of(current, pool)
                if swap_for_y:
                    max_in = _ceil(Decimal(max_out) / price)
                else:
                    max_in = _ceil(Decimal(max_out) * price)
                max_fee = _ceil(Decimal(max_in) * rate / (1 - rate))

                if amount_left >= max_in + max_fee:
                    total_out += max_out
                    total_fee += max_fee
                    amount_left -= max_in + max_fee
                else:
                    fee = _ceil(Decimal(amount_left) * rate)
                    net_in = Decimal(amount_left - fee)
                    if swap_for_y:
                        out = _floor(net_in * price)
                    else:
                        out = _floor(net_in / price)
                    total_out += min(out, max_out)
                    total_fee += fee
                    amount_left = 0

            bin_id += step

        min_out = total_out * (BASIS_POINT_MAX - slippage_bps) // BASIS_POINT_MAX
        impact = self._price_impact(amount_in, total_out, swap_for_y, rate, bins, pool)
        return RawQuote(
            amount_in=amount_in,
            amount_out=total_out,
            fee=total_fee,
            min_amount_out=min_out,
            price_impact_pct=impact,
        )

    @staticmethod
    def _price_of(b: BinRecord, pool: DlmmPool) -> Decimal:
        if b.price_q64 > 0:
            return Decimal(b.price_q64) / Q64
        return bin_price(b.bin_id, 0, pool.bin_step)

    def _price_impact(
        self,
        amount_in: int,
        amount_out: int,
        swap_for_y: bool,
        rate: Decimal,
        bins: Dict[int, BinRecord],
        pool: DlmmPool,
    ) -> Decimal:
        active = bins.get(pool.active_id)
        if active is not None:
            spot = self._price_of(active, pool)
        else:
            spot = bin_price(pool.active_id, 0, pool.bin_step)
        net_in = Decimal(amount_in) * (1 - rate)
        expected = net_in * spot if swap_for_y else net_in / spot
        if expected <= 0:
            return Decimal(0)
        return max((expected - amount_out) / expected * 100, Decimal(0))


async def fetch_bin_arrays(
    client: AsyncClient, lb_pair: Pubkey, indexes: Sequence[int]
) -> List[BinArrayRecord]:
    """Fetch and decode bin arrays by index; missing accounts are skipped."""
    addresses = [derive_bin_array_address(lb_pair, index) for index in indexes]
    resp = await client.get_multiple_accounts(addresses)
    arrays = []
    for index, account in zip(indexes, resp.value):
        if account is None or not account.data:
            logger.debug(f"Bin array {index} of {lb_pair} is not initialized")
            continue
        arrays.append(decode_bin_array(bytes(account.data)))
    return arrays


class DlmmAdapter:
    """Human-unit quotes and bin snapshots for one DLMM pair."""

    venue = Venue.DLMM

    def __init__(
        self,
        pool_address: Pubkey,
        decimals: DecimalsResolver,
        fetcher: Optional[DlmmPoolFetcher] = None,
        quoter: Optional[DlmmQuoter] = None,
        slippage: Number = Decimal("0.01"),
    ):
        self.pool_address = pool_address
        self.decimals = decimals
        self.fetcher = fetcher or DlmmPoolFetcher()
        self.quoter = quoter or DlmmQuoter()
        self.slippage = d(slippage)

    async def get_pool(self, client: AsyncClient) -> DlmmPool:
        return await self.fetcher.fetch(client, self.pool_address)

    @staticmethod
    def mints_for(pool: DlmmPool, direction: BinDirection) -> Tuple[Pubkey, Pubkey]:
        """(input_mint, output_mint) for a direction."""
        if direction is BinDirection.X_TO_Y:
            return pool.token_x_mint, pool.token_y_mint
        return pool.token_y_mint, pool.token_x_mint

    def _wrap(self, error: Exception, direction: BinDirection) -> QuoteError:
        return QuoteError(
            f"{self.venue.value} quote failed ({direction.value}): {error}",
            venue=self.venue.value,
            direction=direction.value,
        )

    async def get_quote(
        self,
        client: AsyncClient,
        amount: Number,
        direction: BinDirection,
        slippage: Optional[Number] = None,
    ) -> Quote:
        """
        Full quote for swapping ``amount`` (human units) in ``direction``.

        Raises:
            QuoteError: Wrapping any failure, tagged with venue and direction
        """
        slippage = self.slippage if slippage is None else d(slippage)
        amount = d(amount)
        try:
            pool = await self.get_pool(client)
            input_mint, output_mint = self.mints_for(pool, direction)
            input_decimals, output_decimals = await asyncio.gather(
                self.decimals.get_decimals(client, input_mint),
                self.decimals.get_decimals(client, output_mint),
            )
            raw_in = to_raw_amount(amount, input_decimals)
            bin_arrays = await self.quoter.get_bin_arrays_for_swap(
                client, pool, direction.swap_for_y
            )
            raw = self.quoter.swap_quote(
                raw_in,
                direction.swap_for_y,
                slippage_to_bps(slippage),
                bin_arrays,
                pool,
            )
        except QuoteError:
            raise
        except Exception as e:
            raise self._wrap(e, direction) from e

        if raw.price_impact_pct is None:
            raise QuoteError(
                f"{self.venue.value} quoter reported no price impact",
                venue=self.venue.value,
                direction=direction.value,
            )

        return Quote(
            venue=self.venue,
            direction=direction.value,
            input_amount=amount,
            output_amount=from_raw_amount(raw.amount_out, output_decimals),
            fee=from_raw_amount(raw.fee, input_decimals),
            price_impact_pct=raw.price_impact_pct,
            min_output_amount=from_raw_amount(raw.min_amount_out, output_decimals),
        )

    async def quote(
        self,
        client: AsyncClient,
        amount: Number,
        direction: BinDirection,
        slippage: Optional[Number] = None,
    ) -> Decimal:
        """Output amount (human units) for swapping ``amount``."""
        quote = await self.get_quote(client, amount, direction, slippage)
        return quote.output_amount

    async def unit_price(self, client: AsyncClient, direction: BinDirection) -> Decimal:
        """Output received for one unit of input."""
        return await self.quote(client, REFERENCE_AMOUNT, direction)

    async def pool_price(self, client: AsyncClient) -> Dict[BinDirection, Decimal]:
        """Unit price in both directions, fetched concurrently."""
        x_to_y, y_to_x = await asyncio.gather(
            self.unit_price(client, BinDirection.X_TO_Y),
            self.unit_price(client, BinDirection.Y_TO_X),
        )
        return {BinDirection.X_TO_Y: x_to_y, BinDirection.Y_TO_X: y_to_x}

    async def direction_for_input(
        self, client: AsyncClient, input_mint: Pubkey
    ) -> BinDirection:
        pool = await self.get_pool(client)
        return bin_direction_for(pool, input_mint)

    async def get_bins_around_active(
        self, client: AsyncClient, bin_range: int = 10
    ) -> BinSnapshot:
        """
        Bins within ``bin_range`` of the active bin, priced relative to it.

        Bins in uninitialized arrays are absent; bins with a non-positive
        price are dropped.
        """
        pool = await self.get_pool(client)
        low = pool.active_id - bin_range
        high = pool.active_id + bin_range
        indexes = list(
            range(bin_id_to_bin_array_index(low), bin_id_to_bin_array_index(high) + 1)
        )
        arrays = await fetch_bin_arrays(client, pool.address, indexes)

        bins: List[BinInfo] = []
        for array in arrays:
            for b in array.bins:
                if not low <= b.bin_id <= high:
                    continue
                price = bin_price(b.bin_id, pool.active_id, pool.bin_step)
                if price <= 0:
                    continue
                bins.append(
                    BinInfo(
                        bin_id=b.bin_id,
                        price=price,
                        liquidity_x=b.amount_x,
                        liquidity_y=b.amount_y,
                        supply=b.liquidity_supply,
                    )
                )
        bins.sort(key=lambda b: b.bin_id)
        return BinSnapshot(active_bin_id=pool.active_id, bins=bins)

    async def pool_stats(self, client: AsyncClient) -> DlmmPoolStats:
        pool = await self.get_pool(client)
        x_decimals, y_decimals = await asyncio.gather(
            self.decimals.get_decimals(client, pool.token_x_mint),
            self.decimals.get_decimals(client, pool.token_y_mint),
        )
        return DlmmPoolStats(
            reserve_x=from_raw_amount(pool.reserve_x_amount, x_decimals),
            reserve_y=from_raw_amount(pool.reserve_y_amount, y_decimals),
            active_bin_id=pool.active_id,
            bin_step=pool.bin_step,
            base_fee_pct=Decimal(base_fee_rate(pool)) / FEE_PRECISION * 100,
            protocol_share_pct=Decimal(pool.protocol_share) / 100,
            pool=pool,
        )
