"""
PumpSwap adapter for the constant-product AMM venue.

PumpSwapQuoter holds the venue's swap math (x*y=k with LP, protocol and
coin-creator fees in basis points) over live reserve balances.
PumpSwapAdapter wraps it with human/raw conversion, pool caching and
price-impact reporting.
"""

import asyncio
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from ..config import ScannerConfig
from ..decimals import DecimalsResolver
from ..exceptions import QuoteError
from ..pools import PumpSwapPoolFetcher, token_account_amount
from ..types import AmmDirection, PoolBalances, PumpSwapPool, Quote, RawQuote, Venue
from ..utils import Number, d, from_raw_amount, get_logger, to_raw_amount

logger = get_logger(__name__)

BPS_DENOMINATOR = 10000
LP_FEE_BPS = 20
PROTOCOL_FEE_BPS = 5
COIN_CREATOR_FEE_BPS = 5

REFERENCE_AMOUNT = Decimal(1)


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def sell_base_output(
    base_in: int, base_reserve: int, quote_reserve: int, fee_bps: int
) -> Tuple[int, int]:
    """
    Quote received for selling base into the pool.

    Fees are charged on the quote output, each rounded up.

    Returns:
        (quote_out, fee) in raw quote units
    """
    if base_in <= 0:
        raise ValueError(f"base_in must be positive: {base_in}")
    if base_reserve <= 0 or quote_reserve <= 0:
        raise ValueError(
            f"Reserves must be positive: base={base_reserve}, quote={quote_reserve}"
        )

    gross = quote_reserve * base_in // (base_reserve + base_in)
    fee = _ceil_div(gross * fee_bps, BPS_DENOMINATOR)
    return max(gross - fee, 0), fee


def buy_base_output(
    quote_in: int, base_reserve: int, quote_reserve: int, fee_bps: int
) -> Tuple[int, int]:
    """
    Base received for spending quote on the pool.

    Fees come off the quote input before it reaches the curve.

    Returns:
        (base_out, fee) in raw units (base out, quote fee)
    """
    if quote_in <= 0:
        raise ValueError(f"quote_in must be positive: {quote_in}")
    if base_reserve <= 0 or quote_reserve <= 0:
        raise ValueError(
            f"Reserves must be positive: base={base_reserve}, quote={quote_reserve}"
        )

    effective = quote_in * BPS_DENOMINATOR // (BPS_DENOMINATOR + fee_bps)
    fee = quote_in - effective
    base_out = base_reserve * effective // (quote_reserve + effective)
    return base_out, fee


def min_amount_out(amount_out: int, slippage: Number) -> int:
    """Output floor after the slippage tolerance (fraction)."""
    value = Decimal(amount_out) * (Decimal(1) - d(slippage))
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def price_impact_pct(
    amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = 0
) -> Decimal:
    """
    Price impact of a constant-product swap against the pool's spot price.

    Compares the curve output with ``amount_in_after_fee * reserve_out /
    reserve_in``, the output at spot with no curve movement.

    Args:
        amount_in: Input amount (raw units)
        reserve_in: Input-side reserve (raw units)
        reserve_out: Output-side reserve (raw units)
        fee_bps: Fee taken from the input before the curve

    Returns:
        Impact in percent, between 0 and 100
    """
    if reserve_in <= 0 or reserve_out <= 0:
        return Decimal(100)

    amount_in_after_fee = Decimal(amount_in) * (
        Decimal(1) - Decimal(fee_bps) / BPS_DENOMINATOR
    )
    amount_out = (reserve_out * amount_in_after_fee) / (
        reserve_in + amount_in_after_fee
    )
    theoretical_output = (amount_in_after_fee * reserve_out) / reserve_in
    if theoretical_output == 0:
        return Decimal(100)

    impact = (Decimal(1) - amount_out / theoretical_output) * 100
    return max(Decimal(0), min(impact, Decimal(100)))


def amm_direction_for(pool: PumpSwapPool, input_mint: Pubkey) -> AmmDirection:
    """
    Pool-side direction for spending ``input_mint``.

    Raises:
        QuoteError: If the mint is neither side of the pool
    """
    if input_mint == pool.base_mint:
        return AmmDirection.BASE_TO_QUOTE
    if input_mint == pool.quote_mint:
        return AmmDirection.QUOTE_TO_BASE
    raise QuoteError(
        f"Mint {input_mint} is not traded by "
        f"{Venue.PUMPSWAP.value} pool {pool.address}",
        venue=Venue.PUMPSWAP.value,
        details={
            "base_mint": str(pool.base_mint),
            "quote_mint": str(pool.quote_mint),
        },
    )


class PumpSwapQuoter:
    """Autocomplete-style quotes on the pool's current reserves."""

    def __init__(
        self,
        lp_fee_bps: int = LP_FEE_BPS,
        protocol_fee_bps: int = PROTOCOL_FEE_BPS,
        coin_creator_fee_bps: int = COIN_CREATOR_FEE_BPS,
    ):
        self.lp_fee_bps = lp_fee_bps
        self.protocol_fee_bps = protocol_fee_bps
        self.coin_creator_fee_bps = coin_creator_fee_bps

    def total_fee_bps(self, pool: PumpSwapPool) -> int:
        total = self.lp_fee_bps + self.protocol_fee_bps
        if pool.coin_creator != Pubkey.default():
            total += self.coin_creator_fee_bps
        return total

    async def reserves(
        self, client: AsyncClient, pool: PumpSwapPool
    ) -> Tuple[int, int]:
        """(base_reserve, quote_reserve) in raw units."""
        base, quote = await asyncio.gather(
            token_account_amount(client, pool.pool_base_token_account),
            token_account_amount(client, pool.pool_quote_token_account),
        )
        return base, quote

    async def quote_from_base(
        self, client: AsyncClient, pool: PumpSwapPool, base_in: int, slippage: Number
    ) -> RawQuote:
        base_reserve, quote_reserve = await self.reserves(client, pool)
        out, fee = sell_base_output(
            base_in, base_reserve, quote_reserve, self.total_fee_bps(pool)
        )
        return RawQuote(
            amount_in=base_in,
            amount_out=out,
            fee=fee,
            min_amount_out=min_amount_out(out, slippage),
            # output-side fee cancels out of the impact ratio
            price_impact_pct=price_impact_pct(base_in, base_reserve, quote_reserve),
        )

    async def base_from_quote(
        self, client: AsyncClient, pool: PumpSwapPool, quote_in: int, slippage: Number
    ) -> RawQuote:
        base_reserve, quote_reserve = await self.reserves(client, pool)
        fee_bps = self.total_fee_bps(pool)
        out, fee = buy_base_output(quote_in, base_reserve, quote_reserve, fee_bps)
        return RawQuote(
            amount_in=quote_in,
            amount_out=out,
            fee=fee,
            min_amount_out=min_amount_out(out, slippage),
            price_impact_pct=price_impact_pct(
                quote_in, quote_reserve, base_reserve, fee_bps
            ),
        )


class PumpSwapAdapter:
    """
    Human-unit quotes for one PumpSwap pool.

    Args:
        pool_address: The configured pool
        decimals: Shared mint-precision resolver
        fetcher: Pool-state fetcher owning the cached descriptor
        quoter: Raw quote provider (replaceable in tests)
        slippage: Default slippage tolerance as a fraction
    """

    venue = Venue.PUMPSWAP

    def __init__(
        self,
        pool_address: Pubkey,
        decimals: DecimalsResolver,
        fetcher: Optional[PumpSwapPoolFetcher] = None,
        quoter: Optional[PumpSwapQuoter] = None,
        slippage: Number = Decimal("0.01"),
    ):
        self.pool_address = pool_address
        self.decimals = decimals
        self.fetcher = fetcher or PumpSwapPoolFetcher()
        self.quoter = quoter or PumpSwapQuoter()
        self.slippage = d(slippage)

    async def get_pool(self, client: AsyncClient) -> PumpSwapPool:
        return await self.fetcher.fetch(client, self.pool_address)

    @staticmethod
    def mints_for(
        pool: PumpSwapPool, direction: AmmDirection
    ) -> Tuple[Pubkey, Pubkey]:
        """(input_mint, output_mint) for a direction."""
        if direction is AmmDirection.BASE_TO_QUOTE:
            return pool.base_mint, pool.quote_mint
        return pool.quote_mint, pool.base_mint

    async def _raw_quote(
        self,
        client: AsyncClient,
        pool: PumpSwapPool,
        raw_in: int,
        direction: AmmDirection,
        slippage: Decimal,
    ) -> RawQuote:
        if direction is AmmDirection.BASE_TO_QUOTE:
            return await self.quoter.quote_from_base(client, pool, raw_in, slippage)
        return await self.quoter.base_from_quote(client, pool, raw_in, slippage)

    async def _convert(
        self,
        client: AsyncClient,
        amount: Number,
        direction: AmmDirection,
        slippage: Decimal,
    ) -> Tuple[RawQuote, Decimal, int, int]:
        pool = await self.get_pool(client)
        input_mint, output_mint = self.mints_for(pool, direction)
        input_decimals, output_decimals = await asyncio.gather(
            self.decimals.get_decimals(client, input_mint),
            self.decimals.get_decimals(client, output_mint),
        )
        raw_in = to_raw_amount(amount, input_decimals)
        if raw_in == 0:
            raise QuoteError(
                f"Input amount {amount} is below one raw unit",
                venue=self.venue.value,
                direction=direction.value,
            )
        raw = await self._raw_quote(client, pool, raw_in, direction, slippage)
        output = from_raw_amount(raw.amount_out, output_decimals)
        return raw, output, input_decimals, output_decimals

    async def get_quote(
        self,
        client: AsyncClient,
        amount: Number,
        direction: AmmDirection,
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
            raw, output, input_decimals, output_decimals = await self._convert(
                client, amount, direction, slippage
            )
            if raw.price_impact_pct is not None:
                impact = raw.price_impact_pct
            else:
                impact = await self._impact_from_reserves(client, raw, direction)
        except QuoteError:
            raise
        except Exception as e:
            raise self._wrap(e, direction) from e

        return Quote(
            venue=self.venue,
            direction=direction.value,
            input_amount=amount,
            output_amount=output,
            fee=from_raw_amount(
                raw.fee,
                self._fee_decimals(direction, input_decimals, output_decimals),
            ),
            price_impact_pct=impact,
            min_output_amount=from_raw_amount(raw.min_amount_out, output_decimals),
        )

    @staticmethod
    def _fee_decimals(
        direction: AmmDirection, input_decimals: int, output_decimals: int
    ) -> int:
        # fees are always charged in the quote token
        if direction is AmmDirection.BASE_TO_QUOTE:
            return output_decimals
        return input_decimals

    def _wrap(self, error: Exception, direction: AmmDirection) -> QuoteError:
        return QuoteError(
            f"{self.venue.value} quote failed ({direction.value}): {error}",
            venue=self.venue.value,
            direction=direction.value,
        )

    async def _impact_from_reserves(
        self, client: AsyncClient, raw: RawQuote, direction: AmmDirection
    ) -> Decimal:
        """Reserve-based impact for quoters that do not report one."""
        pool = await self.get_pool(client)
        base_reserve, quote_reserve = await self.quoter.reserves(client, pool)
        if direction is AmmDirection.BASE_TO_QUOTE:
            return price_impact_pct(raw.amount_in, base_reserve, quote_reserve)
        return price_impact_pct(
            raw.amount_in, quote_reserve, base_reserve, self.quoter.total_fee_bps(pool)
        )

    async def quote(
        self,
        client: AsyncClient,
        amount: Number,
        direction: AmmDirection,
        slippage: Optional[Number] = None,
    ) -> Decimal:
        """Output amount (human units) for swapping ``amount``."""
        slippage = self.slippage if slippage is None else d(slippage)
        try:
            _, output, _, _ = await self._convert(
                client, d(amount), direction, slippage
            )
        except QuoteError:
            raise
        except Exception as e:
            raise self._wrap(e, direction) from e
        return output

    async def unit_price(self, client: AsyncClient, direction: AmmDirection) -> Decimal:
        """Output received for one unit of input."""
        return await self.quote(client, REFERENCE_AMOUNT, direction)

    async def pool_price(self, client: AsyncClient) -> Dict[AmmDirection, Decimal]:
        """Unit price in both directions, fetched concurrently."""
        base_to_quote, quote_to_base = await asyncio.gather(
            self.unit_price(client, AmmDirection.BASE_TO_QUOTE),
            self.unit_price(client, AmmDirection.QUOTE_TO_BASE),
        )
        return {
            AmmDirection.BASE_TO_QUOTE: base_to_quote,
            AmmDirection.QUOTE_TO_BASE: quote_to_base,
        }

    async def price_impact(
        self, client: AsyncClient, amount: Number, direction: AmmDirection
    ) -> Decimal:
        """Price impact in percent of swapping ``amount``."""
        quote = await self.get_quote(client, amount, direction)
        return quote.price_impact_pct

    async def pool_balances(self, client: AsyncClient) -> PoolBalances:
        pool = await self.get_pool(client)
        (base_raw, quote_raw), base_decimals, quote_decimals = await asyncio.gather(
            self.quoter.reserves(client, pool),
            self.decimals.get_decimals(client, pool.base_mint),
            self.decimals.get_decimals(client, pool.quote_mint),
        )
        return PoolBalances(
            base_balance=from_raw_amount(base_raw, base_decimals),
            quote_balance=from_raw_amount(quote_raw, quote_decimals),
            base_token=str(pool.base_mint),
            quote_token=str(pool.quote_mint),
        )

    async def direction_for_input(
        self, client: AsyncClient, input_mint: Pubkey
    ) -> AmmDirection:
        """Direction whose input side is ``input_mint``."""
        pool = await self.get_pool(client)
        return amm_direction_for(pool, input_mint)

    async def check_pool_structure(
        self, client: AsyncClient, base_mint: Pubkey, target_mint: Pubkey
    ) -> Dict[str, Any]:
        """
        Compare the configured mints with the pool's own base/quote sides.

        PumpSwap pools usually list the launched token as base and SOL as
        quote, the opposite of the scanner's BASE_MINT naming; ``swapped``
        reports that case.
        """
        pool = await self.get_pool(client)
        report = {
            "pool_base_mint": str(pool.base_mint),
            "pool_quote_mint": str(pool.quote_mint),
            "base_matches": pool.base_mint == base_mint
            and pool.quote_mint == target_mint,
            "swapped": pool.base_mint == target_mint and pool.quote_mint == base_mint,
        }
        report["mints_in_pool"] = report["base_matches"] or report["swapped"]

        if report["swapped"]:
            logger.info(
                f"{self.venue.value} pool lists the target token as base; "
                "buying the target uses quoteToBase"
            )
        elif not report["mints_in_pool"]:
            logger.warning(
                f"{self.venue.value} pool {self.pool_address} does not trade "
                f"{base_mint}/{target_mint}"
            )
        return report


def validate_pool_config(config: ScannerConfig) -> None:
    """Log the configured venues and mints."""
    logger.info("Validating pool configuration")
    logger.info(f"  PumpSwap pool: {config.pumpswap_pool}")
    logger.info(f"  DLMM pool: {config.dlmm_pool}")
    logger.info(f"  Target mint: {config.mint}")
    logger.info(f"  Base mint: {config.base_mint}")
    if config.mint == config.base_mint:
        logger.warning("MINT and BASE_MINT are the same token")
