"""
Cross-venue arbitrage evaluation.

A round trip spends the base asset on one venue to buy the target token and
sells that token back for the base asset on the other venue. Both orders are
evaluated concurrently each cycle; a failure in one never discards the
other's result.
"""

import asyncio
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from .adapters.dlmm import DlmmAdapter, bin_direction_for
from .adapters.pumpswap import PumpSwapAdapter, amm_direction_for
from .exceptions import QuoteError
from .types import (
    ArbitrageOpportunity,
    CycleResult,
    Quote,
    SpreadReport,
    TradeDirection,
    Venue,
)
from .utils import (
    Number,
    calculate_percentage,
    d,
    format_profit,
    get_current_timestamp,
    get_logger,
)

logger = get_logger(__name__)

# evaluation order; earlier entries win ties
DIRECTIONS = (TradeDirection.PUMPSWAP_TO_DLMM, TradeDirection.DLMM_TO_PUMPSWAP)

__all__ = [
    "ArbitrageEvaluator",
    "DIRECTIONS",
    "amm_direction_for",
    "bin_direction_for",
    "describe_failure",
    "select_best",
]


def select_best(
    opportunities: Sequence[ArbitrageOpportunity], min_profit_pct: Number
) -> Optional[ArbitrageOpportunity]:
    """
    Best opportunity at or above the threshold.

    Only a strictly greater profit percentage replaces the current best, so
    equal percentages keep the first one seen.
    """
    threshold = d(min_profit_pct)
    best: Optional[ArbitrageOpportunity] = None
    for opportunity in opportunities:
        if opportunity.profit_pct < threshold:
            continue
        if best is None or opportunity.profit_pct > best.profit_pct:
            best = opportunity
    return best


def describe_failure(error: BaseException) -> str:
    """One-line failure description with venue and direction when known."""
    context = []
    venue = getattr(error, "venue", None)
    direction = getattr(error, "direction", None)
    if venue:
        context.append(str(venue))
    if direction:
        context.append(str(direction))
    prefix = f"{type(error).__name__}"
    if context:
        prefix += f" [{' '.join(context)}]"
    return f"{prefix}: {error}"


class ArbitrageEvaluator:
    """
    Evaluates PumpSwap/DLMM round trips for a fixed trade size.

    Args:
        pumpswap: PumpSwap adapter
        dlmm: DLMM adapter
        base_mint: Asset the round trip starts and ends in
        target_mint: Token bought on the first hop
        min_profit_pct: Threshold for the best opportunity, in percent
        slippage: Slippage tolerance passed to both venues
        clock: Unix-time source for opportunity timestamps
    """

    def __init__(
        self,
        pumpswap: PumpSwapAdapter,
        dlmm: DlmmAdapter,
        base_mint: Pubkey,
        target_mint: Pubkey,
        min_profit_pct: Number = Decimal("0.3"),
        slippage: Number = Decimal("0.01"),
        clock: Callable[[], float] = get_current_timestamp,
    ):
        self.pumpswap = pumpswap
        self.dlmm = dlmm
        self.base_mint = base_mint
        self.target_mint = target_mint
        self.min_profit_pct = d(min_profit_pct)
        self.slippage = d(slippage)
        self._clock = clock

    async def quote_hop(
        self, client: AsyncClient, venue: Venue, amount: Number, input_mint: Pubkey
    ) -> Quote:
        """Quote spending ``amount`` of ``input_mint`` on ``venue``."""
        if venue is Venue.PUMPSWAP:
            pool = await self.pumpswap.get_pool(client)
            amm_direction = amm_direction_for(pool, input_mint)
            return await self.pumpswap.get_quote(
                client, amount, amm_direction, self.slippage
            )

        pair = await self.dlmm.get_pool(client)
        bin_direction = bin_direction_for(pair, input_mint)
        return await self.dlmm.get_quote(client, amount, bin_direction, self.slippage)

    async def evaluate_direction(
        self, client: AsyncClient, direction: TradeDirection, trade_size: Number
    ) -> ArbitrageOpportunity:
        """
        Run one two-hop chain.

        Hop 1 buys the target with ``trade_size`` of the base asset on the
        buy venue; hop 2 sells all of it back on the sell venue.
        """
        trade_size = d(trade_size)
        if trade_size <= 0:
            raise QuoteError(f"Trade size must be positive: {trade_size}")

        buy_quote = await self.quote_hop(
            client, direction.buy_venue, trade_size, self.base_mint
        )
        sell_quote = await self.quote_hop(
            client, direction.sell_venue, buy_quote.output_amount, self.target_mint
        )

        profit = sell_quote.output_amount - trade_size
        profit_pct = calculate_percentage(profit, trade_size)

        logger.debug(
            f"{direction.value}: {trade_size} -> {buy_quote.output_amount} -> "
            f"{sell_quote.output_amount} ({format_profit(profit_pct)})"
        )

        return ArbitrageOpportunity(
            direction=direction,
            input_amount=trade_size,
            output_amount=sell_quote.output_amount,
            profit=profit,
            profit_pct=profit_pct,
            buy_venue=direction.buy_venue.value,
            sell_venue=direction.sell_venue.value,
            timestamp=self._clock(),
            buy_quote=buy_quote,
            sell_quote=sell_quote,
        )

    async def evaluate_cycle(
        self, client: AsyncClient, trade_size: Number
    ) -> CycleResult:
        """
        Evaluate both directions concurrently and pick the best.

        Each direction fails independently; failures are logged and returned
        in ``CycleResult.failures``.
        """
        results = await asyncio.gather(
            *(
                self.evaluate_direction(client, direction, trade_size)
                for direction in DIRECTIONS
            ),
            return_exceptions=True,
        )

        opportunities: List[ArbitrageOpportunity] = []
        failures: Dict[TradeDirection, Exception] = {}
        for direction, result in zip(DIRECTIONS, results):
            if isinstance(result, Exception):
                failures[direction] = result
                logger.error(
                    f"{direction.value} evaluation failed: {describe_failure(result)}"
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                opportunities.append(result)

        best = self.select_best(opportunities)
        return CycleResult(best=best, opportunities=opportunities, failures=failures)

    def select_best(
        self, opportunities: Sequence[ArbitrageOpportunity]
    ) -> Optional[ArbitrageOpportunity]:
        return select_best(opportunities, self.min_profit_pct)

    async def compare_prices(self, client: AsyncClient) -> SpreadReport:
        """
        Target tokens per one unit of base asset on each venue.

        No profit threshold applies; the spread is relative to the lower
        price.
        """
        pumpswap_quote, dlmm_quote = await asyncio.gather(
            self.quote_hop(client, Venue.PUMPSWAP, Decimal(1), self.base_mint),
            self.quote_hop(client, Venue.DLMM, Decimal(1), self.base_mint),
        )
        pumpswap_price = pumpswap_quote.output_amount
        dlmm_price = dlmm_quote.output_amount

        lower = min(pumpswap_price, dlmm_price)
        if lower <= 0:
            raise QuoteError(
                f"Cannot compare prices: PumpSwap={pumpswap_price}, DLMM={dlmm_price}"
            )
        spread_pct = calculate_percentage(abs(pumpswap_price - dlmm_price), lower)

        # more target per base means the target is cheaper there
        if pumpswap_price >= dlmm_price:
            cheaper = Venue.PUMPSWAP
        else:
            cheaper = Venue.DLMM

        return SpreadReport(
            pumpswap_price=pumpswap_price,
            dlmm_price=dlmm_price,
            spread_pct=spread_pct,
            cheaper_venue=cheaper,
            timestamp=self._clock(),
        )
