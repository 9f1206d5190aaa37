"""
Scan loop and the service context it runs against.

ServiceContext owns every piece of long-lived state (RPC client, decimals
cache, pool caches, adapters, evaluator). ArbitrageScanner drives it at a
fixed interval, containing every per-cycle failure and rebuilding the RPC
connection when a failure looks like lost connectivity.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional

from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair

from .adapters.dlmm import DlmmAdapter
from .adapters.pumpswap import PumpSwapAdapter
from .config import ScannerConfig
from .decimals import DecimalsResolver
from .evaluator import ArbitrageEvaluator, describe_failure
from .exceptions import RpcConnectionError
from .pools import DlmmPoolFetcher, PumpSwapPoolFetcher
from .rpc import check_liveness, create_client, is_connectivity_error
from .types import ArbitrageOpportunity, CycleResult, SpreadReport, Venue
from .utils import (
    format_amount,
    format_duration,
    format_profit,
    get_current_timestamp,
    get_logger,
    monotonic_ms,
)

logger = get_logger(__name__)

MODES = ("scan", "monitor")


class ServiceContext:
    """Long-lived collaborators shared by every scan cycle."""

    def __init__(
        self,
        config: ScannerConfig,
        client: AsyncClient,
        decimals: DecimalsResolver,
        pumpswap: PumpSwapAdapter,
        dlmm: DlmmAdapter,
        evaluator: ArbitrageEvaluator,
        keypair: Optional[Keypair] = None,
        client_factory: Callable[[str], AsyncClient] = create_client,
    ):
        self.config = config
        self.client = client
        self.decimals = decimals
        self.pumpswap = pumpswap
        self.dlmm = dlmm
        self.evaluator = evaluator
        self.keypair = keypair
        self._client_factory = client_factory

    @classmethod
    def build(
        cls,
        config: ScannerConfig,
        client: AsyncClient,
        keypair: Optional[Keypair] = None,
        clock: Callable[[], float] = monotonic_ms,
        client_factory: Callable[[str], AsyncClient] = create_client,
    ) -> "ServiceContext":
        """Wire adapters, caches and the evaluator from a config."""
        decimals = DecimalsResolver()
        pumpswap = PumpSwapAdapter(
            config.pumpswap_pool_pubkey,
            decimals,
            fetcher=PumpSwapPoolFetcher(config.cache_duration_ms, clock),
            slippage=config.slippage,
        )
        dlmm = DlmmAdapter(
            config.dlmm_pool_pubkey,
            decimals,
            fetcher=DlmmPoolFetcher(config.cache_duration_ms, clock),
            slippage=config.slippage,
        )
        evaluator = ArbitrageEvaluator(
            pumpswap,
            dlmm,
            base_mint=config.base_mint_pubkey,
            target_mint=config.mint_pubkey,
            min_profit_pct=config.min_profit_pct,
            slippage=config.slippage,
        )
        return cls(
            config,
            client,
            decimals,
            pumpswap,
            dlmm,
            evaluator,
            keypair=keypair,
            client_factory=client_factory,
        )

    async def reconnect(self) -> None:
        """
        Replace the RPC client with a freshly verified one.

        The old client is kept when the new one fails its liveness check.

        Raises:
            RpcConnectionError: If the new client does not answer
        """
        logger.info("🔄 Attempting to reconnect...")
        new_client = self._client_factory(self.config.rpc_url)
        try:
            slot = await check_liveness(new_client, self.config.rpc_url)
        except RpcConnectionError:
            await new_client.close()
            raise

        old_client, self.client = self.client, new_client
        try:
            await old_client.close()
        except Exception as e:
            logger.debug(f"Closing previous RPC client failed: {e}")
        logger.info(f"✅ Reconnected successfully - Current slot: {slot}")

    async def close(self) -> None:
        await self.client.close()


@dataclass
class ScanStats:
    """Counters for the running loop."""

    cycles: int = 0
    opportunities: int = 0
    errors: int = 0
    reconnects: int = 0
    best_profit_pct: Optional[Decimal] = None
    started_at: float = field(default_factory=get_current_timestamp)

    def record_best(self, opportunity: ArbitrageOpportunity) -> None:
        self.opportunities += 1
        best = self.best_profit_pct
        if best is None or opportunity.profit_pct > best:
            self.best_profit_pct = opportunity.profit_pct

    def summary(self) -> List[str]:
        runtime = get_current_timestamp() - self.started_at
        best = (
            format_profit(self.best_profit_pct)
            if self.best_profit_pct is not None
            else "n/a"
        )
        return [
            f"Runtime: {format_duration(runtime)}",
            f"Cycles: {self.cycles}",
            f"Opportunities: {self.opportunities}",
            f"Best profit: {best}",
            f"Errors: {self.errors} | Reconnects: {self.reconnects}",
        ]


class ArbitrageScanner:
    """
    Fixed-interval driver for the evaluator.

    Args:
        context: Service context holding client, adapters and evaluator
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        context: ServiceContext,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.context = context
        self._sleep = sleep
        self.stats = ScanStats()
        self.running = False

    @property
    def config(self) -> ScannerConfig:
        return self.context.config

    async def scan_once(self) -> CycleResult:
        """
        Evaluate both directions once and report the result.

        Raises:
            RpcConnectionError: If every direction failed and at least one
                failure was a connectivity problem
        """
        result = await self.context.evaluator.evaluate_cycle(
            self.context.client, self.config.trade_size
        )

        for opportunity in result.opportunities:
            logger.info(
                f"   {opportunity.direction.value}: "
                f"{format_amount(opportunity.input_amount)} -> "
                f"{format_amount(opportunity.output_amount)} "
                f"({format_profit(opportunity.profit_pct)})"
            )

        if result.best is not None:
            self.stats.record_best(result.best)
            self.report_opportunity(result.best)
            self.execute(result.best)
        elif result.opportunities:
            top = max(result.opportunities, key=lambda o: o.profit_pct)
            logger.info(
                f"No opportunity above {self.config.min_profit_pct}% "
                f"(best {format_profit(top.profit_pct)})"
            )

        if not result.opportunities and result.failures:
            errors = list(result.failures.values())
            if any(is_connectivity_error(e) for e in errors):
                raise RpcConnectionError(
                    "All directions failed: "
                    + "; ".join(describe_failure(e) for e in errors)
                ) from errors[0]

        return result

    def report_opportunity(self, opportunity: ArbitrageOpportunity) -> None:
        logger.info(f"🎯 ARBITRAGE OPPORTUNITY: {opportunity.direction.value}")
        logger.info(
            f"   Buy on {opportunity.buy_venue}, sell on {opportunity.sell_venue}"
        )
        logger.info(
            f"   Input: {format_amount(opportunity.input_amount)} | "
            f"Output: {format_amount(opportunity.output_amount)}"
        )
        logger.info(
            f"   Profit: {format_amount(opportunity.profit)} "
            f"({format_profit(opportunity.profit_pct)})"
        )
        logger.info(
            f"   Price impact: {opportunity.total_price_impact_pct:.4f}%"
        )

    def execute(self, opportunity: ArbitrageOpportunity) -> bool:
        """
        Execution placeholder; never signs or sends anything.

        Returns:
            False, always
        """
        if self.config.dry_run:
            logger.info(
                f"🧪 DRY RUN: would execute {opportunity.direction.value} "
                f"for {format_profit(opportunity.profit_pct)}"
            )
        else:
            logger.warning(
                "Trade execution is not implemented; opportunity logged only"
            )
        return False

    async def monitor_once(self) -> SpreadReport:
        """Log the unit-price spread between venues, without a threshold."""
        report = await self.context.evaluator.compare_prices(self.context.client)
        logger.info(
            f"📊 PumpSwap: {format_amount(report.pumpswap_price)} | "
            f"DLMM: {format_amount(report.dlmm_price)} | "
            f"Spread: {report.spread_pct:.4f}% "
            f"(cheaper on {report.cheaper_venue.value})"
        )
        return report

    async def _recover(self) -> None:
        try:
            await self.context.reconnect()
            self.stats.reconnects += 1
        except Exception as e:
            logger.error(f"❌ Reconnection failed: {e}")

    async def run(
        self, mode: str = "scan", max_cycles: Optional[int] = None
    ) -> ScanStats:
        """
        Scan until stopped or ``max_cycles`` cycles have run.

        Every exception from a cycle is logged and counted; connectivity
        failures additionally trigger a reconnect before the next cycle.
        """
        if mode not in MODES:
            raise ValueError(f"Unknown scan mode: {mode}")

        once = self.monitor_once if mode == "monitor" else self.scan_once
        logger.info(
            f"🔍 Starting {mode} loop (every {self.config.process_delay_ms}ms)"
        )

        self.running = True
        cycle = 0
        while self.running:
            cycle += 1
            logger.debug(f"Cycle {cycle}")
            try:
                await once()
            except Exception as e:
                self.stats.errors += 1
                logger.error(f"❌ Cycle {cycle} failed: {describe_failure(e)}")
                if is_connectivity_error(e):
                    await self._recover()
            self.stats.cycles += 1

            if max_cycles is not None and cycle >= max_cycles:
                break
            await self._sleep(self.config.process_delay_sec)

        self.running = False
        return self.stats

    def stop(self) -> None:
        self.running = False


async def run_analysis(context: ServiceContext) -> Dict[str, Any]:
    """
    Single-shot report of both venues.

    Each section is independent; a failing section is logged and recorded
    as an error string in the returned report.
    """
    client = context.client
    config = context.config
    report: Dict[str, Any] = {}

    async def section(name: str, coro: Awaitable[Any]) -> Any:
        try:
            value = await coro
        except Exception as e:
            logger.error(f"Analysis section '{name}' failed: {describe_failure(e)}")
            report[name] = f"error: {e}"
            return None
        report[name] = value
        return value

    logger.info("=" * 60)
    logger.info("📋 POOL ANALYSIS")
    logger.info("=" * 60)

    pumpswap_pool = await section("pumpswap_pool", context.pumpswap.get_pool(client))
    if pumpswap_pool is not None:
        logger.info(f"PumpSwap pool {pumpswap_pool.address}")
        logger.info(f"   Base: {pumpswap_pool.base_mint}")
        logger.info(f"   Quote: {pumpswap_pool.quote_mint}")
        logger.info(f"   LP supply: {pumpswap_pool.lp_supply}")
        await section(
            "pumpswap_structure",
            context.pumpswap.check_pool_structure(
                client, config.base_mint_pubkey, config.mint_pubkey
            ),
        )

    balances = await section(
        "pumpswap_balances", context.pumpswap.pool_balances(client)
    )
    if balances is not None:
        logger.info(
            f"   Reserves: {format_amount(balances.base_balance)} base / "
            f"{format_amount(balances.quote_balance)} quote "
            f"(quote per base {format_amount(balances.quote_per_base)})"
        )

    stats = await section("dlmm_stats", context.dlmm.pool_stats(client))
    if stats is not None:
        logger.info(f"DLMM pair {stats.pool.address}")
        logger.info(f"   Token X: {stats.pool.token_x_mint}")
        logger.info(f"   Token Y: {stats.pool.token_y_mint}")
        logger.info(
            f"   Reserves: {format_amount(stats.reserve_x)} X / "
            f"{format_amount(stats.reserve_y)} Y"
        )
        logger.info(
            f"   Active bin: {stats.active_bin_id} | Bin step: {stats.bin_step} bps "
            f"| Base fee: {stats.base_fee_pct:.4f}% "
            f"| Protocol share: {stats.protocol_share_pct}%"
        )

    snapshot = await section(
        "dlmm_bins", context.dlmm.get_bins_around_active(client, config.bin_range)
    )
    if snapshot is not None:
        logger.info(f"   {len(snapshot.bins)} bins within ±{config.bin_range}")
        for b in snapshot.bins:
            marker = " <- active" if b.bin_id == snapshot.active_bin_id else ""
            logger.debug(
                f"   bin {b.bin_id}: price {b.price:.6f} "
                f"x={b.liquidity_x} y={b.liquidity_y}{marker}"
            )

    for name, adapter in (
        ("pumpswap_prices", context.pumpswap),
        ("dlmm_prices", context.dlmm),
    ):
        prices = await section(name, adapter.pool_price(client))
        if prices is not None:
            logger.info(
                f"{adapter.venue.value} unit prices: "
                + ", ".join(
                    f"{direction.value} {format_amount(price)}"
                    for direction, price in prices.items()
                )
            )
    spread = await section("spread", context.evaluator.compare_prices(client))
    if spread is not None:
        logger.info(
            f"Unit prices: PumpSwap {format_amount(spread.pumpswap_price)} | "
            f"DLMM {format_amount(spread.dlmm_price)} | "
            f"spread {spread.spread_pct:.4f}%"
        )

    impacts: Dict[str, Dict[str, Any]] = {}
    for size in config.price_impact_sizes:
        impacts[str(size)] = {
            Venue.PUMPSWAP.value: await section(
                f"impact_pumpswap_{size}",
                context.evaluator.quote_hop(
                    client, Venue.PUMPSWAP, size, config.base_mint_pubkey
                ),
            ),
            Venue.DLMM.value: await section(
                f"impact_dlmm_{size}",
                context.evaluator.quote_hop(
                    client, Venue.DLMM, size, config.base_mint_pubkey
                ),
            ),
        }
        for venue, quote in impacts[str(size)].items():
            if quote is not None:
                logger.info(
                    f"   {venue} {size}: out {format_amount(quote.output_amount)} "
                    f"at {format_amount(quote.effective_price)} "
                    f"impact {quote.price_impact_pct:.4f}%"
                )
    report["price_impact"] = impacts

    cycle = await section(
        "cycle", context.evaluator.evaluate_cycle(client, config.trade_size)
    )
    if cycle is not None:
        for opportunity in cycle.opportunities:
            logger.info(
                f"   {opportunity.direction.value}: "
                f"{format_profit(opportunity.profit_pct)}"
            )
        if cycle.best is not None:
            logger.info(
                f"🎯 Best: {cycle.best.direction.value} "
                f"{format_profit(cycle.best.profit_pct)}"
            )
        else:
            logger.info(f"No opportunity above {config.min_profit_pct}%")

    return report
