"""
Core data types for the two-venue arbitrage scanner.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from solders.pubkey import Pubkey


class Venue(str, Enum):
    """The two liquidity venues being compared."""

    PUMPSWAP = "PumpSwap"
    DLMM = "Meteora DLMM"


class AmmDirection(str, Enum):
    """Swap direction on the constant-product venue, named by pool side."""

    BASE_TO_QUOTE = "baseToQuote"
    QUOTE_TO_BASE = "quoteToBase"


class BinDirection(str, Enum):
    """Swap direction on the bin-liquidity venue, named by token X/Y."""

    X_TO_Y = "xToY"
    Y_TO_X = "yToX"

    @property
    def swap_for_y(self) -> bool:
        """Flag the bin-model quote function expects."""
        return self is BinDirection.X_TO_Y


class TradeDirection(str, Enum):
    """Round-trip order: which venue buys the target and which sells it."""

    PUMPSWAP_TO_DLMM = "PumpSwap→DLMM"
    DLMM_TO_PUMPSWAP = "DLMM→PumpSwap"

    @property
    def buy_venue(self) -> Venue:
        if self is TradeDirection.PUMPSWAP_TO_DLMM:
            return Venue.PUMPSWAP
        return Venue.DLMM

    @property
    def sell_venue(self) -> Venue:
        if self is TradeDirection.PUMPSWAP_TO_DLMM:
            return Venue.DLMM
        return Venue.PUMPSWAP


@dataclass(frozen=True)
class PumpSwapPool:
    """
    Decoded PumpSwap pool account.

    Attributes:
        address: Pool account address
        pool_bump: PDA bump seed
        index: Pool index for the creator
        creator: Pool creator
        base_mint: Mint of the pool's base side
        quote_mint: Mint of the pool's quote side
        lp_mint: Liquidity-provider token mint
        pool_base_token_account: Token account holding base reserves
        pool_quote_token_account: Token account holding quote reserves
        lp_supply: Outstanding LP token supply (raw units)
        coin_creator: Creator entitled to the coin-creator fee
    """

    address: Pubkey
    pool_bump: int
    index: int
    creator: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    lp_mint: Pubkey
    pool_base_token_account: Pubkey
    pool_quote_token_account: Pubkey
    lp_supply: int
    coin_creator: Pubkey


@dataclass(frozen=True)
class DlmmPool:
    """
    Decoded Meteora DLMM pair (LbPair) account plus reserve balances.

    Fee parameters are kept raw; adapters.dlmm.fee_rate() turns them into a
    rate.
    """

    address: Pubkey
    token_x_mint: Pubkey
    token_y_mint: Pubkey
    reserve_x: Pubkey
    reserve_y: Pubkey
    reserve_x_amount: int
    reserve_y_amount: int
    active_id: int
    bin_step: int
    base_factor: int
    base_fee_power_factor: int
    variable_fee_control: int
    volatility_accumulator: int
    protocol_share: int
    min_bin_id: int
    max_bin_id: int
    status: int
    pair_type: int


@dataclass(frozen=True)
class RawQuote:
    """Quote in raw ledger units, as returned by a venue quoter."""

    amount_in: int
    amount_out: int
    fee: int
    min_amount_out: int
    price_impact_pct: Optional[Decimal] = None


@dataclass(frozen=True)
class Quote:
    """Quote in human-readable units for one hop on one venue."""

    venue: Venue
    direction: str
    input_amount: Decimal
    output_amount: Decimal
    fee: Decimal
    price_impact_pct: Decimal
    min_output_amount: Decimal

    @property
    def effective_price(self) -> Decimal:
        if self.input_amount == 0:
            return Decimal(0)
        return self.output_amount / self.input_amount


@dataclass
class ArbitrageOpportunity:
    """
    One evaluated round trip.

    Attributes:
        direction: Which venue buys and which sells
        input_amount: Base asset spent on the first hop
        output_amount: Base asset returned by the second hop
        profit: output_amount - input_amount
        profit_pct: profit / input_amount * 100
        buy_venue: Venue of the first hop
        sell_venue: Venue of the second hop
        timestamp: Unix time of evaluation
        buy_quote: First-hop quote
        sell_quote: Second-hop quote
    """

    direction: TradeDirection
    input_amount: Decimal
    output_amount: Decimal
    profit: Decimal
    profit_pct: Decimal
    buy_venue: str
    sell_venue: str
    timestamp: float
    buy_quote: Optional[Quote] = None
    sell_quote: Optional[Quote] = None

    @property
    def total_price_impact_pct(self) -> Decimal:
        total = Decimal(0)
        for quote in (self.buy_quote, self.sell_quote):
            if quote is not None:
                total += quote.price_impact_pct
        return total


@dataclass
class CycleResult:
    """Everything one evaluation cycle produced."""

    best: Optional[ArbitrageOpportunity]
    opportunities: List[ArbitrageOpportunity] = field(default_factory=list)
    failures: Dict[TradeDirection, Exception] = field(default_factory=dict)


@dataclass(frozen=True)
class SpreadReport:
    """Unit-price comparison between the venues (target per 1 base)."""

    pumpswap_price: Decimal
    dlmm_price: Decimal
    spread_pct: Decimal
    cheaper_venue: Venue
    timestamp: float


@dataclass(frozen=True)
class BinInfo:
    """One bin of the bin-liquidity venue, relative to the active bin."""

    bin_id: int
    price: Decimal
    liquidity_x: int
    liquidity_y: int
    supply: int


@dataclass(frozen=True)
class BinSnapshot:
    """Bins around the active bin."""

    active_bin_id: int
    bins: List[BinInfo]


@dataclass(frozen=True)
class PoolBalances:
    """Reserve balances of a PumpSwap pool in human units."""

    base_balance: Decimal
    quote_balance: Decimal
    base_token: str
    quote_token: str

    @property
    def quote_per_base(self) -> Decimal:
        if self.base_balance == 0:
            return Decimal(0)
        return self.quote_balance / self.base_balance


@dataclass(frozen=True)
class DlmmPoolStats:
    """Summary of a DLMM pair's liquidity and fee settings."""

    reserve_x: Decimal
    reserve_y: Decimal
    active_bin_id: int
    bin_step: int
    base_fee_pct: Decimal
    protocol_share_pct: Decimal
    pool: DlmmPool
