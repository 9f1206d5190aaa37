"""
Binary account layouts for the two venues.

Every account starts with an 8-byte discriminator followed by a fixed-offset
little-endian record. Pool records have two decoders: a construct schema
(primary) and a struct-module byte-offset reader (fallback). Both return the
same plain dict for the same bytes.
"""

import struct
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from construct import (
    Array,
    Bytes,
    BytesInteger,
    Int8ul,
    Int16ul,
    Int32sl,
    Int32ul,
    Int64sl,
    Int64ul,
    Struct,
)

from .exceptions import PoolDecodeError
from .utils import get_logger

logger = get_logger(__name__)

DISCRIMINATOR_SIZE = 8

Record = Dict[str, Any]

# ---------------------------------------------------------------------------
# PumpSwap pool
# ---------------------------------------------------------------------------

PUMPSWAP_POOL_FIELDS = (
    "pool_bump",
    "index",
    "creator",
    "base_mint",
    "quote_mint",
    "lp_mint",
    "pool_base_token_account",
    "pool_quote_token_account",
    "lp_supply",
    "coin_creator",
)

PUMPSWAP_POOL_LAYOUT = Struct(
    "pool_bump" / Int8ul,
    "index" / Int16ul,
    "creator" / Bytes(32),
    "base_mint" / Bytes(32),
    "quote_mint" / Bytes(32),
    "lp_mint" / Bytes(32),
    "pool_base_token_account" / Bytes(32),
    "pool_quote_token_account" / Bytes(32),
    "lp_supply" / Int64ul,
    "coin_creator" / Bytes(32),
)

PUMPSWAP_POOL_STRUCT = struct.Struct("<BH32s32s32s32s32s32sQ32s")

# post-discriminator record size
PUMPSWAP_POOL_SIZE = PUMPSWAP_POOL_STRUCT.size


def decode_pumpswap_pool_schema(data: bytes) -> Record:
    """Decode a PumpSwap pool account with the construct schema."""
    container = PUMPSWAP_POOL_LAYOUT.parse(bytes(data[DISCRIMINATOR_SIZE:]))
    return {name: container[name] for name in PUMPSWAP_POOL_FIELDS}


def decode_pumpswap_pool_manual(data: bytes) -> Record:
    """Decode a PumpSwap pool account by fixed byte offsets."""
    values = PUMPSWAP_POOL_STRUCT.unpack_from(bytes(data), DISCRIMINATOR_SIZE)
    return dict(zip(PUMPSWAP_POOL_FIELDS, values))


# ---------------------------------------------------------------------------
# Meteora DLMM pair (LbPair), leading fields only
# ---------------------------------------------------------------------------

LB_PAIR_FIELDS = (
    "base_factor",
    "variable_fee_control",
    "min_bin_id",
    "max_bin_id",
    "protocol_share",
    "base_fee_power_factor",
    "volatility_accumulator",
    "pair_type",
    "active_id",
    "bin_step",
    "status",
    "token_x_mint",
    "token_y_mint",
    "reserve_x",
    "reserve_y",
)

STATIC_PARAMETERS_LAYOUT = Struct(
    "base_factor" / Int16ul,
    "filter_period" / Int16ul,
    "decay_period" / Int16ul,
    "reduction_factor" / Int16ul,
    "variable_fee_control" / Int32ul,
    "max_volatility_accumulator" / Int32ul,
    "min_bin_id" / Int32sl,
    "max_bin_id" / Int32sl,
    "protocol_share" / Int16ul,
    "base_fee_power_factor" / Int8ul,
    "padding" / Bytes(5),
)

VARIABLE_PARAMETERS_LAYOUT = Struct(
    "volatility_accumulator" / Int32ul,
    "volatility_reference" / Int32ul,
    "index_reference" / Int32sl,
    "padding" / Bytes(4),
    "last_update_timestamp" / Int64sl,
    "padding1" / Bytes(8),
)

LB_PAIR_LAYOUT = Struct(
    "parameters" / STATIC_PARAMETERS_LAYOUT,
    "v_parameters" / VARIABLE_PARAMETERS_LAYOUT,
    "bump_seed" / Bytes(1),
    "bin_step_seed" / Bytes(2),
    "pair_type" / Int8ul,
    "active_id" / Int32sl,
    "bin_step" / Int16ul,
    "status" / Int8ul,
    "require_base_factor_seed" / Int8ul,
    "base_factor_seed" / Bytes(2),
    "activation_type" / Int8ul,
    "creator_pool_on_off_control" / Int8ul,
    "token_x_mint" / Bytes(32),
    "token_y_mint" / Bytes(32),
    "reserve_x" / Bytes(32),
    "reserve_y" / Bytes(32),
)

LB_PAIR_STRUCT = struct.Struct(
    "<"
    "4H2I2iHB5s"  # static parameters
    "2Ii4sq8s"  # variable parameters
    "1s2sBiHBB2sBB"  # seeds and flags
    "32s32s32s32s"  # mints and reserve accounts
)

LB_PAIR_STRUCT_FIELDS = (
    "base_factor",
    "filter_period",
    "decay_period",
    "reduction_factor",
    "variable_fee_control",
    "max_volatility_accumulator",
    "min_bin_id",
    "max_bin_id",
    "protocol_share",
    "base_fee_power_factor",
    "padding",
    "volatility_accumulator",
    "volatility_reference",
    "index_reference",
    "v_padding",
    "last_update_timestamp",
    "v_padding1",
    "bump_seed",
    "bin_step_seed",
    "pair_type",
    "active_id",
    "bin_step",
    "status",
    "require_base_factor_seed",
    "base_factor_seed",
    "activation_type",
    "creator_pool_on_off_control",
    "token_x_mint",
    "token_y_mint",
    "reserve_x",
    "reserve_y",
)

LB_PAIR_PREFIX_SIZE = LB_PAIR_STRUCT.size


def decode_lb_pair_schema(data: bytes) -> Record:
    """Decode the leading LbPair fields with the construct schema."""
    c = LB_PAIR_LAYOUT.parse(bytes(data[DISCRIMINATOR_SIZE:]))
    flat = dict(c.parameters)
    flat.update(c.v_parameters)
    flat.update(c)
    return {name: flat[name] for name in LB_PAIR_FIELDS}


def decode_lb_pair_manual(data: bytes) -> Record:
    """Decode the leading LbPair fields by fixed byte offsets."""
    values = LB_PAIR_STRUCT.unpack_from(bytes(data), DISCRIMINATOR_SIZE)
    flat = dict(zip(LB_PAIR_STRUCT_FIELDS, values))
    return {name: flat[name] for name in LB_PAIR_FIELDS}


# ---------------------------------------------------------------------------
# Meteora DLMM bin array
# ---------------------------------------------------------------------------

MAX_BIN_PER_ARRAY = 70

U128 = BytesInteger(16, swapped=True)

BIN_LAYOUT = Struct(
    "amount_x" / Int64ul,
    "amount_y" / Int64ul,
    "price" / U128,
    "liquidity_supply" / U128,
    "reward_per_token_stored" / Array(2, U128),
    "fee_amount_x_per_token_stored" / U128,
    "fee_amount_y_per_token_stored" / U128,
    "amount_x_in" / U128,
    "amount_y_in" / U128,
)

BIN_ARRAY_LAYOUT = Struct(
    "index" / Int64sl,
    "version" / Int8ul,
    "padding" / Bytes(7),
    "lb_pair" / Bytes(32),
    "bins" / Array(MAX_BIN_PER_ARRAY, BIN_LAYOUT),
)


@dataclass(frozen=True)
class BinRecord:
    """Liquidity of one bin; price is Q64.64 raw-unit Y per X (0 if unset)."""

    bin_id: int
    amount_x: int
    amount_y: int
    price_q64: int
    liquidity_supply: int


@dataclass(frozen=True)
class BinArrayRecord:
    index: int
    lb_pair: bytes
    bins: List[BinRecord]

    @property
    def lower_bin_id(self) -> int:
        return self.index * MAX_BIN_PER_ARRAY

    @property
    def upper_bin_id(self) -> int:
        return self.lower_bin_id + MAX_BIN_PER_ARRAY - 1


def decode_bin_array(data: bytes) -> BinArrayRecord:
    """Decode a DLMM bin array account."""
    c = BIN_ARRAY_LAYOUT.parse(bytes(data[DISCRIMINATOR_SIZE:]))
    lower = c.index * MAX_BIN_PER_ARRAY
    bins = [
        BinRecord(
            bin_id=lower + offset,
            amount_x=b.amount_x,
            amount_y=b.amount_y,
            price_q64=b.price,
            liquidity_supply=b.liquidity_supply,
        )
        for offset, b in enumerate(c.bins)
    ]
    return BinArrayRecord(index=c.index, lb_pair=bytes(c.lb_pair), bins=bins)


# ---------------------------------------------------------------------------
# Decoding with fallback
# ---------------------------------------------------------------------------


def decode_with_fallback(
    data: bytes,
    schema_decoder: Callable[[bytes], Record],
    manual_decoder: Callable[[bytes], Record],
    venue: str,
    address: Optional[str] = None,
) -> Record:
    """
    Decode with the schema decoder, falling back to the manual one.

    Raises:
        PoolDecodeError: If both decoders fail
    """
    try:
        return schema_decoder(data)
    except Exception as e:
        logger.warning(
            f"{venue} schema decode failed for {address}: {e}; trying manual decoder"
        )

    try:
        return manual_decoder(data)
    except (struct.error, ValueError) as e:
        raise PoolDecodeError(
            f"Failed to decode {venue} pool account {address}: {e}",
            venue=venue,
            address=address,
            details={"length": len(data)},
        ) from e
