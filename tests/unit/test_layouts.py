"""
Unit tests for sol_arb/layouts.py

Both pool decoders must agree field for field on the same bytes.
"""

import struct

import pytest
from construct import ConstructError
from hypothesis import given, settings
from hypothesis import strategies as st
from solders.pubkey import Pubkey

from fakes import (
    DISCRIMINATOR,
    bin_array_bytes,
    lb_pair_bytes,
    new_key,
    pumpswap_pool_bytes,
)

from sol_arb import layouts
from sol_arb.exceptions import PoolDecodeError
from sol_arb.layouts import (
    LB_PAIR_PREFIX_SIZE,
    MAX_BIN_PER_ARRAY,
    PUMPSWAP_POOL_SIZE,
    decode_bin_array,
    decode_lb_pair_manual,
    decode_lb_pair_schema,
    decode_pumpswap_pool_manual,
    decode_pumpswap_pool_schema,
    decode_with_fallback,
)


def test_record_sizes():
    assert PUMPSWAP_POOL_SIZE == 235
    assert LB_PAIR_PREFIX_SIZE == 208


class TestPumpSwapPoolLayout:
    """PumpSwap pool account decoding."""

    def test_known_fields(self):
        base, quote = new_key(), new_key()
        base_account, quote_account = new_key(), new_key()
        coin_creator = new_key()
        data = pumpswap_pool_bytes(
            base,
            quote,
            base_account,
            quote_account,
            coin_creator=coin_creator,
            pool_bump=253,
            index=7,
            lp_supply=123_456_789,
        )

        record = decode_pumpswap_pool_schema(data)

        assert record["pool_bump"] == 253
        assert record["index"] == 7
        assert Pubkey.from_bytes(record["base_mint"]) == base
        assert Pubkey.from_bytes(record["quote_mint"]) == quote
        assert Pubkey.from_bytes(record["pool_base_token_account"]) == base_account
        assert Pubkey.from_bytes(record["pool_quote_token_account"]) == quote_account
        assert record["lp_supply"] == 123_456_789
        assert Pubkey.from_bytes(record["coin_creator"]) == coin_creator

    def test_trailing_bytes_ignored(self):
        data = pumpswap_pool_bytes(
            new_key(), new_key(), new_key(), new_key(), trailing=bytes(64)
        )
        assert decode_pumpswap_pool_schema(data) == decode_pumpswap_pool_manual(data)

    @settings(max_examples=200)
    @given(body=st.binary(min_size=235, max_size=235))
    def test_schema_and_manual_agree(self, body):
        data = DISCRIMINATOR + body
        assert decode_pumpswap_pool_schema(data) == decode_pumpswap_pool_manual(data)

    def test_short_buffer_fails_both_paths(self):
        with pytest.raises(PoolDecodeError) as exc_info:
            decode_with_fallback(
                DISCRIMINATOR + bytes(100),
                decode_pumpswap_pool_schema,
                decode_pumpswap_pool_manual,
                "PumpSwap",
                "pool",
            )
        assert exc_info.value.venue == "PumpSwap"
        assert exc_info.value.details["length"] == 108


class TestLbPairLayout:
    """Meteora DLMM LbPair prefix decoding."""

    def test_known_fields(self):
        token_x, token_y = new_key(), new_key()
        reserve_x, reserve_y = new_key(), new_key()
        data = lb_pair_bytes(
            token_x,
            token_y,
            reserve_x,
            reserve_y,
            active_id=-1234,
            bin_step=25,
            base_factor=10000,
            base_fee_power_factor=1,
            variable_fee_control=7500,
            volatility_accumulator=42,
            protocol_share=1000,
            status=1,
            pair_type=3,
        )

        record = decode_lb_pair_manual(data)

        assert record["active_id"] == -1234
        assert record["bin_step"] == 25
        assert record["base_factor"] == 10000
        assert record["base_fee_power_factor"] == 1
        assert record["variable_fee_control"] == 7500
        assert record["volatility_accumulator"] == 42
        assert record["protocol_share"] == 1000
        assert record["status"] == 1
        assert record["pair_type"] == 3
        assert Pubkey.from_bytes(record["token_x_mint"]) == token_x
        assert Pubkey.from_bytes(record["token_y_mint"]) == token_y
        assert Pubkey.from_bytes(record["reserve_x"]) == reserve_x
        assert Pubkey.from_bytes(record["reserve_y"]) == reserve_y

    def test_absolute_offsets(self):
        token_x = new_key()
        data = bytearray(DISCRIMINATOR + bytes(LB_PAIR_PREFIX_SIZE))
        struct.pack_into("<i", data, 76, -5)
        data[88:120] = bytes(token_x)

        record = decode_lb_pair_schema(bytes(data))

        assert record["active_id"] == -5
        assert Pubkey.from_bytes(record["token_x_mint"]) == token_x

    @settings(max_examples=200)
    @given(body=st.binary(min_size=208, max_size=300))
    def test_schema_and_manual_agree(self, body):
        data = DISCRIMINATOR + body
        assert decode_lb_pair_schema(data) == decode_lb_pair_manual(data)


class TestDecodeWithFallback:
    """Schema path first, manual path on failure."""

    def test_falls_back_to_manual(self, caplog):
        data = pumpswap_pool_bytes(new_key(), new_key(), new_key(), new_key())

        def broken_schema(_data):
            raise RuntimeError("schema unavailable")

        record = decode_with_fallback(
            data, broken_schema, decode_pumpswap_pool_manual, "PumpSwap", "pool"
        )

        assert record == decode_pumpswap_pool_schema(data)
        assert "schema decode failed" in caplog.text

    def test_schema_result_used_when_it_succeeds(self):
        data = pumpswap_pool_bytes(new_key(), new_key(), new_key(), new_key())
        calls = []

        def manual(_data):
            calls.append(1)
            return {}

        decode_with_fallback(
            data, decode_pumpswap_pool_schema, manual, "PumpSwap", "pool"
        )
        assert calls == []


class TestBinArrayLayout:
    """DLMM bin array decoding."""

    def test_bins_and_ids(self):
        lb_pair = new_key()
        data = bin_array_bytes(
            -2, lb_pair, {0: (10, 20, 2**64), 69: (1, 2, 3 * 2**64)}
        )

        array = decode_bin_array(data)

        assert array.index == -2
        assert array.lb_pair == bytes(lb_pair)
        assert len(array.bins) == MAX_BIN_PER_ARRAY
        assert array.lower_bin_id == -140
        assert array.upper_bin_id == -71
        assert array.bins[0].bin_id == -140
        assert array.bins[0].amount_x == 10
        assert array.bins[0].amount_y == 20
        assert array.bins[0].price_q64 == 2**64
        assert array.bins[69].bin_id == -71
        assert array.bins[69].price_q64 == 3 * 2**64
        assert array.bins[69].liquidity_supply == 3

    def test_account_size(self):
        assert len(bin_array_bytes(0, new_key(), {})) == 10136

    def test_truncated_account_raises(self):
        with pytest.raises(ConstructError):
            layouts.decode_bin_array(bin_array_bytes(0, new_key(), {})[:500])
