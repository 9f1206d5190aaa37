"""
Unit tests for sol_arb.utils and sol_arb.logging_config.
"""

import logging
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from sol_arb import logging_config
from sol_arb.utils import (
    calculate_percentage,
    d,
    format_amount,
    format_duration,
    format_profit,
    from_raw_amount,
    get_current_timestamp,
    slippage_to_bps,
    to_raw_amount,
)


class TestTimestampUtils:
    """Test timestamp utilities."""

    def test_get_current_timestamp(self):
        timestamp = get_current_timestamp()
        assert isinstance(timestamp, float)
        assert timestamp > 0

    def test_format_duration(self):
        assert format_duration(30.5) == "30.50s"
        assert format_duration(90) == "1.5m"
        assert format_duration(7200) == "2.0h"


class TestAmountConversion:
    """Human <-> raw ledger unit conversion."""

    def test_to_raw_amount(self):
        assert to_raw_amount("1.5", 9) == 1_500_000_000
        assert to_raw_amount(Decimal("0.1"), 6) == 100_000
        assert to_raw_amount(0, 9) == 0

    def test_to_raw_amount_truncates(self):
        # 1.9 raw units floor to 1, never round up
        assert to_raw_amount("0.0000000019", 9) == 1
        assert to_raw_amount("0.0000015", 6) == 1
        assert to_raw_amount("0.9999999999", 9) == 999_999_999

    def test_float_input_goes_through_str(self):
        assert to_raw_amount(0.1, 9) == 100_000_000

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            to_raw_amount("-0.1", 9)

    def test_from_raw_amount(self):
        assert from_raw_amount(1_500_000_000, 9) == Decimal("1.5")
        assert from_raw_amount(1, 6) == Decimal("0.000001")
        assert from_raw_amount(0, 9) == 0

    @given(
        amount=st.decimals(
            min_value=0,
            max_value=10**12,
            allow_nan=False,
            allow_infinity=False,
            places=20,
        ),
        decimals=st.integers(min_value=0, max_value=18),
    )
    def test_round_trip_never_overstates(self, amount, decimals):
        back = from_raw_amount(to_raw_amount(amount, decimals), decimals)
        assert back <= amount
        assert amount - back < Decimal(10) ** -decimals


class TestSlippageAndPercent:
    """Slippage scaling and percentage helpers."""

    def test_slippage_to_bps(self):
        assert slippage_to_bps("0.01") == 1
        assert slippage_to_bps("0.5") == 50
        assert slippage_to_bps("0.015") == 1
        assert slippage_to_bps(0) == 0

    def test_calculate_percentage(self):
        assert calculate_percentage(Decimal(1), Decimal(4)) == Decimal(25)
        assert calculate_percentage(Decimal(1), Decimal(0)) == Decimal(0)

    def test_d(self):
        assert d(0.1) == Decimal("0.1")
        value = Decimal("2.5")
        assert d(value) is value


class TestFormatting:
    """Display helpers."""

    def test_format_profit(self):
        assert format_profit(Decimal("1.234")) == "+1.23%"
        assert format_profit(-0.456) == "-0.46%"
        assert format_profit(0) == "+0.00%"

    def test_format_amount(self):
        assert format_amount(Decimal("0.100000000")) == "0.1"
        assert format_amount(Decimal("1E-9")) == "0.000000001"
        assert format_amount(0) == "0"
        assert format_amount(Decimal("12.5"), places=2) == "12.5"


class TestLoggingConfig:
    """LOG_LEVEL vocabulary."""

    @pytest.mark.parametrize(
        "name,level",
        [
            ("debug", logging.DEBUG),
            ("INFO", logging.INFO),
            ("warn", logging.WARNING),
            ("warning", logging.WARNING),
            (" error ", logging.ERROR),
        ],
    )
    def test_level_from_name(self, name, level):
        assert logging_config.level_from_name(name) == level

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            logging_config.level_from_name("verbose")

    def test_setup_quiets_http_client(self):
        root = logging.getLogger()
        package = logging.getLogger("sol_arb")
        saved_handlers, saved_level = list(root.handlers), root.level
        saved_package_level = package.level
        try:
            logging_config.setup(logging.DEBUG)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            package.setLevel(saved_package_level)
