"""
In-memory stand-ins for the ledger RPC client plus account byte builders.

Account bytes are assembled field by field here, independently of the
layouts module, so decoder tests compare against a separate encoding.
"""

import struct
from collections import Counter
from decimal import Decimal
from types import SimpleNamespace
from typing import Dict, Optional, Tuple

from solders.pubkey import Pubkey

from sol_arb.types import Quote, Venue

WSOL = Pubkey.from_string("So11111111111111111111111111111111111111112")
DISCRIMINATOR = bytes([241, 154, 109, 4, 17, 177, 109, 188])


def new_key() -> Pubkey:
    return Pubkey.new_unique()


def u128(value: int) -> bytes:
    return value.to_bytes(16, "little")


def pumpswap_pool_bytes(
    base_mint: Pubkey,
    quote_mint: Pubkey,
    base_account: Pubkey,
    quote_account: Pubkey,
    coin_creator: Optional[Pubkey] = None,
    creator: Optional[Pubkey] = None,
    lp_mint: Optional[Pubkey] = None,
    pool_bump: int = 254,
    index: int = 0,
    lp_supply: int = 4_193_388_222_000,
    trailing: bytes = b"",
) -> bytes:
    coin_creator = coin_creator if coin_creator is not None else Pubkey.default()
    return (
        DISCRIMINATOR
        + struct.pack("<B", pool_bump)
        + struct.pack("<H", index)
        + bytes(creator or new_key())
        + bytes(base_mint)
        + bytes(quote_mint)
        + bytes(lp_mint or new_key())
        + bytes(base_account)
        + bytes(quote_account)
        + struct.pack("<Q", lp_supply)
        + bytes(coin_creator)
        + trailing
    )


def lb_pair_bytes(
    token_x: Pubkey,
    token_y: Pubkey,
    reserve_x: Pubkey,
    reserve_y: Pubkey,
    active_id: int = 0,
    bin_step: int = 10,
    base_factor: int = 0,
    base_fee_power_factor: int = 0,
    variable_fee_control: int = 0,
    volatility_accumulator: int = 0,
    protocol_share: int = 500,
    min_bin_id: int = -443636,
    max_bin_id: int = 443636,
    status: int = 0,
    pair_type: int = 0,
    trailing: bytes = b"",
) -> bytes:
    static = (
        struct.pack("<HHHH", base_factor, 30, 600, 5000)
        + struct.pack("<II", variable_fee_control, 350000)
        + struct.pack("<ii", min_bin_id, max_bin_id)
        + struct.pack("<HB", protocol_share, base_fee_power_factor)
        + bytes(5)
    )
    variable = (
        struct.pack("<IIi", volatility_accumulator, 0, active_id)
        + bytes(4)
        + struct.pack("<q", 1_700_000_000)
        + bytes(8)
    )
    flags = (
        bytes([255])
        + struct.pack("<H", bin_step)
        + struct.pack("<B", pair_type)
        + struct.pack("<i", active_id)
        + struct.pack("<H", bin_step)
        + struct.pack("<BB", status, 0)
        + struct.pack("<H", base_factor)
        + struct.pack("<BB", 0, 0)
    )
    return (
        DISCRIMINATOR
        + static
        + variable
        + flags
        + bytes(token_x)
        + bytes(token_y)
        + bytes(reserve_x)
        + bytes(reserve_y)
        + trailing
    )


def bin_array_bytes(
    index: int,
    lb_pair: Pubkey,
    bins: Dict[int, Tuple[int, int, int]],
) -> bytes:
    """Bin array with ``bins`` mapping offset -> (amount_x, amount_y, price_q64)."""
    header = struct.pack("<qB", index, 1) + bytes(7) + bytes(lb_pair)
    body = b""
    for offset in range(70):
        amount_x, amount_y, price_q64 = bins.get(offset, (0, 0, 0))
        body += (
            struct.pack("<QQ", amount_x, amount_y)
            + u128(price_q64)
            + u128(amount_x + amount_y)
            + bytes(16 * 6)
        )
    return DISCRIMINATOR + header + body


def q64(price: int) -> int:
    return price * 2**64


class FakeClient:
    """Async RPC client backed by dictionaries."""

    def __init__(self):
        self.accounts: Dict[Pubkey, bytes] = {}
        self.token_balances: Dict[Pubkey, int] = {}
        self.mint_decimals: Dict[Pubkey, int] = {}
        self.lamports: Dict[Pubkey, int] = {}
        self.slot = 250_000_000
        self.slot_error: Optional[Exception] = None
        self.calls: Counter = Counter()
        self.closed = False

    async def get_account_info(self, pubkey):
        self.calls["get_account_info"] += 1
        data = self.accounts.get(pubkey)
        value = None if data is None else SimpleNamespace(data=data)
        return SimpleNamespace(value=value)

    async def get_multiple_accounts(self, pubkeys):
        self.calls["get_multiple_accounts"] += 1
        values = []
        for pubkey in pubkeys:
            data = self.accounts.get(pubkey)
            values.append(None if data is None else SimpleNamespace(data=data))
        return SimpleNamespace(value=values)

    async def get_token_account_balance(self, pubkey):
        self.calls["get_token_account_balance"] += 1
        amount = self.token_balances[pubkey]
        return SimpleNamespace(value=SimpleNamespace(amount=str(amount)))

    async def get_token_supply(self, mint):
        self.calls["get_token_supply"] += 1
        if mint not in self.mint_decimals:
            raise RuntimeError(f"Invalid param: could not find mint {mint}")
        return SimpleNamespace(value=SimpleNamespace(decimals=self.mint_decimals[mint]))

    async def get_slot(self):
        self.calls["get_slot"] += 1
        if self.slot_error is not None:
            raise self.slot_error
        return SimpleNamespace(value=self.slot)

    async def get_balance(self, pubkey):
        return SimpleNamespace(value=self.lamports.get(pubkey, 0))

    async def close(self):
        self.closed = True


def make_quote(
    venue: Venue,
    direction: str,
    input_amount,
    output_amount,
    price_impact_pct="0",
) -> Quote:
    return Quote(
        venue=venue,
        direction=direction,
        input_amount=Decimal(str(input_amount)),
        output_amount=Decimal(str(output_amount)),
        fee=Decimal(0),
        price_impact_pct=Decimal(str(price_impact_pct)),
        min_output_amount=Decimal(str(output_amount)),
    )
