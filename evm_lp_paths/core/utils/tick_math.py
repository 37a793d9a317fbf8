"""Tick, price and sqrtPriceX96 helpers shared by every CL protocol variant.

Pure math lives next to the small set of NonfungiblePositionManager /
factory / pool reads that the position reader and lifecycle manager share.
"""

from __future__ import annotations

import math
import time
from typing import Any, TypedDict

from eth_utils import to_checksum_address

from evm_lp_paths.core.constants import ZERO_ADDRESS
from evm_lp_paths.core.constants.base import MAX_UINT128

Q96 = 1 << 96
MIN_TICK = -887272
MAX_TICK = 887272


class PositionData(TypedDict):
    nonce: int
    operator: str
    token0: str
    token1: str
    # Exactly one of fee / tick_spacing is set, depending on the ABI variant
    fee: int | None
    tick_spacing: int | None
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


def sqrt_price_x96_to_price(sqrtpx96: int, decimals0: int, decimals1: int) -> float:
    """Human price of token0 denominated in token1."""
    if sqrtpx96 <= 0:
        return 0.0
    p = (sqrtpx96 / Q96) ** 2
    return p * (10 ** (decimals0 - decimals1))


def price_to_sqrt_price_x96(price: float, decimals0: int, decimals1: int) -> int:
    raw = price * (10 ** (decimals1 - decimals0))
    return int(math.sqrt(raw) * Q96)


def floor_tick_to_spacing(tick: int, spacing: int) -> int:
    if spacing <= 0:
        return tick
    return math.floor(tick / spacing) * spacing


def ceil_tick_to_spacing(tick: int, spacing: int) -> int:
    if spacing <= 0:
        return tick
    return math.ceil(tick / spacing) * spacing


def compute_tick_range(
    current_tick: int, range_width_ticks: int, spacing: int
) -> tuple[int, int]:
    """Range centred on ``current_tick``, widened outward to the spacing grid."""
    spacing = max(1, int(spacing))
    tick_lower = floor_tick_to_spacing(current_tick - range_width_ticks, spacing)
    tick_upper = ceil_tick_to_spacing(current_tick + range_width_ticks, spacing)
    if tick_upper <= tick_lower:
        tick_upper = tick_lower + spacing
    tick_lower = max(tick_lower, ceil_tick_to_spacing(MIN_TICK, spacing))
    tick_upper = min(tick_upper, floor_tick_to_spacing(MAX_TICK, spacing))
    return tick_lower, tick_upper


def is_in_range(tick_lower: int, tick_upper: int, current_tick: int) -> bool:
    return tick_lower < current_tick < tick_upper


def range_utilisation(tick_lower: int, tick_upper: int, current_tick: int) -> int:
    """100 at the centre of the range, falling to 0 at either edge or outside."""
    if not is_in_range(tick_lower, tick_upper, current_tick):
        return 0
    half_width = (tick_upper - tick_lower) / 2
    if half_width <= 0:
        return 0
    centre = (tick_lower + tick_upper) / 2
    pct = round(100 * (1 - abs(current_tick - centre) / half_width))
    return max(0, min(100, pct))


def parse_position_struct(raw: tuple, *, keyed_by: str = "fee") -> PositionData:
    keyed_value = int(raw[4])
    return PositionData(
        nonce=int(raw[0]),
        operator=to_checksum_address(raw[1]),
        token0=to_checksum_address(raw[2]),
        token1=to_checksum_address(raw[3]),
        fee=keyed_value if keyed_by == "fee" else None,
        tick_spacing=keyed_value if keyed_by == "tick_spacing" else None,
        tick_lower=int(raw[5]),
        tick_upper=int(raw[6]),
        liquidity=int(raw[7]),
        fee_growth_inside0_last_x128=int(raw[8]),
        fee_growth_inside1_last_x128=int(raw[9]),
        tokens_owed0=int(raw[10]),
        tokens_owed1=int(raw[11]),
    )


async def find_pool(
    factory_contract, token_a: str, token_b: str, fee_or_spacing: int
) -> str | None:
    addr = await factory_contract.functions.getPool(
        to_checksum_address(token_a),
        to_checksum_address(token_b),
        int(fee_or_spacing),
    ).call(block_identifier="latest")
    if not addr or str(addr).lower() == ZERO_ADDRESS.lower():
        return None
    return to_checksum_address(addr)


async def read_slot0(pool_contract) -> dict[str, Any]:
    slot0 = await pool_contract.functions.slot0().call(block_identifier="latest")
    return {"sqrt_price_x96": int(slot0[0]), "tick": int(slot0[1])}


def collect_params(token_id: int, recipient: str) -> tuple:
    return (int(token_id), recipient, MAX_UINT128, MAX_UINT128)


def deadline(seconds: int = 600) -> int:
    return int(time.time()) + seconds
