from unittest.mock import AsyncMock, MagicMock

import pytest

from evm_lp_paths.core.constants import ZERO_ADDRESS
from evm_lp_paths.core.constants.base import MAX_UINT128
from evm_lp_paths.core.utils.tick_math import (
    MAX_TICK,
    collect_params,
    compute_tick_range,
    find_pool,
    is_in_range,
    parse_position_struct,
    price_to_sqrt_price_x96,
    range_utilisation,
    sqrt_price_x96_to_price,
)

WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


class TestPrices:
    def test_sqrt_price_matches_human_price(self):
        sqrt_price = price_to_sqrt_price_x96(2500, 18, 6)
        assert sqrt_price_x96_to_price(sqrt_price, 18, 6) == pytest.approx(2500, rel=1e-9)

    def test_zero_sqrt_price(self):
        assert sqrt_price_x96_to_price(0, 18, 6) == 0.0


class TestTickRange:
    def test_snaps_outward_to_spacing(self):
        assert compute_tick_range(100, 400, 10) == (-300, 500)
        assert compute_tick_range(-75, 100, 60) == (-180, 60)

    def test_zero_width_still_spans_one_spacing(self):
        assert compute_tick_range(0, 0, 60) == (0, 60)

    def test_clamped_to_tick_bounds(self):
        lower, upper = compute_tick_range(887_000, 1_000, 60)
        assert lower == 885_960
        assert upper == 887_220
        assert upper <= MAX_TICK

    def test_bad_spacing_falls_back_to_one(self):
        assert compute_tick_range(5, 3, 0) == (2, 8)


class TestRange:
    def test_in_range_is_strict(self):
        assert is_in_range(-100, 100, 0)
        assert not is_in_range(-100, 100, 100)
        assert not is_in_range(-100, 100, -100)

    def test_utilisation(self):
        assert range_utilisation(-100, 100, 0) == 100
        assert range_utilisation(-100, 100, 50) == 50
        assert range_utilisation(-100, 100, 150) == 0


def test_parse_position_struct_by_variant():
    raw = (1, WETH.lower(), WETH.lower(), USDC.lower(), 500, -600, 600, 10**18, 0, 0, 5, 6)

    standard = parse_position_struct(raw)
    assert standard["fee"] == 500
    assert standard["tick_spacing"] is None
    assert standard["token1"] == USDC
    assert (standard["tick_lower"], standard["tick_upper"]) == (-600, 600)
    assert (standard["tokens_owed0"], standard["tokens_owed1"]) == (5, 6)

    native = parse_position_struct(raw, keyed_by="tick_spacing")
    assert native["fee"] is None
    assert native["tick_spacing"] == 500


def test_collect_params_take_everything():
    assert collect_params(7, WETH) == (7, WETH, MAX_UINT128, MAX_UINT128)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("returned", "expected"),
    [(ZERO_ADDRESS, None), (USDC.lower(), USDC)],
)
async def test_find_pool(returned, expected):
    call = MagicMock()
    call.call = AsyncMock(return_value=returned)
    factory = MagicMock()
    factory.functions.getPool = MagicMock(return_value=call)

    assert await find_pool(factory, WETH, USDC, 500) == expected
    factory.functions.getPool.assert_called_once_with(WETH, USDC, 500)
