import pytest

from evm_lp_paths.core.adapters.collaborators import (
    BridgeService,
    NullBridgeService,
    NullSwapService,
    PriceOracle,
    SwapService,
)
from evm_lp_paths.core.constants.chains import (
    DEFAULT_NATIVE_PRICE_USD,
    FALLBACK_NATIVE_PRICES_USD,
)


@pytest.mark.asyncio
async def test_analyst_price_wins_over_fallback():
    oracle = PriceOracle({"eth": 3100})
    assert await oracle.get_native_token_price(8453) == 3100
    assert await oracle.get_native_token_price(56) == FALLBACK_NATIVE_PRICES_USD[56]


@pytest.mark.asyncio
async def test_aliases_cover_wrapped_and_rebranded_tickers():
    oracle = PriceOracle({"POL": 0.42, "WAVAX": 30})
    assert await oracle.get_native_token_price(137) == 0.42
    assert await oracle.get_native_token_price(43114) == 30


@pytest.mark.asyncio
async def test_unknown_chain_uses_default():
    assert await PriceOracle().get_native_token_price(999_999) == DEFAULT_NATIVE_PRICE_USD


def test_bad_prices_are_ignored():
    oracle = PriceOracle({"ETH": "n/a", "BNB": -1, "AVAX": "25.5"})
    assert oracle.analyst_price("ETH") is None
    assert oracle.analyst_price("BNB") is None
    assert oracle.analyst_price("avax") == 25.5


@pytest.mark.asyncio
async def test_null_services_are_inert():
    swap, bridge = NullSwapService(), NullBridgeService()
    assert isinstance(swap, SwapService)
    assert isinstance(bridge, BridgeService)

    assert await swap.quote(8453, "a", "b", 1.0, 500) is None
    assert not (await swap.execute(8453, "a", "b", 1.0, 500)).success
    assert bridge.resolve_token_address(8453, "USDC") is None
    assert await bridge.get_balance(1, "0x", "0x") == 0.0
    assert not (await bridge.bridge(1, 8453, "USDC", 10, "0x", "0x")).success
    assert await bridge.await_completion("0xabc", 1) == "FAILED"
