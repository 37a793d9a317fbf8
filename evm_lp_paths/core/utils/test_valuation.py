import pytest

from evm_lp_paths.core.utils.valuation import estimate_recovered_usd, pair_usd_prices


class TestPairPrices:
    def test_stable_quote(self):
        assert pair_usd_prices("WETH", "USDC", 2500, 9999) == (2500, 1.0)

    def test_stable_base(self):
        usd0, usd1 = pair_usd_prices("USDT", "WETH", 0.0004, 9999)
        assert usd0 == 1.0
        assert usd1 == pytest.approx(2500)

    def test_stable_base_with_zero_price(self):
        assert pair_usd_prices("USDC", "WETH", 0, 2500) == (1.0, 0.0)

    def test_no_stable_side_uses_native_price(self):
        usd0, usd1 = pair_usd_prices("WETH", "WBTC", 0.05, 2500)
        assert usd0 == 2500
        assert usd1 == pytest.approx(125)


class TestRecoveredValue:
    def test_both_stable(self):
        assert estimate_recovered_usd(100, 50, "USDC", "usdt", 2500) == 150

    def test_one_stable_side_doubles(self):
        assert estimate_recovered_usd(0.1, 200, "WETH", "USDC", 2500) == 400
        assert estimate_recovered_usd(300, 0.1, "DAI", "WETH", 2500) == 600

    def test_neither_stable(self):
        assert estimate_recovered_usd(0.1, 0.2, "WETH", "CBETH", 2500) == pytest.approx(750)
