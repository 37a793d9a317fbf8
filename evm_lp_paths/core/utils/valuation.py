"""Heuristic USD valuation for LP token pairs.

These are estimates for sizing and reporting, not accounting values: a pair
with no stable side is priced off the chain's native token.
"""

from evm_lp_paths.core.constants.contracts import is_stable_symbol


def pair_usd_prices(
    symbol0: str, symbol1: str, price0_in_1: float, native_price_usd: float
) -> tuple[float, float]:
    """USD price of one unit of each side, given token0 priced in token1."""
    if is_stable_symbol(symbol1):
        return float(price0_in_1), 1.0
    if is_stable_symbol(symbol0):
        return 1.0, (1.0 / price0_in_1) if price0_in_1 > 0 else 0.0
    return float(native_price_usd), float(native_price_usd) * float(price0_in_1)


def estimate_recovered_usd(
    amount0_human: float,
    amount1_human: float,
    symbol0: str,
    symbol1: str,
    native_price_usd: float,
) -> float:
    stable0 = is_stable_symbol(symbol0)
    stable1 = is_stable_symbol(symbol1)
    if stable0 and stable1:
        return amount0_human + amount1_human
    # One stable leg: an in-range position is roughly half on each side
    if stable0:
        return amount0_human * 2
    if stable1:
        return amount1_human * 2
    return (amount0_human + amount1_human) * native_price_usd
