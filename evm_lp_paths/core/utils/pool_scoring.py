"""Deterministic 0-100 pool score.

``score_pool`` reads nothing but its arguments, so the same pool always
produces the same score and breakdown.
"""

from __future__ import annotations

from evm_lp_paths.core.adapters.models import Pool, RiskTier, ScoredPool
from evm_lp_paths.core.constants.contracts import is_stable_symbol
from evm_lp_paths.core.registry import find_protocol

APR_INPUT_CAP = 200.0

# (threshold, points, reasoning label), checked top-down
_APR_BANDS: tuple[tuple[float, int, str | None], ...] = (
    (100, 40, "very high APR"),
    (50, 33, "high APR"),
    (25, 25, "good APR"),
    (15, 18, None),
    (10, 12, None),
    (5, 6, None),
)
_TVL_BANDS: tuple[tuple[float, int], ...] = (
    (10_000_000, 25),
    (5_000_000, 20),
    (1_000_000, 15),
    (500_000, 10),
)
TVL_FLOOR_POINTS = 5
DEFAULT_PROTOCOL_POINTS = 5


def _apr_points(apr7d: float) -> tuple[int, str | None]:
    apr = min(apr7d, APR_INPUT_CAP)
    for threshold, points, label in _APR_BANDS:
        if apr >= threshold:
            return points, f"{label} {apr7d:.0f}%" if label else None
    return 0, None


def _tvl_points(tvl_usd: float) -> tuple[int, str | None]:
    for threshold, points in _TVL_BANDS:
        if tvl_usd >= threshold:
            tag = f"deep TVL ${tvl_usd / 1e6:.1f}M" if points == 25 else None
            return points, tag
    return TVL_FLOOR_POINTS, None


def _consistency_points(apr24h: float, apr7d: float) -> tuple[int, str | None]:
    if apr7d <= 0 or apr24h <= 0:
        return 10, None
    ratio = apr24h / apr7d
    if 0.6 <= ratio <= 1.6:
        return 20, "consistent APR"
    if 0.3 <= ratio <= 2.5:
        return 12, None
    if ratio > 2.5:
        return 5, "recent APR spike, may be unsustainable"
    return 5, "declining volume"


def risk_tier_for(symbol0: str, symbol1: str) -> RiskTier:
    stable0, stable1 = is_stable_symbol(symbol0), is_stable_symbol(symbol1)
    if stable0 and stable1:
        return "low"
    if stable0 or stable1:
        return "medium"
    return "high"


_RANGE_POINTS: dict[str, int] = {"low": 5, "medium": 3, "high": 1}


def score_pool(pool: Pool, *, protocol_bonus: int | None = None) -> ScoredPool:
    breakdown: dict[str, int] = {}
    reasoning: list[str] = []

    def _take(name: str, result: tuple[int, str | None]) -> None:
        points, tag = result
        breakdown[name] = points
        if tag:
            reasoning.append(tag)

    _take("apr7d", _apr_points(pool.apr7d))
    _take("tvl", _tvl_points(pool.tvl_usd))
    _take("consistency", _consistency_points(pool.apr24h, pool.apr7d))

    if protocol_bonus is None:
        proto = find_protocol(pool.protocol_key) or find_protocol(pool.protocol_name)
        breakdown["protocol"] = proto.score_bonus if proto else DEFAULT_PROTOCOL_POINTS
        if proto:
            reasoning.append(proto.display_name)
    else:
        breakdown["protocol"] = int(protocol_bonus)

    tier = risk_tier_for(pool.token0.symbol, pool.token1.symbol)
    breakdown["range"] = _RANGE_POINTS[tier]
    if tier == "low":
        reasoning.append("stablecoin pair, minimal IL")

    return ScoredPool(
        **pool.model_dump(),
        score=sum(breakdown.values()),
        score_breakdown=breakdown,
        reasoning=reasoning,
        risk_tier=tier,
    )


def rank_pools(pools: list[Pool]) -> list[ScoredPool]:
    scored = [score_pool(p) for p in pools]
    # stable sort keeps aggregator order among equal scores
    return sorted(scored, key=lambda p: p.score, reverse=True)
