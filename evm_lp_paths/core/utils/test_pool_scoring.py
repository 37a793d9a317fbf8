from evm_lp_paths.core.adapters.models import Pool, PoolToken
from evm_lp_paths.core.utils.pool_scoring import rank_pools, risk_tier_for, score_pool


def _pool(
    symbol0="USDC",
    symbol1="USDT",
    *,
    apr7d=120.0,
    apr24h=110.0,
    tvl_usd=12_000_000.0,
    protocol_key="uniswap-v3",
    address="0x3416cF6C708Da44DB2624D63ea0AAef7113527C6",
) -> Pool:
    return Pool(
        chain_id=1,
        chain_name="ethereum",
        protocol_key=protocol_key,
        protocol_name=protocol_key,
        pool_address=address,
        token0=PoolToken(address="0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", symbol=symbol0),
        token1=PoolToken(address="0xdAC17F958D2ee523a2206206994597C13D831ec7", symbol=symbol1),
        fee_tier=100,
        tvl_usd=tvl_usd,
        apr24h=apr24h,
        apr7d=apr7d,
    )


def test_best_case_scores_full_marks():
    scored = score_pool(_pool())

    assert scored.score == 100
    assert scored.score_breakdown == {
        "apr7d": 40,
        "tvl": 25,
        "consistency": 20,
        "protocol": 10,
        "range": 5,
    }
    assert scored.risk_tier == "low"
    assert scored.reasoning == [
        "very high APR 120%",
        "deep TVL $12.0M",
        "consistent APR",
        "Uniswap V3",
        "stablecoin pair, minimal IL",
    ]


def test_score_is_deterministic():
    pool = _pool("WETH", "USDC", apr7d=37.5, apr24h=12.0, tvl_usd=750_000)
    assert score_pool(pool) == score_pool(pool)


def test_apr_is_capped():
    assert score_pool(_pool(apr7d=5_000, apr24h=5_000)).score_breakdown["apr7d"] == 40


def test_apr_bands():
    points = [
        score_pool(_pool(apr7d=apr, apr24h=apr)).score_breakdown["apr7d"]
        for apr in (60, 30, 20, 12, 6, 4)
    ]
    assert points == [33, 25, 18, 12, 6, 0]


def test_tvl_bands():
    points = [
        score_pool(_pool(tvl_usd=tvl)).score_breakdown["tvl"]
        for tvl in (6_000_000, 2_000_000, 600_000, 300_000)
    ]
    assert points == [20, 15, 10, 5]


def test_consistency_signals():
    missing = score_pool(_pool(apr24h=0))
    spike = score_pool(_pool(apr7d=20, apr24h=80))
    decline = score_pool(_pool(apr7d=50, apr24h=10))
    moderate = score_pool(_pool(apr7d=20, apr24h=40))

    assert missing.score_breakdown["consistency"] == 10
    assert spike.score_breakdown["consistency"] == 5
    assert "recent APR spike, may be unsustainable" in spike.reasoning
    assert decline.score_breakdown["consistency"] == 5
    assert "declining volume" in decline.reasoning
    assert moderate.score_breakdown["consistency"] == 12


def test_unknown_protocol_gets_default_points():
    scored = score_pool(_pool(protocol_key="some-new-dex"))
    assert scored.score_breakdown["protocol"] == 5


def test_explicit_protocol_bonus():
    assert score_pool(_pool(), protocol_bonus=2).score_breakdown["protocol"] == 2


def test_risk_tiers():
    assert risk_tier_for("USDC", "DAI") == "low"
    assert risk_tier_for("WETH", "usdc") == "medium"
    assert risk_tier_for("WETH", "WBTC") == "high"
    assert score_pool(_pool("WETH", "WBTC")).score_breakdown["range"] == 1


def test_rank_keeps_input_order_on_ties():
    first = _pool(address="0x0000000000000000000000000000000000000001")
    second = _pool(address="0x0000000000000000000000000000000000000002")
    weak = _pool(apr7d=6, apr24h=6, address="0x0000000000000000000000000000000000000003")

    ranked = rank_pools([weak, first, second])

    assert [p.pool_address for p in ranked] == [
        first.pool_address,
        second.pool_address,
        weak.pool_address,
    ]
