from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from evm_lp_paths.core.adapters.BaseAdapter import BaseAdapter
from evm_lp_paths.core.adapters.decorators import status_tuple
from evm_lp_paths.core.adapters.models import Pool, PoolToken, ScoredPool
from evm_lp_paths.core.clients.KrystalClient import KRYSTAL_CLIENT
from evm_lp_paths.core.config import LpPolicy, get_discovery_chain_ids
from evm_lp_paths.core.constants.base import ADAPTER_POOL_DISCOVERY
from evm_lp_paths.core.constants.chains import chain_id_to_name, parse_chain_id
from evm_lp_paths.core.registry import resolve_protocol
from evm_lp_paths.core.utils.cache import SnapshotCache
from evm_lp_paths.core.utils.pool_scoring import rank_pools
from evm_lp_paths.core.utils.token_refs import register_token_address


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _raw_chain(raw: dict[str, Any]) -> tuple[str, int]:
    chain = raw.get("chain")
    if isinstance(chain, dict) and chain.get("id") is not None:
        try:
            chain_id = int(chain["id"])
        except (TypeError, ValueError):
            return parse_chain_id(str(chain["id"]))
        name = str(chain.get("name") or chain_id_to_name(chain_id)).lower()
        return name, chain_id
    if raw.get("chainId") is not None:
        return parse_chain_id(raw["chainId"])
    return "unknown", 0


def _raw_token(raw: Any) -> PoolToken:
    raw = raw if isinstance(raw, dict) else {}
    nested = raw.get("token") if isinstance(raw.get("token"), dict) else {}

    def _field(name: str, default: Any) -> Any:
        value = nested.get(name)
        if value is None:
            value = raw.get(name)
        return default if value is None else value

    try:
        decimals = int(_field("decimals", 18))
    except (TypeError, ValueError):
        decimals = 18
    return PoolToken(
        address=str(_field("address", "")),
        symbol=str(_field("symbol", "?")),
        name=str(_field("name", "")),
        decimals=decimals,
    )


def _raw_protocol(raw: dict[str, Any]) -> tuple[str, str]:
    proto = raw.get("protocol")
    if isinstance(proto, dict):
        key = str(proto.get("key") or proto.get("name") or "")
        name = str(proto.get("name") or proto.get("key") or "")
        return key, name
    if proto:
        return str(proto), str(proto)
    return "", ""


def _apr(raw: dict[str, Any], window: str) -> float:
    stats = raw.get(window)
    if not isinstance(stats, dict):
        return 0.0
    return _as_float(stats.get("apr"))


def dedupe_raw_pools(raw_pools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """First occurrence wins per (chain id, lower-cased pool address)."""
    seen: set[tuple[int, str]] = set()
    unique: list[dict[str, Any]] = []
    for raw in raw_pools:
        _, chain_id = _raw_chain(raw)
        key = (chain_id, str(raw.get("poolAddress") or "").lower())
        if key in seen:
            continue
        seen.add(key)
        unique.append(raw)
    return unique


def normalize_pool(raw: dict[str, Any]) -> Pool | None:
    """Aggregator record -> ``Pool``; ``None`` when the protocol is not registered on that chain."""
    chain_name, chain_id = _raw_chain(raw)
    pool_address = str(raw.get("poolAddress") or "")
    if not chain_id or not pool_address:
        return None

    protocol_key, protocol_name = _raw_protocol(raw)
    resolved = resolve_protocol(protocol_key, chain_id) or resolve_protocol(
        protocol_name, chain_id
    )
    if resolved is None:
        return None

    try:
        fee_tier = int(_as_float(raw.get("feeTier")))
    except (TypeError, ValueError, OverflowError):
        fee_tier = 0

    return Pool(
        chain_id=chain_id,
        chain_name=chain_name,
        protocol_key=resolved.key,
        protocol_name=protocol_name or resolved.display_name,
        pool_address=pool_address,
        token0=_raw_token(raw.get("token0")),
        token1=_raw_token(raw.get("token1")),
        fee_tier=fee_tier,
        tvl_usd=_as_float(raw.get("tvl")),
        apr24h=_apr(raw, "stats24h"),
        apr7d=_apr(raw, "stats7d"),
        apr30d=_apr(raw, "stats30d"),
    )


class PoolDiscoveryAdapter(BaseAdapter):
    adapter_type: str = ADAPTER_POOL_DISCOVERY

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        chain_ids: list[int] | None = None,
        policy: LpPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__("pool_discovery_adapter", config, policy=policy)
        self.chain_ids = [int(c) for c in (chain_ids or get_discovery_chain_ids())]
        self.cache: SnapshotCache[tuple[ScoredPool, ...]] = SnapshotCache(
            (), ttl_s=self.policy.pool_cache_ttl_s, clock=clock
        )

    def _fetch_tasks(self) -> list[tuple[int, int]]:
        page_size = self.policy.page_size
        return [
            (chain_id, page * page_size)
            for chain_id in self.chain_ids
            for page in range(self.policy.pages_per_chain)
        ]

    async def _fetch_raw_pools(self) -> list[dict[str, Any]]:
        tasks = self._fetch_tasks()
        results = await asyncio.gather(
            *[
                KRYSTAL_CLIENT.get_pools(
                    chain_id=chain_id, offset=offset, limit=self.policy.page_size
                )
                for chain_id, offset in tasks
            ],
            return_exceptions=True,
        )

        raw_pools: list[dict[str, Any]] = []
        failures = 0
        for result in results:
            if isinstance(result, BaseException):
                failures += 1
                continue
            raw_pools.extend(result)
        if failures:
            self.logger.warning(f"{failures}/{len(tasks)} pool fetch tasks failed")
        return raw_pools

    def _passes_quality_floor(self, pool: Pool) -> bool:
        return (
            pool.tvl_usd >= self.policy.min_tvl_usd
            and pool.apr7d >= self.policy.min_apr7d
        )

    def _build_snapshot(self, raw_pools: list[dict[str, Any]]) -> list[ScoredPool]:
        unique = dedupe_raw_pools(raw_pools)
        self.logger.info(f"{len(unique)} unique pools after dedup")

        candidates: list[Pool] = []
        for raw in unique:
            pool = normalize_pool(raw)
            if pool is None or not self._passes_quality_floor(pool):
                continue
            for token in (pool.token0, pool.token1):
                if token.address:
                    register_token_address(pool.chain_id, token.symbol, token.address)
            candidates.append(pool)
        return rank_pools(candidates)

    async def discover_pools(self, force_refresh: bool = False) -> list[ScoredPool]:
        if not force_refresh and self.cache.is_fresh():
            return list(self.cache.value)

        self.logger.info(
            f"Refreshing pool list across {len(self.chain_ids)} chains "
            f"({self.policy.pages_per_chain} pages each)"
        )
        try:
            raw_pools = await self._fetch_raw_pools()
            if not raw_pools:
                self.logger.warning("No pools returned from any chain")
                return list(self.cache.value)

            scored = self._build_snapshot(raw_pools)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"Pool discovery failed, keeping previous snapshot: {exc}")
            return list(self.cache.value)

        self.cache.swap(tuple(scored))
        if scored:
            top = scored[0]
            self.logger.info(
                f"{len(scored)} pools scored; top {top.token0.symbol}/{top.token1.symbol} "
                f"on {top.chain_name} score={top.score}"
            )
        return scored

    async def top_pool_for_chain(
        self, chain_id: int, min_tvl_usd: float = 0.0
    ) -> ScoredPool | None:
        pools = await self.discover_pools()
        for pool in pools:
            if pool.chain_id == int(chain_id) and pool.tvl_usd >= min_tvl_usd:
                return pool
        return None

    @status_tuple
    async def get_pools(
        self,
        *,
        chain_id: int | None = None,
        force_refresh: bool = False,
        limit: int | None = None,
    ) -> list[ScoredPool]:
        pools = await self.discover_pools(force_refresh=force_refresh)
        if chain_id is not None:
            pools = [p for p in pools if p.chain_id == int(chain_id)]
        return pools[:limit] if limit else pools
