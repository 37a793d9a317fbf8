from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import Any

from aiocache import Cache
from eth_utils import to_checksum_address

from evm_lp_paths.core.adapters.BaseAdapter import BaseAdapter
from evm_lp_paths.core.adapters.decorators import status_tuple
from evm_lp_paths.core.adapters.models import (
    EvmLpRecord,
    PoolToken,
    Position,
    ResolvedProtocol,
)
from evm_lp_paths.core.clients.KrystalClient import KRYSTAL_CLIENT
from evm_lp_paths.core.config import LpPolicy
from evm_lp_paths.core.constants.base import ADAPTER_POSITION
from evm_lp_paths.core.constants.chains import chain_id_to_name
from evm_lp_paths.core.registry import get_codec, resolve_protocol
from evm_lp_paths.core.utils.tick_math import (
    PositionData,
    find_pool,
    is_in_range,
    range_utilisation,
    read_slot0,
)
from evm_lp_paths.core.utils.tokens import get_erc20_symbol_and_decimals, to_human
from evm_lp_paths.core.utils.web3 import web3_from_chain_id


def _now_ms() -> int:
    return int(time.time() * 1000)


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _entry(items: Any, idx: int) -> dict[str, Any]:
    if isinstance(items, list) and len(items) > idx and isinstance(items[idx], dict):
        return items[idx]
    return {}


def _position_token(raw: dict[str, Any], idx: int) -> PoolToken:
    amount = _entry(raw.get("currentAmounts"), idx)
    flat = raw.get(f"token{idx}") if isinstance(raw.get(f"token{idx}"), dict) else {}
    for source in (amount.get("token"), flat.get("token"), flat):
        if isinstance(source, dict) and source.get("address"):
            try:
                decimals = int(source.get("decimals") or 18)
            except (TypeError, ValueError):
                decimals = 18
            return PoolToken(
                address=str(source["address"]),
                symbol=str(source.get("symbol") or "?"),
                decimals=decimals,
            )
    return PoolToken(address="")


def _usd_amount(entry: dict[str, Any], decimals: int) -> float:
    return _as_float(entry.get("balance")) / (10**decimals) * _as_float(entry.get("price"))


def _record_only_position(record: EvmLpRecord, protocol_key: str) -> Position:
    # Range is unknown without the NPM read, so report it out of range.
    return Position(
        pos_id=record.pos_id,
        chain_id=record.chain_id,
        chain_name=record.chain_name or chain_id_to_name(record.chain_id),
        protocol_key=protocol_key,
        pool_address=record.pool_address,
        token0=PoolToken(address="", symbol=record.token0_symbol or "?"),
        token1=PoolToken(address="", symbol=record.token1_symbol or "?"),
        value_usd=record.entry_usd,
        in_range=False,
        range_utilisation_pct=0,
        opened_at=record.opened_at,
        source="onchain",
    )


class PositionAdapter(BaseAdapter):
    """Open LP positions for one wallet: aggregator first, on-chain for the rest."""

    adapter_type: str = ADAPTER_POSITION

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        policy: LpPolicy | None = None,
    ):
        super().__init__("position_adapter", config, policy=policy)
        self._tick_cache = Cache(Cache.MEMORY)

    async def _current_tick(
        self, chain_id: int, pool_address: str, pool_abi: list[dict[str, Any]]
    ) -> int:
        cache_key = f"tick:{int(chain_id)}:{pool_address.lower()}"
        cached = await self._tick_cache.get(cache_key)
        if cached is not None:
            return int(cached)

        async with web3_from_chain_id(chain_id) as web3:
            pool = web3.eth.contract(
                address=to_checksum_address(pool_address), abi=pool_abi
            )
            slot0 = await read_slot0(pool)
        tick = int(slot0["tick"])
        await self._tick_cache.set(
            cache_key, tick, ttl=int(self.policy.tick_cache_ttl_s)
        )
        return tick

    async def _read_position(
        self, resolved: ResolvedProtocol, pos_id: str
    ) -> PositionData:
        codec = get_codec(resolved.abi_variant)
        async with web3_from_chain_id(resolved.chain_id) as web3:
            npm = web3.eth.contract(address=resolved.mint_contract, abi=codec.nfpm_abi)
            raw = await npm.functions.positions(int(pos_id)).call(
                block_identifier="latest"
            )
        return codec.parse_position(raw)

    async def _from_aggregator(
        self, raw: dict[str, Any], records: dict[tuple[str, int], EvmLpRecord]
    ) -> Position | None:
        chain = raw.get("chain") if isinstance(raw.get("chain"), dict) else {}
        try:
            chain_id = int(chain.get("id") or raw.get("chainId") or 0)
        except (TypeError, ValueError):
            chain_id = 0
        chain_name = str(chain.get("name") or chain_id_to_name(chain_id)).lower()

        pos_id = str(raw.get("tokenId") or raw.get("posId") or "")
        if not pos_id:
            return None

        pool = raw.get("pool") if isinstance(raw.get("pool"), dict) else {}
        pool_address = str(pool.get("poolAddress") or raw.get("poolAddress") or "")
        proto = pool.get("protocol") or raw.get("protocol") or {}
        if isinstance(proto, dict):
            protocol_name = str(proto.get("name") or proto.get("key") or "unknown")
        else:
            protocol_name = str(proto)
        token0 = _position_token(raw, 0)
        token1 = _position_token(raw, 1)

        resolved = resolve_protocol(protocol_name, chain_id)
        tick_lower = tick_upper = 0
        current_tick: int | None = None
        if resolved is not None and pos_id.isdigit():
            try:
                position = await self._read_position(resolved, pos_id)
                tick_lower = position["tick_lower"]
                tick_upper = position["tick_upper"]
                if pool_address:
                    current_tick = await self._current_tick(
                        chain_id, pool_address, get_codec(resolved.abi_variant).pool_abi
                    )
            except Exception as exc:  # noqa: BLE001
                self.logger.warning(
                    f"Failed to read on-chain data for position {pos_id}: {exc}"
                )

        if current_tick is not None:
            in_range = is_in_range(tick_lower, tick_upper, current_tick)
            utilisation = range_utilisation(tick_lower, tick_upper, current_tick)
        else:
            in_range = raw.get("status") != "OUT_OF_RANGE"
            utilisation = 50 if in_range else 0

        pending = (raw.get("tradingFee") or {}).get("pending")
        fee0 = _entry(pending, 0)
        fee1 = _entry(pending, 1)
        fees_owed0 = _as_float(fee0.get("balance")) / (10**token0.decimals)
        fees_owed1 = _as_float(fee1.get("balance")) / (10**token1.decimals)
        fees_owed_usd = fees_owed0 * _as_float(fee0.get("price")) + fees_owed1 * _as_float(
            fee1.get("price")
        )

        amounts = raw.get("currentAmounts")
        value_usd = _usd_amount(_entry(amounts, 0), token0.decimals) + _usd_amount(
            _entry(amounts, 1), token1.decimals
        )

        record = records.get((pos_id, chain_id))
        if record is not None:
            opened_at = record.opened_at
        elif raw.get("openedTime"):
            opened_at = int(_as_float(raw["openedTime"]) * 1000)
        else:
            opened_at = _now_ms()

        return Position(
            pos_id=pos_id,
            chain_id=chain_id,
            chain_name=chain_name,
            protocol_key=resolved.key if resolved else protocol_name.lower(),
            pool_address=pool_address,
            token0=token0,
            token1=token1,
            value_usd=value_usd,
            in_range=in_range,
            range_utilisation_pct=utilisation,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            current_tick=current_tick or 0,
            fees_owed0=fees_owed0,
            fees_owed1=fees_owed1,
            fees_owed_usd=fees_owed_usd,
            opened_at=opened_at,
            source="aggregator",
        )

    async def _from_record(self, record: EvmLpRecord) -> Position | None:
        if not record.pos_id.isdigit():
            self.logger.warning(
                f"Skipping on-chain read for non-numeric position id {record.pos_id!r}"
            )
            return None

        resolved = resolve_protocol(record.protocol_key, record.chain_id)
        if resolved is None:
            self.logger.warning(
                f"No {record.protocol_key} deployment on chain {record.chain_id}; "
                f"cannot read position {record.pos_id}"
            )
            return None

        try:
            codec = get_codec(resolved.abi_variant)
            position = await self._read_position(resolved, record.pos_id)
            if position["liquidity"] == 0:
                self.logger.info(f"Position {record.pos_id} has no liquidity, treating as closed")
                return None

            (sym0, dec0), (sym1, dec1) = await asyncio.gather(
                get_erc20_symbol_and_decimals(position["token0"], record.chain_id),
                get_erc20_symbol_and_decimals(position["token1"], record.chain_id),
            )

            async with web3_from_chain_id(record.chain_id) as web3:
                factory = web3.eth.contract(
                    address=resolved.factory, abi=codec.factory_abi
                )
                pool_address = await find_pool(
                    factory,
                    position["token0"],
                    position["token1"],
                    codec.fee_or_spacing(position),
                )

            current_tick: int | None = None
            if pool_address:
                current_tick = await self._current_tick(
                    record.chain_id, pool_address, codec.pool_abi
                )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"On-chain read failed for position {record.pos_id}: {exc}")
            return _record_only_position(record, resolved.key)

        tick_lower = position["tick_lower"]
        tick_upper = position["tick_upper"]
        if current_tick is None:
            self.logger.warning(
                f"No pool found for position {record.pos_id}; range status unknown"
            )
            in_range = False
            utilisation = 0
        else:
            in_range = is_in_range(tick_lower, tick_upper, current_tick)
            utilisation = range_utilisation(tick_lower, tick_upper, current_tick)

        return Position(
            pos_id=record.pos_id,
            chain_id=record.chain_id,
            chain_name=record.chain_name or chain_id_to_name(record.chain_id),
            protocol_key=resolved.key,
            pool_address=pool_address or record.pool_address,
            token0=PoolToken(address=position["token0"], symbol=sym0, decimals=dec0),
            token1=PoolToken(address=position["token1"], symbol=sym1, decimals=dec1),
            value_usd=record.entry_usd,
            in_range=in_range,
            range_utilisation_pct=utilisation,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            current_tick=current_tick or 0,
            fees_owed0=to_human(position["tokens_owed0"], dec0),
            fees_owed1=to_human(position["tokens_owed1"], dec1),
            fees_owed_usd=0.0,
            opened_at=record.opened_at,
            source="onchain",
        )

    async def fetch_positions(
        self, owner: str, known_records: Iterable[EvmLpRecord] = ()
    ) -> list[Position]:
        records = {r.key: r for r in known_records}

        try:
            raw_positions = await KRYSTAL_CLIENT.get_positions(owner)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"Aggregator positions fetch failed: {exc}")
            raw_positions = []

        open_raw = [p for p in raw_positions if p.get("status") != "CLOSED"]
        from_api = await asyncio.gather(
            *[self._from_aggregator(raw, records) for raw in open_raw]
        )
        positions = [p for p in from_api if p is not None]

        seen = {(p.pos_id, p.chain_id) for p in positions}
        missing = [r for key, r in records.items() if key not in seen]
        if missing:
            self.logger.info(
                f"{len(missing)} tracked position(s) absent from aggregator, reading on-chain"
            )
            from_chain = await asyncio.gather(*[self._from_record(r) for r in missing])
            positions.extend(p for p in from_chain if p is not None)

        return positions

    @status_tuple
    async def get_positions(
        self, owner: str, known_records: Iterable[EvmLpRecord] = ()
    ) -> list[Position]:
        return await self.fetch_positions(owner, known_records)
