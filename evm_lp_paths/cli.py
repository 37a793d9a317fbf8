"""Command line entry point for the LP engine.

Usage:
  evm-lp discover --chain-id 8453 --limit 10
  evm-lp positions
  evm-lp open --chain-id 8453 --pool-address 0x... --deploy-usd 250
  evm-lp --dry-run rebalance 123456 --protocol uniswap-v3 --chain-id 8453
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable
from pathlib import Path
from typing import Any

import click
from loguru import logger
from pydantic import BaseModel

from evm_lp_paths.adapters.balance_adapter.adapter import BalanceAdapter
from evm_lp_paths.adapters.lp_adapter.adapter import (
    DEFAULT_RANGE_WIDTH_TICKS,
    LpAdapter,
)
from evm_lp_paths.adapters.pool_discovery_adapter.adapter import PoolDiscoveryAdapter
from evm_lp_paths.adapters.position_adapter.adapter import PositionAdapter
from evm_lp_paths.core.adapters.models import EvmLpRecord, model_payload
from evm_lp_paths.core.clients.KrystalClient import KRYSTAL_CLIENT
from evm_lp_paths.core.config import CONFIG, load_config
from evm_lp_paths.core.utils.web3 import PROVIDER_POOL


def _echo_json(data: Any) -> None:
    if isinstance(data, BaseModel):
        data = model_payload(data)
    elif isinstance(data, list):
        data = [model_payload(d) if isinstance(d, BaseModel) else d for d in data]
    click.echo(json.dumps(data, indent=2, default=str))


async def _with_cleanup(coro: Awaitable[Any]) -> Any:
    try:
        return await coro
    finally:
        await KRYSTAL_CLIENT.close()
        await PROVIDER_POOL.close()


def _run(coro: Awaitable[Any]) -> Any:
    return asyncio.run(_with_cleanup(coro))


def _load_records(path: Path | None) -> list[EvmLpRecord]:
    if path is None:
        return []
    raw = json.loads(path.read_text())
    return [EvmLpRecord.model_validate(item) for item in raw]


@click.group(name="evm-lp", help="Concentrated-liquidity LP manager for EVM chains.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.json (defaults to the project root).",
)
@click.option(
    "--dry-run/--live",
    default=None,
    help="Simulate writes without touching the chain (overrides config).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
def cli(config_path: Path | None, dry_run: bool | None, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path is not None:
        load_config(config_path, require_exists=True)
        PROVIDER_POOL.reset()
    if dry_run is not None:
        CONFIG["dry_run"] = dry_run


@cli.command(name="discover", help="Rank LP pools across the discovery chains.")
@click.option("--chain-id", type=int, default=None, help="Only show pools on this chain.")
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--refresh", is_flag=True, help="Ignore the cached snapshot.")
def discover_cmd(chain_id: int | None, limit: int, refresh: bool) -> None:
    adapter = PoolDiscoveryAdapter()
    ok, pools = _run(adapter.get_pools(chain_id=chain_id, force_refresh=refresh, limit=limit))
    if not ok:
        raise click.ClickException(str(pools))
    _echo_json(pools)


@cli.command(name="positions", help="List open LP positions for a wallet.")
@click.option("--wallet", default=None, help="Owner address (defaults to the configured key).")
@click.option(
    "--records",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON list of tracked positions to reconcile on-chain.",
)
def positions_cmd(wallet: str | None, records: Path | None) -> None:
    owner = wallet or PROVIDER_POOL.wallet_address
    ok, positions = _run(PositionAdapter().get_positions(owner, _load_records(records)))
    if not ok:
        raise click.ClickException(str(positions))
    _echo_json(positions)


@cli.command(name="balances", help="Stablecoin and gas balances on every configured chain.")
@click.option("--wallet", default=None)
def balances_cmd(wallet: str | None) -> None:
    _echo_json(_run(BalanceAdapter().get_multi_chain_balances(wallet)))


@cli.command(name="open", help="Fund and mint a new position in a discovered pool.")
@click.option("--chain-id", type=int, required=True)
@click.option("--pool-address", required=True)
@click.option("--deploy-usd", type=float, required=True)
@click.option("--range-width", type=int, default=DEFAULT_RANGE_WIDTH_TICKS, show_default=True)
@click.option("--bridge-source", type=int, default=None, help="Chain to bridge USDC from.")
def open_cmd(
    chain_id: int,
    pool_address: str,
    deploy_usd: float,
    range_width: int,
    bridge_source: int | None,
) -> None:
    async def _open():
        discovery = PoolDiscoveryAdapter()
        pools = await discovery.discover_pools()
        pool = next(
            (p for p in pools if p.key == (chain_id, pool_address.lower())), None
        )
        if pool is None:
            return None
        adapter = LpAdapter(discovery_adapter=discovery)
        return await adapter.open_position(pool, deploy_usd, range_width, bridge_source)

    result = _run(_open())
    if result is None:
        raise click.ClickException(
            f"Pool {pool_address} on chain {chain_id} is not in the discovery set"
        )
    _echo_json(result)


@cli.command(name="close", help="Withdraw, collect and burn a position.")
@click.argument("pos_id")
@click.option("--protocol", "protocol_key", required=True)
@click.option("--chain-id", type=int, required=True)
@click.option("--token0", default=None, help="Symbol hint for valuation.")
@click.option("--token1", default=None, help="Symbol hint for valuation.")
def close_cmd(
    pos_id: str, protocol_key: str, chain_id: int, token0: str | None, token1: str | None
) -> None:
    result = _run(LpAdapter().close_position(pos_id, protocol_key, chain_id, token0, token1))
    _echo_json(result)


@cli.command(name="claim", help="Collect accrued fees without touching liquidity.")
@click.argument("pos_id")
@click.option("--protocol", "protocol_key", required=True)
@click.option("--chain-id", type=int, required=True)
def claim_cmd(pos_id: str, protocol_key: str, chain_id: int) -> None:
    _echo_json(_run(LpAdapter().claim_fees(pos_id, protocol_key, chain_id)))


@cli.command(name="rebalance", help="Close a position and reopen in the best pool on its chain.")
@click.argument("pos_id")
@click.option("--protocol", "protocol_key", required=True)
@click.option("--chain-id", type=int, required=True)
@click.option("--range-width", type=int, default=DEFAULT_RANGE_WIDTH_TICKS, show_default=True)
@click.option("--close-only", is_flag=True)
@click.option("--token0", default=None)
@click.option("--token1", default=None)
def rebalance_cmd(
    pos_id: str,
    protocol_key: str,
    chain_id: int,
    range_width: int,
    close_only: bool,
    token0: str | None,
    token1: str | None,
) -> None:
    result = _run(
        LpAdapter().rebalance_position(
            pos_id, protocol_key, chain_id, range_width, close_only, token0, token1
        )
    )
    _echo_json(result)


def main():
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
