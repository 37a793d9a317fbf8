from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from eth_utils import keccak, to_checksum_address

from evm_lp_paths.adapters.funding_adapter.adapter import FundingAdapter
from evm_lp_paths.adapters.pool_discovery_adapter.adapter import PoolDiscoveryAdapter
from evm_lp_paths.core.adapters.BaseAdapter import BaseAdapter, dry_run_marker
from evm_lp_paths.core.adapters.collaborators import PRICE_ORACLE, PriceOracle
from evm_lp_paths.core.adapters.models import (
    ClaimResult,
    CloseResult,
    ErrorCode,
    OpenResult,
    Pool,
    RebalanceResult,
    ResolvedProtocol,
)
from evm_lp_paths.core.config import LpPolicy
from evm_lp_paths.core.constants.base import ADAPTER_LP, TRANSFER_EVENT_TOPIC
from evm_lp_paths.core.constants.chains import chain_id_to_name
from evm_lp_paths.core.registry import get_codec, resolve_protocol
from evm_lp_paths.core.utils.tick_math import (
    PositionData,
    collect_params,
    compute_tick_range,
    deadline,
    find_pool,
    read_slot0,
)
from evm_lp_paths.core.utils.tokens import (
    ensure_allowance,
    get_erc20_symbol_and_decimals,
    to_human,
)
from evm_lp_paths.core.utils.transaction import (
    SimulationRevertedError,
    encode_call,
    get_gas_price,
    get_pending_nonce,
    send_transaction_with_receipt,
    simulate_transaction,
)
from evm_lp_paths.core.utils.valuation import estimate_recovered_usd
from evm_lp_paths.core.utils.web3 import PROVIDER_POOL, web3_from_chain_id

DEFAULT_RANGE_WIDTH_TICKS = 400

INCREASE_LIQUIDITY_TOPIC = keccak(
    text="IncreaseLiquidity(uint256,uint128,uint256,uint256)"
).hex()
COLLECT_TOPIC = keccak(text="Collect(uint256,address,uint256,uint256)").hex()
_TRANSFER_TOPIC = TRANSFER_EVENT_TOPIC.removeprefix("0x").lower()


def _hex(value: Any) -> str:
    if isinstance(value, bytes | bytearray):
        return bytes(value).hex().lower()
    return str(value).removeprefix("0x").lower()


def _topics(log: dict[str, Any]) -> list[str]:
    return [_hex(t) for t in log.get("topics") or []]


def _from_contract(log: dict[str, Any], address: str) -> bool:
    return str(log.get("address") or "").lower() == address.lower()


def token_id_from_receipt(receipt: dict[str, Any], npm_address: str) -> str | None:
    """Minted NFT id, from the manager's own events first and then any ERC-721 mint."""
    logs = list(receipt.get("logs") or [])
    for log in logs:
        topics = _topics(log)
        if _from_contract(log, npm_address) and len(topics) >= 2:
            if topics[0] == INCREASE_LIQUIDITY_TOPIC:
                return str(int(topics[1], 16))
    for log in logs:
        topics = _topics(log)
        if _from_contract(log, npm_address) and len(topics) == 4:
            if topics[0] == _TRANSFER_TOPIC:
                return str(int(topics[3], 16))
    # ERC-20 Transfers have 3 topics; only ERC-721 carries the id as a 4th
    for log in logs:
        topics = _topics(log)
        if len(topics) == 4 and topics[0] == _TRANSFER_TOPIC:
            return str(int(topics[3], 16))
    return None


def collect_amounts_from_receipt(receipt: dict[str, Any]) -> tuple[int, int]:
    for log in receipt.get("logs") or []:
        topics = _topics(log)
        if topics and topics[0] == COLLECT_TOPIC:
            data = _hex(log.get("data") or "")
            # data = recipient | amount0 | amount1, 32 bytes each
            if len(data) >= 192:
                return int(data[64:128], 16), int(data[128:192], 16)
    return 0, 0


class LpAdapter(BaseAdapter):
    """Open, close, claim and rebalance concentrated-liquidity NFT positions.

    Each mutating call checks dry-run first and never touches the network in
    that mode. Failures come back as typed results with an ``ErrorCode``; only
    programming errors propagate.
    """

    adapter_type: str = ADAPTER_LP

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        wallet_address: str | None = None,
        sign_callback: Callable[[dict], Awaitable[bytes]] | None = None,
        funding_adapter: FundingAdapter | None = None,
        discovery_adapter: PoolDiscoveryAdapter | None = None,
        price_oracle: PriceOracle | None = None,
        policy: LpPolicy | None = None,
    ):
        super().__init__("lp_adapter", config, policy=policy)
        self._wallet_address = wallet_address
        self.sign_callback = sign_callback or PROVIDER_POOL.sign_callback
        self.price_oracle = price_oracle or PRICE_ORACLE
        self.funding = funding_adapter or FundingAdapter(
            config,
            price_oracle=self.price_oracle,
            sign_callback=self.sign_callback,
            policy=self.policy,
        )
        self.discovery = discovery_adapter or PoolDiscoveryAdapter(
            config, policy=self.policy
        )

    @property
    def wallet_address(self) -> str:
        if self._wallet_address:
            return to_checksum_address(self._wallet_address)
        return PROVIDER_POOL.wallet_address

    async def _read_position(
        self, resolved: ResolvedProtocol, token_id: int
    ) -> PositionData:
        codec = get_codec(resolved.abi_variant)
        async with web3_from_chain_id(resolved.chain_id) as web3:
            npm = web3.eth.contract(address=resolved.mint_contract, abi=codec.nfpm_abi)
            raw = await npm.functions.positions(int(token_id)).call(
                block_identifier="latest"
            )
        return codec.parse_position(raw)

    async def _send_npm_call(
        self,
        resolved: ResolvedProtocol,
        fn_name: str,
        args: list[Any],
        *,
        nonce: int | None = None,
    ) -> tuple[str, dict[str, Any]]:
        tx = await encode_call(
            target=resolved.mint_contract,
            abi=get_codec(resolved.abi_variant).nfpm_abi,
            fn_name=fn_name,
            args=args,
            from_address=self.wallet_address,
            chain_id=resolved.chain_id,
            nonce=nonce,
        )
        return await send_transaction_with_receipt(tx, self.sign_callback)

    async def _gas_cost_usd(self, chain_id: int) -> float:
        gas_price = await get_gas_price(chain_id)
        native_price = await self.price_oracle.get_native_token_price(chain_id)
        return self.policy.mint_gas_units * gas_price / 10**18 * native_price

    async def open_position(
        self,
        pool: Pool,
        deploy_usd: float,
        range_width_ticks: int = DEFAULT_RANGE_WIDTH_TICKS,
        bridge_source: int | None = None,
    ) -> OpenResult:
        if self.dry_run:
            marker = dry_run_marker()
            self.logger.info(
                f"[dry-run] open {pool.token0.symbol}/{pool.token1.symbol} "
                f"on {pool.chain_name} for ${deploy_usd:.2f}"
            )
            return OpenResult(success=True, pos_id=marker, tx_hash=marker, dry_run=True)

        resolved = resolve_protocol(pool.protocol_key, pool.chain_id)
        if resolved is None:
            return OpenResult(
                success=False,
                error=f"{pool.protocol_key} is not supported on chain {pool.chain_id}",
                error_code=ErrorCode.UNSUPPORTED_PROTOCOL,
            )
        codec = get_codec(resolved.abi_variant)
        wallet = self.wallet_address
        tick_lower = tick_upper = None

        try:
            async with web3_from_chain_id(pool.chain_id) as web3:
                factory = web3.eth.contract(address=resolved.factory, abi=codec.factory_abi)
                pool_address = await find_pool(
                    factory, pool.token0.address, pool.token1.address, pool.fee_tier
                )
                if pool_address is None:
                    return OpenResult(
                        success=False,
                        error=(
                            f"No {resolved.display_name} pool for "
                            f"{pool.token0.symbol}/{pool.token1.symbol} "
                            f"at {pool.fee_tier}"
                        ),
                        error_code=ErrorCode.POOL_NOT_FOUND,
                    )
                pool_contract = web3.eth.contract(address=pool_address, abi=codec.pool_abi)
                slot0 = await read_slot0(pool_contract)

            spacing = codec.tick_spacing(pool.fee_tier)
            tick_lower, tick_upper = compute_tick_range(
                slot0["tick"], range_width_ticks, spacing
            )
            self.logger.info(
                f"Opening {pool.token0.symbol}/{pool.token1.symbol} "
                f"ticks [{tick_lower}, {tick_upper}] around {slot0['tick']}"
            )

            funding = await self.funding.ensure_funded(
                pool,
                deploy_usd,
                wallet,
                bridge_source,
                sqrt_price_x96=slot0["sqrt_price_x96"],
            )
            if not funding.success:
                return OpenResult(
                    success=False,
                    error=funding.reason,
                    error_code=funding.error_code,
                    tick_lower=tick_lower,
                    tick_upper=tick_upper,
                )

            token0, token1 = pool.token0.address, pool.token1.address
            amount0, amount1 = funding.amount0, funding.amount1
            if int(token0, 16) > int(token1, 16):
                token0, token1 = token1, token0
                amount0, amount1 = amount1, amount0

            gas_usd = await self._gas_cost_usd(pool.chain_id)
            gas_cap = deploy_usd * self.policy.max_gas_pct_of_deploy / 100
            if gas_usd > gas_cap:
                return OpenResult(
                    success=False,
                    error=f"Mint gas ${gas_usd:.2f} exceeds ${gas_cap:.2f} cap",
                    error_code=ErrorCode.GAS_TOO_EXPENSIVE,
                    tick_lower=tick_lower,
                    tick_upper=tick_upper,
                )

            for token, amount in ((token0, amount0), (token1, amount1)):
                if amount > 0:
                    await ensure_allowance(
                        token_address=token,
                        owner=wallet,
                        spender=resolved.mint_contract,
                        amount=amount,
                        chain_id=pool.chain_id,
                        signing_callback=self.sign_callback,
                    )

            params = codec.mint_params(
                token0=token0,
                token1=token1,
                fee_or_spacing=pool.fee_tier,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                amount0_desired=amount0,
                amount1_desired=amount1,
                recipient=wallet,
                deadline=deadline(self.policy.deadline_s),
            )
            tx = await encode_call(
                target=resolved.mint_contract,
                abi=codec.nfpm_abi,
                fn_name="mint",
                args=[params],
                from_address=wallet,
                chain_id=pool.chain_id,
            )
            try:
                await simulate_transaction(tx)
            except SimulationRevertedError as exc:
                return OpenResult(
                    success=False,
                    error=f"Mint would revert: {exc.reason}",
                    error_code=ErrorCode.MINT_WOULD_REVERT,
                    tick_lower=tick_lower,
                    tick_upper=tick_upper,
                )

            tx_hash, receipt = await send_transaction_with_receipt(tx, self.sign_callback)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"Open position failed: {exc}")
            return OpenResult(
                success=False,
                error=str(exc),
                error_code=ErrorCode.TX_FAILED,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
            )

        pos_id = token_id_from_receipt(receipt, resolved.mint_contract)
        if pos_id is None:
            self.logger.warning(f"No token id in mint receipt {tx_hash}")
            pos_id = f"unknown-{tx_hash[:12]}"
        self.logger.info(f"Minted position {pos_id} ({tx_hash})")
        return OpenResult(
            success=True,
            pos_id=pos_id,
            tx_hash=tx_hash,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
        )

    def _resolve_position(
        self, pos_id: str, protocol_key: str, chain_id: int
    ) -> tuple[ResolvedProtocol | None, str | None, ErrorCode | None]:
        resolved = resolve_protocol(protocol_key, chain_id)
        if resolved is None:
            reason = f"{protocol_key} is not supported on chain {chain_id}"
            return None, reason, ErrorCode.UNSUPPORTED_PROTOCOL
        if not str(pos_id).isdigit():
            reason = f"Position id {pos_id!r} is not an NFT token id"
            return None, reason, ErrorCode.INVALID_POSITION
        return resolved, None, None

    async def _token_metadata(
        self, token_address: str, chain_id: int, symbol_hint: str | None
    ) -> tuple[str, int]:
        try:
            return await get_erc20_symbol_and_decimals(token_address, chain_id)
        except Exception as exc:  # noqa: BLE001
            if not symbol_hint:
                raise
            self.logger.warning(
                f"Metadata read for {token_address} failed ({exc}); "
                f"using hint {symbol_hint} with 18 decimals"
            )
            return symbol_hint, 18

    async def close_position(
        self,
        pos_id: str,
        protocol_key: str,
        chain_id: int,
        token0: str | None = None,
        token1: str | None = None,
    ) -> CloseResult:
        """Withdraw all liquidity, collect everything owed, then burn the NFT.

        ``token0``/``token1`` are optional symbol hints for the USD estimate, used
        only when a token's on-chain metadata cannot be read.
        """
        if self.dry_run:
            marker = dry_run_marker()
            self.logger.info(f"[dry-run] close position {pos_id} on chain {chain_id}")
            return CloseResult(
                success=True,
                tx_hash=marker,
                chain_name=chain_id_to_name(chain_id),
                dry_run=True,
            )

        resolved, error, code = self._resolve_position(pos_id, protocol_key, chain_id)
        if resolved is None:
            return CloseResult(success=False, error=error, error_code=code)
        token_id = int(pos_id)
        wallet = self.wallet_address
        codec = get_codec(resolved.abi_variant)

        try:
            position = await self._read_position(resolved, token_id)
            nonce = await get_pending_nonce(chain_id, wallet)

            if position["liquidity"] > 0:
                decrease = (token_id, position["liquidity"], 0, 0, deadline(self.policy.deadline_s))
                await self._send_npm_call(
                    resolved, "decreaseLiquidity", [decrease], nonce=nonce
                )
                nonce += 1
            else:
                self.logger.info(f"Position {pos_id} has no liquidity, collecting only")

            tx_hash, receipt = await self._send_npm_call(
                resolved, "collect", [collect_params(token_id, wallet)], nonce=nonce
            )
            nonce += 1
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"Close {pos_id} failed: {exc}")
            return CloseResult(success=False, error=str(exc), error_code=ErrorCode.TX_FAILED)

        burned = False
        try:
            await self._send_npm_call(resolved, "burn", [token_id], nonce=nonce)
            burned = True
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"Burn of position {pos_id} failed (funds already collected): {exc}")

        amount0, amount1 = collect_amounts_from_receipt(receipt)
        value_usd = 0.0
        try:
            (sym0, dec0), (sym1, dec1) = await asyncio.gather(
                self._token_metadata(position["token0"], chain_id, token0),
                self._token_metadata(position["token1"], chain_id, token1),
            )
            native_price = await self.price_oracle.get_native_token_price(chain_id)
            value_usd = estimate_recovered_usd(
                to_human(amount0, dec0),
                to_human(amount1, dec1),
                sym0,
                sym1,
                native_price,
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"Could not value recovered tokens for {pos_id}: {exc}")

        self.logger.info(
            f"Closed position {pos_id}: recovered {amount0}/{amount1} (~${value_usd:.2f})"
        )
        return CloseResult(
            success=True,
            tx_hash=tx_hash,
            amount0_recovered=amount0,
            amount1_recovered=amount1,
            value_recovered_usd=value_usd,
            fee_or_spacing=codec.fee_or_spacing(position),
            chain_name=chain_id_to_name(chain_id),
            burned=burned,
        )

    async def claim_fees(self, pos_id: str, protocol_key: str, chain_id: int) -> ClaimResult:
        if self.dry_run:
            marker = dry_run_marker()
            self.logger.info(f"[dry-run] claim fees for position {pos_id}")
            return ClaimResult(success=True, tx_hash=marker, dry_run=True)

        resolved, error, code = self._resolve_position(pos_id, protocol_key, chain_id)
        if resolved is None:
            return ClaimResult(success=False, error=error, error_code=code)

        try:
            tx_hash, receipt = await self._send_npm_call(
                resolved, "collect", [collect_params(int(pos_id), self.wallet_address)]
            )
        except Exception as exc:  # noqa: BLE001
            self.logger.error(f"Claim for {pos_id} failed: {exc}")
            return ClaimResult(success=False, error=str(exc), error_code=ErrorCode.TX_FAILED)

        amount0, amount1 = collect_amounts_from_receipt(receipt)
        self.logger.info(f"Claimed fees for {pos_id}: {amount0}/{amount1}")
        return ClaimResult(
            success=True, tx_hash=tx_hash, amount0_claimed=amount0, amount1_claimed=amount1
        )

    async def rebalance_position(
        self,
        pos_id: str,
        protocol_key: str,
        chain_id: int,
        range_width_ticks: int = DEFAULT_RANGE_WIDTH_TICKS,
        close_only: bool = False,
        token0: str | None = None,
        token1: str | None = None,
    ) -> RebalanceResult:
        close = await self.close_position(pos_id, protocol_key, chain_id, token0, token1)
        if not close.success:
            return RebalanceResult(close_result=close)
        if close_only:
            return RebalanceResult(close_result=close, close_only_reason="close_only requested")
        if self.dry_run:
            marker = dry_run_marker()
            return RebalanceResult(
                close_result=close,
                open_result=OpenResult(success=True, pos_id=marker, tx_hash=marker, dry_run=True),
            )

        min_tvl = self.policy.rebalance_min_tvl_usd
        target = await self.discovery.top_pool_for_chain(chain_id, min_tvl_usd=min_tvl)
        if target is None:
            reason = f"No pool on chain {chain_id} with TVL >= ${min_tvl:,.0f}; funds left in wallet"
            self.logger.warning(reason)
            return RebalanceResult(close_result=close, close_only_reason=reason)

        if close.value_recovered_usd > 1:
            deploy_usd = close.value_recovered_usd
        else:
            deploy_usd = self.policy.max_deploy_usd * 0.5
        self.logger.info(
            f"Rebalancing {pos_id} into {target.token0.symbol}/{target.token1.symbol} "
            f"({target.protocol_name}) with ${deploy_usd:.2f}"
        )
        opened = await self.open_position(target, deploy_usd, range_width_ticks)
        return RebalanceResult(close_result=close, open_result=opened)
