from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from eth_utils import to_checksum_address

from evm_lp_paths.core.adapters.BaseAdapter import BaseAdapter
from evm_lp_paths.core.adapters.collaborators import (
    PRICE_ORACLE,
    BridgeService,
    NullBridgeService,
    NullSwapService,
    PriceOracle,
    SwapService,
)
from evm_lp_paths.core.adapters.models import ErrorCode, FundingResult, Pool
from evm_lp_paths.core.config import LpPolicy
from evm_lp_paths.core.constants.base import ADAPTER_FUNDING, BRIDGE_MAX_WAIT_S
from evm_lp_paths.core.constants.contracts import wrapped_native_address
from evm_lp_paths.core.registry import get_codec, resolve_protocol
from evm_lp_paths.core.utils.tick_math import read_slot0, sqrt_price_x96_to_price
from evm_lp_paths.core.utils.token_refs import resolve_token_address
from evm_lp_paths.core.utils.tokens import (
    build_wrap_transaction,
    get_token_balance,
    get_token_balance_with_decimals,
    to_human,
    to_raw,
)
from evm_lp_paths.core.utils.transaction import send_transaction
from evm_lp_paths.core.utils.valuation import pair_usd_prices
from evm_lp_paths.core.utils.web3 import PROVIDER_POOL, web3_from_chain_id

_STABLE_FUNDING_SYMBOLS = ("USDC", "USDT")


@dataclass(frozen=True)
class _Assessment:
    """Wallet holdings against the per-side cap (raw units)."""

    balance0: int
    balance1: int
    max0: int
    max1: int
    usd0: float
    usd1: float
    decimals0: int
    decimals1: int

    @property
    def amount0(self) -> int:
        return min(self.balance0, self.max0)

    @property
    def amount1(self) -> int:
        return min(self.balance1, self.max1)

    @property
    def pct0(self) -> float:
        return self.amount0 * 100 / self.max0 if self.max0 > 0 else 0.0

    @property
    def pct1(self) -> float:
        return self.amount1 * 100 / self.max1 if self.max1 > 0 else 0.0

    @property
    def value0_usd(self) -> float:
        return to_human(self.amount0, self.decimals0) * self.usd0

    @property
    def value1_usd(self) -> float:
        return to_human(self.amount1, self.decimals1) * self.usd1

    @property
    def held_usd(self) -> float:
        return self.value0_usd + self.value1_usd


class FundingAdapter(BaseAdapter):
    """Acquire both sides of an LP pair before a mint.

    Phases run in order (bridge, swap, wrap, zap) and each one is best-effort:
    its failure is logged and the next phase works with whatever balance is
    there. Only the final abort checks decide the outcome.
    """

    adapter_type: str = ADAPTER_FUNDING

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        swap_service: SwapService | None = None,
        bridge_service: BridgeService | None = None,
        price_oracle: PriceOracle | None = None,
        sign_callback: Callable[[dict], Awaitable[bytes]] | None = None,
        policy: LpPolicy | None = None,
    ):
        super().__init__("funding_adapter", config, policy=policy)
        self.swap_service = swap_service or NullSwapService()
        self.bridge_service = bridge_service or NullBridgeService()
        self.price_oracle = price_oracle or PRICE_ORACLE
        self.sign_callback = sign_callback or PROVIDER_POOL.sign_callback

    async def _balances(self, pool: Pool, wallet: str) -> tuple[int, int]:
        results = await asyncio.gather(
            get_token_balance(pool.token0.address, pool.chain_id, wallet),
            get_token_balance(pool.token1.address, pool.chain_id, wallet),
            return_exceptions=True,
        )
        balances = []
        for token, result in zip((pool.token0, pool.token1), results, strict=True):
            if isinstance(result, BaseException):
                self.logger.warning(f"Balance read failed for {token.symbol}: {result}")
                balances.append(0)
            else:
                balances.append(int(result))
        return balances[0], balances[1]

    async def read_sqrt_price(self, pool: Pool) -> int:
        resolved = resolve_protocol(pool.protocol_key, pool.chain_id)
        if resolved is None:
            raise ValueError(f"Unsupported protocol {pool.protocol_key} on chain {pool.chain_id}")
        async with web3_from_chain_id(pool.chain_id) as web3:
            contract = web3.eth.contract(
                address=to_checksum_address(pool.pool_address),
                abi=get_codec(resolved.abi_variant).pool_abi,
            )
            slot0 = await read_slot0(contract)
        return int(slot0["sqrt_price_x96"])

    async def token_usd_prices(self, pool: Pool, sqrt_price_x96: int) -> tuple[float, float]:
        price0_in_1 = sqrt_price_x96_to_price(
            sqrt_price_x96, pool.token0.decimals, pool.token1.decimals
        )
        native_price = await self.price_oracle.get_native_token_price(pool.chain_id)
        return pair_usd_prices(
            pool.token0.symbol, pool.token1.symbol, price0_in_1, native_price
        )

    async def _assess(
        self, pool: Pool, wallet: str, target_usd: float, usd0: float, usd1: float
    ) -> _Assessment:
        balance0, balance1 = await self._balances(pool, wallet)
        half_usd = target_usd / 2
        max0 = to_raw(half_usd / usd0, pool.token0.decimals) if usd0 > 0 else 0
        max1 = to_raw(half_usd / usd1, pool.token1.decimals) if usd1 > 0 else 0
        return _Assessment(
            balance0=balance0,
            balance1=balance1,
            max0=max0,
            max1=max1,
            usd0=usd0,
            usd1=usd1,
            decimals0=pool.token0.decimals,
            decimals1=pool.token1.decimals,
        )

    async def _bridge(
        self, pool: Pool, gap_usd: float, wallet: str, source_chain_id: int
    ) -> str:
        source_usdc = self.bridge_service.resolve_token_address(
            source_chain_id, "USDC"
        ) or resolve_token_address(source_chain_id, "USDC")
        if not source_usdc:
            return "skipped: no USDC on source chain"

        source_balance = await self.bridge_service.get_balance(
            source_chain_id, source_usdc, wallet
        )
        if source_balance < gap_usd:
            self.logger.warning(
                f"Insufficient USDC on chain {source_chain_id}: "
                f"${source_balance:.2f} < ${gap_usd:.2f}"
            )
            return "skipped: insufficient source balance"

        result = await self.bridge_service.bridge(
            source_chain_id, pool.chain_id, "USDC", gap_usd, wallet, wallet
        )
        if not result.success or not result.tx_hash:
            self.logger.warning(f"Bridge failed: {result.error}")
            return f"failed: {result.error}"

        try:
            status = await asyncio.wait_for(
                self.bridge_service.await_completion(result.tx_hash, source_chain_id),
                timeout=BRIDGE_MAX_WAIT_S,
            )
        except TimeoutError:
            status = "TIMEOUT"
        if status != "DONE":
            self.logger.warning(f"Bridge {status}, proceeding with available balance")
        else:
            self.logger.info(f"Bridged ${gap_usd:.2f} USDC to chain {pool.chain_id}")
        return status.lower()

    async def _quoted_swap(
        self,
        pool: Pool,
        token_in: str,
        token_out: str,
        amount_in_human: float,
        label: str,
    ) -> str:
        quote = await self.swap_service.quote(
            pool.chain_id, token_in, token_out, amount_in_human, pool.fee_tier
        )
        if quote is None:
            self.logger.warning(f"{label}: no quote available")
            return "skipped: no quote"
        if quote.price_impact_pct > self.policy.max_price_impact_pct:
            self.logger.warning(
                f"{label}: price impact {quote.price_impact_pct:.1f}% > "
                f"{self.policy.max_price_impact_pct}%, skipping"
            )
            return "skipped: price impact"
        result = await self.swap_service.execute(
            pool.chain_id, token_in, token_out, amount_in_human, pool.fee_tier
        )
        if not result.success:
            self.logger.warning(f"{label} failed: {result.error}")
            return f"failed: {result.error}"
        self.logger.info(f"{label}: swapped {amount_in_human:.6f}")
        return "done"

    async def _stable_source(self, pool: Pool, wallet: str) -> tuple[str, str, float] | None:
        for symbol in _STABLE_FUNDING_SYMBOLS:
            address = resolve_token_address(pool.chain_id, symbol)
            if not address:
                continue
            raw, decimals = await get_token_balance_with_decimals(
                address, pool.chain_id, wallet
            )
            balance = to_human(raw, decimals)
            if balance > self.policy.min_swap_usd:
                return symbol, address, balance
        return None

    async def _swap_stables(
        self, pool: Pool, wallet: str, state: _Assessment, target_usd: float
    ) -> str:
        source = await self._stable_source(pool, wallet)
        if source is None:
            return "skipped: no stablecoin balance"
        symbol, stable_address, stable_balance = source

        half_usd = target_usd / 2
        deficits: dict[int, float] = {}
        sides = (
            (0, pool.token0, state.pct0, state.value0_usd),
            (1, pool.token1, state.pct1, state.value1_usd),
        )
        for idx, token, pct, value_usd in sides:
            if token.address.lower() == stable_address.lower():
                continue
            if pct < self.policy.swap_trigger_pct:
                deficits[idx] = max(0.0, half_usd - value_usd)
        total_deficit = sum(deficits.values())
        if total_deficit <= 0:
            return "skipped: no underfunded side"

        budget = min(stable_balance, total_deficit)
        outcomes = []
        for idx, deficit in deficits.items():
            token = pool.token0 if idx == 0 else pool.token1
            amount = budget * deficit / total_deficit
            if amount <= self.policy.min_swap_usd:
                continue
            outcomes.append(
                await self._quoted_swap(
                    pool,
                    stable_address,
                    token.address,
                    amount,
                    f"Swap {symbol}->{token.symbol}",
                )
            )
        return ", ".join(outcomes) or "skipped: below minimum"

    async def _wrap_native(
        self, pool: Pool, wallet: str, state: _Assessment, target_usd: float
    ) -> str:
        wrapped = wrapped_native_address(pool.chain_id)
        if not wrapped:
            return "skipped: no wrapped native"
        needs_wrap = (
            pool.token0.address.lower() == wrapped.lower()
            and state.pct0 < self.policy.swap_trigger_pct
        ) or (
            pool.token1.address.lower() == wrapped.lower()
            and state.pct1 < self.policy.swap_trigger_pct
        )
        if not needs_wrap:
            return "skipped: not needed"

        native = to_human(await get_token_balance(None, pool.chain_id, wallet), 18)
        spendable = native - self.policy.gas_reserve_native
        if spendable <= 0:
            return "skipped: native balance within gas reserve"
        native_price = await self.price_oracle.get_native_token_price(pool.chain_id)
        amount = min(spendable, (target_usd / 2) / native_price)
        if amount <= 0:
            return "skipped: nothing to wrap"

        tx = await build_wrap_transaction(wallet, pool.chain_id, wrapped, to_raw(amount, 18))
        await send_transaction(tx, self.sign_callback)
        self.logger.info(f"Wrapped {amount:.4f} native (${amount * native_price:.2f})")
        return "done"

    async def _zap(self, pool: Pool, state: _Assessment) -> str:
        negligible = self.policy.negligible_pct
        if state.pct0 >= negligible and state.pct1 < negligible:
            held, missing, amount, usd = pool.token0, pool.token1, state.amount0, state.usd0
        elif state.pct1 >= negligible and state.pct0 < negligible:
            held, missing, amount, usd = pool.token1, pool.token0, state.amount1, state.usd1
        else:
            return "skipped: not needed"

        half_human = to_human(amount // 2, held.decimals)
        if half_human * usd <= self.policy.min_swap_usd:
            return "skipped: below minimum"
        self.logger.info(
            f"Zap: holding {held.symbol} only, swapping half into {missing.symbol}"
        )
        return await self._quoted_swap(
            pool, held.address, missing.address, half_human, f"Zap {held.symbol}->{missing.symbol}"
        )

    async def _run_phase(self, name: str, phases: dict[str, str], coro) -> bool:
        try:
            phases[name] = await coro
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(f"{name} phase failed (non-fatal): {exc}")
            phases[name] = f"failed: {exc}"
        return "done" in phases[name]

    async def ensure_funded(
        self,
        pool: Pool,
        target_usd: float,
        wallet: str,
        bridge_source: int | None = None,
        *,
        sqrt_price_x96: int | None = None,
    ) -> FundingResult:
        policy = self.policy
        if sqrt_price_x96 is None:
            sqrt_price_x96 = await self.read_sqrt_price(pool)
        usd0, usd1 = await self.token_usd_prices(pool, sqrt_price_x96)
        state = await self._assess(pool, wallet, target_usd, usd0, usd1)
        phases: dict[str, str] = {}

        if (
            bridge_source is not None
            and int(bridge_source) != pool.chain_id
            and state.held_usd < target_usd * policy.bridge_trigger_pct / 100
        ):
            gap = target_usd - state.held_usd
            await self._run_phase(
                "bridge", phases, self._bridge(pool, gap, wallet, int(bridge_source))
            )
            state = await self._assess(pool, wallet, target_usd, usd0, usd1)

        if min(state.pct0, state.pct1) < policy.swap_trigger_pct:
            if await self._run_phase(
                "swap", phases, self._swap_stables(pool, wallet, state, target_usd)
            ):
                state = await self._assess(pool, wallet, target_usd, usd0, usd1)

        if await self._run_phase(
            "wrap", phases, self._wrap_native(pool, wallet, state, target_usd)
        ):
            state = await self._assess(pool, wallet, target_usd, usd0, usd1)

        if await self._run_phase("zap", phases, self._zap(pool, state)):
            state = await self._assess(pool, wallet, target_usd, usd0, usd1)

        def _fail(code: ErrorCode, reason: str) -> FundingResult:
            self.logger.warning(f"Funding aborted ({code}): {reason}")
            return FundingResult(
                success=False,
                amount0=state.amount0,
                amount1=state.amount1,
                usd0=state.value0_usd,
                usd1=state.value1_usd,
                reason=reason,
                error_code=code,
                phases=phases,
            )

        negligible = policy.negligible_pct
        sym0, sym1 = pool.token0.symbol, pool.token1.symbol
        if state.pct0 < negligible and state.pct1 < negligible:
            return _fail(
                ErrorCode.FUNDING_FAILED,
                f"No usable {sym0} or {sym1} balance on chain {pool.chain_id}",
            )
        if state.pct0 < negligible or state.pct1 < negligible:
            held = sym0 if state.pct0 >= negligible else sym1
            missing = sym1 if held == sym0 else sym0
            return _fail(
                ErrorCode.ONE_SIDED_FUNDING,
                f"Failed to acquire {missing}: cannot mint in-range LP with only {held}",
            )
        if state.held_usd < target_usd * policy.min_funded_pct / 100:
            return _fail(
                ErrorCode.NOT_WORTH_GAS,
                f"Only ${state.held_usd:.2f} of ${target_usd:.2f} funded",
            )

        self.logger.info(
            f"Funded {sym0}/{sym1}: ${state.value0_usd:.2f} + ${state.value1_usd:.2f}"
        )
        return FundingResult(
            success=True,
            amount0=state.amount0,
            amount1=state.amount1,
            usd0=state.value0_usd,
            usd1=state.value1_usd,
            phases=phases,
        )
