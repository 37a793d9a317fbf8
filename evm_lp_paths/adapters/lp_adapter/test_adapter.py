from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from evm_lp_paths.adapters.lp_adapter.adapter import (
    COLLECT_TOPIC,
    INCREASE_LIQUIDITY_TOPIC,
    LpAdapter,
    collect_amounts_from_receipt,
    token_id_from_receipt,
)
from evm_lp_paths.core.adapters.collaborators import PriceOracle
from evm_lp_paths.core.adapters.models import (
    CloseResult,
    ErrorCode,
    FundingResult,
    OpenResult,
    Pool,
    PoolToken,
)
from evm_lp_paths.core.constants.base import TRANSFER_EVENT_TOPIC
from evm_lp_paths.core.utils.transaction import SimulationRevertedError

MODULE = "evm_lp_paths.adapters.lp_adapter.adapter"

WALLET = "0xaAaAaAaaAaAaAaaAaAAAAAAAAaaaAaAaAaaAaaAa"
WETH = "0x4200000000000000000000000000000000000006"
USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
POOL = "0xd0b53D9277642d899DF5C87A3966A349A798F224"
BASE_NPM = "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1"
BASE_FACTORY = "0x33128a8fC17869897dcE68Ed026d694621f6FDfD"
ZERO = "0x0000000000000000000000000000000000000000"


def _word(value: int) -> str:
    return format(int(value), "064x")


def _collect_log(amount0: int, amount1: int) -> dict:
    return {
        "address": BASE_NPM,
        "topics": ["0x" + COLLECT_TOPIC, "0x" + _word(1)],
        "data": "0x" + _word(int(WALLET, 16)) + _word(amount0) + _word(amount1),
    }


def _pool(token0=WETH, symbol0="WETH", dec0=18, token1=USDC, symbol1="USDC", dec1=6, **kw):
    fields = dict(
        chain_id=8453,
        chain_name="base",
        protocol_key="uniswap-v3",
        protocol_name="Uniswap V3",
        pool_address=POOL,
        token0=PoolToken(address=token0, symbol=symbol0, decimals=dec0),
        token1=PoolToken(address=token1, symbol=symbol1, decimals=dec1),
        fee_tier=500,
        tvl_usd=5_000_000,
        apr7d=25,
    )
    fields.update(kw)
    return Pool(**fields)


class _FakeCall:
    def __init__(self, rv=None):
        self._rv = rv

    async def call(self, *args, **kwargs):
        return self._rv


class _FakeContract:
    """Answers getPool / slot0 / positions, whichever the address is used for."""

    def __init__(self, *, pool_addr=POOL, tick=100, liquidity=1000):
        self._pool_addr = pool_addr
        self._tick = tick
        self._liquidity = liquidity

    @property
    def functions(self):
        return self

    def getPool(self, token_a, token_b, fee):  # noqa: N802
        return _FakeCall(self._pool_addr)

    def slot0(self):
        return _FakeCall((79228162514264337593543950336, self._tick, 0, 0, 0, 0, True))

    def positions(self, token_id):
        return _FakeCall((0, ZERO, WETH, USDC, 500, -600, 600, self._liquidity, 0, 0, 0, 0))


class _Web3Ctx:
    def __init__(self, contract: _FakeContract):
        self._contract = contract

    async def __aenter__(self):
        w3 = MagicMock()
        w3.eth.contract.return_value = self._contract
        return w3

    async def __aexit__(self, *a):
        pass


def _encode(**kwargs):
    return {"fn": kwargs["fn_name"], "args": kwargs["args"], "nonce": kwargs.get("nonce")}


def _funding(success=True, amount0=2 * 10**17, amount1=500 * 10**6, **kw):
    funding = MagicMock()
    funding.ensure_funded = AsyncMock(
        return_value=FundingResult(success=success, amount0=amount0, amount1=amount1, **kw)
    )
    return funding


def _adapter(config=None, funding=None, discovery=None) -> LpAdapter:
    return LpAdapter(
        config or {"dry_run": False},
        wallet_address=WALLET,
        sign_callback=AsyncMock(return_value=b"signed"),
        funding_adapter=funding or _funding(),
        discovery_adapter=discovery or MagicMock(),
        price_oracle=PriceOracle({"ETH": 2500}),
    )


class _OpenEnv:
    """Patches every chain touchpoint of ``open_position``."""

    def __init__(self, *, contract=None, gas_price=10**9, receipt=None, simulate_exc=None):
        self.contract = contract or _FakeContract()
        self.encode = AsyncMock(side_effect=_encode)
        self.allowance = AsyncMock(return_value=(True, {}))
        self.simulate = AsyncMock(return_value=300_000, side_effect=simulate_exc)
        self.send = AsyncMock(return_value=("0xabc123def4567890", receipt or {"logs": []}))
        self._patches = [
            patch(f"{MODULE}.web3_from_chain_id", lambda chain_id: _Web3Ctx(self.contract)),
            patch(f"{MODULE}.get_gas_price", AsyncMock(return_value=gas_price)),
            patch(f"{MODULE}.ensure_allowance", self.allowance),
            patch(f"{MODULE}.encode_call", self.encode),
            patch(f"{MODULE}.simulate_transaction", self.simulate),
            patch(f"{MODULE}.send_transaction_with_receipt", self.send),
        ]

    def __enter__(self):
        for p in self._patches:
            p.start()
        return self

    def __exit__(self, *a):
        for p in reversed(self._patches):
            p.stop()

    def mint_params(self) -> tuple:
        call = next(c for c in self.encode.await_args_list if c.kwargs["fn_name"] == "mint")
        return call.kwargs["args"][0]


class TestReceiptParsing:
    def test_increase_liquidity_event_wins(self):
        receipt = {
            "logs": [
                {
                    "address": BASE_NPM,
                    "topics": [TRANSFER_EVENT_TOPIC, "0x" + _word(0), "0x" + _word(1), "0x" + _word(99)],
                },
                {
                    "address": BASE_NPM.lower(),
                    "topics": [bytes.fromhex(INCREASE_LIQUIDITY_TOPIC), bytes.fromhex(_word(4242))],
                },
            ]
        }
        assert token_id_from_receipt(receipt, BASE_NPM) == "4242"

    def test_raw_transfer_fallback(self):
        receipt = {
            "logs": [
                # ERC-20 transfer: 3 topics, ignored
                {"address": USDC, "topics": [TRANSFER_EVENT_TOPIC, "0x" + _word(1), "0x" + _word(2)]},
                {
                    "address": "0x1111111111111111111111111111111111111111",
                    "topics": [TRANSFER_EVENT_TOPIC, "0x" + _word(0), "0x" + _word(1), "0x" + _word(77)],
                },
            ]
        }
        assert token_id_from_receipt(receipt, BASE_NPM) == "77"

    def test_no_token_id(self):
        assert token_id_from_receipt({"logs": []}, BASE_NPM) is None

    def test_collect_amounts(self):
        receipt = {"logs": [_collect_log(10**17, 250 * 10**6)]}
        assert collect_amounts_from_receipt(receipt) == (10**17, 250 * 10**6)
        assert collect_amounts_from_receipt({"logs": []}) == (0, 0)


class TestOpenPosition:
    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(self):
        funding = _funding()
        adapter = _adapter({"dry_run": True}, funding=funding)
        web3 = MagicMock()
        with patch(f"{MODULE}.web3_from_chain_id", web3):
            result = await adapter.open_position(_pool(), 1000)

        assert result.success and result.dry_run
        assert result.pos_id.startswith("dry-evm-lp-")
        web3.assert_not_called()
        funding.ensure_funded.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mints_and_parses_token_id(self):
        receipt = {
            "logs": [
                {
                    "address": BASE_NPM,
                    "topics": ["0x" + INCREASE_LIQUIDITY_TOPIC, "0x" + _word(555)],
                }
            ]
        }
        funding = _funding()
        with _OpenEnv(receipt=receipt) as env:
            result = await _adapter(funding=funding).open_position(_pool(), 1000)

        assert result.success, result.error
        assert result.pos_id == "555"
        assert result.tx_hash == "0xabc123def4567890"
        assert (result.tick_lower, result.tick_upper) == (-300, 500)

        params = env.mint_params()
        assert params[0] == WETH and params[1] == USDC
        assert params[2] == 500
        assert (params[3], params[4]) == (-300, 500)
        assert (params[5], params[6]) == (2 * 10**17, 500 * 10**6)
        assert (params[7], params[8]) == (0, 0)
        assert env.allowance.await_count == 2
        env.simulate.assert_awaited_once()
        funding.ensure_funded.assert_awaited_once()
        pool, target, wallet = funding.ensure_funded.await_args.args[:3]
        assert (pool, target) == (_pool(), 1000)
        assert wallet.lower() == WALLET.lower()

    @pytest.mark.asyncio
    async def test_tokens_sorted_by_address(self):
        pool = _pool(token0=USDC, symbol0="USDC", dec0=6, token1=WETH, symbol1="WETH", dec1=18)
        funding = _funding(amount0=500 * 10**6, amount1=2 * 10**17)
        with _OpenEnv() as env:
            result = await _adapter(funding=funding).open_position(pool, 1000)

        assert result.success
        params = env.mint_params()
        assert (params[0], params[1]) == (WETH, USDC)
        assert (params[5], params[6]) == (2 * 10**17, 500 * 10**6)

    @pytest.mark.asyncio
    async def test_unknown_token_id_uses_hash_prefix(self):
        with _OpenEnv():
            result = await _adapter().open_position(_pool(), 1000)
        assert result.pos_id == "unknown-0xabc123def4"

    @pytest.mark.asyncio
    async def test_unsupported_protocol(self):
        pool = _pool(chain_id=1, chain_name="ethereum", protocol_key="aerodrome-cl")
        with _OpenEnv() as env:
            result = await _adapter().open_position(pool, 1000)
        assert result.error_code == ErrorCode.UNSUPPORTED_PROTOCOL
        env.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pool_not_found(self):
        funding = _funding()
        with _OpenEnv(contract=_FakeContract(pool_addr=ZERO)) as env:
            result = await _adapter(funding=funding).open_position(_pool(), 1000)
        assert result.error_code == ErrorCode.POOL_NOT_FOUND
        funding.ensure_funded.assert_not_awaited()
        env.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_funding_failure_sends_nothing(self):
        funding = _funding(
            success=False,
            reason="Failed to acquire USDC: cannot mint in-range LP with only WETH",
            error_code=ErrorCode.ONE_SIDED_FUNDING,
        )
        with _OpenEnv() as env:
            result = await _adapter(funding=funding).open_position(_pool(), 1000)

        assert result.error_code == ErrorCode.ONE_SIDED_FUNDING
        assert "only WETH" in result.error
        env.allowance.assert_not_awaited()
        env.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gas_gate(self):
        # 500k gas at 100 gwei and $2500 ETH is $125, above 5% of $1000
        with _OpenEnv(gas_price=100 * 10**9) as env:
            result = await _adapter().open_position(_pool(), 1000)

        assert result.error_code == ErrorCode.GAS_TOO_EXPENSIVE
        env.allowance.assert_not_awaited()
        env.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_simulated_revert_is_not_broadcast(self):
        with _OpenEnv(simulate_exc=SimulationRevertedError("STF")) as env:
            result = await _adapter().open_position(_pool(), 1000)

        assert result.error_code == ErrorCode.MINT_WOULD_REVERT
        assert "STF" in result.error
        env.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_failure_is_tx_failed(self):
        with _OpenEnv() as env:
            env.send.side_effect = RuntimeError("nonce too low")
            result = await _adapter().open_position(_pool(), 1000)
        assert result.error_code == ErrorCode.TX_FAILED
        assert "nonce too low" in result.error


class _CloseEnv:
    def __init__(self, *, liquidity=1000, burn_fails=False, collected=(10**17, 250 * 10**6)):
        self.contract = _FakeContract(liquidity=liquidity)
        self.burn_fails = burn_fails
        self.collected = collected
        self.encode = AsyncMock(side_effect=_encode)
        self.send = AsyncMock(side_effect=self._send)
        self.sent: list[tuple[str, int | None]] = []
        metadata = {WETH: ("WETH", 18), USDC: ("USDC", 6)}
        self._patches = [
            patch(f"{MODULE}.web3_from_chain_id", lambda chain_id: _Web3Ctx(self.contract)),
            patch(f"{MODULE}.get_pending_nonce", AsyncMock(return_value=7)),
            patch(f"{MODULE}.encode_call", self.encode),
            patch(f"{MODULE}.send_transaction_with_receipt", self.send),
            patch(
                f"{MODULE}.get_erc20_symbol_and_decimals",
                AsyncMock(side_effect=lambda token, chain_id: metadata[token]),
            ),
        ]

    async def _send(self, tx, sign_callback):
        self.sent.append((tx["fn"], tx["nonce"]))
        if tx["fn"] == "burn" and self.burn_fails:
            raise RuntimeError("burn reverted")
        if tx["fn"] == "collect":
            return "0xcollect", {"logs": [_collect_log(*self.collected)]}
        return f"0x{tx['fn']}", {"logs": []}

    def __enter__(self):
        for p in self._patches:
            p.start()
        return self

    def __exit__(self, *a):
        for p in reversed(self._patches):
            p.stop()


class TestClosePosition:
    @pytest.mark.asyncio
    async def test_sequential_nonces_and_recovered_value(self):
        with _CloseEnv() as env:
            result = await _adapter().close_position("123", "uniswap-v3", 8453)

        assert result.success
        assert env.sent == [("decreaseLiquidity", 7), ("collect", 8), ("burn", 9)]
        assert result.tx_hash == "0xcollect"
        assert (result.amount0_recovered, result.amount1_recovered) == (10**17, 250 * 10**6)
        # one stable leg: stable side doubled
        assert result.value_recovered_usd == pytest.approx(500.0)
        assert result.fee_or_spacing == 500
        assert result.chain_name == "base"
        assert result.burned is True

    @pytest.mark.asyncio
    async def test_empty_position_skips_decrease(self):
        with _CloseEnv(liquidity=0) as env:
            result = await _adapter().close_position("123", "uniswap-v3", 8453)

        assert result.success
        assert env.sent == [("collect", 7), ("burn", 8)]

    @pytest.mark.asyncio
    async def test_burn_failure_is_soft(self):
        with _CloseEnv(burn_fails=True):
            result = await _adapter().close_position("123", "uniswap-v3", 8453)

        assert result.success
        assert result.burned is False
        assert result.value_recovered_usd == pytest.approx(500.0)

    @pytest.mark.asyncio
    async def test_chain_symbols_win_over_hints(self):
        with _CloseEnv():
            result = await _adapter().close_position(
                "123", "uniswap-v3", 8453, token0="USDC", token1="WETH"
            )
        # token1 is USDC on-chain: 250 doubled
        assert result.value_recovered_usd == pytest.approx(500.0)

    @pytest.mark.asyncio
    async def test_hints_used_when_metadata_fails(self):
        with (
            _CloseEnv(collected=(10**17, 10**17)),
            patch(
                f"{MODULE}.get_erc20_symbol_and_decimals",
                AsyncMock(side_effect=RuntimeError("rpc timeout")),
            ),
        ):
            result = await _adapter().close_position(
                "123", "uniswap-v3", 8453, token0="WETH", token1="WETH"
            )
        assert result.success
        # neither side stable: (0.1 + 0.1) x native price
        assert result.value_recovered_usd == pytest.approx(0.2 * 2500)

    @pytest.mark.asyncio
    async def test_non_numeric_id(self):
        result = await _adapter().close_position("abc", "uniswap-v3", 8453)
        assert result.error_code == ErrorCode.INVALID_POSITION

    @pytest.mark.asyncio
    async def test_collect_failure(self):
        with _CloseEnv() as env:
            env.send.side_effect = RuntimeError("execution reverted")
            result = await _adapter().close_position("123", "uniswap-v3", 8453)
        assert result.error_code == ErrorCode.TX_FAILED

    @pytest.mark.asyncio
    async def test_dry_run(self):
        web3 = MagicMock()
        with patch(f"{MODULE}.web3_from_chain_id", web3):
            result = await _adapter({"dry_run": True}).close_position("123", "uniswap-v3", 8453)
        assert result.success and result.dry_run
        assert result.tx_hash.startswith("dry-evm-lp-")
        web3.assert_not_called()


class TestClaimFees:
    @pytest.mark.asyncio
    async def test_single_collect(self):
        with _CloseEnv(collected=(5, 6)) as env:
            result = await _adapter().claim_fees("123", "uniswap-v3", 8453)

        assert result.success
        assert env.sent == [("collect", None)]
        assert (result.amount0_claimed, result.amount1_claimed) == (5, 6)

    @pytest.mark.asyncio
    async def test_unsupported(self):
        result = await _adapter().claim_fees("1", "aerodrome-cl", 1)
        assert result.error_code == ErrorCode.UNSUPPORTED_PROTOCOL


def _rebalance_adapter(close: CloseResult, top_pool=None, config=None):
    discovery = MagicMock()
    discovery.top_pool_for_chain = AsyncMock(return_value=top_pool)
    adapter = _adapter(config, discovery=discovery)
    adapter.close_position = AsyncMock(return_value=close)
    adapter.open_position = AsyncMock(return_value=OpenResult(success=True, pos_id="9"))
    return adapter, discovery


class TestRebalance:
    @pytest.mark.asyncio
    async def test_close_failure_stops(self):
        adapter, discovery = _rebalance_adapter(
            CloseResult(success=False, error="boom", error_code=ErrorCode.TX_FAILED)
        )
        result = await adapter.rebalance_position("1", "uniswap-v3", 8453)

        assert not result.close_result.success
        assert result.open_result is None
        discovery.top_pool_for_chain.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_only(self):
        adapter, discovery = _rebalance_adapter(CloseResult(success=True))
        result = await adapter.rebalance_position("1", "uniswap-v3", 8453, close_only=True)

        assert result.open_result is None
        assert result.close_only_reason
        adapter.open_position.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_eligible_pool(self):
        adapter, discovery = _rebalance_adapter(CloseResult(success=True, value_recovered_usd=800))
        result = await adapter.rebalance_position("1", "uniswap-v3", 8453)

        assert result.open_result is None
        assert "No pool on chain 8453" in result.close_only_reason
        discovery.top_pool_for_chain.assert_awaited_once_with(8453, min_tvl_usd=250_000.0)

    @pytest.mark.asyncio
    async def test_reopens_with_recovered_value(self):
        target = _pool()
        adapter, _ = _rebalance_adapter(
            CloseResult(success=True, value_recovered_usd=800), top_pool=target
        )
        result = await adapter.rebalance_position("1", "uniswap-v3", 8453, range_width_ticks=200)

        assert result.open_result.pos_id == "9"
        adapter.open_position.assert_awaited_once_with(target, 800, 200)

    @pytest.mark.asyncio
    async def test_dust_recovery_uses_half_max_deploy(self):
        target = _pool()
        adapter, _ = _rebalance_adapter(
            CloseResult(success=True, value_recovered_usd=0.5), top_pool=target
        )
        await adapter.rebalance_position("1", "uniswap-v3", 8453)

        adapter.open_position.assert_awaited_once_with(target, 250.0, 400)

    @pytest.mark.asyncio
    async def test_dry_run_skips_discovery(self):
        adapter, discovery = _rebalance_adapter(
            CloseResult(success=True, dry_run=True), config={"dry_run": True}
        )
        result = await adapter.rebalance_position("1", "uniswap-v3", 8453)

        assert result.open_result.dry_run
        discovery.top_pool_for_chain.assert_not_awaited()
