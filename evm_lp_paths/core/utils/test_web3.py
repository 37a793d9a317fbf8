from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_account import Account

from evm_lp_paths.core.config import set_config
from evm_lp_paths.core.utils.web3 import (
    ProviderPool,
    _get_rpcs_for_chain_id,
    web3_from_chain_id,
)

MODULE = "evm_lp_paths.core.utils.web3"

# Well-known anvil dev key
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


def test_rpcs_accept_str_list_and_int_keys():
    set_config({"rpc_urls": {"8453": "https://base", 137: ["https://a", "https://b"]}})
    assert _get_rpcs_for_chain_id(8453) == ["https://base"]
    assert _get_rpcs_for_chain_id(137) == ["https://a", "https://b"]
    with pytest.raises(ValueError, match="No RPCs configured for chain ID 1"):
        _get_rpcs_for_chain_id(1)


def test_one_provider_per_chain():
    set_config({"rpc_urls": {"8453": ["https://base-1", "https://base-2"]}})
    pool = ProviderPool()
    with patch(f"{MODULE}._get_web3", side_effect=lambda rpc, chain_id: MagicMock(rpc=rpc)) as build:
        first = pool.get_web3(8453)
        second = pool.get_web3("8453")

    assert first is second
    assert first.rpc == "https://base-1"
    build.assert_called_once()


def test_account_from_config_or_explicit_key(monkeypatch):
    monkeypatch.delenv("EVM_LP_PRIVATE_KEY", raising=False)
    expected = Account.from_key(PRIVATE_KEY).address

    assert ProviderPool(PRIVATE_KEY).wallet_address == expected

    set_config({"evm_private_key": PRIVATE_KEY})
    assert ProviderPool().wallet_address == expected


def test_missing_key_raises(monkeypatch):
    monkeypatch.delenv("EVM_LP_PRIVATE_KEY", raising=False)
    with pytest.raises(ValueError, match="No wallet private key configured"):
        ProviderPool().get_account()


@pytest.mark.asyncio
async def test_sign_callback_returns_raw_bytes():
    pool = ProviderPool(PRIVATE_KEY)
    raw = await pool.sign_callback(
        {
            "chainId": 8453,
            "nonce": 0,
            "to": "0x000000000000000000000000000000000000dEaD",
            "value": 0,
            "gas": 21000,
            "maxFeePerGas": 10**9,
            "maxPriorityFeePerGas": 10**8,
            "data": "0x",
        }
    )
    assert isinstance(raw, bytes)
    assert len(raw) > 0


@pytest.mark.asyncio
async def test_close_disconnects_and_survives_errors():
    pool = ProviderPool()
    good, bad = MagicMock(), MagicMock()
    good.provider.disconnect = AsyncMock()
    bad.provider.disconnect = AsyncMock(side_effect=RuntimeError("already closed"))
    pool._web3s = {8453: good, 137: bad}

    await pool.close()

    good.provider.disconnect.assert_awaited_once()
    bad.provider.disconnect.assert_awaited_once()
    assert pool._web3s == {}


def test_reset_forgets_signer():
    pool = ProviderPool(PRIVATE_KEY)
    pool.get_account()
    pool._web3s = {1: MagicMock()}
    pool.reset()
    assert pool._account is None
    assert pool._web3s == {}


@pytest.mark.asyncio
async def test_web3_from_chain_id_uses_shared_pool():
    web3 = MagicMock()
    with patch(f"{MODULE}.PROVIDER_POOL") as pool:
        pool.get_web3.return_value = web3
        async with web3_from_chain_id(10) as w:
            assert w is web3
    pool.get_web3.assert_called_once_with(10)
