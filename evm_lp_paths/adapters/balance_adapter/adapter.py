import asyncio
from typing import Any

from evm_lp_paths.core.adapters.BaseAdapter import BaseAdapter
from evm_lp_paths.core.adapters.collaborators import PRICE_ORACLE, PriceOracle
from evm_lp_paths.core.adapters.models import ChainBalance
from evm_lp_paths.core.config import get_rpc_urls, get_wallet_private_key
from evm_lp_paths.core.constants.base import ADAPTER_BALANCE
from evm_lp_paths.core.constants.chains import NATIVE_SYMBOLS, chain_id_to_name
from evm_lp_paths.core.constants.contracts import (
    BRIDGED_USDC_BY_CHAIN,
    USDC_BY_CHAIN,
    USDT_BY_CHAIN,
    WRAPPED_NATIVE_BY_CHAIN,
)
from evm_lp_paths.core.utils.tokens import (
    get_token_balance,
    get_token_balance_with_decimals,
    to_human,
)
from evm_lp_paths.core.utils.web3 import PROVIDER_POOL


def stablecoins_for_chain(chain_id: int) -> dict[str, str]:
    tokens: dict[str, str] = {}
    if chain_id in USDC_BY_CHAIN:
        tokens["USDC"] = USDC_BY_CHAIN[chain_id]
    tokens.update(BRIDGED_USDC_BY_CHAIN.get(chain_id, {}))
    if chain_id in USDT_BY_CHAIN:
        tokens["USDT"] = USDT_BY_CHAIN[chain_id]
    return tokens


class BalanceAdapter(BaseAdapter):
    """Wallet stablecoin and gas-token holdings on every configured chain."""

    adapter_type = ADAPTER_BALANCE

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        price_oracle: PriceOracle | None = None,
    ):
        super().__init__("balance_adapter", config)
        self.price_oracle = price_oracle or PRICE_ORACLE

    def configured_chain_ids(self) -> list[int]:
        chain_ids = []
        for key in get_rpc_urls():
            try:
                chain_ids.append(int(key))
            except (TypeError, ValueError):
                self.logger.warning(f"Ignoring non-numeric RPC chain key {key!r}")
        return sorted(set(chain_ids))

    async def _erc20_human(self, token: str, chain_id: int, wallet: str) -> float:
        raw, decimals = await get_token_balance_with_decimals(token, chain_id, wallet)
        return to_human(raw, decimals)

    async def get_chain_balance(self, chain_id: int, wallet: str) -> ChainBalance:
        stables = stablecoins_for_chain(chain_id)
        wrapped = WRAPPED_NATIVE_BY_CHAIN.get(chain_id)

        stable_amounts = await asyncio.gather(
            *[self._erc20_human(addr, chain_id, wallet) for addr in stables.values()]
        )
        wrapped_balance = (
            await self._erc20_human(wrapped[1], chain_id, wallet) if wrapped else 0.0
        )
        native_balance = to_human(await get_token_balance(None, chain_id, wallet), 18)
        native_price = await self.price_oracle.get_native_token_price(chain_id)

        stablecoins = dict(zip(stables, stable_amounts, strict=True))
        stable_usd = sum(stablecoins.values())
        native_value_usd = native_balance * native_price
        return ChainBalance(
            chain_id=chain_id,
            chain_name=chain_id_to_name(chain_id),
            stablecoins=stablecoins,
            stable_usd=stable_usd,
            wrapped_native_symbol=wrapped[0] if wrapped else None,
            wrapped_native_balance=wrapped_balance,
            native_symbol=NATIVE_SYMBOLS.get(chain_id, "ETH"),
            native_balance=native_balance,
            native_price_usd=native_price,
            native_value_usd=native_value_usd,
            total_usd=stable_usd + native_value_usd + wrapped_balance * native_price,
        )

    async def get_multi_chain_balances(self, wallet: str | None = None) -> list[ChainBalance]:
        if wallet is None:
            if not get_wallet_private_key():
                self.logger.warning("No wallet configured, skipping balance scan")
                return []
            wallet = PROVIDER_POOL.wallet_address

        chain_ids = self.configured_chain_ids()
        results = await asyncio.gather(
            *[self.get_chain_balance(chain_id, wallet) for chain_id in chain_ids],
            return_exceptions=True,
        )
        balances = []
        for chain_id, result in zip(chain_ids, results, strict=True):
            if isinstance(result, BaseException):
                self.logger.warning(f"Balance scan failed on chain {chain_id}: {result}")
                continue
            balances.append(result)
        return balances
