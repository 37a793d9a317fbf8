from contextlib import asynccontextmanager
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware

from evm_lp_paths.core.config import get_rpc_urls, get_wallet_private_key
from evm_lp_paths.core.constants.chains import POA_MIDDLEWARE_CHAIN_IDS


def _get_rpcs_for_chain_id(chain_id: int) -> list[str]:
    mapping = get_rpc_urls()
    rpcs = mapping.get(str(chain_id))
    if rpcs is None:
        rpcs = mapping.get(chain_id)  # allow int keys
    if not rpcs:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    if isinstance(rpcs, str):
        return [rpcs]
    return list(rpcs)


def _get_web3(rpc: str, chain_id: int) -> AsyncWeb3:
    provider = AsyncHTTPProvider(
        rpc, request_kwargs={"headers": AsyncHTTPProvider.get_request_headers()}
    )
    web3 = AsyncWeb3(provider)
    if chain_id in POA_MIDDLEWARE_CHAIN_IDS:
        web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return web3


def get_transaction_chain_id(transaction: dict) -> int:
    if "chainId" not in transaction:
        raise ValueError("Transaction does not contain chainId")
    return int(transaction["chainId"])


class ProviderPool:
    """One cached ``AsyncWeb3`` per chain id plus the single signing account.

    Connections are created lazily on first use and live until ``close()``.
    """

    def __init__(self, private_key: str | None = None):
        self._private_key = private_key
        self._web3s: dict[int, AsyncWeb3] = {}
        self._account: LocalAccount | None = None

    def get_web3(self, chain_id: int) -> AsyncWeb3:
        chain_id = int(chain_id)
        web3 = self._web3s.get(chain_id)
        if web3 is None:
            rpc = _get_rpcs_for_chain_id(chain_id)[0]
            web3 = _get_web3(rpc, chain_id)
            self._web3s[chain_id] = web3
            logger.debug(f"Created provider for chain {chain_id}")
        return web3

    def get_account(self) -> LocalAccount:
        if self._account is None:
            key = self._private_key or get_wallet_private_key()
            if not key:
                raise ValueError(
                    "No wallet private key configured (evm_private_key / EVM_LP_PRIVATE_KEY)"
                )
            self._account = Account.from_key(key)
        return self._account

    @property
    def wallet_address(self) -> str:
        return self.get_account().address

    async def sign_callback(self, transaction: dict[str, Any]) -> bytes:
        signed = self.get_account().sign_transaction(transaction)
        return signed.raw_transaction

    async def close(self) -> None:
        web3s, self._web3s = self._web3s, {}
        for chain_id, web3 in web3s.items():
            try:
                await web3.provider.disconnect()
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Failed to disconnect provider for chain {chain_id}: {exc}")

    def reset(self) -> None:
        """Forget cached connections and the signer (after a config change)."""
        self._web3s = {}
        self._account = None


PROVIDER_POOL = ProviderPool()


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    yield PROVIDER_POOL.get_web3(chain_id)
