from __future__ import annotations

import re

from evm_lp_paths.core.constants.contracts import (
    BRIDGED_USDC_BY_CHAIN,
    USDC_BY_CHAIN,
    USDT_BY_CHAIN,
    WRAPPED_NATIVE_BY_CHAIN,
)

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def looks_like_evm_address(value: str | None) -> bool:
    if value is None:
        return False
    return bool(_EVM_ADDRESS_RE.match(str(value).strip()))


class TokenRegistry:
    """Per-chain symbol -> address map.

    Seeded from the static stablecoin/wrapped-native tables and grown by pool
    discovery, so a later bridge or swap can resolve ``"USDC"`` on any chain it
    has seen a pool for. The first address registered for a symbol wins.
    """

    def __init__(self, seed_static: bool = True):
        self._by_chain: dict[int, dict[str, str]] = {}
        if seed_static:
            for symbol, table in (("USDC", USDC_BY_CHAIN), ("USDT", USDT_BY_CHAIN)):
                for chain_id, address in table.items():
                    self.register(chain_id, symbol, address)
            for chain_id, variants in BRIDGED_USDC_BY_CHAIN.items():
                for symbol, address in variants.items():
                    self.register(chain_id, symbol, address)
            for chain_id, (symbol, address) in WRAPPED_NATIVE_BY_CHAIN.items():
                self.register(chain_id, symbol, address)

    def register(self, chain_id: int, symbol: str, address: str) -> bool:
        if not symbol or symbol == "?" or not looks_like_evm_address(address):
            return False
        chain_tokens = self._by_chain.setdefault(int(chain_id), {})
        key = symbol.upper()
        if key in chain_tokens:
            return False
        chain_tokens[key] = address
        return True

    def resolve(self, chain_id: int, symbol: str) -> str | None:
        return self._by_chain.get(int(chain_id), {}).get(str(symbol).upper())

    def symbols(self, chain_id: int) -> dict[str, str]:
        return dict(self._by_chain.get(int(chain_id), {}))


TOKEN_REGISTRY = TokenRegistry()


def register_token_address(chain_id: int, symbol: str, address: str) -> bool:
    return TOKEN_REGISTRY.register(chain_id, symbol, address)


def resolve_token_address(chain_id: int, symbol: str) -> str | None:
    return TOKEN_REGISTRY.resolve(chain_id, symbol)
