"""Interfaces for the services the LP engine consumes but does not implement.

Swap routing, cross-chain bridging and native-token pricing are supplied by
the caller at construction time. The ``Null*`` defaults turn the matching
funding phase into a no-op.
"""

from __future__ import annotations

from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel

from evm_lp_paths.core.constants.chains import (
    DEFAULT_NATIVE_PRICE_USD,
    FALLBACK_NATIVE_PRICES_USD,
    NATIVE_SYMBOLS,
)

BridgeStatus = Literal["DONE", "FAILED", "TIMEOUT"]


class SwapQuote(BaseModel):
    amount_out: float
    price_impact_pct: float


class SwapExecution(BaseModel):
    success: bool
    tx_hash: str | None = None
    error: str | None = None


class BridgeResult(BaseModel):
    success: bool
    tx_hash: str | None = None
    error: str | None = None


@runtime_checkable
class SwapService(Protocol):
    async def quote(
        self,
        chain_id: int,
        token_in: str,
        token_out: str,
        amount_in_human: float,
        fee: int,
    ) -> SwapQuote | None: ...

    async def execute(
        self,
        chain_id: int,
        token_in: str,
        token_out: str,
        amount_in_human: float,
        fee: int,
    ) -> SwapExecution: ...


@runtime_checkable
class BridgeService(Protocol):
    def resolve_token_address(self, chain_id: int, symbol: str) -> str | None: ...

    async def get_balance(self, chain_id: int, token: str, wallet: str) -> float: ...

    async def bridge(
        self,
        from_chain_id: int,
        to_chain_id: int,
        symbol: str,
        amount: float,
        from_address: str,
        to_address: str,
    ) -> BridgeResult: ...

    async def await_completion(
        self, tx_hash: str, from_chain_id: int
    ) -> BridgeStatus: ...


class NullSwapService:
    async def quote(self, chain_id, token_in, token_out, amount_in_human, fee):
        return None

    async def execute(self, chain_id, token_in, token_out, amount_in_human, fee):
        return SwapExecution(success=False, error="no swap service configured")


class NullBridgeService:
    def resolve_token_address(self, chain_id, symbol):
        return None

    async def get_balance(self, chain_id, token, wallet):
        return 0.0

    async def bridge(
        self, from_chain_id, to_chain_id, symbol, amount, from_address, to_address
    ):
        return BridgeResult(success=False, error="no bridge service configured")

    async def await_completion(self, tx_hash, from_chain_id):
        return "FAILED"


# Analyst feeds often quote the wrapped or rebranded ticker
_NATIVE_PRICE_ALIASES: dict[str, tuple[str, ...]] = {
    "ETH": ("WETH",),
    "MATIC": ("POL", "WMATIC"),
    "BNB": ("WBNB",),
    "AVAX": ("WAVAX",),
}


class PriceOracle:
    """Native-token USD prices pushed by an analyst feed, with static fallbacks."""

    def __init__(self, prices: dict[str, float] | None = None):
        self._prices: dict[str, float] = {}
        if prices:
            self.set_analyst_prices(prices)

    def set_analyst_prices(self, prices: dict[str, float]) -> None:
        for symbol, price in prices.items():
            try:
                value = float(price)
            except (TypeError, ValueError):
                continue
            if value > 0:
                self._prices[str(symbol).upper()] = value

    def analyst_price(self, symbol: str) -> float | None:
        return self._prices.get(str(symbol).upper())

    async def get_native_token_price(self, chain_id: int) -> float:
        symbol = NATIVE_SYMBOLS.get(int(chain_id))
        if symbol:
            for candidate in (symbol, *_NATIVE_PRICE_ALIASES.get(symbol, ())):
                price = self._prices.get(candidate)
                if price:
                    return price
        return FALLBACK_NATIVE_PRICES_USD.get(int(chain_id), DEFAULT_NATIVE_PRICE_USD)


PRICE_ORACLE = PriceOracle()
