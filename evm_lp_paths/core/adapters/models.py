from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RiskTier = Literal["low", "medium", "high"]
PositionSource = Literal["aggregator", "onchain"]


class ErrorCode(StrEnum):
    UNSUPPORTED_PROTOCOL = "UNSUPPORTED_PROTOCOL"
    POOL_NOT_FOUND = "POOL_NOT_FOUND"
    FUNDING_FAILED = "FUNDING_FAILED"
    ONE_SIDED_FUNDING = "ONE_SIDED_FUNDING"
    NOT_WORTH_GAS = "NOT_WORTH_GAS"
    GAS_TOO_EXPENSIVE = "GAS_TOO_EXPENSIVE"
    MINT_WOULD_REVERT = "MINT_WOULD_REVERT"
    TX_FAILED = "TX_FAILED"
    INVALID_POSITION = "INVALID_POSITION"


class AbiVariant(StrEnum):
    STANDARD = "standard"
    TICK_SPACING_NATIVE = "tickSpacingNative"


class PoolToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    symbol: str = "?"
    name: str = ""
    decimals: int = 18


class Pool(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain_id: int
    chain_name: str
    protocol_key: str
    protocol_name: str
    pool_address: str
    token0: PoolToken
    token1: PoolToken
    # Fee in hundredths of a bip, or the tick spacing for tick-spacing-native protocols
    fee_tier: int
    tvl_usd: float = 0.0
    apr24h: float = 0.0
    apr7d: float = 0.0
    apr30d: float = 0.0

    @property
    def key(self) -> tuple[int, str]:
        return (self.chain_id, self.pool_address.lower())


class ScoredPool(Pool):
    score: int
    score_breakdown: dict[str, int]
    reasoning: list[str] = Field(default_factory=list)
    risk_tier: RiskTier


class ProtocolDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    match_patterns: tuple[str, ...]
    # V4 hooks-based and V2 constant-product pools share names with CL protocols
    exclude_patterns: tuple[str, ...] = ("v4", "v2")
    abi_variant: AbiVariant = AbiVariant.STANDARD
    mint_contract: dict[int, str] = Field(default_factory=dict)
    factory: dict[int, str] = Field(default_factory=dict)
    score_bonus: int = 5


class ResolvedProtocol(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    chain_id: int
    mint_contract: str
    factory: str
    abi_variant: AbiVariant
    score_bonus: int


class Position(BaseModel):
    pos_id: str
    chain_id: int
    chain_name: str
    protocol_key: str
    pool_address: str
    token0: PoolToken
    token1: PoolToken
    value_usd: float = 0.0
    in_range: bool = False
    range_utilisation_pct: int = Field(default=0, ge=0, le=100)
    tick_lower: int = 0
    tick_upper: int = 0
    current_tick: int = 0
    fees_owed0: float = 0.0
    fees_owed1: float = 0.0
    fees_owed_usd: float = 0.0
    opened_at: int
    source: PositionSource = "aggregator"


class EvmLpRecord(BaseModel):
    pos_id: str
    chain_id: int
    chain_name: str = ""
    protocol_key: str
    pool_address: str = ""
    token0_symbol: str = ""
    token1_symbol: str = ""
    entry_usd: float = 0.0
    opened_at: int

    @property
    def key(self) -> tuple[str, int]:
        return (self.pos_id, self.chain_id)


class ChainBalance(BaseModel):
    chain_id: int
    chain_name: str
    stablecoins: dict[str, float] = Field(default_factory=dict)
    stable_usd: float = 0.0
    wrapped_native_symbol: str | None = None
    wrapped_native_balance: float = 0.0
    native_symbol: str
    native_balance: float = 0.0
    native_price_usd: float = 0.0
    native_value_usd: float = 0.0
    total_usd: float = 0.0


class FundingResult(BaseModel):
    success: bool
    amount0: int = 0
    amount1: int = 0
    usd0: float = 0.0
    usd1: float = 0.0
    reason: str | None = None
    error_code: ErrorCode | None = None
    phases: dict[str, str] = Field(default_factory=dict)


class OpenResult(BaseModel):
    success: bool
    pos_id: str | None = None
    tx_hash: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    tick_lower: int | None = None
    tick_upper: int | None = None
    dry_run: bool = False


class CloseResult(BaseModel):
    success: bool
    tx_hash: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    amount0_recovered: int = 0
    amount1_recovered: int = 0
    # Heuristic estimate, not an accounting value
    value_recovered_usd: float = 0.0
    fee_or_spacing: int = 0
    chain_name: str = ""
    burned: bool = False
    dry_run: bool = False


class ClaimResult(BaseModel):
    success: bool
    tx_hash: str | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    amount0_claimed: int = 0
    amount1_claimed: int = 0
    dry_run: bool = False


class RebalanceResult(BaseModel):
    close_result: CloseResult
    open_result: OpenResult | None = None
    close_only_reason: str | None = None


def model_payload(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")
