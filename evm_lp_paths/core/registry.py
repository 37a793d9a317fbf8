"""Protocol registry for concentrated-liquidity position managers.

This is the only place protocol addresses and ABI shapes live. Everything
downstream resolves a ``ResolvedProtocol`` once and then talks to the chain
through the matching ``VariantCodec``; nothing branches on a protocol name.
"""

from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from evm_lp_paths.core.adapters.models import (
    AbiVariant,
    ProtocolDef,
    ResolvedProtocol,
)
from evm_lp_paths.core.constants.chains import (
    CHAIN_ID_ARBITRUM,
    CHAIN_ID_AVALANCHE,
    CHAIN_ID_BASE,
    CHAIN_ID_BSC,
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_OPTIMISM,
    CHAIN_ID_POLYGON,
)
from evm_lp_paths.core.constants.slipstream_abi import (
    SLIPSTREAM_CLPOOL_ABI,
    SLIPSTREAM_FACTORY_ABI,
    SLIPSTREAM_NFPM_ABI,
)
from evm_lp_paths.core.constants.uniswap_v3_abi import (
    NONFUNGIBLE_POSITION_MANAGER_ABI,
    UNISWAP_V3_FACTORY_ABI,
    UNISWAP_V3_POOL_ABI,
)
from evm_lp_paths.core.utils.tick_math import PositionData, parse_position_struct

FEE_TO_TICK_SPACING: dict[int, int] = {100: 1, 500: 10, 2500: 50, 3000: 60, 10000: 200}
DEFAULT_TICK_SPACING = 60


class VariantCodec:
    """Translate between generic lifecycle calls and one NFPM ABI shape."""

    variant: AbiVariant
    nfpm_abi: list[dict[str, Any]]
    factory_abi: list[dict[str, Any]]
    pool_abi: list[dict[str, Any]]

    def tick_spacing(self, fee_or_spacing: int) -> int:
        raise NotImplementedError

    def mint_params(
        self,
        *,
        token0: str,
        token1: str,
        fee_or_spacing: int,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
        recipient: str,
        deadline: int,
        amount0_min: int = 0,
        amount1_min: int = 0,
        sqrt_price_x96: int = 0,
    ) -> tuple:
        raise NotImplementedError

    def parse_position(self, raw: tuple) -> PositionData:
        raise NotImplementedError

    def fee_or_spacing(self, position: PositionData) -> int:
        raise NotImplementedError


class StandardCodec(VariantCodec):
    variant = AbiVariant.STANDARD
    nfpm_abi = NONFUNGIBLE_POSITION_MANAGER_ABI
    factory_abi = UNISWAP_V3_FACTORY_ABI
    pool_abi = UNISWAP_V3_POOL_ABI

    def tick_spacing(self, fee_or_spacing: int) -> int:
        return FEE_TO_TICK_SPACING.get(int(fee_or_spacing), DEFAULT_TICK_SPACING)

    def mint_params(
        self,
        *,
        token0: str,
        token1: str,
        fee_or_spacing: int,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
        recipient: str,
        deadline: int,
        amount0_min: int = 0,
        amount1_min: int = 0,
        sqrt_price_x96: int = 0,  # noqa: ARG002 - not part of the standard struct
    ) -> tuple:
        return (
            to_checksum_address(token0),
            to_checksum_address(token1),
            int(fee_or_spacing),
            int(tick_lower),
            int(tick_upper),
            int(amount0_desired),
            int(amount1_desired),
            int(amount0_min),
            int(amount1_min),
            to_checksum_address(recipient),
            int(deadline),
        )

    def parse_position(self, raw: tuple) -> PositionData:
        return parse_position_struct(raw, keyed_by="fee")

    def fee_or_spacing(self, position: PositionData) -> int:
        return int(position["fee"] or 0)


class TickSpacingNativeCodec(VariantCodec):
    variant = AbiVariant.TICK_SPACING_NATIVE
    nfpm_abi = SLIPSTREAM_NFPM_ABI
    factory_abi = SLIPSTREAM_FACTORY_ABI
    pool_abi = SLIPSTREAM_CLPOOL_ABI

    def tick_spacing(self, fee_or_spacing: int) -> int:
        return int(fee_or_spacing)

    def mint_params(
        self,
        *,
        token0: str,
        token1: str,
        fee_or_spacing: int,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
        recipient: str,
        deadline: int,
        amount0_min: int = 0,
        amount1_min: int = 0,
        sqrt_price_x96: int = 0,
    ) -> tuple:
        # sqrtPriceX96 is only read when the mint also creates the pool
        return (
            to_checksum_address(token0),
            to_checksum_address(token1),
            int(fee_or_spacing),
            int(tick_lower),
            int(tick_upper),
            int(amount0_desired),
            int(amount1_desired),
            int(amount0_min),
            int(amount1_min),
            to_checksum_address(recipient),
            int(deadline),
            int(sqrt_price_x96),
        )

    def parse_position(self, raw: tuple) -> PositionData:
        return parse_position_struct(raw, keyed_by="tick_spacing")

    def fee_or_spacing(self, position: PositionData) -> int:
        return int(position["tick_spacing"] or 0)


_CODECS: dict[AbiVariant, VariantCodec] = {
    AbiVariant.STANDARD: StandardCodec(),
    AbiVariant.TICK_SPACING_NATIVE: TickSpacingNativeCodec(),
}


def get_codec(variant: AbiVariant | str) -> VariantCodec:
    return _CODECS[AbiVariant(variant)]


def _addresses(mapping: dict[int, str]) -> dict[int, str]:
    return {int(k): to_checksum_address(v) for k, v in mapping.items()}


_UNISWAP_NFPM = "0xC36442b4a4522E871399CD717aBDD847Ab11FE88"
_UNISWAP_FACTORY = "0x1F98431c8aD98523631AE4a59f267346ea31F984"
_PANCAKE_NFPM = "0x46A15B0b27311cedF172AB29E4f4766fbE7F4364"
_PANCAKE_FACTORY = "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865"

PROTOCOLS: tuple[ProtocolDef, ...] = (
    ProtocolDef(
        key="uniswap-v3",
        display_name="Uniswap V3",
        match_patterns=("uniswap",),
        abi_variant=AbiVariant.STANDARD,
        mint_contract=_addresses(
            {
                CHAIN_ID_ETHEREUM: _UNISWAP_NFPM,
                CHAIN_ID_OPTIMISM: _UNISWAP_NFPM,
                CHAIN_ID_POLYGON: _UNISWAP_NFPM,
                CHAIN_ID_ARBITRUM: _UNISWAP_NFPM,
                CHAIN_ID_BASE: "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1",
                CHAIN_ID_BSC: "0x7b8A01B39D58278b5DE7e48c8449c9f4F5170613",
                CHAIN_ID_AVALANCHE: "0x655C406EBFa14EE2006250925e54ec43AD184f8B",
            }
        ),
        factory=_addresses(
            {
                CHAIN_ID_ETHEREUM: _UNISWAP_FACTORY,
                CHAIN_ID_OPTIMISM: _UNISWAP_FACTORY,
                CHAIN_ID_POLYGON: _UNISWAP_FACTORY,
                CHAIN_ID_ARBITRUM: _UNISWAP_FACTORY,
                CHAIN_ID_BASE: "0x33128a8fC17869897dcE68Ed026d694621f6FDfD",
                CHAIN_ID_BSC: "0xdB1d10011AD0Ff90774D0C6Bb92e5C5c8b4461F7",
                CHAIN_ID_AVALANCHE: "0x740b1c1de25031C31FF4fC9A62f554A55cdC1baD",
            }
        ),
        score_bonus=10,
    ),
    ProtocolDef(
        key="pancakeswap-v3",
        display_name="PancakeSwap V3",
        match_patterns=("pancake",),
        abi_variant=AbiVariant.STANDARD,
        mint_contract=_addresses(
            {
                CHAIN_ID_BSC: _PANCAKE_NFPM,
                CHAIN_ID_ETHEREUM: _PANCAKE_NFPM,
                CHAIN_ID_ARBITRUM: _PANCAKE_NFPM,
                CHAIN_ID_BASE: _PANCAKE_NFPM,
            }
        ),
        factory=_addresses(
            {
                CHAIN_ID_BSC: _PANCAKE_FACTORY,
                CHAIN_ID_ETHEREUM: _PANCAKE_FACTORY,
                CHAIN_ID_ARBITRUM: _PANCAKE_FACTORY,
                CHAIN_ID_BASE: _PANCAKE_FACTORY,
            }
        ),
        score_bonus=8,
    ),
    ProtocolDef(
        key="sushiswap-v3",
        display_name="SushiSwap V3",
        match_patterns=("sushi",),
        abi_variant=AbiVariant.STANDARD,
        mint_contract=_addresses(
            {
                CHAIN_ID_ARBITRUM: "0xF0cBce1942A68BEB3d1b73F0dd86C8DCc363eF49",
                CHAIN_ID_ETHEREUM: "0x2214A42d8e2A1d20635c2cb0664422c528B6A432",
                CHAIN_ID_BASE: "0x80C7DD17B01855a6D2347444a0FCC36136a314de",
            }
        ),
        factory=_addresses(
            {
                CHAIN_ID_ARBITRUM: "0x1af415a1EbA07a4986a52B6f2e7dE7003D82231e",
                CHAIN_ID_ETHEREUM: "0xbACEB8eC6b9355Dfc0269C18bac9d6E2Bdc29C4F",
                CHAIN_ID_BASE: "0xc35DADB65012eC5796536bD9864eD8773aBc74C4",
            }
        ),
        score_bonus=8,
    ),
    ProtocolDef(
        key="aerodrome-cl",
        display_name="Aerodrome Slipstream",
        match_patterns=("aerodrome", "slipstream"),
        abi_variant=AbiVariant.TICK_SPACING_NATIVE,
        mint_contract=_addresses(
            {CHAIN_ID_BASE: "0x827922686190790b37229fd06084350E74485b72"}
        ),
        factory=_addresses(
            {CHAIN_ID_BASE: "0x5e7BB104d84c7CB9B682AaC2F3d509f5F406809A"}
        ),
        score_bonus=7,
    ),
    ProtocolDef(
        key="velodrome-cl",
        display_name="Velodrome Slipstream",
        match_patterns=("velodrome",),
        abi_variant=AbiVariant.TICK_SPACING_NATIVE,
        mint_contract=_addresses(
            {CHAIN_ID_OPTIMISM: "0x416b433906b1B72FA758e166e239c43d68dC6F29"}
        ),
        factory=_addresses(
            {CHAIN_ID_OPTIMISM: "0xCc0bDDB707055e04e497aB22a59c2aF4391cd12F"}
        ),
        score_bonus=7,
    ),
)


def find_protocol(protocol_key: str | None) -> ProtocolDef | None:
    """Pattern-match an aggregator protocol string against the registry."""
    key = str(protocol_key or "").strip().lower()
    if not key:
        return None
    for proto in PROTOCOLS:
        if any(p in key for p in proto.exclude_patterns):
            continue
        if any(p in key for p in proto.match_patterns):
            return proto
    return None


def resolve_protocol(
    protocol_key: str | None, chain_id: int
) -> ResolvedProtocol | None:
    """Resolve to the deployment on ``chain_id``; ``None`` means skip."""
    proto = find_protocol(protocol_key)
    if proto is None:
        return None
    chain_id = int(chain_id)
    mint_contract = proto.mint_contract.get(chain_id)
    factory = proto.factory.get(chain_id)
    if not mint_contract or not factory:
        return None
    return ResolvedProtocol(
        key=proto.key,
        display_name=proto.display_name,
        chain_id=chain_id,
        mint_contract=mint_contract,
        factory=factory,
        abi_variant=proto.abi_variant,
        score_bonus=proto.score_bonus,
    )
