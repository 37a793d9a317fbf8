from eth_utils import to_checksum_address

from evm_lp_paths.core.constants.chains import (
    CHAIN_ID_ARBITRUM,
    CHAIN_ID_AVALANCHE,
    CHAIN_ID_BASE,
    CHAIN_ID_BSC,
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_LINEA,
    CHAIN_ID_OPTIMISM,
    CHAIN_ID_POLYGON,
    CHAIN_ID_SCROLL,
    CHAIN_ID_ZKSYNC,
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Native USDC per chain (Linea is USDC.e)
USDC_BY_CHAIN: dict[int, str] = {
    CHAIN_ID_ETHEREUM: to_checksum_address("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
    CHAIN_ID_OPTIMISM: to_checksum_address("0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85"),
    CHAIN_ID_BSC: to_checksum_address("0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d"),
    CHAIN_ID_POLYGON: to_checksum_address("0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"),
    CHAIN_ID_BASE: to_checksum_address("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
    CHAIN_ID_ARBITRUM: to_checksum_address("0xaf88d065e77c8cC2239327C5EDb3A432268e5831"),
    CHAIN_ID_AVALANCHE: to_checksum_address("0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E"),
    CHAIN_ID_ZKSYNC: to_checksum_address("0x1d17CBcF0D6D143135aE902365D2E5e2A16538D4"),
    CHAIN_ID_LINEA: to_checksum_address("0x176211869cA2b568f2A7D4EE941E073a821EE1ff"),
    CHAIN_ID_SCROLL: to_checksum_address("0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4"),
}

# Legacy bridged USDC variants, keyed by chain then symbol
BRIDGED_USDC_BY_CHAIN: dict[int, dict[str, str]] = {
    CHAIN_ID_POLYGON: {
        "USDC.e": to_checksum_address("0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174")
    },
    CHAIN_ID_ARBITRUM: {
        "USDC.e": to_checksum_address("0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8")
    },
    CHAIN_ID_BASE: {
        "USDbC": to_checksum_address("0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA")
    },
    CHAIN_ID_OPTIMISM: {
        "USDC.e": to_checksum_address("0x7F5c764cBc14f9669B88837ca1490cCa17c31607")
    },
    CHAIN_ID_AVALANCHE: {
        "USDC.e": to_checksum_address("0xA7D7079b0FEaD91F3e65f86E8915Cb59c1a4C664")
    },
}

USDT_BY_CHAIN: dict[int, str] = {
    CHAIN_ID_ETHEREUM: to_checksum_address("0xdAC17F958D2ee523a2206206994597C13D831ec7"),
    CHAIN_ID_OPTIMISM: to_checksum_address("0x94b008aA00579c1307B0EF2c499aD98a8ce58e58"),
    CHAIN_ID_BSC: to_checksum_address("0x55d398326f99059fF775485246999027B3197955"),
    CHAIN_ID_POLYGON: to_checksum_address("0xc2132D05D31c914a87C6611C10748AEb04B58e8F"),
    CHAIN_ID_BASE: to_checksum_address("0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2"),
    CHAIN_ID_ARBITRUM: to_checksum_address("0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9"),
    CHAIN_ID_AVALANCHE: to_checksum_address("0x9702230A8Ea53601f5cD2dc00fDBc13d4dF4A8c7"),
}

# Canonical wrapped-native token per chain: (symbol, address)
WRAPPED_NATIVE_BY_CHAIN: dict[int, tuple[str, str]] = {
    CHAIN_ID_ETHEREUM: (
        "WETH",
        to_checksum_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"),
    ),
    CHAIN_ID_OPTIMISM: (
        "WETH",
        to_checksum_address("0x4200000000000000000000000000000000000006"),
    ),
    CHAIN_ID_BSC: (
        "WBNB",
        to_checksum_address("0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"),
    ),
    CHAIN_ID_POLYGON: (
        "WMATIC",
        to_checksum_address("0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270"),
    ),
    CHAIN_ID_BASE: (
        "WETH",
        to_checksum_address("0x4200000000000000000000000000000000000006"),
    ),
    CHAIN_ID_ARBITRUM: (
        "WETH",
        to_checksum_address("0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"),
    ),
    CHAIN_ID_AVALANCHE: (
        "WAVAX",
        to_checksum_address("0xB31f66AA3C1e785363F0875A1B74E27b85FD66c7"),
    ),
}

STABLECOIN_SYMBOLS: frozenset[str] = frozenset(
    {
        "USDC",
        "USDT",
        "DAI",
        "USDG",
        "FRAX",
        "TUSD",
        "BUSD",
        "USDCE",
        "USDC.E",
        "USDT0",
        "USDBC",
    }
)

# USDT-style tokens that revert on approve(x) when the current allowance is non-zero
TOKENS_REQUIRING_APPROVAL_RESET: set[tuple[int, str]] = {
    (CHAIN_ID_ETHEREUM, USDT_BY_CHAIN[CHAIN_ID_ETHEREUM]),
}


def is_stable_symbol(symbol: str | None) -> bool:
    return str(symbol or "").strip().upper() in STABLECOIN_SYMBOLS


def wrapped_native_address(chain_id: int) -> str | None:
    entry = WRAPPED_NATIVE_BY_CHAIN.get(int(chain_id))
    return entry[1] if entry else None
