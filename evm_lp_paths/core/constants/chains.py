CHAIN_ID_ETHEREUM = 1
CHAIN_ID_OPTIMISM = 10
CHAIN_ID_BSC = 56
CHAIN_ID_POLYGON = 137
CHAIN_ID_ZKSYNC = 324
CHAIN_ID_BASE = 8453
CHAIN_ID_ARBITRUM = 42161
CHAIN_ID_AVALANCHE = 43114
CHAIN_ID_LINEA = 59144
CHAIN_ID_SCROLL = 534352

CHAIN_CODE_TO_ID = {
    "ethereum": CHAIN_ID_ETHEREUM,
    "mainnet": CHAIN_ID_ETHEREUM,
    "optimism": CHAIN_ID_OPTIMISM,
    "bsc": CHAIN_ID_BSC,
    "polygon": CHAIN_ID_POLYGON,
    "zksync": CHAIN_ID_ZKSYNC,
    "base": CHAIN_ID_BASE,
    "arbitrum": CHAIN_ID_ARBITRUM,
    "arbitrum-one": CHAIN_ID_ARBITRUM,
    "avalanche": CHAIN_ID_AVALANCHE,
    "linea": CHAIN_ID_LINEA,
    "scroll": CHAIN_ID_SCROLL,
}

CHAIN_ID_TO_CODE: dict[int, str] = {
    v: k for k, v in CHAIN_CODE_TO_ID.items() if k not in ("arbitrum-one", "mainnet")
}

# Chains with concentrated-liquidity DEXes indexed by Krystal
KRYSTAL_LP_CHAINS = [
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_OPTIMISM,
    CHAIN_ID_BSC,
    CHAIN_ID_POLYGON,
    CHAIN_ID_BASE,
    CHAIN_ID_ARBITRUM,
    CHAIN_ID_AVALANCHE,
    CHAIN_ID_ZKSYNC,
    CHAIN_ID_SCROLL,
    CHAIN_ID_LINEA,
]

NATIVE_SYMBOLS: dict[int, str] = {
    CHAIN_ID_ETHEREUM: "ETH",
    CHAIN_ID_OPTIMISM: "ETH",
    CHAIN_ID_BSC: "BNB",
    CHAIN_ID_POLYGON: "MATIC",
    CHAIN_ID_ZKSYNC: "ETH",
    CHAIN_ID_BASE: "ETH",
    CHAIN_ID_ARBITRUM: "ETH",
    CHAIN_ID_AVALANCHE: "AVAX",
    CHAIN_ID_LINEA: "ETH",
    CHAIN_ID_SCROLL: "ETH",
}

# Conservative USD estimates used when no analyst price is available
FALLBACK_NATIVE_PRICES_USD: dict[int, float] = {
    CHAIN_ID_ETHEREUM: 2500.0,
    CHAIN_ID_OPTIMISM: 2500.0,
    CHAIN_ID_BSC: 300.0,
    CHAIN_ID_POLYGON: 0.5,
    CHAIN_ID_ZKSYNC: 2500.0,
    CHAIN_ID_BASE: 2500.0,
    CHAIN_ID_ARBITRUM: 2500.0,
    CHAIN_ID_AVALANCHE: 25.0,
    CHAIN_ID_LINEA: 2500.0,
    CHAIN_ID_SCROLL: 2500.0,
}
DEFAULT_NATIVE_PRICE_USD = 2500.0

POA_MIDDLEWARE_CHAIN_IDS: set[int] = {
    CHAIN_ID_BSC,
    CHAIN_ID_POLYGON,
    CHAIN_ID_AVALANCHE,
}

PRE_EIP_1559_CHAIN_IDS: set[int] = {
    CHAIN_ID_BSC,
    CHAIN_ID_ARBITRUM,
}


def chain_id_to_name(chain_id: int) -> str:
    return CHAIN_ID_TO_CODE.get(int(chain_id), f"chain-{chain_id}")


def parse_chain_id(raw: str | int) -> tuple[str, int]:
    """Parse Krystal's ``"arbitrum@42161"`` chain ids (plain ints pass through)."""
    if isinstance(raw, int):
        return chain_id_to_name(raw), raw
    text = str(raw).strip()
    if "@" in text:
        name, _, numeric = text.partition("@")
        try:
            return name.lower() or chain_id_to_name(int(numeric)), int(numeric)
        except ValueError:
            return name.lower(), 0
    if text.isdigit():
        return chain_id_to_name(int(text)), int(text)
    return text.lower(), CHAIN_CODE_TO_ID.get(text.lower(), 0)
