GAS_BUFFER_MULTIPLIER = 1.1
SUGGESTED_PRIORITY_FEE_MULTIPLIER = 1.5
SUGGESTED_GAS_PRICE_MULTIPLIER = 1.5
MAX_BASE_FEE_GROWTH_MULTIPLIER = 2

# Timeout constants (seconds)
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_TRANSACTION_TIMEOUT = 180

# Bridge completion polling
BRIDGE_MAX_WAIT_S = 5 * 60

ADAPTER_BALANCE = "BALANCE"
ADAPTER_FUNDING = "FUNDING"
ADAPTER_LP = "LP"
ADAPTER_POOL_DISCOVERY = "POOL_DISCOVERY"
ADAPTER_POSITION = "POSITION"

MAX_UINT128 = 2**128 - 1

# keccak("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = (
    "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
)
