import asyncio
from collections.abc import Callable
from typing import Any

from eth_utils import to_checksum_address
from web3 import AsyncWeb3
from web3.exceptions import BadFunctionCallOutput

from evm_lp_paths.core.constants.contracts import TOKENS_REQUIRING_APPROVAL_RESET
from evm_lp_paths.core.constants.erc20_abi import ERC20_ABI, WETH_ABI
from evm_lp_paths.core.utils.transaction import encode_call, send_transaction
from evm_lp_paths.core.utils.web3 import web3_from_chain_id

NATIVE_TOKEN_ADDRESSES: set = {
    "0x0000000000000000000000000000000000000000",
    "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee",
    "0x0000000000000000000000000000000000001010",
}


def is_native_token(token_address: str | None) -> bool:
    if token_address is None:
        return True
    normalized = str(token_address).strip().lower()
    if normalized in ("", "native"):
        return True
    return normalized in NATIVE_TOKEN_ADDRESSES


def to_human(raw_amount: int, decimals: int) -> float:
    return int(raw_amount) / (10 ** int(decimals))


def to_raw(human_amount: float, decimals: int) -> int:
    return int(float(human_amount) * (10 ** int(decimals)))


async def _erc20_symbol(web3: AsyncWeb3, token_address: str) -> str:
    contract = web3.eth.contract(address=token_address, abi=ERC20_ABI)
    try:
        return str(await contract.functions.symbol().call())
    except (BadFunctionCallOutput, ValueError):
        # MKR-style tokens return bytes32 symbols
        bytes32_abi = [
            {
                "name": "symbol",
                "type": "function",
                "stateMutability": "view",
                "inputs": [],
                "outputs": [{"name": "", "type": "bytes32"}],
            }
        ]
        raw = await web3.eth.contract(
            address=token_address, abi=bytes32_abi
        ).functions.symbol().call()
        return bytes(raw).rstrip(b"\x00").decode("utf-8", errors="ignore")


async def get_erc20_symbol_and_decimals(
    token_address: str, chain_id: int
) -> tuple[str, int]:
    async with web3_from_chain_id(chain_id) as web3:
        checksum_token = web3.to_checksum_address(token_address)
        contract = web3.eth.contract(address=checksum_token, abi=ERC20_ABI)
        symbol, decimals = await asyncio.gather(
            _erc20_symbol(web3, checksum_token),
            contract.functions.decimals().call(),
        )
        return symbol, int(decimals)


async def get_token_balance(
    token_address: str | None,
    chain_id: int,
    wallet_address: str,
    *,
    block_identifier: str | int = "latest",
) -> int:
    async with web3_from_chain_id(chain_id) as w3:
        checksum_wallet = w3.to_checksum_address(wallet_address)
        if is_native_token(token_address):
            balance = await w3.eth.get_balance(
                checksum_wallet, block_identifier=block_identifier
            )
            return int(balance)

        contract = w3.eth.contract(
            address=w3.to_checksum_address(str(token_address)), abi=ERC20_ABI
        )
        balance = await contract.functions.balanceOf(checksum_wallet).call(
            block_identifier=block_identifier
        )
        return int(balance)


async def get_token_balance_with_decimals(
    token_address: str | None,
    chain_id: int,
    wallet_address: str,
    *,
    default_native_decimals: int = 18,
) -> tuple[int, int]:
    async with web3_from_chain_id(chain_id) as w3:
        checksum_wallet = w3.to_checksum_address(wallet_address)
        if is_native_token(token_address):
            balance = await w3.eth.get_balance(checksum_wallet)
            return int(balance), int(default_native_decimals)

        contract = w3.eth.contract(
            address=w3.to_checksum_address(str(token_address)), abi=ERC20_ABI
        )
        balance, decimals = await asyncio.gather(
            contract.functions.balanceOf(checksum_wallet).call(),
            contract.functions.decimals().call(),
        )
        return int(balance), int(decimals)


async def get_token_allowance(
    token_address: str, chain_id: int, owner_address: str, spender_address: str
) -> int:
    async with web3_from_chain_id(chain_id) as web3:
        contract = web3.eth.contract(
            address=web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        allowance = await contract.functions.allowance(
            web3.to_checksum_address(owner_address),
            web3.to_checksum_address(spender_address),
        ).call(block_identifier="pending")
        return int(allowance)


async def build_approve_transaction(
    from_address: str,
    chain_id: int,
    token_address: str,
    spender_address: str,
    amount: int,
) -> dict:
    return await encode_call(
        target=token_address,
        abi=ERC20_ABI,
        fn_name="approve",
        args=[to_checksum_address(spender_address), int(amount)],
        from_address=from_address,
        chain_id=chain_id,
    )


async def build_wrap_transaction(
    from_address: str, chain_id: int, wrapped_address: str, amount: int
) -> dict:
    return await encode_call(
        target=wrapped_address,
        abi=WETH_ABI,
        fn_name="deposit",
        args=[],
        from_address=from_address,
        chain_id=chain_id,
        value=int(amount),
    )


async def ensure_allowance(
    *,
    token_address: str,
    owner: str,
    spender: str,
    amount: int,
    chain_id: int,
    signing_callback: Callable,
) -> tuple[bool, Any]:
    allowance = await get_token_allowance(token_address, chain_id, owner, spender)
    if allowance >= amount:
        return True, {}

    if (
        int(chain_id),
        to_checksum_address(token_address),
    ) in TOKENS_REQUIRING_APPROVAL_RESET and allowance > 0:
        clear_transaction = await build_approve_transaction(
            from_address=owner,
            chain_id=chain_id,
            token_address=token_address,
            spender_address=spender,
            amount=0,
        )
        await send_transaction(clear_transaction, signing_callback)

    approve_tx = await build_approve_transaction(
        from_address=owner,
        chain_id=chain_id,
        token_address=token_address,
        spender_address=spender,
        amount=amount,
    )
    txn_hash = await send_transaction(approve_tx, signing_callback)
    return True, txn_hash
