"""
ERC20 Smart Contract ABI Module

This module provides simplified ABI definitions for the stablecoin and token
interactions the client performs, plus calldata encoding for write calls that
are submitted through the wallet provider instead of a local signer.

Usage:
    from ERC20_ABI import (
        get_balance_abi,
        get_allowance_abi,
        encode_function_call,
    )

    # Query balance
    balance_abi = get_balance_abi()

    # Build approve calldata for eth_sendTransaction
    data = encode_function_call("approve", ["address", "uint256"], [spender, amount])
"""

from typing import Dict, Any, List, Sequence

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector


def get_balance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for querying an ERC20 token balance.

    Returns:
        List[Dict[str, Any]]: ABI for balanceOf function

    Example:
        abi = get_balance_abi()
        contract = web3.eth.contract(address=token_address, abi=abi)
        balance = await contract.functions.balanceOf(address).call()
    """
    return [
        {
            "name": "balanceOf",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_allowance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `allowance(owner, spender)`.

    Returns:
        List[Dict[str, Any]]: ABI for ERC20 `allowance` function.

    Example:
        abi = get_allowance_abi()
        contract = web3.eth.contract(address=token_address, abi=abi)
        allowance = await contract.functions.allowance(owner, spender).call()
    """
    return [
        {
            "name": "allowance",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
            ],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def function_signature(name: str, arg_types: Sequence[str]) -> str:
    """Canonical signature string, e.g. ``purchase(address,uint256)``."""
    return f"{name}({','.join(arg_types)})"


def function_selector(name: str, arg_types: Sequence[str]) -> str:
    """0x-prefixed 4-byte selector of ``name(arg_types...)``."""
    return "0x" + function_signature_to_4byte_selector(function_signature(name, arg_types)).hex()


def encode_function_call(name: str, arg_types: Sequence[str], args: Sequence[Any]) -> str:
    """
    ABI-encode a call to ``name(arg_types...)`` with ``args``.

    Args:
        name: Function name.
        arg_types: Solidity argument types, in order.
        args: Argument values matching ``arg_types``.

    Returns:
        str: 0x-prefixed calldata (selector followed by encoded arguments).

    Raises:
        ValueError: If the number of args does not match the types.

    Example:
        encode_function_call("mint", [], [])  # '0x1249c58b'
    """
    if len(arg_types) != len(args):
        raise ValueError(
            f"{name}: expected {len(arg_types)} arguments, got {len(args)}"
        )
    selector = function_signature_to_4byte_selector(function_signature(name, arg_types))
    encoded_args = encode(list(arg_types), list(args)) if arg_types else b""
    return "0x" + (selector + encoded_args).hex()
