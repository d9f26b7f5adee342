"""
Chain RPC Client

Thin contract over the chain for everything the core reads, plus the single
write path through the wallet provider.

Key Features:
    - ERC20 balance and allowance reads via ``AsyncWeb3`` contract calls
    - Contract bytecode presence check
    - Gas estimation (surfaces reverts before the user is prompted)
    - Transaction submission delegated to the wallet provider
    - Receipt polling with an optional bound

Dependencies:
    - web3.py: For blockchain RPC interaction
    - aiohttp: Transport errors raised under web3's async HTTP provider
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception

from ..bases import WalletProvider
from .ERC20_ABI import get_balance_abi, get_allowance_abi
from .schemas import EVMTransactionConfirmation
from ...schemas.bases import TransactionStatus
from ...engine.exceptions import (
    ConfirmationTimeoutError,
    NoProviderError,
    UnknownChainError,
)

logger = logging.getLogger(__name__)

# AsyncHTTPProvider lets transport failures through unwrapped.
RPC_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError)


class ChainRpcClient:
    """
    Reads on-chain state over HTTP JSON-RPC and broadcasts through the
    wallet provider.

    The client holds no session state and performs no chain-id checks; the
    bound contract handles built by the wallet session do that before every
    call.

    Attributes:
        provider: Wallet provider used for ``eth_sendTransaction``
        web3: AsyncWeb3 instance used for reads, estimation and receipts

    Example:
        rpc = ChainRpcClient(provider, "https://mainnet.base.org")
        balance = await rpc.balance_of(usdc, owner)
    """

    def __init__(
        self,
        provider: Optional[WalletProvider],
        rpc_url: Optional[str] = None,
        request_timeout: int = 30,
        web3: Optional[AsyncWeb3] = None,
    ):
        """
        Args:
            provider: Wallet provider for writes (may be None for read-only use).
            rpc_url: HTTP JSON-RPC endpoint; ignored when ``web3`` is given.
            request_timeout: HTTP timeout in seconds.
            web3: Pre-built AsyncWeb3 instance (tests, custom middleware).

        Raises:
            ValueError: If neither ``rpc_url`` nor ``web3`` is provided.
        """
        if web3 is None:
            if not rpc_url:
                raise ValueError("rpc_url is required when no web3 instance is supplied")
            web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": request_timeout}
            ))
        self.provider = provider
        self.web3 = web3

    async def get_chain_id(self) -> int:
        """Chain id reported by the RPC node."""
        try:
            return int(await self.web3.eth.chain_id)
        except RPC_ERRORS as e:
            raise UnknownChainError(f"Failed to read chain id: {e}", provider_message=str(e)) from e

    async def balance_of(self, token_addr: str, owner: str) -> int:
        """
        Query ``balanceOf(owner)`` on an ERC20 contract.

        Returns:
            int: Balance in the token's smallest units.

        Raises:
            UnknownChainError: If the call fails.
        """
        contract = self.web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_addr),
            abi=get_balance_abi(),
        )
        try:
            balance = await contract.functions.balanceOf(AsyncWeb3.to_checksum_address(owner)).call()
        except RPC_ERRORS as e:
            raise UnknownChainError(
                f"Failed to query balance of {owner} on {token_addr}: {e}", provider_message=str(e)
            ) from e
        return int(balance)

    async def allowance(self, token_addr: str, owner: str, spender: str) -> int:
        """
        Query ``allowance(owner, spender)`` on an ERC20 contract.

        Returns:
            int: The remaining allowance in the token's smallest units.

        Raises:
            UnknownChainError: If the call fails.
        """
        contract = self.web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(token_addr),
            abi=get_allowance_abi(),
        )
        try:
            allowance = await contract.functions.allowance(
                AsyncWeb3.to_checksum_address(owner),
                AsyncWeb3.to_checksum_address(spender),
            ).call()
        except RPC_ERRORS as e:
            raise UnknownChainError(
                f"Failed to query allowance for token {token_addr}. "
                f"Owner: {owner}, Spender: {spender}. Error: {e}",
                provider_message=str(e),
            ) from e
        return int(allowance)

    async def has_code(self, address: str) -> bool:
        """True when contract bytecode is deployed at ``address``."""
        try:
            code = await self.web3.eth.get_code(AsyncWeb3.to_checksum_address(address))
        except RPC_ERRORS as e:
            raise UnknownChainError(f"Failed to read code at {address}: {e}", provider_message=str(e)) from e
        return len(bytes(code)) > 0

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        """
        Estimate gas for ``tx`` without broadcasting it.

        Errors are raised unchanged so callers can classify them (a revert
        here means the call would fail on-chain).
        """
        return int(await self.web3.eth.estimate_gas(tx))

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """
        Submit ``tx`` to the wallet provider for signing and broadcast.

        Returns:
            str: 0x-prefixed transaction hash.

        Raises:
            NoProviderError: If the client was built without a provider.
        """
        if self.provider is None:
            raise NoProviderError("No wallet provider available to sign transactions")
        tx_hash = await self.provider.send_transaction(tx)
        logger.info("broadcast %s -> %s", tx.get("to"), tx_hash)
        return tx_hash

    async def wait_for_confirmation(
        self,
        tx_hash: str,
        timeout: Optional[float] = 120.0,
        poll_interval: float = 2.0,
    ) -> EVMTransactionConfirmation:
        """
        Poll ``eth_getTransactionReceipt`` until the transaction is mined.

        Args:
            tx_hash: Hash returned by the provider.
            timeout: Seconds to wait before giving up; None waits forever.
            poll_interval: Seconds between polls.

        Returns:
            EVMTransactionConfirmation with CONFIRMED or FAILED status.

        Raises:
            ConfirmationTimeoutError: If no receipt arrives within ``timeout``.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        receipt = None
        while receipt is None:
            try:
                receipt = await self.web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None  # still pending
            except RPC_ERRORS as e:
                raise UnknownChainError(
                    f"Failed to poll receipt for {tx_hash}: {e}", provider_message=str(e)
                ) from e
            if receipt is not None:
                break
            if deadline is not None and loop.time() >= deadline:
                raise ConfirmationTimeoutError(
                    f"Transaction {tx_hash} not confirmed within {timeout} seconds",
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(poll_interval)

        block_number = receipt["blockNumber"]
        try:
            current_block = await self.web3.eth.block_number
            confirmations = max(current_block - block_number, 0)
        except RPC_ERRORS:
            confirmations = 0

        status = TransactionStatus.CONFIRMED if receipt.get("status") == 1 else TransactionStatus.FAILED
        logger.info("receipt for %s: %s in block %s", tx_hash, status.value, block_number)
        return EVMTransactionConfirmation(
            tx_hash=tx_hash,
            status=status,
            block_number=block_number,
            gas_used=receipt.get("gasUsed"),
            confirmations=confirmations,
            effective_gas_price=receipt.get("effectiveGasPrice"),
            from_address=receipt.get("from"),
            to_address=receipt.get("to"),
            error_message=None if status is TransactionStatus.CONFIRMED else "Transaction reverted on-chain",
        )
