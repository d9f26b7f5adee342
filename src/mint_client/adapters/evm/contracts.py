"""
Session-Bound Contract Handles

Handles are created by the wallet session when it reaches READY and are
scoped to the authorised account. Each one remembers the session generation
it was bound in and checks the session before every read or write, so a
handle that outlives an invalidation can never touch the chain.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from web3 import AsyncWeb3

from .ERC20_ABI import encode_function_call
from .rpc import ChainRpcClient

logger = logging.getLogger(__name__)

#: Multiplier applied to gas estimates before submission.
_GAS_BUFFER = 1.1


class SessionGuard(Protocol):
    def require_ready(self, generation: Optional[int] = None) -> None:
        ...


class ContractHandle:
    """
    Common plumbing for a contract bound to one account in one session.

    Attributes:
        address: Checksummed contract address
        account: Checksummed authorised account
        generation: Session generation the handle was bound in
    """

    def __init__(self, rpc: ChainRpcClient, guard: SessionGuard, address: str, account: str, generation: int):
        self._rpc = rpc
        self._guard = guard
        self.address = AsyncWeb3.to_checksum_address(address)
        self.account = AsyncWeb3.to_checksum_address(account)
        self.generation = generation

    def _check(self) -> None:
        self._guard.require_ready(self.generation)

    async def balance_of(self, owner: Optional[str] = None) -> int:
        """``balanceOf(owner)``; defaults to the bound account."""
        self._check()
        return await self._rpc.balance_of(self.address, owner or self.account)

    async def has_code(self) -> bool:
        self._check()
        return await self._rpc.has_code(self.address)

    async def prepare(self, data: str, value: int = 0) -> Dict[str, Any]:
        """
        Build a transaction calling this contract with ``data`` and attach a
        buffered gas limit.

        Raises:
            Exception: Whatever gas estimation raised (a revert here means the
                call would fail on-chain).
        """
        self._check()
        tx: Dict[str, Any] = {"from": self.account, "to": self.address, "data": data}
        if value:
            tx["value"] = hex(value)
        gas_estimate = await self._rpc.estimate_gas(tx)
        tx["gas"] = hex(int(gas_estimate * _GAS_BUFFER))
        return tx

    async def submit(self, tx: Dict[str, Any]) -> str:
        """Hand a prepared transaction to the wallet; returns the tx hash."""
        self._check()
        return await self._rpc.send_transaction(tx)

    async def call(self, data: str) -> str:
        """Prepare and submit in one step."""
        tx = await self.prepare(data)
        return await self.submit(tx)


class StablecoinHandle(ContractHandle):
    """The input ERC20 (balance, allowance, approve, transfer)."""

    async def allowance(self, spender: str, owner: Optional[str] = None) -> int:
        self._check()
        return await self._rpc.allowance(self.address, owner or self.account, spender)

    async def approve(self, spender: str, amount: int) -> str:
        """Submit ``approve(spender, amount)``; returns the tx hash."""
        data = encode_function_call(
            "approve", ["address", "uint256"], [AsyncWeb3.to_checksum_address(spender), amount]
        )
        logger.info("approve %s for %s", amount, spender)
        return await self.call(data)

    async def transfer(self, to: str, amount: int) -> str:
        """Submit ``transfer(to, amount)``; returns the tx hash."""
        data = encode_function_call(
            "transfer", ["address", "uint256"], [AsyncWeb3.to_checksum_address(to), amount]
        )
        logger.info("transfer %s to %s", amount, to)
        return await self.call(data)


class TokenHandle(ContractHandle):
    """The purchased token, whose purchase entry point is not known up front."""
