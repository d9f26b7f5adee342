"""
Allowance Gate

Tracks whether the connected account has authorised the token contract to
pull at least one purchase's worth of stablecoin, and performs the approval
transaction when it has not.

The gate's view of the allowance is never cached across decisions: every
check re-reads ``allowance(owner, token)`` from the chain, and the approved
flag only flips after an approval receipt confirms on-chain.
"""

import logging
from typing import Optional

from .errors import to_mint_error
from .rpc import ChainRpcClient
from .schemas import AllowanceRecord, EVMTransactionConfirmation
from ...schemas.bases import ApprovalState
from ...engine.exceptions import (
    ApprovalRevertedError,
    ConfigurationError,
    MintClientError,
)

logger = logging.getLogger(__name__)


class AllowanceGate:
    """
    Allowance check and approval for one session.

    Attributes:
        required_amount: One purchase's cost in stablecoin smallest units
        approved: True only after a check or a confirmed approval showed
            allowance >= required_amount
        last_record: Most recent allowance snapshot (diagnostics only)

    Example:
        gate = AllowanceGate(session, rpc, required_amount=1_000_000)
        if await gate.check_approval() is ApprovalState.NOT_APPROVED:
            await gate.approve(10_000_000)
    """

    def __init__(
        self,
        session,
        rpc: ChainRpcClient,
        required_amount: int,
        confirmation_timeout: Optional[float] = 120.0,
        poll_interval: float = 2.0,
    ):
        if required_amount <= 0:
            raise ConfigurationError("required_amount must be positive")
        self._session = session
        self._rpc = rpc
        self.required_amount = required_amount
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.approved = False
        self.last_record: Optional[AllowanceRecord] = None

    @property
    def state(self) -> ApprovalState:
        if self.last_record is None and not self.approved:
            return ApprovalState.UNKNOWN
        return ApprovalState.APPROVED if self.approved else ApprovalState.NOT_APPROVED

    @property
    def spender(self) -> str:
        return self._session.token.address

    def reset(self) -> None:
        """Forget every reading; used when the session is invalidated."""
        self.approved = False
        self.last_record = None

    async def read_allowance(self, owner: Optional[str] = None) -> AllowanceRecord:
        """
        Read the current allowance snapshot from the chain.

        Args:
            owner: Allowance owner; defaults to the session account.
        """
        stablecoin = self._session.stablecoin
        owner = owner or stablecoin.account
        amount = await stablecoin.allowance(self.spender, owner=owner)
        record = AllowanceRecord(owner=owner, spender=self.spender, amount=amount)
        self.last_record = record
        return record

    async def check_approval(
        self,
        owner: Optional[str] = None,
        required_amount: Optional[int] = None,
    ) -> ApprovalState:
        """
        Compare the on-chain allowance with the required amount.

        Pure read; safe to call repeatedly.

        Returns:
            ApprovalState.APPROVED iff allowance >= required amount.
        """
        required = self.required_amount if required_amount is None else required_amount
        record = await self.read_allowance(owner)
        self.approved = record.covers(required)
        logger.debug("allowance %s / required %s -> approved=%s", record.amount, required, self.approved)
        return ApprovalState.APPROVED if self.approved else ApprovalState.NOT_APPROVED

    async def approve(self, spend_ceiling: int) -> EVMTransactionConfirmation:
        """
        Submit one approval for ``spend_ceiling`` and wait for its receipt.

        Args:
            spend_ceiling: Amount to approve; must cover at least one purchase.

        Returns:
            EVMTransactionConfirmation of the confirmed approval.

        Raises:
            ConfigurationError: If the ceiling is below one purchase's cost.
            UserRejectedError: If the user declines the prompt.
            InsufficientGasError: If the signer cannot pay network fees.
            ApprovalRevertedError: For any other rejection or a reverted receipt.
            ConfirmationTimeoutError: If the receipt does not arrive in time.
        """
        if spend_ceiling < self.required_amount:
            raise ConfigurationError(
                f"Approval ceiling {spend_ceiling} is below one purchase ({self.required_amount})"
            )

        stablecoin = self._session.stablecoin
        try:
            tx_hash = await stablecoin.approve(self.spender, spend_ceiling)
        except MintClientError:
            raise
        except Exception as e:
            raise to_mint_error(e, ApprovalRevertedError, "Approval") from e

        confirmation = await self._rpc.wait_for_confirmation(
            tx_hash,
            timeout=self.confirmation_timeout,
            poll_interval=self.poll_interval,
        )
        if not confirmation.is_success():
            raise ApprovalRevertedError(
                f"Approval transaction {tx_hash} reverted on-chain",
                provider_message=confirmation.error_message,
                tx_hash=tx_hash,
            )

        self.approved = True
        self.last_record = AllowanceRecord(
            owner=stablecoin.account, spender=self.spender, amount=spend_ceiling
        )
        logger.info("approval confirmed: %s (ceiling %s)", tx_hash, spend_ceiling)
        return confirmation
