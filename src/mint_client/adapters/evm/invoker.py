"""
Adaptive Purchase Invocation Engine

Executes a purchase against a token contract whose real entry point name and
parameter order are not reliably known. Candidates from the catalog are
tried strictly in order until the chain accepts one.

Search rules
------------
1. **Preflight** - stablecoin balance and allowance must both cover one
   purchase; otherwise fail fast before any transaction is prepared.
2. **Per candidate** - encode calldata, estimate gas through the RPC node
   (a revert surfaces here without prompting the user), then submit through
   the wallet provider.
3. **Classification** - every failure is classified. A user rejection aborts
   the whole search immediately; anything else moves on to the next
   candidate.
4. **Stop** - the first broadcast transaction ends the search. The engine
   does not wait for its receipt; the caller awaits ``PendingPurchase.wait``.
5. **Exhaustion** - ``NoWorkingEntryPointError`` carrying the last failure.
"""

import logging
from typing import List, Optional, Sequence

from .catalog import build_catalog, encode_candidate, KNOWN_MINT
from .errors import classify_error
from .rpc import ChainRpcClient
from .schemas import (
    EncodingStrategy,
    EVMTransactionConfirmation,
    FailureReason,
    InvocationAttempt,
    InvocationCandidate,
)
from ...engine.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    MintClientError,
    NoWorkingEntryPointError,
    PurchaseInProgressError,
    UserRejectedError,
)

logger = logging.getLogger(__name__)


class PendingPurchase:
    """
    A broadcast purchase transaction awaiting confirmation.

    Attributes:
        candidate: The candidate the chain accepted
        tx_hash: Broadcast transaction hash
        attempts: Every attempt of the search, the accepted one last
    """

    def __init__(
        self,
        candidate: InvocationCandidate,
        tx_hash: str,
        attempts: List[InvocationAttempt],
        rpc: ChainRpcClient,
        confirmation_timeout: Optional[float],
        poll_interval: float,
    ):
        self.candidate = candidate
        self.tx_hash = tx_hash
        self.attempts = attempts
        self._rpc = rpc
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval

    @property
    def failures(self) -> List[InvocationAttempt]:
        return [a for a in self.attempts if not a.success]

    async def wait(self) -> EVMTransactionConfirmation:
        """Wait for the receipt; see ``ChainRpcClient.wait_for_confirmation``."""
        return await self._rpc.wait_for_confirmation(
            self.tx_hash,
            timeout=self._confirmation_timeout,
            poll_interval=self._poll_interval,
        )

    def __repr__(self) -> str:
        return f"PendingPurchase({self.candidate.describe()}, tx={self.tx_hash})"


class PurchaseInvoker:
    """
    Finds a working call shape on the token contract and executes the purchase.

    Attributes:
        amount_in: Stablecoin spent per purchase (smallest units)
        amount_out: Tokens received per purchase (smallest units)
        catalog: Ordered invocation candidates
    """

    def __init__(
        self,
        session,
        rpc: ChainRpcClient,
        gate,
        amount_in: int,
        amount_out: int,
        catalog: Optional[Sequence[InvocationCandidate]] = None,
        confirmation_timeout: Optional[float] = 120.0,
        poll_interval: float = 2.0,
    ):
        self._session = session
        self._rpc = rpc
        self._gate = gate
        self.amount_in = amount_in
        self.amount_out = amount_out
        self.catalog: List[InvocationCandidate] = list(catalog) if catalog is not None else build_catalog()
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def purchase(self, recipient: Optional[str] = None) -> PendingPurchase:
        """
        Run the preflight checks and the catalog search.

        Args:
            recipient: Address receiving the tokens; defaults to the session account.

        Returns:
            PendingPurchase for the first accepted candidate.

        Raises:
            PurchaseInProgressError: If a search is already running.
            InsufficientBalanceError / InsufficientAllowanceError: Preflight.
            UserRejectedError: The user declined a candidate's prompt.
            NoWorkingEntryPointError: Every candidate failed.
        """
        if self._running:
            raise PurchaseInProgressError("A purchase is already in progress for this session")
        self._running = True
        try:
            await self._preflight()
            return await self._search(recipient or self._session.token.account)
        finally:
            self._running = False

    async def _preflight(self) -> None:
        balance = await self._session.stablecoin.balance_of()
        if balance < self.amount_in:
            raise InsufficientBalanceError(
                f"Stablecoin balance {balance} is below the purchase cost {self.amount_in}",
                required=self.amount_in,
                available=balance,
            )
        record = await self._gate.read_allowance()
        if not record.covers(self.amount_in):
            raise InsufficientAllowanceError(
                f"Allowance {record.amount} is below the purchase cost {self.amount_in}",
                required=self.amount_in,
                available=record.amount,
            )

    async def _search(self, recipient: str) -> PendingPurchase:
        attempts: List[InvocationAttempt] = []
        for candidate in self.catalog:
            attempt = await self._attempt(candidate, recipient)
            attempts.append(attempt)

            if attempt.success:
                logger.info("purchase accepted via %s: %s", candidate.describe(), attempt.tx_hash)
                return PendingPurchase(
                    candidate,
                    attempt.tx_hash,
                    attempts,
                    self._rpc,
                    self.confirmation_timeout,
                    self.poll_interval,
                )

            logger.debug("candidate %s failed (%s): %s", candidate.describe(), attempt.reason.value, attempt.message)
            if attempt.reason is FailureReason.USER_REJECTED:
                raise UserRejectedError(
                    "Purchase declined in wallet",
                    provider_message=attempt.message,
                    attempts=attempts,
                )

        last = attempts[-1] if attempts else None
        raise NoWorkingEntryPointError(
            f"No working purchase entry point after {len(attempts)} candidates",
            provider_message=last.message if last else None,
            last_failure=last,
            attempts=attempts,
        )

    async def _attempt(self, candidate: InvocationCandidate, recipient: str) -> InvocationAttempt:
        if candidate.encoding is EncodingStrategy.TRANSFER_THEN_CALL:
            return await self._attempt_transfer_then_call(candidate, recipient)

        data = encode_candidate(
            candidate,
            recipient=recipient,
            amount_out=self.amount_out,
            amount_in=self.amount_in,
        )
        return await self._send(candidate, self._session.token, data)

    async def _send(self, candidate: InvocationCandidate, handle, data: str) -> InvocationAttempt:
        try:
            tx = await handle.prepare(data)
        except MintClientError:
            raise
        except Exception as e:
            reason, message = classify_error(e)
            if reason is FailureReason.UNKNOWN:
                reason = FailureReason.GAS_ESTIMATION_FAILED
            return InvocationAttempt(candidate=candidate, success=False, reason=reason, message=message)

        try:
            tx_hash = await handle.submit(tx)
        except MintClientError:
            raise
        except Exception as e:
            reason, message = classify_error(e)
            return InvocationAttempt(candidate=candidate, success=False, reason=reason, message=message)

        return InvocationAttempt(candidate=candidate, success=True, tx_hash=tx_hash)

    async def _attempt_transfer_then_call(self, candidate: InvocationCandidate, recipient: str) -> InvocationAttempt:
        stablecoin = self._session.stablecoin
        token = self._session.token
        try:
            transfer_hash = await stablecoin.transfer(token.address, self.amount_in)
        except MintClientError:
            raise
        except Exception as e:
            reason, message = classify_error(e)
            return InvocationAttempt(candidate=candidate, success=False, reason=reason,
                                     message=f"transfer: {message}")

        confirmation = await self._rpc.wait_for_confirmation(
            transfer_hash,
            timeout=self.confirmation_timeout,
            poll_interval=self.poll_interval,
        )
        if not confirmation.is_success():
            return InvocationAttempt(candidate=candidate, success=False,
                                     reason=FailureReason.EXECUTION_REVERTED,
                                     message=f"transfer {transfer_hash} reverted on-chain")

        data = encode_candidate(KNOWN_MINT, recipient=recipient, amount_out=self.amount_out, amount_in=self.amount_in)
        attempt = await self._send(candidate, token, data)
        if not attempt.success:
            attempt = attempt.model_copy(update={"message": f"after transfer {transfer_hash}: {attempt.message}"})
        return attempt
