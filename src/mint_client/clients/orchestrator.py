"""
Session Orchestrator

Sequences connect -> gate check -> approve -> purchase -> refresh for one
client and owns the reset policy for provider notifications.

Provider notifications land on an inbox queue. Pending notifications are
drained before every public operation (and continuously by ``listen()``);
each one runs through the event chain, where a single handler reduces
account, chain and disconnect notifications to one session invalidation.

Public operations return an ``ActionResult`` and never raise for classified
failures. The ``*_or_raise`` variants raise the typed exceptions instead.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from web3 import AsyncWeb3

from .session import WalletSession
from ..adapters.bases import WalletProvider
from ..adapters.evm.allowance import AllowanceGate
from ..adapters.evm.catalog import build_catalog
from ..adapters.evm.constants import MintConfig
from ..adapters.evm.invoker import PurchaseInvoker
from ..adapters.evm.rpc import ChainRpcClient
from ..adapters.evm.schemas import EVMTransactionConfirmation, InvocationCandidate
from ..engine.events import (
    AccountsChangedEvent,
    BaseEvent,
    ChainChangedEvent,
    Dependencies,
    DisconnectEvent,
    EventBus,
    SessionInvalidatedEvent,
)
from ..engine.exceptions import (
    ErrorKind,
    MintClientError,
    NotApprovedError,
    PurchaseInProgressError,
    PurchaseRevertedError,
    UnknownChainError,
)
from ..engine.executors import EventChain
from ..schemas.bases import ApprovalState, CanonicalModel, ConnectionState

logger = logging.getLogger(__name__)


# ==================== Result Models ====================

class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class ActionResult(CanonicalModel):
    """
    Typed outcome of a public orchestrator operation.

    Attributes:
        status: SUCCESS or FAILED
        error_kind: Classified kind for failures
        message: Human-readable summary
        provider_message: Raw wallet/node message behind a failure
        tx_hash: Transaction the operation produced, if any
    """
    status: ActionStatus
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    provider_message: Optional[str] = None
    tx_hash: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.SUCCESS

    @classmethod
    def success(cls, message: str = "", tx_hash: Optional[str] = None) -> "ActionResult":
        return cls(status=ActionStatus.SUCCESS, message=message, tx_hash=tx_hash)

    @classmethod
    def from_error(cls, exc: MintClientError) -> "ActionResult":
        return cls(
            status=ActionStatus.FAILED,
            error_kind=exc.kind,
            message=exc.message or str(exc),
            provider_message=exc.provider_message,
            tx_hash=getattr(exc, "tx_hash", None),
        )


class SessionStatus(CanonicalModel):
    """Coarse status for external reporting."""
    connection_state: ConnectionState
    address: Optional[str] = None
    chain_id: Optional[int] = None
    network_match: bool = False
    approval_state: ApprovalState = ApprovalState.UNKNOWN
    last_tx_hash: Optional[str] = None
    stablecoin_balance: Optional[int] = None
    token_balance: Optional[int] = None


# ==================== Event Handlers ====================

async def invalidate_on_provider_event(event: BaseEvent, deps: Dependencies) -> Optional[BaseEvent]:
    """
    Reduce a provider notification to at most one session invalidation.

    Notifications that change nothing (same account, same chain) and
    notifications for a session that is already disconnected are ignored.
    While connecting, the account grant and a switch onto the target chain
    are part of the connect itself and are ignored too; connect reads both
    values from the provider directly.
    """
    session: WalletSession = deps.session
    state = session.state
    if state is ConnectionState.DISCONNECTED:
        return None

    if isinstance(event, AccountsChangedEvent):
        if state is ConnectionState.CONNECTING:
            return None
        if not event.accounts:
            reason = "accounts revoked"
        else:
            try:
                new_account = AsyncWeb3.to_checksum_address(event.accounts[0])
            except (ValueError, TypeError):
                new_account = None
            if new_account is not None and new_account == session.account:
                return None
            reason = "accounts changed" if new_account else f"unrecognised account {event.accounts[0]!r}"
    elif isinstance(event, ChainChangedEvent):
        if state is ConnectionState.READY:
            if event.chain_id == session.session.chain_id:
                return None
        elif event.chain_id == session.target_chain_id:
            return None
        reason = f"chain changed to {event.chain_id}"
    elif isinstance(event, DisconnectEvent):
        reason = event.reason
    else:
        return None

    return session.invalidate(reason)


async def clear_session_state(event: SessionInvalidatedEvent, deps: Dependencies) -> None:
    """Forget every gate reading and cached status of the dropped session."""
    deps.gate.reset()
    if deps.orchestrator is not None:
        deps.orchestrator.clear_status()


# ==================== Orchestrator ====================

class SessionOrchestrator:
    """
    Drives one wallet session from connection to purchase.

    Attributes:
        config: Fixed configuration for the session
        session: The wallet session state machine
        gate: Allowance gate bound to the session
        invoker: Purchase invocation engine bound to the session

    Example:
        orchestrator = SessionOrchestrator(MintConfig.from_env(), provider)
        result = await orchestrator.connect()
        if result.ok and (await orchestrator.status()).approval_state is not ApprovalState.APPROVED:
            await orchestrator.approve()
        result = await orchestrator.purchase()
    """

    def __init__(
        self,
        config: MintConfig,
        provider: Optional[WalletProvider],
        rpc: Optional[ChainRpcClient] = None,
        catalog: Optional[Sequence[InvocationCandidate]] = None,
    ):
        self.config = config
        self.provider = provider
        self.rpc = rpc or ChainRpcClient(provider, config.rpc_url, config.request_timeout)
        self.session = WalletSession(provider, self.rpc, config)
        self.gate = AllowanceGate(
            self.session,
            self.rpc,
            config.required_input_value,
            confirmation_timeout=config.confirmation_timeout,
            poll_interval=config.poll_interval,
        )
        if catalog is None:
            catalog = build_catalog(include_transfer_fallback=config.enable_transfer_fallback)
        self.invoker = PurchaseInvoker(
            self.session,
            self.rpc,
            self.gate,
            amount_in=config.required_input_value,
            amount_out=config.output_value,
            catalog=catalog,
            confirmation_timeout=config.confirmation_timeout,
            poll_interval=config.poll_interval,
        )

        self.event_bus = EventBus()
        for event_class in (AccountsChangedEvent, ChainChangedEvent, DisconnectEvent):
            self.event_bus.subscribe(event_class, invalidate_on_provider_event)
        self.event_bus.hook(SessionInvalidatedEvent, clear_session_state)
        self._chain = EventChain(
            self.event_bus,
            Dependencies(session=self.session, gate=self.gate, orchestrator=self),
        )

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._unsubscribe = provider.subscribe(self._inbox.put_nowait) if provider is not None else None
        self._lock = asyncio.Lock()
        self._purchasing = False
        self._listen_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None

        self.last_tx_hash: Optional[str] = None
        self.stablecoin_balance: Optional[int] = None
        self.token_balance: Optional[int] = None

    # ---- inbox ----

    async def _dispatch(self, event: BaseEvent) -> None:
        try:
            produced = await self._chain.run(event)
        except Exception:
            logger.exception("failed to process wallet notification %r", event)
            await self._invalidate("unprocessable wallet notification")
            return
        logger.debug("%r produced %s", event, produced)

    async def _invalidate(self, reason: str) -> None:
        if self.session.state is ConnectionState.DISCONNECTED:
            return
        await self._chain.run(self.session.invalidate(reason))

    async def drain_inbox(self) -> int:
        """Process every pending provider notification; returns how many ran."""
        count = 0
        while True:
            try:
                event = self._inbox.get_nowait()
            except asyncio.QueueEmpty:
                return count
            await self._dispatch(event)
            count += 1

    def listen(self) -> asyncio.Task:
        """Start (or return) the background task draining provider notifications."""
        if self._listen_task is None or self._listen_task.done():
            self._listen_task = asyncio.create_task(self._listen_loop())
        return self._listen_task

    async def _listen_loop(self) -> None:
        while True:
            event = await self._inbox.get()
            try:
                await self._dispatch(event)
            except Exception:
                logger.exception("listener could not drop the session after %r", event)

    # ---- state ----

    def clear_status(self) -> None:
        self.stablecoin_balance = None
        self.token_balance = None
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()

    def snapshot(self) -> SessionStatus:
        session = self.session.session
        return SessionStatus(
            connection_state=session.connection_state,
            address=session.account_address,
            chain_id=session.chain_id,
            network_match=self.session.is_ready,
            approval_state=self.gate.state,
            last_tx_hash=self.last_tx_hash,
            stablecoin_balance=self.stablecoin_balance,
            token_balance=self.token_balance,
        )

    async def status(self) -> SessionStatus:
        """Drain pending notifications, then report the current status."""
        await self.drain_inbox()
        return self.snapshot()

    @property
    def refresh_task(self) -> Optional[asyncio.Task]:
        return self._refresh_task

    async def refresh(self) -> ApprovalState:
        """Re-read both balances and the allowance."""
        self.stablecoin_balance = await self.session.stablecoin.balance_of()
        self.token_balance = await self.session.token.balance_of()
        return await self.gate.check_approval()

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = asyncio.create_task(self._delayed_refresh(self.session.session.generation))

    async def _delayed_refresh(self, generation: int) -> None:
        await asyncio.sleep(self.config.refresh_delay_seconds)
        async with self._lock:
            await self.drain_inbox()
            if self.session.session.generation != generation:
                return
            try:
                await self.refresh()
            except MintClientError as e:
                logger.warning("post-purchase refresh failed: %s", e)

    async def _diagnose_token(self) -> None:
        try:
            deployed = await self.session.token.has_code()
        except UnknownChainError as e:
            logger.debug("bytecode check skipped: %s", e)
            return
        if not deployed:
            logger.warning("no contract bytecode at token address %s", self.config.token_address)

    # ---- raising operations ----

    async def connect_or_raise(self) -> SessionStatus:
        """
        Connect, then read balances and the allowance.

        A failed post-connect read drops the session again, so a failed
        connect never leaves the status READY.
        """
        async with self._lock:
            await self.drain_inbox()
            await self.session.connect()
            try:
                await self._diagnose_token()
                await self.refresh()
            except MintClientError as e:
                await self._invalidate(f"post-connect read failed: {e}")
                raise
            return self.snapshot()

    async def approve_or_raise(self) -> EVMTransactionConfirmation:
        async with self._lock:
            await self.drain_inbox()
            self.session.require_ready()
            confirmation = await self.gate.approve(self.config.approval_ceiling_value)
            self.last_tx_hash = confirmation.tx_hash
            await self.gate.check_approval()
            return confirmation

    async def purchase_or_raise(self) -> EVMTransactionConfirmation:
        """
        Run one purchase and wait for its receipt.

        Raises:
            PurchaseInProgressError: Another purchase has not resolved yet.
            NotApprovedError: The gate is not APPROVED; no chain call is made.
            PurchaseRevertedError: The accepted transaction reverted on-chain.
            MintClientError: Any failure from the gate or invocation engine.
        """
        if self._purchasing:
            raise PurchaseInProgressError("A purchase is already in progress")
        self._purchasing = True
        try:
            async with self._lock:
                await self.drain_inbox()
                self.session.require_ready()
                if self.gate.state is not ApprovalState.APPROVED:
                    raise NotApprovedError("Stablecoin spending is not approved")
                if await self.gate.check_approval() is not ApprovalState.APPROVED:
                    raise NotApprovedError("Allowance no longer covers one purchase")

                pending = await self.invoker.purchase()
                if pending.failures:
                    logger.info(
                        "purchase accepted via %s after %d rejected candidates",
                        pending.candidate.describe(), len(pending.failures),
                    )
                self.last_tx_hash = pending.tx_hash
                confirmation = await pending.wait()
                if not confirmation.is_success():
                    raise PurchaseRevertedError(
                        f"Purchase {pending.tx_hash} via {pending.candidate.describe()} reverted on-chain",
                        provider_message=confirmation.error_message,
                        tx_hash=pending.tx_hash,
                    )
                self._schedule_refresh()
                return confirmation
        finally:
            self._purchasing = False

    async def disconnect_or_raise(self) -> None:
        await self._dispatch(DisconnectEvent(reason="disconnect requested"))

    # ---- result operations ----

    async def _as_result(self, operation: Callable[[], Awaitable[Any]], success_message: str) -> ActionResult:
        try:
            outcome = await operation()
        except MintClientError as e:
            logger.warning("%s failed (%s): %s", operation.__name__, e.kind.value, e)
            return ActionResult.from_error(e)
        tx_hash = getattr(outcome, "tx_hash", None)
        return ActionResult.success(success_message, tx_hash=tx_hash)

    async def connect(self) -> ActionResult:
        return await self._as_result(self.connect_or_raise, "connected")

    async def approve(self) -> ActionResult:
        return await self._as_result(self.approve_or_raise, "approval confirmed")

    async def purchase(self) -> ActionResult:
        return await self._as_result(self.purchase_or_raise, "purchase confirmed")

    async def disconnect(self) -> ActionResult:
        return await self._as_result(self.disconnect_or_raise, "disconnected")

    async def aclose(self) -> None:
        """Stop background tasks and detach from the provider."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in (self._listen_task, self._refresh_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
