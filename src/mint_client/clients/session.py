"""
Wallet Session

Owns the connection state machine for one client: account authorisation,
network verification with a single repair cycle, and the contract handles
bound to the authorised account once the session is READY.

State machine:
    DISCONNECTED -> CONNECTING -> ACCOUNT_GRANTED -> NETWORK_VERIFYING
        -> (NETWORK_REPAIRING -> NETWORK_VERIFYING) -> READY

Any failure returns to DISCONNECTED. INVALIDATED is reachable from every
state and collapses to DISCONNECTED as soon as the handles are cleared.
"""

import logging
from typing import Dict, FrozenSet, Optional

from web3 import AsyncWeb3

from ..adapters.bases import WalletProvider, UNRECOGNIZED_CHAIN_CODE, parse_chain_id
from ..adapters.evm.constants import MintConfig, resolve_chain_descriptor
from ..adapters.evm.contracts import StablecoinHandle, TokenHandle
from ..adapters.evm.errors import error_code, to_mint_error
from ..adapters.evm.rpc import ChainRpcClient
from ..engine.events import SessionInvalidatedEvent
from ..engine.exceptions import (
    InvalidTransition,
    MintClientError,
    NetworkMismatchError,
    NoProviderError,
    SessionNotReadyError,
    UnknownChainError,
)
from ..schemas.bases import CanonicalModel, ConnectionState

logger = logging.getLogger(__name__)

_S = ConnectionState

TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    _S.DISCONNECTED: frozenset({_S.CONNECTING}),
    _S.CONNECTING: frozenset({_S.ACCOUNT_GRANTED, _S.DISCONNECTED}),
    _S.ACCOUNT_GRANTED: frozenset({_S.NETWORK_VERIFYING, _S.DISCONNECTED}),
    _S.NETWORK_VERIFYING: frozenset({_S.READY, _S.NETWORK_REPAIRING, _S.DISCONNECTED}),
    _S.NETWORK_REPAIRING: frozenset({_S.NETWORK_VERIFYING, _S.DISCONNECTED}),
    _S.READY: frozenset({_S.DISCONNECTED}),
    _S.INVALIDATED: frozenset({_S.DISCONNECTED}),
}


class Session(CanonicalModel):
    """
    Connection state of one client.

    Attributes:
        connection_state: Current state machine state
        account_address: Authorised account (checksummed), once granted
        chain_id: Chain id last reported by the wallet
        generation: Bumped on every reset; bound handles capture it
    """
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    account_address: Optional[str] = None
    chain_id: Optional[int] = None
    generation: int = 0


class WalletSession:
    """
    Connection state machine and owner of the bound contract handles.

    Only this class mutates the session or the handles; invalidation is the
    single out-of-band writer and goes through ``invalidate``.

    Attributes:
        session: Current Session snapshot
        target_chain_id: Chain the session must be on to be READY
        repair_cycles: Network repair cycles run by the last ``connect``

    Example:
        wallet = WalletSession(provider, rpc, MintConfig())
        await wallet.connect()
        balance = await wallet.stablecoin.balance_of()
    """

    def __init__(self, provider: Optional[WalletProvider], rpc: ChainRpcClient, config: MintConfig):
        self.provider = provider
        self.rpc = rpc
        self.config = config
        self.target_chain_id = config.chain_id
        self.session = Session()
        self.repair_cycles = 0
        self._stablecoin: Optional[StablecoinHandle] = None
        self._token: Optional[TokenHandle] = None

    # ---- state ----

    @property
    def state(self) -> ConnectionState:
        return self.session.connection_state

    @property
    def account(self) -> Optional[str]:
        return self.session.account_address

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY and self.network_match

    @property
    def network_match(self) -> bool:
        return self.session.chain_id == self.target_chain_id

    def _transition(self, target: ConnectionState) -> None:
        current = self.session.connection_state
        if target is not ConnectionState.INVALIDATED and target not in TRANSITIONS[current]:
            raise InvalidTransition(current, target)
        self.session.connection_state = target
        logger.info("session %s -> %s", current.value, target.value)

    def _fail(self, generation: Optional[int] = None) -> None:
        if generation is not None and generation != self.session.generation:
            return
        self._clear_handles()
        self._transition(ConnectionState.DISCONNECTED)
        self.session.account_address = None

    def _clear_handles(self) -> None:
        self._stablecoin = None
        self._token = None

    def _check_current(self, generation: int) -> None:
        if generation != self.session.generation:
            raise SessionNotReadyError("Session was reset while connecting")

    def require_ready(self, generation: Optional[int] = None) -> None:
        """
        Guard for every chain read or write.

        Args:
            generation: Generation a handle was bound in; when given it must
                match the current one.

        Raises:
            SessionNotReadyError: Outside READY, off the target chain, or for
                a handle from an earlier generation.
        """
        if not self.is_ready:
            raise SessionNotReadyError(
                f"Session is {self.state.value} on chain {self.session.chain_id}, "
                f"expected ready on {self.target_chain_id}"
            )
        if generation is not None and generation != self.session.generation:
            raise SessionNotReadyError("Contract handle belongs to an invalidated session")

    # ---- handles ----

    @property
    def stablecoin(self) -> StablecoinHandle:
        if self._stablecoin is None:
            raise SessionNotReadyError("No stablecoin handle bound; connect first")
        return self._stablecoin

    @property
    def token(self) -> TokenHandle:
        if self._token is None:
            raise SessionNotReadyError("No token handle bound; connect first")
        return self._token

    def _bind_handles(self) -> None:
        account = self.session.account_address
        generation = self.session.generation
        self._stablecoin = StablecoinHandle(self.rpc, self, self.config.stablecoin_address, account, generation)
        self._token = TokenHandle(self.rpc, self, self.config.token_address, account, generation)

    # ---- connect ----

    async def connect(self) -> Session:
        """
        Authorise an account and bring the wallet onto the target chain.

        Returns:
            Session: The READY session.

        Raises:
            NoProviderError: No wallet provider is available.
            UserRejectedError: The user declined authorisation, switch or add.
            NetworkMismatchError: The wallet could not be brought onto the chain.
            UnknownChainError: Any other provider failure.
        """
        if self.provider is None:
            raise NoProviderError("No wallet provider detected")
        if self.state is ConnectionState.READY:
            return self.session

        self.repair_cycles = 0
        generation = self.session.generation
        self._transition(ConnectionState.CONNECTING)
        try:
            accounts = await self.provider.request_accounts()
        except Exception as e:
            self._fail(generation)
            if isinstance(e, MintClientError):
                raise
            raise to_mint_error(e, UnknownChainError, "Account request") from e

        self._check_current(generation)
        if not accounts:
            self._fail()
            raise UnknownChainError("Wallet returned no accounts")

        self.session.account_address = AsyncWeb3.to_checksum_address(accounts[0])
        self._transition(ConnectionState.ACCOUNT_GRANTED)

        try:
            await self._verify_network(generation)
        except Exception:
            self._fail(generation)
            raise

        self._bind_handles()
        self._transition(ConnectionState.READY)
        return self.session

    async def _read_chain_id(self, generation: int) -> int:
        try:
            raw = await self.provider.get_chain_id()
            chain_id = parse_chain_id(raw)
        except MintClientError:
            raise
        except Exception as e:
            raise to_mint_error(e, UnknownChainError, "Chain id read") from e
        self._check_current(generation)
        self.session.chain_id = chain_id
        return chain_id

    async def _verify_network(self, generation: int) -> None:
        self._transition(ConnectionState.NETWORK_VERIFYING)
        if await self._read_chain_id(generation) == self.target_chain_id:
            return

        self._transition(ConnectionState.NETWORK_REPAIRING)
        self.repair_cycles += 1
        await self._repair_network()
        self._check_current(generation)

        self._transition(ConnectionState.NETWORK_VERIFYING)
        chain_id = await self._read_chain_id(generation)
        if chain_id != self.target_chain_id:
            raise NetworkMismatchError(
                f"Wallet is on chain {chain_id} after repair, expected {self.target_chain_id}"
            )

    async def _repair_network(self) -> None:
        target = self.target_chain_id
        try:
            await self.provider.switch_chain(target)
            return
        except MintClientError:
            raise
        except Exception as e:
            if error_code(e) != UNRECOGNIZED_CHAIN_CODE:
                raise to_mint_error(e, NetworkMismatchError, f"Switch to chain {target}") from e
            logger.info("chain %s unknown to wallet, requesting add", target)

        descriptor = await resolve_chain_descriptor(target, self.config.rpc_url)
        try:
            await self.provider.add_chain(descriptor)
        except MintClientError:
            raise
        except Exception as e:
            raise to_mint_error(e, NetworkMismatchError, f"Add chain {target}") from e

    # ---- reset ----

    def invalidate(self, reason: str) -> SessionInvalidatedEvent:
        """
        Drop the session after an account change, chain change or disconnect.

        Returns:
            SessionInvalidatedEvent describing what was dropped.
        """
        event = SessionInvalidatedEvent(
            reason=reason,
            previous_address=self.session.account_address,
            previous_chain_id=self.session.chain_id,
        )
        logger.warning("session invalidated: %s", reason)
        self._transition(ConnectionState.INVALIDATED)
        self.reset()
        return event

    def reset(self) -> None:
        """Return to DISCONNECTED with no account, chain or handles."""
        self._clear_handles()
        self.session = Session(generation=self.session.generation + 1)
