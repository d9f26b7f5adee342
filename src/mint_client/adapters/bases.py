"""
Abstract Base Classes for Wallet Providers

Defines the contract the core relies on from the user's external signing
agent (browser extension bridge, desktop wallet, mobile wallet relay). The
core depends only on six operations and the provider notification events;
it never assumes a specific provider implementation and never sees a
private key.

Core Classes:
    - ProviderRpcError: EIP-1193 style error object raised by providers
    - WalletProvider: Abstract provider interface
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Union

from ..engine.events import BaseEvent

if TYPE_CHECKING:
    from .evm.constants import ChainDescriptor

#: EIP-1193: the user rejected the request.
USER_REJECTED_CODE = 4001
#: EIP-1193: the provider is disconnected from all chains.
DISCONNECTED_CODE = 4900
#: EIP-3326: the chain has not been added to the wallet.
UNRECOGNIZED_CHAIN_CODE = 4902

ProviderListener = Callable[[BaseEvent], None]


class ProviderRpcError(Exception):
    """
    Error reported by a wallet provider request.

    Attributes:
        code: Numeric EIP-1193 / JSON-RPC error code
        message: Provider message
        data: Optional extra payload from the provider
    """

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


def parse_chain_id(value: Union[int, str]) -> int:
    """
    Normalise a chain id reported by a provider.

    Providers answer ``eth_chainId`` with a hex string; some bridges answer
    with a decimal string or int.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid chain id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            return int(text, 16)
        if text.isdigit():
            return int(text)
    raise ValueError(f"Invalid chain id: {value!r}")


class WalletProvider(ABC):
    """
    Abstract wallet provider.

    Implementations translate these calls to whatever transport the wallet
    exposes and raise ``ProviderRpcError`` with EIP-1193 codes on failure
    (4001 for a user decline, 4902 for an unknown chain on switch).

    Notifications (``AccountsChangedEvent``, ``ChainChangedEvent``,
    ``DisconnectEvent``) are delivered to every subscribed listener.
    """

    @abstractmethod
    async def request_accounts(self) -> List[str]:
        """
        Ask the user to authorise accounts (``eth_requestAccounts``).

        Returns:
            List[str]: Authorised accounts, primary account first.
        """

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Current chain id of the wallet (``eth_chainId``)."""

    @abstractmethod
    async def switch_chain(self, chain_id: int) -> None:
        """Ask the wallet to switch chain (``wallet_switchEthereumChain``)."""

    @abstractmethod
    async def add_chain(self, descriptor: "ChainDescriptor") -> None:
        """Ask the wallet to add a chain (``wallet_addEthereumChain``)."""

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """
        Have the wallet sign and broadcast ``tx`` (``eth_sendTransaction``).

        Args:
            tx: Transaction fields (``from``, ``to``, ``data``, optional ``gas``,
                ``value``) with hex-encoded quantities.

        Returns:
            str: 0x-prefixed transaction hash.
        """

    @abstractmethod
    def subscribe(self, listener: ProviderListener) -> Callable[[], None]:
        """
        Register a listener for provider notifications.

        Returns:
            Callable[[], None]: Function that removes the listener.
        """


class ListenerSet:
    """Small helper that providers use to fan out notifications."""

    def __init__(self) -> None:
        self._listeners: List[ProviderListener] = []

    def add(self, listener: ProviderListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def emit(self, event: BaseEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def __len__(self) -> int:
        return len(self._listeners)
