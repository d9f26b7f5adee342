"""
JSON-RPC Wallet Provider

Concrete ``WalletProvider`` that talks EIP-1193 methods over HTTP JSON-RPC to
a local wallet bridge (desktop wallet, browser extension relay, signer
daemon). The bridge owns the keys and the user prompts; this class only
forwards requests and maps error objects onto ``ProviderRpcError``.

The bridge cannot push notifications over plain HTTP, so account and chain
changes are detected by polling ``eth_accounts`` / ``eth_chainId`` in
``watch()``.
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .bases import (
    DISCONNECTED_CODE,
    ListenerSet,
    ProviderListener,
    ProviderRpcError,
    WalletProvider,
    parse_chain_id,
)
from .evm.constants import ChainDescriptor
from ..engine.events import AccountsChangedEvent, BaseEvent, ChainChangedEvent, DisconnectEvent

logger = logging.getLogger(__name__)


class JsonRpcWalletProvider(WalletProvider):
    """
    Wallet provider backed by an HTTP JSON-RPC bridge.

    Usage:
        ```python
        async with JsonRpcWalletProvider("http://127.0.0.1:1248") as provider:
            accounts = await provider.request_accounts()
            watcher = asyncio.create_task(provider.watch())
        ```
    """

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Args:
            url: Bridge endpoint.
            client: Pre-built httpx.AsyncClient (tests, custom transports).
            timeout: Request timeout in seconds when building a client.
        """
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._ids = itertools.count(1)
        self._listeners = ListenerSet()
        self._accounts: Optional[List[str]] = None
        self._chain_id: Optional[int] = None

    async def __aenter__(self) -> "JsonRpcWalletProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send one JSON-RPC request to the bridge.

        Raises:
            ProviderRpcError: With the bridge's error code, or 4900 when the
                bridge cannot be reached.
        """
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderRpcError(DISCONNECTED_CODE, f"Wallet bridge unreachable: {e}") from e

        error = body.get("error")
        if error:
            raise ProviderRpcError(int(error.get("code", -32603)), str(error.get("message", "")), error.get("data"))
        return body.get("result")

    async def request_accounts(self) -> List[str]:
        accounts = list(await self.request("eth_requestAccounts") or [])
        self._accounts = accounts
        return accounts

    async def get_chain_id(self) -> int:
        chain_id = parse_chain_id(await self.request("eth_chainId"))
        self._chain_id = chain_id
        return chain_id

    async def switch_chain(self, chain_id: int) -> None:
        await self.request("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])

    async def add_chain(self, descriptor: ChainDescriptor) -> None:
        await self.request("wallet_addEthereumChain", [descriptor.to_add_chain_params()])

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        return await self.request("eth_sendTransaction", [tx])

    def subscribe(self, listener: ProviderListener) -> Callable[[], None]:
        return self._listeners.add(listener)

    # ---- change detection ----

    async def poll(self) -> List[BaseEvent]:
        """
        Compare the bridge's accounts and chain with the last known values and
        emit a notification for each difference.

        The first poll only records a baseline.
        """
        events: List[BaseEvent] = []
        try:
            accounts = list(await self.request("eth_accounts") or [])
            chain_id = parse_chain_id(await self.request("eth_chainId"))
        except ProviderRpcError as e:
            if e.code != DISCONNECTED_CODE:
                raise
            if self._accounts is not None or self._chain_id is not None:
                events.append(DisconnectEvent(reason=e.message))
            self._accounts = None
            self._chain_id = None
        else:
            if self._accounts is not None and [a.lower() for a in accounts] != [a.lower() for a in self._accounts]:
                events.append(AccountsChangedEvent(accounts=accounts))
            if self._chain_id is not None and chain_id != self._chain_id:
                events.append(ChainChangedEvent(chain_id=chain_id))
            self._accounts = accounts
            self._chain_id = chain_id

        for event in events:
            logger.info("wallet notification: %r", event)
            self._listeners.emit(event)
        return events

    async def watch(self, interval: float = 1.0) -> None:
        """Poll forever; run as a background task and cancel to stop."""
        while True:
            await self.poll()
            await asyncio.sleep(interval)
