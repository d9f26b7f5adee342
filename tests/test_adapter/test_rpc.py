"""
Test suite for the chain RPC client: write and receipt paths, and wrapping of
transport failures from an unreachable node.
"""

import asyncio

import aiohttp
import pytest
from web3.exceptions import TransactionNotFound

from mint_client.adapters.evm.rpc import ChainRpcClient
from mint_client.engine.exceptions import ConfirmationTimeoutError, NoProviderError, UnknownChainError
from mint_client.schemas.bases import TransactionStatus

TX_HASH = "0x" + "ab" * 32


class FakeEth:
    """Receipt source that reports pending for ``pending_polls`` polls, or raises ``error``."""

    def __init__(self, receipt=None, pending_polls=0, head=105, error=None):
        self.receipt = receipt
        self.pending_polls = pending_polls
        self.head = head
        self.error = error
        self.polls = 0

    async def get_transaction_receipt(self, tx_hash):
        self.polls += 1
        if self.error is not None:
            raise self.error
        if self.receipt is None or self.polls <= self.pending_polls:
            raise TransactionNotFound(f"Transaction with hash {tx_hash} not found")
        return self.receipt

    async def get_code(self, address):
        if self.error is not None:
            raise self.error
        return b"\x60\x80"

    async def _block_number(self):
        if isinstance(self.head, Exception):
            raise self.head
        return self.head

    @property
    def block_number(self):
        return self._block_number()


class FakeWeb3:
    def __init__(self, eth):
        self.eth = eth


def make_receipt(status=1):
    return {
        "status": status,
        "blockNumber": 100,
        "gasUsed": 46_000,
        "effectiveGasPrice": 1_000_000,
        "from": "0x0000000000000000000000000000000000000001",
        "to": "0x0000000000000000000000000000000000000002",
    }


@pytest.mark.asyncio
async def test_waits_through_pending_polls():
    eth = FakeEth(make_receipt(), pending_polls=2)
    rpc = ChainRpcClient(None, web3=FakeWeb3(eth))

    confirmation = await rpc.wait_for_confirmation(TX_HASH, timeout=1.0, poll_interval=0.001)

    assert eth.polls == 3
    assert confirmation.is_success()
    assert confirmation.block_number == 100
    assert confirmation.confirmations == 5
    assert confirmation.gas_used == 46_000


@pytest.mark.asyncio
async def test_reverted_receipt_is_failed():
    rpc = ChainRpcClient(None, web3=FakeWeb3(FakeEth(make_receipt(status=0))))

    confirmation = await rpc.wait_for_confirmation(TX_HASH, timeout=1.0, poll_interval=0.001)

    assert confirmation.status is TransactionStatus.FAILED
    assert not confirmation.is_success()
    assert confirmation.error_message == "Transaction reverted on-chain"


@pytest.mark.asyncio
async def test_timeout_keeps_hash():
    rpc = ChainRpcClient(None, web3=FakeWeb3(FakeEth()))

    with pytest.raises(ConfirmationTimeoutError) as exc_info:
        await rpc.wait_for_confirmation(TX_HASH, timeout=0.02, poll_interval=0.005)
    assert exc_info.value.tx_hash == TX_HASH


@pytest.mark.asyncio
async def test_unreachable_node_while_polling():
    eth = FakeEth(error=aiohttp.ClientConnectionError("Cannot connect to host 127.0.0.1:8545"))
    rpc = ChainRpcClient(None, web3=FakeWeb3(eth))

    with pytest.raises(UnknownChainError) as exc_info:
        await rpc.wait_for_confirmation(TX_HASH, timeout=1.0, poll_interval=0.001)

    assert TX_HASH in str(exc_info.value)
    assert exc_info.value.provider_message == "Cannot connect to host 127.0.0.1:8545"
    assert eth.polls == 1


@pytest.mark.asyncio
async def test_head_read_failure_counts_zero_confirmations():
    eth = FakeEth(make_receipt(), head=asyncio.TimeoutError())
    rpc = ChainRpcClient(None, web3=FakeWeb3(eth))

    confirmation = await rpc.wait_for_confirmation(TX_HASH, timeout=1.0, poll_interval=0.001)

    assert confirmation.is_success()
    assert confirmation.confirmations == 0


@pytest.mark.asyncio
async def test_has_code_wraps_refused_connection():
    rpc = ChainRpcClient(None, web3=FakeWeb3(FakeEth(error=ConnectionRefusedError(111, "Connection refused"))))

    with pytest.raises(UnknownChainError):
        await rpc.has_code("0x0000000000000000000000000000000000000002")

    assert await ChainRpcClient(None, web3=FakeWeb3(FakeEth())).has_code(
        "0x0000000000000000000000000000000000000002"
    )


@pytest.mark.asyncio
async def test_send_requires_provider():
    rpc = ChainRpcClient(None, web3=FakeWeb3(FakeEth()))
    with pytest.raises(NoProviderError):
        await rpc.send_transaction({"to": TX_HASH[:42]})


def test_requires_endpoint():
    with pytest.raises(ValueError):
        ChainRpcClient(None)
