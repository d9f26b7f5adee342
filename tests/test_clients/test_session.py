"""
Test suite for the wallet session state machine.

Covers account authorisation, the single network repair cycle (switch, or
add then verify), refusal of chain access outside READY, and invalidation of
bound handles.
"""

import pytest

from chain_mocks import (
    MOCK_AMOUNT_IN,
    MOCK_CHAIN_ID_BASE,
    MOCK_CHAIN_ID_MAINNET,
    MOCK_CHAIN_ID_SEPOLIA,
    MOCK_OWNER_ADDRESS,
    MOCK_OTHER_ADDRESS,
    build_world,
    make_config,
)
from mint_client.adapters.bases import ProviderRpcError
from mint_client.clients.session import WalletSession
from mint_client.engine.exceptions import (
    InvalidTransition,
    NetworkMismatchError,
    NoProviderError,
    SessionNotReadyError,
    UnknownChainError,
    UserRejectedError,
)
from mint_client.schemas.bases import ConnectionState


@pytest.fixture
def world():
    return build_world()


@pytest.fixture
def wallet(world):
    _, provider, rpc = world
    return WalletSession(provider, rpc, make_config())


class TestConnect:
    """Account authorisation and the happy path."""

    @pytest.mark.asyncio
    async def test_connect_on_target_chain(self, world, wallet):
        _, provider, _ = world
        session = await wallet.connect()

        assert session.connection_state is ConnectionState.READY
        assert session.account_address == MOCK_OWNER_ADDRESS
        assert session.chain_id == MOCK_CHAIN_ID_BASE
        assert wallet.repair_cycles == 0
        assert provider.requests == ["request_accounts", "get_chain_id"]

    @pytest.mark.asyncio
    async def test_connect_is_idempotent_when_ready(self, world, wallet):
        _, provider, _ = world
        await wallet.connect()
        await wallet.connect()
        assert provider.requests.count("request_accounts") == 1

    @pytest.mark.asyncio
    async def test_binds_handles_to_account(self, wallet):
        await wallet.connect()
        assert wallet.stablecoin.account == MOCK_OWNER_ADDRESS
        assert wallet.token.account == MOCK_OWNER_ADDRESS
        assert wallet.stablecoin.address != wallet.token.address

    @pytest.mark.asyncio
    async def test_no_provider(self, world):
        _, _, rpc = world
        wallet = WalletSession(None, rpc, make_config())
        with pytest.raises(NoProviderError):
            await wallet.connect()
        assert wallet.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_account_request_declined(self, world, wallet):
        _, provider, _ = world
        provider.decline.add("request_accounts")

        with pytest.raises(UserRejectedError) as exc_info:
            await wallet.connect()

        assert "User rejected" in exc_info.value.provider_message
        assert wallet.state is ConnectionState.DISCONNECTED
        assert wallet.account is None
        assert "get_chain_id" not in provider.requests

    @pytest.mark.asyncio
    async def test_no_accounts_returned(self, world, wallet):
        _, provider, _ = world
        provider.accounts = []
        with pytest.raises(UnknownChainError):
            await wallet.connect()
        assert wallet.state is ConnectionState.DISCONNECTED


class TestNetworkRepair:
    """Exactly one repair cycle per connect."""

    @pytest.mark.asyncio
    async def test_switch_known_chain(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_MAINNET)
        wallet = WalletSession(provider, rpc, make_config())

        session = await wallet.connect()

        assert session.connection_state is ConnectionState.READY
        assert session.chain_id == MOCK_CHAIN_ID_BASE
        assert wallet.repair_cycles == 1
        assert provider.requests.count("switch_chain") == 1
        assert "add_chain" not in provider.requests

    @pytest.mark.asyncio
    async def test_add_unknown_chain_then_verify(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_MAINNET, known_chains={MOCK_CHAIN_ID_MAINNET})
        wallet = WalletSession(provider, rpc, make_config())

        await wallet.connect()

        assert wallet.state is ConnectionState.READY
        assert wallet.repair_cycles == 1
        assert provider.requests == [
            "request_accounts", "get_chain_id", "switch_chain", "add_chain", "get_chain_id",
        ]
        descriptor = provider.added[0]
        assert descriptor.chain_id == MOCK_CHAIN_ID_BASE
        assert descriptor.chain_name == "Base"
        params = descriptor.to_add_chain_params()
        assert params["chainId"] == "0x2105"
        assert params["nativeCurrency"]["symbol"] == "ETH"

    @pytest.mark.asyncio
    async def test_still_wrong_after_repair(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_SEPOLIA)
        provider.known_chains.add(MOCK_CHAIN_ID_SEPOLIA)
        provider.switch_effective = False
        wallet = WalletSession(provider, rpc, make_config())

        with pytest.raises(NetworkMismatchError):
            await wallet.connect()

        assert wallet.state is ConnectionState.DISCONNECTED
        assert wallet.repair_cycles == 1
        assert provider.requests.count("switch_chain") == 1

    @pytest.mark.asyncio
    async def test_switch_declined(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_MAINNET)
        provider.decline.add("switch_chain")
        wallet = WalletSession(provider, rpc, make_config())

        with pytest.raises(UserRejectedError):
            await wallet.connect()
        assert wallet.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_add_declined(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_MAINNET, known_chains={MOCK_CHAIN_ID_MAINNET})
        provider.decline.add("add_chain")
        wallet = WalletSession(provider, rpc, make_config())

        with pytest.raises(UserRejectedError):
            await wallet.connect()
        assert wallet.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_switch_failure_other_than_unknown_chain(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_MAINNET)
        provider.errors["switch_chain"] = ProviderRpcError(-32002, "Request already pending")
        wallet = WalletSession(provider, rpc, make_config())

        with pytest.raises(NetworkMismatchError) as exc_info:
            await wallet.connect()

        assert exc_info.value.provider_message == "Request already pending"
        assert "add_chain" not in provider.requests

    @pytest.mark.asyncio
    async def test_add_failure(self):
        _, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_MAINNET, known_chains={MOCK_CHAIN_ID_MAINNET})
        provider.errors["add_chain"] = ProviderRpcError(-32603, "Internal error")
        wallet = WalletSession(provider, rpc, make_config())

        with pytest.raises(NetworkMismatchError):
            await wallet.connect()
        assert wallet.state is ConnectionState.DISCONNECTED


class TestReadiness:
    """No chain access outside READY; invalidation drops handles."""

    @pytest.mark.asyncio
    async def test_no_handles_before_ready(self, world, wallet):
        chain, _, _ = world
        with pytest.raises(SessionNotReadyError):
            wallet.stablecoin
        with pytest.raises(SessionNotReadyError):
            wallet.require_ready()
        assert chain.reads == []

    @pytest.mark.asyncio
    async def test_failed_connect_leaves_no_handles(self):
        chain, provider, rpc = build_world(chain_id=MOCK_CHAIN_ID_SEPOLIA)
        provider.switch_effective = False
        provider.known_chains.add(MOCK_CHAIN_ID_SEPOLIA)
        wallet = WalletSession(provider, rpc, make_config())

        with pytest.raises(NetworkMismatchError):
            await wallet.connect()
        with pytest.raises(SessionNotReadyError):
            wallet.token
        assert chain.reads == []

    @pytest.mark.asyncio
    async def test_invalidate_resets_session(self, wallet):
        await wallet.connect()
        generation = wallet.session.generation

        event = wallet.invalidate("accounts changed")

        assert event.previous_address == MOCK_OWNER_ADDRESS
        assert event.previous_chain_id == MOCK_CHAIN_ID_BASE
        assert wallet.state is ConnectionState.DISCONNECTED
        assert wallet.account is None
        assert wallet.session.generation == generation + 1
        with pytest.raises(SessionNotReadyError):
            wallet.stablecoin

    @pytest.mark.asyncio
    async def test_stale_handle_refuses_after_reconnect(self, world, wallet):
        chain, provider, _ = world
        chain.set_stablecoin_balance(MOCK_OTHER_ADDRESS, MOCK_AMOUNT_IN)
        await wallet.connect()
        stale = wallet.stablecoin

        wallet.invalidate("accounts changed")
        provider.accounts = [MOCK_OTHER_ADDRESS]
        await wallet.connect()

        with pytest.raises(SessionNotReadyError):
            await stale.balance_of()
        assert await wallet.stablecoin.balance_of() == MOCK_AMOUNT_IN

    @pytest.mark.asyncio
    async def test_invalidated_while_connecting(self, world, wallet):
        _, provider, _ = world
        request_accounts = provider.request_accounts

        async def accounts_then_invalidate():
            accounts = await request_accounts()
            wallet.invalidate("accounts changed")
            return accounts

        provider.request_accounts = accounts_then_invalidate

        with pytest.raises(SessionNotReadyError):
            await wallet.connect()
        assert wallet.state is ConnectionState.DISCONNECTED
        assert wallet.account is None
        assert "get_chain_id" not in provider.requests

    def test_invalid_transition(self, wallet):
        with pytest.raises(InvalidTransition) as exc_info:
            wallet._transition(ConnectionState.READY)
        assert exc_info.value.current_state is ConnectionState.DISCONNECTED
        assert exc_info.value.target_state is ConnectionState.READY
