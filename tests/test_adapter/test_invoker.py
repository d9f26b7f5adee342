"""
Test suite for the adaptive purchase invocation engine.

Tests: 1) catalog order 2) fallback search until the chain accepts a
candidate 3) abort on user rejection 4) exhaustion 5) preflight checks that
fail before any transaction
"""

import pytest
import pytest_asyncio

from chain_mocks import (
    MOCK_AMOUNT_IN,
    MOCK_AMOUNT_OUT,
    MOCK_APPROVAL_CEILING,
    MOCK_OWNER_ADDRESS,
    TRANSFER_SELECTOR,
    build_world,
    make_config,
)
from mint_client.adapters.bases import ProviderRpcError
from mint_client.adapters.evm.allowance import AllowanceGate
from mint_client.adapters.evm.catalog import (
    ALTERNATIVE_METHODS,
    KNOWN_MINT,
    KNOWN_MINT_SELECTOR,
    PARAMETER_SHAPES,
    TRANSFER_THEN_MINT,
    build_catalog,
    encode_candidate,
)
from mint_client.adapters.evm.ERC20_ABI import function_selector
from mint_client.adapters.evm.invoker import PurchaseInvoker
from mint_client.adapters.evm.schemas import EncodingStrategy, FailureReason, ParamRole
from mint_client.clients.session import WalletSession
from mint_client.engine.exceptions import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    NoWorkingEntryPointError,
    PurchaseInProgressError,
    UserRejectedError,
)

PURCHASE_FULL = function_selector("purchase", ["address", "uint256", "uint256"])
PURCHASE_RECIPIENT_OUT = function_selector("purchase", ["address", "uint256"])
BUY_NO_ARGS = function_selector("buy", [])


@pytest.fixture
def world():
    chain, provider, rpc = build_world()
    chain.set_stablecoin_balance(MOCK_OWNER_ADDRESS, MOCK_AMOUNT_IN)
    chain.set_allowance(MOCK_OWNER_ADDRESS, MOCK_APPROVAL_CEILING)
    return chain, provider, rpc


@pytest_asyncio.fixture
async def invoker(world):
    _, provider, rpc = world
    wallet = WalletSession(provider, rpc, make_config())
    await wallet.connect()
    gate = AllowanceGate(wallet, rpc, MOCK_AMOUNT_IN)
    return PurchaseInvoker(
        wallet, rpc, gate,
        amount_in=MOCK_AMOUNT_IN,
        amount_out=MOCK_AMOUNT_OUT,
        confirmation_timeout=1.0,
        poll_interval=0.01,
    )


class TestCatalog:
    """Fixed, statically enumerable candidate order."""

    def test_order(self):
        catalog = build_catalog()

        assert catalog[0] == KNOWN_MINT
        assert catalog[0].selector == KNOWN_MINT_SELECTOR == "0x1249c58b"
        assert catalog[-1] == TRANSFER_THEN_MINT
        assert len(catalog) == 1 + len(ALTERNATIVE_METHODS) * len(PARAMETER_SHAPES) + 1

        middle = catalog[1:-1]
        assert [c.method_name for c in middle[:6]] == ["purchase"] * 6
        assert [c.parameter_shape for c in middle[:6]] == list(PARAMETER_SHAPES)
        assert [c.method_name for c in middle[::6]] == list(ALTERNATIVE_METHODS)

    def test_shapes_most_specific_first(self):
        assert PARAMETER_SHAPES[0] == (ParamRole.RECIPIENT, ParamRole.AMOUNT_OUT, ParamRole.AMOUNT_IN)
        assert PARAMETER_SHAPES[-1] == ()

    def test_without_transfer_fallback(self):
        catalog = build_catalog(include_transfer_fallback=False)
        assert all(c.encoding is not EncodingStrategy.TRANSFER_THEN_CALL for c in catalog)

    def test_known_selector_matches_mint(self):
        assert function_selector("mint", []) == KNOWN_MINT_SELECTOR

    def test_encode_binds_roles(self):
        candidate = build_catalog()[1]
        data = encode_candidate(candidate, recipient=MOCK_OWNER_ADDRESS, amount_out=7, amount_in=3)

        assert data.startswith(PURCHASE_FULL)
        body = data[10:]
        assert len(body) == 3 * 64
        assert body[:64].endswith(MOCK_OWNER_ADDRESS[2:].lower())
        assert int(body[64:128], 16) == 7
        assert int(body[128:], 16) == 3

    def test_encode_raw_selector(self):
        data = encode_candidate(KNOWN_MINT, recipient=MOCK_OWNER_ADDRESS, amount_out=1, amount_in=1)
        assert data == KNOWN_MINT_SELECTOR


class TestSearch:
    """Candidates are tried in order until one is accepted."""

    @pytest.mark.asyncio
    async def test_first_candidate_accepted(self, world, invoker):
        chain, _, _ = world

        pending = await invoker.purchase()

        assert pending.candidate == KNOWN_MINT
        assert len(pending.attempts) == 1
        assert pending.attempts[0].success
        assert chain.sent[-1]["data"] == KNOWN_MINT_SELECTOR

        confirmation = await pending.wait()
        assert confirmation.is_success()
        assert confirmation.tx_hash == pending.tx_hash
        assert chain.token_balances[MOCK_OWNER_ADDRESS] == MOCK_AMOUNT_OUT
        assert chain.stablecoin_balances[MOCK_OWNER_ADDRESS] == 0

    @pytest.mark.asyncio
    async def test_third_candidate_after_two_failures(self, world, invoker):
        chain, provider, _ = world
        chain.accept_only(PURCHASE_RECIPIENT_OUT)

        pending = await invoker.purchase()

        assert pending.candidate.signature == "purchase(address,uint256)"
        assert [a.success for a in pending.attempts] == [False, False, True]
        assert [a.reason for a in pending.failures] == [FailureReason.EXECUTION_REVERTED] * 2
        assert [d[:10] for d in chain.estimates] == [KNOWN_MINT_SELECTOR, PURCHASE_FULL, PURCHASE_RECIPIENT_OUT]
        assert provider.requests.count("send_transaction") == 1

    @pytest.mark.asyncio
    async def test_failures_never_prompt_the_user(self, world, invoker):
        chain, provider, _ = world
        chain.accept_only(BUY_NO_ARGS)

        pending = await invoker.purchase()

        assert pending.candidate.signature == "buy()"
        assert len(pending.attempts) == 1 + 6 + 6
        assert provider.requests.count("send_transaction") == 1

    @pytest.mark.asyncio
    async def test_user_rejection_aborts(self, world, invoker):
        chain, provider, _ = world
        chain.accept_only(KNOWN_MINT_SELECTOR, PURCHASE_FULL)
        provider.decline_selectors.add(KNOWN_MINT_SELECTOR)

        with pytest.raises(UserRejectedError) as exc_info:
            await invoker.purchase()

        assert len(exc_info.value.attempts) == 1
        assert exc_info.value.attempts[0].reason is FailureReason.USER_REJECTED
        assert [d[:10] for d in chain.estimates] == [KNOWN_MINT_SELECTOR]
        assert chain.sent == []

    @pytest.mark.asyncio
    async def test_exhaustion(self, world, invoker):
        chain, _, _ = world
        chain.accept_only()
        invoker.catalog = build_catalog(include_transfer_fallback=False)

        with pytest.raises(NoWorkingEntryPointError) as exc_info:
            await invoker.purchase()

        error = exc_info.value
        assert len(error.attempts) == len(invoker.catalog)
        assert error.last_failure is error.attempts[-1]
        assert error.last_failure.reason is FailureReason.EXECUTION_REVERTED
        assert error.provider_message == "execution reverted"
        assert chain.sent == []

    @pytest.mark.asyncio
    async def test_transfer_then_mint_fallback(self, world, invoker):
        chain, _, _ = world
        chain.require_prepayment = True

        pending = await invoker.purchase()

        assert pending.candidate == TRANSFER_THEN_MINT
        assert len(pending.attempts) == len(invoker.catalog)
        assert chain.sent[0]["data"].startswith(TRANSFER_SELECTOR)
        assert chain.sent[1]["data"] == KNOWN_MINT_SELECTOR
        await pending.wait()
        assert chain.token_balances[MOCK_OWNER_ADDRESS] == MOCK_AMOUNT_OUT

    @pytest.mark.asyncio
    async def test_gas_shortfall_is_classified(self, world, invoker):
        chain, provider, _ = world
        chain.accept_only(KNOWN_MINT_SELECTOR, PURCHASE_FULL)
        provider.errors["send_transaction"] = ProviderRpcError(-32000, "insufficient funds for gas")
        invoker.catalog = invoker.catalog[:2]

        with pytest.raises(NoWorkingEntryPointError) as exc_info:
            await invoker.purchase()
        assert [a.reason for a in exc_info.value.attempts] == [FailureReason.INSUFFICIENT_GAS] * 2


class TestPreflight:
    """Balance and allowance shortfalls fail before any transaction."""

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, world, invoker):
        chain, _, _ = world
        chain.set_stablecoin_balance(MOCK_OWNER_ADDRESS, MOCK_AMOUNT_IN - 1)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await invoker.purchase()

        assert exc_info.value.required == MOCK_AMOUNT_IN
        assert exc_info.value.available == MOCK_AMOUNT_IN - 1
        assert chain.estimates == []
        assert chain.sent == []

    @pytest.mark.asyncio
    async def test_insufficient_allowance(self, world, invoker):
        chain, _, _ = world
        chain.set_allowance(MOCK_OWNER_ADDRESS, 0)

        with pytest.raises(InsufficientAllowanceError) as exc_info:
            await invoker.purchase()

        assert exc_info.value.available == 0
        assert chain.estimates == []
        assert chain.sent == []

    @pytest.mark.asyncio
    async def test_one_search_at_a_time(self, invoker):
        invoker._running = True
        with pytest.raises(PurchaseInProgressError):
            await invoker.purchase()
