"""
Purchase Entry Point Catalog

The token contract's real purchase function is not reliably known at build
time. The catalog is the ordered list of call shapes the invocation engine
tries, from the strongest prior (the known zero-argument selector) down to a
last-resort transfer followed by the zero-argument call.

Ordering:
    1. ``mint()`` through its known selector, no ABI lookup
    2. Each alternative name in ``ALTERNATIVE_METHODS``, and for each name
       every shape in ``PARAMETER_SHAPES``, most specific first
    3. Stablecoin transfer to the token contract, then ``mint()`` again
"""

from typing import List, Sequence, Tuple

from .ERC20_ABI import function_selector, encode_function_call
from .schemas import EncodingStrategy, InvocationCandidate, ParamRole

#: Selector believed correct for the deployed contract: ``mint()``.
KNOWN_MINT_SELECTOR = "0x1249c58b"

ALTERNATIVE_METHODS: Tuple[str, ...] = (
    "purchase",
    "buy",
    "mint",
    "exchange",
    "swap",
    "getToken",
)

PARAMETER_SHAPES: Tuple[Tuple[ParamRole, ...], ...] = (
    (ParamRole.RECIPIENT, ParamRole.AMOUNT_OUT, ParamRole.AMOUNT_IN),
    (ParamRole.RECIPIENT, ParamRole.AMOUNT_OUT),
    (ParamRole.AMOUNT_OUT, ParamRole.AMOUNT_IN),
    (ParamRole.AMOUNT_OUT,),
    (ParamRole.RECIPIENT,),
    (),
)

KNOWN_MINT = InvocationCandidate(
    method_name="mint",
    encoding=EncodingStrategy.RAW_SELECTOR,
    selector=KNOWN_MINT_SELECTOR,
)

TRANSFER_THEN_MINT = InvocationCandidate(
    method_name="mint",
    encoding=EncodingStrategy.TRANSFER_THEN_CALL,
    selector=KNOWN_MINT_SELECTOR,
)


def build_catalog(
    methods: Sequence[str] = ALTERNATIVE_METHODS,
    shapes: Sequence[Tuple[ParamRole, ...]] = PARAMETER_SHAPES,
    include_transfer_fallback: bool = True,
) -> List[InvocationCandidate]:
    """
    Enumerate every candidate in priority order.

    Args:
        methods: Alternative entry point names, tried in order.
        shapes: Parameter shapes tried for each name, in order.
        include_transfer_fallback: Append the transfer-then-mint last resort.

    Returns:
        List[InvocationCandidate]: The ordered catalog.
    """
    catalog = [KNOWN_MINT]
    for name in methods:
        for shape in shapes:
            catalog.append(InvocationCandidate(method_name=name, parameter_shape=tuple(shape)))
    if include_transfer_fallback:
        catalog.append(TRANSFER_THEN_MINT)
    return catalog


def encode_candidate(
    candidate: InvocationCandidate,
    *,
    recipient: str,
    amount_out: int,
    amount_in: int,
) -> str:
    """
    Produce calldata for one candidate.

    Raw-selector style candidates send their selector verbatim; ABI
    candidates bind each parameter role to its value and encode.

    Args:
        candidate: Candidate to encode.
        recipient: Address receiving the purchased tokens.
        amount_out: Purchased token amount (smallest units).
        amount_in: Stablecoin amount spent (smallest units).

    Returns:
        str: 0x-prefixed calldata.
    """
    if candidate.encoding is not EncodingStrategy.ABI:
        return candidate.selector or function_selector(candidate.method_name, candidate.arg_types)

    values = {
        ParamRole.RECIPIENT: recipient,
        ParamRole.AMOUNT_OUT: amount_out,
        ParamRole.AMOUNT_IN: amount_in,
    }
    args = [values[role] for role in candidate.parameter_shape]
    return encode_function_call(candidate.method_name, candidate.arg_types, args)
