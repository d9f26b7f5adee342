from .allowance import AllowanceGate
from .catalog import (
    KNOWN_MINT_SELECTOR,
    ALTERNATIVE_METHODS,
    PARAMETER_SHAPES,
    build_catalog,
    encode_candidate,
)
from .constants import (
    ChainDescriptor,
    MintConfig,
    amount_to_value,
    value_to_amount,
    get_chain_descriptor,
    resolve_chain_descriptor,
)
from .contracts import StablecoinHandle, TokenHandle
from .errors import classify_error, to_mint_error
from .invoker import PurchaseInvoker, PendingPurchase
from .rpc import ChainRpcClient
from .schemas import (
    AllowanceRecord,
    ParamRole,
    EncodingStrategy,
    InvocationCandidate,
    FailureReason,
    InvocationAttempt,
    EVMTransactionConfirmation,
)

__all__ = [
    "AllowanceGate",
    "KNOWN_MINT_SELECTOR",
    "ALTERNATIVE_METHODS",
    "PARAMETER_SHAPES",
    "build_catalog",
    "encode_candidate",
    "ChainDescriptor",
    "MintConfig",
    "amount_to_value",
    "value_to_amount",
    "get_chain_descriptor",
    "resolve_chain_descriptor",
    "StablecoinHandle",
    "TokenHandle",
    "classify_error",
    "to_mint_error",
    "PurchaseInvoker",
    "PendingPurchase",
    "ChainRpcClient",
    "AllowanceRecord",
    "ParamRole",
    "EncodingStrategy",
    "InvocationCandidate",
    "FailureReason",
    "InvocationAttempt",
    "EVMTransactionConfirmation",
]
