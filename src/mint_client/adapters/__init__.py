from .bases import WalletProvider, ProviderRpcError, ListenerSet, parse_chain_id
from .providers import JsonRpcWalletProvider
from .evm import (
    AllowanceGate,
    ChainRpcClient,
    MintConfig,
    PurchaseInvoker,
    PendingPurchase,
    InvocationCandidate,
    EVMTransactionConfirmation,
)

__all__ = [
    "WalletProvider",
    "ProviderRpcError",
    "ListenerSet",
    "parse_chain_id",
    "JsonRpcWalletProvider",
    "AllowanceGate",
    "ChainRpcClient",
    "MintConfig",
    "PurchaseInvoker",
    "PendingPurchase",
    "InvocationCandidate",
    "EVMTransactionConfirmation",
]
