from .bases import CanonicalModel, ConnectionState, ApprovalState, TransactionStatus, BaseTransactionConfirmation

__all__ = [
    "CanonicalModel",
    "ConnectionState",
    "ApprovalState",
    "TransactionStatus",
    "BaseTransactionConfirmation",
]
