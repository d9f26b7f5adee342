"""
Provider / Node Error Classification

Wallet providers and RPC nodes report failures in several shapes: EIP-1193
error objects with numeric codes, web3.py exception classes, and plain
``ValueError`` payloads carrying a JSON-RPC error dict. This module reduces
all of them to a ``FailureReason`` plus the original message, and maps a
classified failure onto the typed exception taxonomy.
"""

import logging
from typing import Optional, Tuple, Type

from web3.exceptions import ContractLogicError

from ..bases import ProviderRpcError, USER_REJECTED_CODE
from .schemas import FailureReason
from ...engine.exceptions import (
    InsufficientGasError,
    MintClientError,
    UnknownChainError,
    UserRejectedError,
)

logger = logging.getLogger(__name__)

_REJECTION_MARKERS = ("user rejected", "user denied", "rejected by user", "user cancelled", "action_rejected")
_FUNDS_MARKERS = ("insufficient funds",)
_REVERT_MARKERS = ("execution reverted", "revert")
_ESTIMATION_MARKERS = ("cannot estimate gas", "unpredictable_gas_limit", "gas required exceeds", "out of gas")


def error_message(exc: BaseException) -> str:
    """
    Best-effort extraction of the human message from a provider/node error.
    """
    if isinstance(exc, ProviderRpcError):
        return exc.message
    if exc.args and isinstance(exc.args[0], dict):
        payload = exc.args[0]
        return str(payload.get("message") or payload)
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or type(exc).__name__


def error_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, ProviderRpcError):
        return exc.code
    if exc.args and isinstance(exc.args[0], dict):
        code = exc.args[0].get("code")
        if isinstance(code, int):
            return code
    code = getattr(exc, "code", None)
    return code if isinstance(code, int) else None


def classify_error(exc: BaseException) -> Tuple[FailureReason, str]:
    """
    Classify a failure raised by the wallet provider or the RPC node.

    Order matters: a user rejection wins over anything else the message
    mentions, and a funds shortfall wins over a generic revert.

    Args:
        exc: Exception raised by a provider request or a web3 call.

    Returns:
        Tuple[FailureReason, str]: Classified reason and the underlying message.
    """
    message = error_message(exc)
    text = message.lower()
    code = error_code(exc)

    if code == USER_REJECTED_CODE or any(m in text for m in _REJECTION_MARKERS):
        reason = FailureReason.USER_REJECTED
    elif any(m in text for m in _FUNDS_MARKERS):
        reason = FailureReason.INSUFFICIENT_GAS
    elif isinstance(exc, ContractLogicError) or any(m in text for m in _REVERT_MARKERS):
        reason = FailureReason.EXECUTION_REVERTED
    elif any(m in text for m in _ESTIMATION_MARKERS):
        reason = FailureReason.GAS_ESTIMATION_FAILED
    else:
        reason = FailureReason.UNKNOWN

    logger.debug("classified %s (code=%s) as %s: %s", type(exc).__name__, code, reason.value, message)
    return reason, message


def to_mint_error(
    exc: BaseException,
    default: Type[MintClientError] = UnknownChainError,
    context: str = "",
) -> MintClientError:
    """
    Convert a provider/node exception into the typed taxonomy.

    User rejections and gas shortfalls keep their own classes everywhere;
    any other reason becomes ``default``.

    Args:
        exc: The raw exception.
        default: Exception class used for every other reason.
        context: Short prefix for the error message, e.g. ``"Approval"``.
    """
    if isinstance(exc, MintClientError):
        return exc

    reason, message = classify_error(exc)
    prefix = f"{context} failed: " if context else ""
    if reason is FailureReason.USER_REJECTED:
        return UserRejectedError(f"{prefix}request declined in wallet", provider_message=message)
    if reason is FailureReason.INSUFFICIENT_GAS:
        return InsufficientGasError(f"{prefix}insufficient native funds for network fees", provider_message=message)
    return default(f"{prefix}{message}", provider_message=message)
