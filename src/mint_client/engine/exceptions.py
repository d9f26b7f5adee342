"""
Exception and Error Definitions Module

Defines the exception hierarchy for wallet sessions, allowance gating and
purchase invocation. All exceptions inherit from MintClientError and carry a
classified ``kind`` plus the underlying provider message (when one exists),
so callers can surface a typed result without parsing strings.

Exception Hierarchy:
    MintClientError (root)
    ├── NoProviderError
    ├── UserRejectedError
    ├── NetworkMismatchError
    ├── UnknownChainError
    ├── ConfigurationError
    ├── SessionNotReadyError
    ├── FundsError
    │   ├── InsufficientGasError
    │   ├── InsufficientBalanceError
    │   └── InsufficientAllowanceError
    ├── ApprovalRevertedError
    ├── NotApprovedError
    ├── PurchaseInProgressError
    ├── NoWorkingEntryPointError
    ├── PurchaseRevertedError
    └── ConfirmationTimeoutError
    InvalidTransition
"""

from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    """
    Classified kind of a failure that escaped the core.
    """
    NO_PROVIDER = "no_provider"
    USER_REJECTED = "user_rejected"
    NETWORK_MISMATCH = "network_mismatch"
    UNKNOWN_CHAIN = "unknown_chain"
    CONFIGURATION = "configuration"
    SESSION_NOT_READY = "session_not_ready"
    INSUFFICIENT_GAS = "insufficient_gas"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    APPROVAL_REVERTED = "approval_reverted"
    NOT_APPROVED = "not_approved"
    PURCHASE_IN_PROGRESS = "purchase_in_progress"
    NO_WORKING_ENTRY_POINT = "no_working_entry_point"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    PURCHASE_REVERTED = "purchase_reverted"


class MintClientError(Exception):
    """
    Root exception class for all project-specific exceptions.

    Attributes:
        kind: Classified error kind
        provider_message: Raw message reported by the wallet provider or
            RPC node, if the error originated there
    """

    kind: ErrorKind = ErrorKind.UNKNOWN_CHAIN

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider_message = provider_message


class NoProviderError(MintClientError):
    """
    Raised when no wallet provider is available to the session.
    """
    kind = ErrorKind.NO_PROVIDER


class UserRejectedError(MintClientError):
    """
    Raised when the user declines a wallet prompt.

    Covers account authorisation, chain switch/add, approval and purchase
    prompts. Always fatal to the current operation and never retried.

    Attributes:
        attempts: Invocation attempts recorded before the rejection, when the
            rejection interrupted a purchase search
    """
    kind = ErrorKind.USER_REJECTED

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None,
                 attempts: Optional[List[Any]] = None):
        super().__init__(message, provider_message=provider_message)
        self.attempts = list(attempts or [])


class NetworkMismatchError(MintClientError):
    """
    Raised when the wallet cannot be brought onto the target chain.

    This includes scenarios such as:
    - Switch request failed for a reason other than an unknown chain
    - Add chain request failed
    - Chain id still differs after the single repair cycle
    """
    kind = ErrorKind.NETWORK_MISMATCH


class UnknownChainError(MintClientError):
    """
    Raised on RPC or provider failures unrelated to any other category.
    """
    kind = ErrorKind.UNKNOWN_CHAIN


class ConfigurationError(MintClientError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Malformed contract addresses
    - Non-positive amounts or multipliers
    - Unsupported chain without a resolvable descriptor
    """
    kind = ErrorKind.CONFIGURATION


class SessionNotReadyError(MintClientError):
    """
    Raised when a chain read or write is requested outside the READY state,
    or by a contract handle whose session has since been invalidated.
    """
    kind = ErrorKind.SESSION_NOT_READY


class FundsError(MintClientError):
    """
    Base exception for local balance / allowance / gas shortfalls.

    Attributes:
        required: Amount required (smallest units)
        available: Amount available (smallest units)
    """

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None,
                 required: Optional[int] = None, available: Optional[int] = None):
        super().__init__(message, provider_message=provider_message)
        self.required = required
        self.available = available


class InsufficientGasError(FundsError):
    """
    Raised when the signer lacks native currency to pay network fees.
    """
    kind = ErrorKind.INSUFFICIENT_GAS


class InsufficientBalanceError(FundsError):
    """
    Raised when the stablecoin balance does not cover one purchase.
    """
    kind = ErrorKind.INSUFFICIENT_BALANCE


class InsufficientAllowanceError(FundsError):
    """
    Raised when the on-chain allowance does not cover one purchase at the
    moment the invocation engine starts.
    """
    kind = ErrorKind.INSUFFICIENT_ALLOWANCE


class ApprovalRevertedError(MintClientError):
    """
    Raised when the approval transaction is rejected on-chain for any reason
    other than a user decline or missing gas funds.

    Attributes:
        tx_hash: Hash of the reverted approval, if it was broadcast
    """
    kind = ErrorKind.APPROVAL_REVERTED

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None,
                 tx_hash: Optional[str] = None):
        super().__init__(message, provider_message=provider_message)
        self.tx_hash = tx_hash


class NotApprovedError(MintClientError):
    """
    Raised when a purchase is requested while the gate is not APPROVED.
    No chain call is made before this error is raised.
    """
    kind = ErrorKind.NOT_APPROVED


class PurchaseInProgressError(MintClientError):
    """
    Raised when a purchase is requested while another one is still resolving.
    """
    kind = ErrorKind.PURCHASE_IN_PROGRESS


class NoWorkingEntryPointError(MintClientError):
    """
    Raised when every invocation candidate failed without a user rejection.

    Attributes:
        last_failure: The last recorded InvocationAttempt
        attempts: All attempts, in catalog order
    """
    kind = ErrorKind.NO_WORKING_ENTRY_POINT

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None,
                 last_failure: Any = None, attempts: Optional[List[Any]] = None):
        super().__init__(message, provider_message=provider_message)
        self.last_failure = last_failure
        self.attempts = list(attempts or [])


class PurchaseRevertedError(MintClientError):
    """
    Raised when an accepted purchase transaction is mined with status 0.

    Attributes:
        tx_hash: Hash of the reverted purchase
    """
    kind = ErrorKind.PURCHASE_REVERTED

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None,
                 tx_hash: Optional[str] = None):
        super().__init__(message, provider_message=provider_message)
        self.tx_hash = tx_hash


class ConfirmationTimeoutError(MintClientError):
    """
    Raised when no receipt arrives within the confirmation window.

    Attributes:
        tx_hash: Hash of the transaction that is still pending
    """
    kind = ErrorKind.CONFIRMATION_TIMEOUT

    def __init__(self, message: str = "", *, provider_message: Optional[str] = None,
                 tx_hash: Optional[str] = None):
        super().__init__(message, provider_message=provider_message)
        self.tx_hash = tx_hash


class InvalidTransition(Exception):
    """
    Raised when the wallet session is asked to move between two states the
    state machine does not connect.

    Attributes:
        current_state: State the session was in
        target_state: State that was requested
    """

    def __init__(self, current_state: Any, target_state: Any):
        super().__init__(f"Invalid session transition: {current_state} -> {target_state}")
        self.current_state = current_state
        self.target_state = target_state
