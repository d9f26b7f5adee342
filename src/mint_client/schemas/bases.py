"""
Base Schema Models for the Mint Client

This module defines the fundamental base classes and enumerations that all
other schema models build on. It provides the foundation for type safety,
validation, and consistent serialization across the session, gate and
invocation layers.

Core Classes:
    - CanonicalModel: Pydantic base model with deterministic JSON serialization
    - ConnectionState: Wallet session state machine states
    - ApprovalState: Outcome of an allowance gate check
    - TransactionStatus: Observed status of a broadcast transaction
    - BaseTransactionConfirmation: Receipt-level transaction result

Dependencies:
    - pydantic: For data validation and serialization
"""

import json
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model with canonical JSON serialization.

    Keys are sorted and whitespace is stripped so two equal models always
    serialize to the same string, which keeps log lines and status snapshots
    comparable.

    Example:
        class MyModel(CanonicalModel):
            name: str
            value: int

        model = MyModel(name="test", value=123)
        model.to_canonical_json()  # '{"name":"test","value":123}'
    """

    model_config = ConfigDict(populate_by_name=True)

    def to_canonical_json(self) -> str:
        """
        Convert model to a canonical JSON string.

        Returns:
            str: JSON string with sorted keys and no extra whitespace.
        """
        data = self.model_dump(mode="json")
        return json.dumps(
            data,
            separators=(",", ":"),
            sort_keys=True,
            ensure_ascii=False
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Returns:
            Dict[str, Any]: Dictionary with all model fields.
        """
        return self.model_dump()


class ConnectionState(str, Enum):
    """
    States of the wallet session state machine.

    Attributes:
        DISCONNECTED: No authorised account, no bound handles
        CONNECTING: Account authorisation requested from the provider
        ACCOUNT_GRANTED: Provider returned at least one account
        NETWORK_VERIFYING: Reading the provider's current chain id
        NETWORK_REPAIRING: Switch/add chain request in flight
        READY: Account authorised, chain matches target, handles bound
        INVALIDATED: Transient state entered on account/chain change
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ACCOUNT_GRANTED = "account_granted"
    NETWORK_VERIFYING = "network_verifying"
    NETWORK_REPAIRING = "network_repairing"
    READY = "ready"
    INVALIDATED = "invalidated"


class ApprovalState(str, Enum):
    """
    Result of comparing the on-chain allowance with one purchase's cost.

    Attributes:
        UNKNOWN: No check has run in the current session
        APPROVED: Allowance covers at least one purchase
        NOT_APPROVED: Allowance is below one purchase's cost
    """
    UNKNOWN = "unknown"
    APPROVED = "approved"
    NOT_APPROVED = "not_approved"


class TransactionStatus(str, Enum):
    """
    Enumeration of observed transaction statuses.

    Attributes:
        PENDING: Broadcast, no receipt yet
        CONFIRMED: Receipt with status 1
        FAILED: Receipt with status 0 (reverted on-chain)
        TIMEOUT: No receipt within the configured confirmation window
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class BaseTransactionConfirmation(CanonicalModel):
    """
    Receipt-level data for a transaction the client observed.

    The client never owns a transaction; it only records what the chain
    reported about it.

    Attributes:
        tx_hash: Transaction hash (0x-prefixed)
        status: Observed transaction status
        block_number: Block that included the transaction
        gas_used: Gas consumed by execution
        confirmations: Blocks mined on top of the inclusion block
        error_message: Reason text for failed or timed-out transactions
        logs: Raw receipt logs, when available
        created_at: When this confirmation was recorded
    """

    tx_hash: str = Field(..., description="Transaction hash (0x-prefixed hex string)")
    status: TransactionStatus = Field(..., description="Observed transaction status")
    block_number: Optional[int] = Field(None, ge=0, description="Block number containing transaction")
    gas_used: Optional[int] = Field(None, ge=0, description="Actual gas consumed by transaction")
    confirmations: int = Field(default=0, ge=0, description="Number of block confirmations")
    error_message: Optional[str] = Field(None, description="Error message if transaction failed")
    logs: Optional[List[Dict[str, Any]]] = Field(None, description="Transaction logs/events")
    created_at: datetime = Field(default_factory=datetime.now, description="Confirmation recording timestamp")

    def is_success(self) -> bool:
        """
        Check if the transaction was confirmed without reverting.

        Returns:
            bool: True only for CONFIRMED transactions.
        """
        return self.status == TransactionStatus.CONFIRMED

    def get_confirmation_status(self) -> str:
        """
        Get human-readable confirmation status message.

        Returns:
            str: Human-readable status message describing transaction state.
        """
        if self.status == TransactionStatus.CONFIRMED:
            confirmations_text = f"with {self.confirmations} confirmations" if self.confirmations > 0 else "pending confirmations"
            return f"Transaction confirmed {confirmations_text}"
        elif self.status == TransactionStatus.PENDING:
            return "Transaction is pending confirmation"
        else:
            return f"Transaction failed: {self.error_message or self.status.value}"
