"""
EVM Schema Models for Purchase Invocation

Data models for the allowance gate and the adaptive invocation engine:
allowance snapshots, the invocation candidate variants, per-candidate
attempts, and receipt-level confirmations.

Key Models:
    - AllowanceRecord: Read-only allowance snapshot
    - ParamRole / EncodingStrategy: Tags describing one candidate call shape
    - InvocationCandidate: Immutable description of one call shape
    - InvocationAttempt: Outcome of trying one candidate
    - EVMTransactionConfirmation: Receipt data for an observed transaction
"""

from enum import Enum
from typing import Optional, Tuple, Literal

from pydantic import ConfigDict, Field

from ...schemas.bases import CanonicalModel, BaseTransactionConfirmation


class AllowanceRecord(CanonicalModel):
    """
    Snapshot of ``allowance(owner, spender)`` on the stablecoin.

    Never cached beyond one gate decision; always re-read from the chain.

    Attributes:
        owner: Account that granted the allowance
        spender: Token contract allowed to pull stablecoin
        amount: Allowance in stablecoin smallest units
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., description="Allowance owner address")
    spender: str = Field(..., description="Spender (token contract) address")
    amount: int = Field(..., ge=0, description="Allowance in smallest units")

    def covers(self, required: int) -> bool:
        """True when the allowance is at least ``required``."""
        return self.amount >= required


class ParamRole(str, Enum):
    """Semantic role of one positional argument of a candidate call."""
    RECIPIENT = "recipient"
    AMOUNT_OUT = "amount_out"
    AMOUNT_IN = "amount_in"

    @property
    def abi_type(self) -> str:
        return "address" if self is ParamRole.RECIPIENT else "uint256"


class EncodingStrategy(str, Enum):
    """
    How a candidate's calldata is produced and submitted.

    Attributes:
        RAW_SELECTOR: Pre-computed 4-byte selector sent verbatim, no ABI lookup
        ABI: Selector and arguments ABI-encoded from name and parameter shape
        TRANSFER_THEN_CALL: Stablecoin transfer to the token contract, confirmed,
            followed by the zero-argument raw selector call
    """
    RAW_SELECTOR = "raw_selector"
    ABI = "abi"
    TRANSFER_THEN_CALL = "transfer_then_call"


class InvocationCandidate(CanonicalModel):
    """
    One hypothesised shape of the token contract's purchase entry point.

    Attributes:
        method_name: Contract function name
        parameter_shape: Ordered argument roles
        encoding: Encoding strategy
        selector: Fixed 0x-prefixed selector for RAW_SELECTOR style candidates
    """

    model_config = ConfigDict(frozen=True)

    method_name: str
    parameter_shape: Tuple[ParamRole, ...] = ()
    encoding: EncodingStrategy = EncodingStrategy.ABI
    selector: Optional[str] = None

    @property
    def arg_types(self) -> Tuple[str, ...]:
        return tuple(role.abi_type for role in self.parameter_shape)

    @property
    def signature(self) -> str:
        return f"{self.method_name}({','.join(self.arg_types)})"

    def describe(self) -> str:
        if self.encoding is EncodingStrategy.ABI:
            return self.signature
        return f"{self.signature} [{self.encoding.value}]"


class FailureReason(str, Enum):
    """
    Classified reason an invocation candidate (or any provider call) failed.

    Attributes:
        USER_REJECTED: The user declined the wallet prompt
        EXECUTION_REVERTED: The contract reverted
        GAS_ESTIMATION_FAILED: The node could not estimate gas for the call
        INSUFFICIENT_GAS: The signer cannot pay network fees
        UNKNOWN: Anything else
    """
    USER_REJECTED = "user_rejected"
    EXECUTION_REVERTED = "execution_reverted"
    GAS_ESTIMATION_FAILED = "gas_estimation_failed"
    INSUFFICIENT_GAS = "insufficient_gas"
    UNKNOWN = "unknown"


class InvocationAttempt(CanonicalModel):
    """
    Outcome of trying one candidate during a purchase call.

    Attributes:
        candidate: The candidate that was tried
        success: Whether the chain accepted the call
        reason: Classified failure reason (None on success)
        message: Provider / node message for failures
        tx_hash: Broadcast hash on success
    """

    candidate: InvocationCandidate
    success: bool
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    tx_hash: Optional[str] = None


class EVMTransactionConfirmation(BaseTransactionConfirmation):
    """
    EVM-Specific Transaction Confirmation.

    Attributes:
        confirmation_type: Always "evm"
        from_address: Transaction sender address
        to_address: Transaction receiver/contract address
        effective_gas_price: Price paid per gas unit (wei)
    """

    confirmation_type: Literal["evm"] = Field(default="evm", description="Confirmation type identifier")
    from_address: Optional[str] = Field(None, description="Transaction sender address")
    to_address: Optional[str] = Field(None, description="Transaction receiver/contract address")
    effective_gas_price: Optional[int] = Field(None, ge=0, description="Effective gas price in wei")
