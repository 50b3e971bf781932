"""
Data models for bridge transaction tracking.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from vernbridge.core.bridge.models import BridgeIntent


class BridgeState(str, Enum):
    """Lifecycle states of a bridge transaction."""

    CREATED = "created"           # Intent accepted, nothing encoded yet
    ENCODING = "encoding"         # Addresses and amount being encoded
    SUBMITTING = "submitting"     # Executor is driving the signer
    PENDING = "pending"           # Chain reference known, no confirmations yet
    CONFIRMING = "confirming"     # Below the confirmation threshold
    COMPLETED = "completed"       # Threshold reached
    FAILED = "failed"             # Terminal failure, see terminal_error

    @property
    def is_terminal(self) -> bool:
        return self in (BridgeState.COMPLETED, BridgeState.FAILED)


class FailureCode(str, Enum):
    """Why a transaction ended in FAILED."""

    USER_REJECTED = "USER_REJECTED"
    FATAL = "FATAL"
    RETRYABLE_TRANSIENT = "RETRYABLE_TRANSIENT"           # Retries exhausted
    ALTERNATE_PATH_ELIGIBLE = "ALTERNATE_PATH_ELIGIBLE"   # Both paths unusable
    CONFIRMATION_TIMEOUT = "CONFIRMATION_TIMEOUT"
    ENCODING_FAILED = "ENCODING_FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class FailureReason:
    code: FailureCode
    message: str
    exhausted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "exhausted": self.exhausted,
        }


@dataclass(frozen=True)
class StateTransition:
    """Record of a state transition."""

    from_state: BridgeState
    to_state: BridgeState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    confirmations: int = 0
    chain_ref: Optional[str] = None
    failure: Optional[FailureReason] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "confirmations": self.confirmations,
            "chainRef": self.chain_ref,
            "failure": self.failure.to_dict() if self.failure else None,
        }


@dataclass(frozen=True)
class BridgeTransaction:
    """
    Read-only snapshot of a tracked transaction.

    The tracker owns the live record; everything handed out is a snapshot
    taken under the transaction lock.
    """

    correlation_id: str
    intent: BridgeIntent
    state: BridgeState
    created_at: datetime
    last_transition_at: datetime
    chain_ref: Optional[str] = None
    confirmations: int = 0
    attempts: int = 0
    block_ref: Optional[str] = None
    terminal_error: Optional[FailureReason] = None
    history: Tuple[StateTransition, ...] = ()

    @property
    def id(self) -> str:
        """Chain reference once submitted, the local correlation id before."""
        return self.chain_ref or self.correlation_id

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "correlationId": self.correlation_id,
            "chainRef": self.chain_ref,
            "intent": self.intent.to_dict(),
            "operation": self.intent.operation.value,
            "state": self.state.value,
            "confirmations": self.confirmations,
            "attempts": self.attempts,
            "blockRef": self.block_ref,
            "createdAt": self.created_at.isoformat(),
            "lastTransitionAt": self.last_transition_at.isoformat(),
            "terminalError": self.terminal_error.to_dict() if self.terminal_error else None,
            "history": [t.to_dict() for t in self.history],
        }


class ConfirmationEvent(BaseModel):
    """Confirmation count reported by the source-chain monitor."""

    model_config = ConfigDict(populate_by_name=True)

    chain_ref: str = Field(..., alias="chainRef", min_length=1, description="Chain transaction reference")
    confirmation_count: int = Field(..., alias="confirmationCount", ge=0, description="Confirmations so far")
    block_reference: Optional[str] = Field(None, alias="blockReference", description="Block containing the transaction")


class TrackingError(Exception):
    """Base exception for tracker errors."""

    code = "TRACKING_ERROR"


class TransactionNotFoundError(TrackingError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        super().__init__(f"Unknown bridge transaction: {transaction_id}")
        self.transaction_id = transaction_id


class InvalidTransitionError(TrackingError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        from_state: BridgeState,
        to_state: BridgeState,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or f"Cannot transition from {from_state.value} to {to_state.value}"
        super().__init__(self.message)


class AttemptLimitExceededError(TrackingError):
    code = "ATTEMPT_LIMIT_EXCEEDED"

    def __init__(self, transaction_id: str, max_attempts: int):
        super().__init__(
            f"Transaction {transaction_id} already used its {max_attempts} submission attempts"
        )
        self.transaction_id = transaction_id
        self.max_attempts = max_attempts


class CancellationNotAllowedError(TrackingError):
    code = "CANCELLATION_NOT_ALLOWED"

    def __init__(self, transaction_id: str, state: BridgeState):
        super().__init__(
            f"Transaction {transaction_id} cannot be cancelled in state {state.value}"
        )
        self.transaction_id = transaction_id
        self.state = state
