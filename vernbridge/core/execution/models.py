"""
Data models for transaction execution.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from vernbridge.core.bridge.models import EncodedPayload, OperationKind


class ExecutionPath(str, Enum):
    """Which signer surface produced a submission."""
    PRIMARY = "primary"
    ALTERNATE = "alternate"


@dataclass(frozen=True)
class ContractCall:
    """A single invocation of the bridge contract."""
    contract_address: str
    entrypoint: str
    calldata: List[str]

    @classmethod
    def from_payload(
        cls,
        contract_address: str,
        payload: EncodedPayload,
        operation: OperationKind,
    ) -> "ContractCall":
        if payload.operation is not operation:
            raise ValueError(
                f"Payload encoded for {payload.operation.value}, cannot submit as {operation.value}"
            )
        return cls(
            contract_address=contract_address,
            entrypoint=operation.entrypoint,
            calldata=payload.to_calldata(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contractAddress": self.contract_address,
            "entrypoint": self.entrypoint,
            "calldata": list(self.calldata),
        }


@dataclass(frozen=True)
class TransactionReference:
    """Chain-assigned reference returned by a successful submission."""
    chain_ref: str
    path: ExecutionPath = ExecutionPath.PRIMARY
    attempts: int = 1
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainRef": self.chain_ref,
            "path": self.path.value,
            "attempts": self.attempts,
            "submittedAt": self.submitted_at.isoformat(),
        }


@dataclass(frozen=True)
class ExecutionPolicy:
    """Timeout and retry limits for one execution."""
    timeout_seconds: float = 120.0
    max_attempts: int = 3
    initial_backoff_seconds: float = 3.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0
    jitter: bool = False

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass
class AttemptRecord:
    """Outcome of one submission attempt, kept for diagnostics."""
    attempt: int
    path: ExecutionPath
    error_kind: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "path": self.path.value,
            "errorKind": self.error_kind,
            "message": self.message,
        }
