"""
Execution Module

Submits encoded bridge payloads to the target-chain contract through an
external signer.
"""

from .executor import (
    ExecutionError,
    ExecutionInProgressError,
    TransactionExecutor,
)
from .models import (
    AttemptRecord,
    ContractCall,
    ExecutionPath,
    ExecutionPolicy,
    TransactionReference,
)
from .signer import HttpSignerClient, SignerClient

__all__ = [
    # Executor
    "TransactionExecutor",
    "ExecutionError",
    "ExecutionInProgressError",
    # Models
    "ContractCall",
    "TransactionReference",
    "ExecutionPolicy",
    "ExecutionPath",
    "AttemptRecord",
    # Signers
    "SignerClient",
    "HttpSignerClient",
]
