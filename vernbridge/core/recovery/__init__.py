"""
Error Recovery Module

Provides failure classification and retry policies for driving the
external signer.
"""

from .errors import (
    ContractRejectedError,
    ErrorContext,
    ErrorKind,
    PathUnavailableError,
    SignerError,
    TransientSignerError,
    UserRejectedError,
    classify_error,
)
from .strategies import BackoffPolicy, Sleeper

__all__ = [
    # Errors
    "ErrorKind",
    "ErrorContext",
    "SignerError",
    "UserRejectedError",
    "TransientSignerError",
    "PathUnavailableError",
    "ContractRejectedError",
    "classify_error",
    # Policies
    "BackoffPolicy",
    "Sleeper",
]
