"""
Tracking Module

Lifecycle state machine for bridge transactions.
"""

from .models import (
    AttemptLimitExceededError,
    BridgeState,
    BridgeTransaction,
    CancellationNotAllowedError,
    ConfirmationEvent,
    FailureCode,
    FailureReason,
    InvalidTransitionError,
    StateTransition,
    TrackingError,
    TransactionNotFoundError,
)
from .tracker import UPDATES_CHANNEL, BridgeStateTracker, transaction_channel

__all__ = [
    # Tracker
    "BridgeStateTracker",
    "UPDATES_CHANNEL",
    "transaction_channel",
    # Models
    "BridgeState",
    "BridgeTransaction",
    "StateTransition",
    "ConfirmationEvent",
    "FailureCode",
    "FailureReason",
    # Errors
    "TrackingError",
    "TransactionNotFoundError",
    "InvalidTransitionError",
    "AttemptLimitExceededError",
    "CancellationNotAllowedError",
]
