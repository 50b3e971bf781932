"""
Bridge State Tracker

Owns the lifecycle of every bridge transaction as a forward-only state
machine and publishes each transition to observers.

    CREATED -> ENCODING -> SUBMITTING -> PENDING -> CONFIRMING -> COMPLETED
        \\__________\\____________\\___________\\___________\\-> FAILED

All mutation of a transaction happens under its own lock, and the
transition is published before the lock is released, so observers of a
transaction see its updates in order.
"""

import asyncio
import logging
import re
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from vernbridge.core.bridge.models import BridgeIntent

from .models import (
    AttemptLimitExceededError,
    BridgeState,
    BridgeTransaction,
    CancellationNotAllowedError,
    FailureCode,
    FailureReason,
    InvalidTransitionError,
    StateTransition,
    TrackingError,
    TransactionNotFoundError,
)


logger = logging.getLogger(__name__)

UPDATES_CHANNEL = "bridge_updates"

_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


def transaction_channel(correlation_id: str) -> str:
    """Per-transaction channel name."""
    return f"bridge.{correlation_id}"


class EventPublisher(Protocol):
    async def publish(self, channel: str, event: Dict[str, Any]) -> int:
        ...


@dataclass
class _TrackedRecord:
    """Live, mutable state of one transaction. Never leaves the tracker."""
    correlation_id: str
    intent: BridgeIntent
    state: BridgeState = BridgeState.CREATED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_transition_at: Optional[datetime] = None
    chain_ref: Optional[str] = None
    confirmations: int = 0
    attempts: int = 0
    block_ref: Optional[str] = None
    terminal_error: Optional[FailureReason] = None
    history: List[StateTransition] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    terminal_event: asyncio.Event = field(default_factory=asyncio.Event)

    def snapshot(self) -> BridgeTransaction:
        return BridgeTransaction(
            correlation_id=self.correlation_id,
            intent=self.intent,
            state=self.state,
            created_at=self.created_at,
            last_transition_at=self.last_transition_at or self.created_at,
            chain_ref=self.chain_ref,
            confirmations=self.confirmations,
            attempts=self.attempts,
            block_ref=self.block_ref,
            terminal_error=self.terminal_error,
            history=tuple(self.history),
        )


class BridgeStateTracker:
    """
    Tracks bridge transactions from intent to settlement.

    Features:
    - Validates transitions against the allowed transition map
    - Buffers confirmations that arrive before the chain reference is known
    - Enforces the submission attempt limit
    - Publishes every transition to the updates channel and the
      transaction's own channel
    """

    TRANSITIONS: Dict[BridgeState, Set[BridgeState]] = {
        BridgeState.CREATED: {
            BridgeState.ENCODING,
            BridgeState.FAILED,
        },
        BridgeState.ENCODING: {
            BridgeState.SUBMITTING,
            BridgeState.FAILED,
        },
        BridgeState.SUBMITTING: {
            BridgeState.PENDING,
            BridgeState.FAILED,
        },
        BridgeState.PENDING: {
            BridgeState.CONFIRMING,
            BridgeState.FAILED,
        },
        BridgeState.CONFIRMING: {
            BridgeState.CONFIRMING,  # Count increased
            BridgeState.COMPLETED,
            BridgeState.FAILED,
        },
        BridgeState.COMPLETED: set(),
        BridgeState.FAILED: set(),
    }

    CANCELLABLE_STATES: Set[BridgeState] = {BridgeState.CREATED, BridgeState.ENCODING}

    def __init__(
        self,
        publisher: Optional[EventPublisher] = None,
        confirmation_threshold: int = 6,
        max_attempts: int = 3,
        max_buffered_confirmations: int = 1024,
        buffered_confirmation_ttl: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if confirmation_threshold < 1:
            raise ValueError("confirmation_threshold must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if max_buffered_confirmations < 1:
            raise ValueError("max_buffered_confirmations must be at least 1")

        self.publisher = publisher
        self.confirmation_threshold = confirmation_threshold
        self.max_attempts = max_attempts
        self.max_buffered_confirmations = max_buffered_confirmations
        self.buffered_confirmation_ttl = buffered_confirmation_ttl
        self._clock = clock

        self._records: Dict[str, _TrackedRecord] = {}
        self._by_chain_ref: Dict[str, str] = {}
        # chain_ref -> (highest count, block_ref, buffered at), oldest first
        self._early_confirmations: "OrderedDict[str, Tuple[int, Optional[str], float]]" = OrderedDict()

    # =========================================================================
    # Queries
    # =========================================================================

    def _resolve(self, transaction_id: str) -> _TrackedRecord:
        correlation_id = self._by_chain_ref.get(transaction_id, transaction_id)
        record = self._records.get(correlation_id)
        if record is None:
            raise TransactionNotFoundError(transaction_id)
        return record

    def get(self, transaction_id: str) -> BridgeTransaction:
        """Snapshot by correlation id or chain reference."""
        return self._resolve(transaction_id).snapshot()

    def list_transactions(self, state: Optional[BridgeState] = None) -> List[BridgeTransaction]:
        snapshots = [r.snapshot() for r in self._records.values()]
        if state is not None:
            snapshots = [s for s in snapshots if s.state is state]
        return sorted(snapshots, key=lambda s: s.created_at)

    def stats(self) -> Dict[str, Any]:
        self._expire_buffered_confirmations()
        by_state = {state.value: 0 for state in BridgeState}
        failures: Dict[str, int] = {}
        total_attempts = 0

        for record in self._records.values():
            by_state[record.state.value] += 1
            total_attempts += record.attempts
            if record.terminal_error is not None:
                code = record.terminal_error.code.value
                failures[code] = failures.get(code, 0) + 1

        total = len(self._records)
        return {
            "total": total,
            "byState": by_state,
            "failuresByCode": failures,
            "averageAttempts": round(total_attempts / total, 2) if total else 0.0,
            "bufferedConfirmations": len(self._early_confirmations),
        }

    async def wait_until_terminal(
        self,
        transaction_id: str,
        timeout: Optional[float] = None,
    ) -> BridgeTransaction:
        """
        Wait for COMPLETED or FAILED.

        Raises:
            asyncio.TimeoutError: if the timeout elapses first
        """
        record = self._resolve(transaction_id)
        await asyncio.wait_for(record.terminal_event.wait(), timeout=timeout)
        return record.snapshot()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create(
        self,
        intent: BridgeIntent,
        correlation_id: Optional[str] = None,
    ) -> BridgeTransaction:
        correlation_id = correlation_id or uuid.uuid4().hex
        if not _CORRELATION_ID_RE.fullmatch(correlation_id):
            raise ValueError(f"Invalid correlation id: {correlation_id!r}")
        if correlation_id in self._records:
            raise ValueError(f"Correlation id already tracked: {correlation_id}")

        record = _TrackedRecord(correlation_id=correlation_id, intent=intent)
        self._records[correlation_id] = record

        async with record.lock:
            logger.info(
                f"Tracking {intent.operation.value} {correlation_id} "
                f"for {intent.amount} ({intent.direction.value})"
            )
            snapshot = record.snapshot()
            await self._publish(record, "created", snapshot, None)
            return snapshot

    async def begin_encoding(self, transaction_id: str) -> BridgeTransaction:
        return await self.transition(transaction_id, BridgeState.ENCODING, reason="encoding intent")

    async def begin_submission(self, transaction_id: str) -> bool:
        """
        Move ENCODING -> SUBMITTING.

        Returns False when the transaction was already finished (for example
        cancelled while encoding), in which case nothing must be submitted.
        """
        record = self._resolve(transaction_id)
        async with record.lock:
            if record.state.is_terminal:
                return False
            await self._apply(record, BridgeState.SUBMITTING, reason="submitting to signer")
            return True

    async def record_attempt(self, transaction_id: str) -> int:
        """Count one submission attempt and return the new total."""
        record = self._resolve(transaction_id)
        async with record.lock:
            if record.state is not BridgeState.SUBMITTING:
                raise TrackingError(
                    f"Cannot record an attempt for {record.correlation_id} "
                    f"in state {record.state.value}"
                )
            if record.attempts >= self.max_attempts:
                raise AttemptLimitExceededError(record.correlation_id, self.max_attempts)
            record.attempts += 1
            return record.attempts

    async def record_pending(self, transaction_id: str, chain_ref: str) -> BridgeTransaction:
        """SUBMITTING -> PENDING once the chain reference is known."""
        if not chain_ref:
            raise ValueError("chain_ref is required")

        record = self._resolve(transaction_id)
        async with record.lock:
            existing = self._by_chain_ref.get(chain_ref)
            if existing is not None and existing != record.correlation_id:
                raise TrackingError(f"Chain reference {chain_ref} already belongs to {existing}")

            record.chain_ref = chain_ref
            await self._apply(record, BridgeState.PENDING, reason="submitted", chain_ref=chain_ref)
            self._by_chain_ref[chain_ref] = record.correlation_id

            self._expire_buffered_confirmations()
            early = self._early_confirmations.pop(chain_ref, None)
            if early is not None:
                count, block_ref, _ = early
                logger.info(f"Applying buffered confirmation {count} for {chain_ref}")
                await self._confirm(record, count, block_ref)

            return record.snapshot()

    async def record_confirmation(
        self,
        chain_ref: str,
        count: int,
        block_ref: Optional[str] = None,
    ) -> Optional[BridgeTransaction]:
        """
        Apply a confirmation count reported by the chain monitor.

        Unknown references are buffered until recorded, up to
        max_buffered_confirmations entries kept for buffered_confirmation_ttl
        seconds, oldest evicted first. Duplicates and non-increasing counts
        are ignored. Returns the snapshot, or None when the event was
        buffered.
        """
        correlation_id = self._by_chain_ref.get(chain_ref)
        if correlation_id is None:
            self._buffer_confirmation(chain_ref, count, block_ref)
            logger.debug(f"Buffered confirmation {count} for unknown reference {chain_ref}")
            return None

        record = self._records[correlation_id]
        async with record.lock:
            await self._confirm(record, count, block_ref)
            return record.snapshot()

    async def fail(self, transaction_id: str, reason: FailureReason) -> BridgeTransaction:
        """Move to FAILED. A no-op if the transaction already finished."""
        record = self._resolve(transaction_id)
        async with record.lock:
            await self._apply(record, BridgeState.FAILED, reason=reason.message, failure=reason)
            return record.snapshot()

    async def cancel(self, transaction_id: str) -> BridgeTransaction:
        """
        Cancel before submission.

        Raises:
            CancellationNotAllowedError: once submission has started
        """
        record = self._resolve(transaction_id)
        async with record.lock:
            if record.state.is_terminal:
                return record.snapshot()
            if record.state not in self.CANCELLABLE_STATES:
                raise CancellationNotAllowedError(record.correlation_id, record.state)

            failure = FailureReason(code=FailureCode.CANCELLED, message="Cancelled before submission")
            await self._apply(record, BridgeState.FAILED, reason="cancelled", failure=failure)
            return record.snapshot()

    async def transition(
        self,
        transaction_id: str,
        to_state: BridgeState,
        reason: Optional[str] = None,
    ) -> BridgeTransaction:
        record = self._resolve(transaction_id)
        async with record.lock:
            await self._apply(record, to_state, reason=reason)
            return record.snapshot()

    # =========================================================================
    # Confirmation buffer
    # =========================================================================

    def _buffer_confirmation(self, chain_ref: str, count: int, block_ref: Optional[str]) -> None:
        self._expire_buffered_confirmations()
        previous = self._early_confirmations.get(chain_ref)
        if previous is not None and count <= previous[0]:
            return

        self._early_confirmations[chain_ref] = (count, block_ref, self._clock())
        self._early_confirmations.move_to_end(chain_ref)
        while len(self._early_confirmations) > self.max_buffered_confirmations:
            dropped, _ = self._early_confirmations.popitem(last=False)
            logger.warning(f"Confirmation buffer full, dropped reference {dropped}")

    def _expire_buffered_confirmations(self) -> None:
        cutoff = self._clock() - self.buffered_confirmation_ttl
        while self._early_confirmations:
            chain_ref, (_, _, buffered_at) = next(iter(self._early_confirmations.items()))
            if buffered_at > cutoff:
                break
            del self._early_confirmations[chain_ref]
            logger.debug(f"Expired buffered confirmation for {chain_ref}")

    # =========================================================================
    # Internals (caller holds record.lock)
    # =========================================================================

    async def _confirm(self, record: _TrackedRecord, count: int, block_ref: Optional[str]) -> None:
        if record.state.is_terminal or count <= record.confirmations:
            return
        if record.state not in (BridgeState.PENDING, BridgeState.CONFIRMING):
            return

        reason = f"{count} confirmation{'s' if count != 1 else ''}"
        record.block_ref = block_ref or record.block_ref
        reached = count >= self.confirmation_threshold
        # PENDING always passes through CONFIRMING
        if record.state is BridgeState.PENDING or not reached:
            await self._apply(record, BridgeState.CONFIRMING, reason=reason, confirmations=count)

        if reached:
            await self._apply(
                record,
                BridgeState.COMPLETED,
                reason=f"reached {self.confirmation_threshold} confirmations",
                confirmations=count,
            )

    async def _apply(
        self,
        record: _TrackedRecord,
        to_state: BridgeState,
        reason: Optional[str] = None,
        confirmations: Optional[int] = None,
        chain_ref: Optional[str] = None,
        failure: Optional[FailureReason] = None,
    ) -> Optional[StateTransition]:
        from_state = record.state

        if from_state.is_terminal and to_state.is_terminal:
            logger.debug(
                f"Ignoring {to_state.value} for {record.correlation_id}: already {from_state.value}"
            )
            return None

        allowed = self.TRANSITIONS.get(from_state, set())
        if to_state not in allowed:
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {sorted(s.value for s in allowed)}",
            )

        if confirmations is not None:
            record.confirmations = confirmations

        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            reason=reason,
            confirmations=record.confirmations,
            chain_ref=chain_ref or record.chain_ref,
            failure=failure,
        )
        record.state = to_state
        record.last_transition_at = transition.timestamp
        record.history.append(transition)
        if failure is not None:
            record.terminal_error = failure

        log = logger.warning if to_state is BridgeState.FAILED else logger.info
        log(
            f"Bridge {record.correlation_id}: {from_state.value} -> {to_state.value}"
            + (f" ({reason})" if reason else "")
        )

        if to_state.is_terminal:
            record.terminal_event.set()

        await self._publish(record, "state_changed", record.snapshot(), transition)
        return transition

    async def _publish(
        self,
        record: _TrackedRecord,
        event_type: str,
        snapshot: BridgeTransaction,
        transition: Optional[StateTransition],
    ) -> None:
        if self.publisher is None:
            return

        event = {
            "event": event_type,
            "transaction": snapshot.to_dict(),
            "transition": transition.to_dict() if transition else None,
        }
        for channel in (UPDATES_CHANNEL, transaction_channel(record.correlation_id)):
            try:
                await self.publisher.publish(channel, event)
            except Exception as e:
                # Delivery problems never roll back a recorded transition
                logger.error(f"Failed to publish {event_type} for {record.correlation_id} on {channel}: {e}")
