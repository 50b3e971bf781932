"""
Bridge Orchestrator

Runs one bridge intent end to end:

    validate -> create tracked transaction -> encode -> execute
             -> record PENDING or FAILED -> advance on confirmations

Validation errors are raised to the caller before anything is tracked.
After that point every outcome is recorded on the transaction, and the
caller receives its snapshot.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from vernbridge.core.execution.executor import ExecutionError, TransactionExecutor
from vernbridge.core.recovery.errors import ErrorKind
from vernbridge.core.tracking.models import (
    BridgeTransaction,
    ConfirmationEvent,
    FailureCode,
    FailureReason,
    TrackingError,
)
from vernbridge.core.tracking.tracker import BridgeStateTracker

from .address_codec import AddressCodec
from .amount_codec import AmountCodec
from .errors import BridgeValidationError, InvalidIntent
from .models import BridgeDirection, BridgeIntent, EncodedPayload, OperationKind


logger = logging.getLogger(__name__)

_FAILURE_CODES: Dict[ErrorKind, FailureCode] = {
    ErrorKind.USER_REJECTED: FailureCode.USER_REJECTED,
    ErrorKind.FATAL: FailureCode.FATAL,
    ErrorKind.RETRYABLE_TRANSIENT: FailureCode.RETRYABLE_TRANSIENT,
    ErrorKind.ALTERNATE_PATH_ELIGIBLE: FailureCode.ALTERNATE_PATH_ELIGIBLE,
}


class BridgeOrchestrator:
    """
    Coordinates the codecs, executor and tracker for each intent.

    Each submitted intent runs in its caller's task; intents are
    independent of each other.
    """

    def __init__(
        self,
        address_codec: AddressCodec,
        amount_codec: AmountCodec,
        executor: TransactionExecutor,
        tracker: BridgeStateTracker,
        source_decimals: int = 8,
        deposit_confirmation_timeout: float = 86400.0,
        withdrawal_confirmation_timeout: float = 259200.0,
    ):
        self.address_codec = address_codec
        self.amount_codec = amount_codec
        self.executor = executor
        self.tracker = tracker
        self.source_decimals = source_decimals
        self.confirmation_timeouts: Dict[OperationKind, float] = {
            OperationKind.DEPOSIT: deposit_confirmation_timeout,
            OperationKind.WITHDRAWAL: withdrawal_confirmation_timeout,
        }
        self._watchdogs: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Validation and encoding
    # =========================================================================

    def validate_intent(self, intent: BridgeIntent) -> None:
        """
        Check every part of the intent without side effects.

        Raises:
            BridgeValidationError: on the first invalid field
        """
        if not isinstance(intent, BridgeIntent):
            raise InvalidIntent(f"Expected BridgeIntent, got {type(intent).__name__}")
        if not isinstance(intent.direction, BridgeDirection):
            raise InvalidIntent(f"Unknown bridge direction: {intent.direction!r}")

        # Also rejects amounts that floor to zero base units
        self.amount_codec.to_base_units(intent.amount, self.source_decimals)
        self.address_codec.parse_source_address(intent.bitcoin_address)
        self.address_codec.encode_destination_address(intent.starknet_address)

    def encode(self, intent: BridgeIntent) -> EncodedPayload:
        limbs = self.amount_codec.to_wide_integer(intent.amount, self.source_decimals)
        bitcoin_field = self.address_codec.encode_source_address(intent.bitcoin_address)
        starknet_field = self.address_codec.encode_destination_address(intent.starknet_address)

        return EncodedPayload(
            operation=intent.operation,
            amount_limbs=limbs,
            source_address_field=bitcoin_field,
            destination_address_field=(
                starknet_field if intent.operation is OperationKind.DEPOSIT else None
            ),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def submit(
        self,
        intent: BridgeIntent,
        correlation_id: Optional[str] = None,
    ) -> BridgeTransaction:
        """
        Run an intent until it is PENDING or FAILED.

        Raises:
            BridgeValidationError: the intent is invalid; nothing was tracked
        """
        self.validate_intent(intent)

        created = await self.tracker.create(intent, correlation_id=correlation_id)
        tx_id = created.correlation_id
        await self.tracker.begin_encoding(tx_id)

        try:
            payload = self.encode(intent)
        except (BridgeValidationError, ValueError) as e:
            logger.error(f"Encoding failed for {tx_id}: {e}")
            return await self.tracker.fail(
                tx_id, FailureReason(code=FailureCode.ENCODING_FAILED, message=str(e))
            )

        if not await self.tracker.begin_submission(tx_id):
            logger.info(f"Transaction {tx_id} finished before submission, not submitting")
            return self.tracker.get(tx_id)

        try:
            reference = await self.executor.execute(
                payload,
                intent.operation,
                tx_id,
                on_attempt=lambda attempt: self.tracker.record_attempt(tx_id),
            )
        except ExecutionError as e:
            return await self.tracker.fail(
                tx_id,
                FailureReason(
                    code=_FAILURE_CODES[e.kind],
                    message=e.message,
                    exhausted=e.exhausted,
                ),
            )
        except TrackingError as e:
            logger.error(f"Tracking rejected submission of {tx_id}: {e}")
            return await self.tracker.fail(
                tx_id, FailureReason(code=FailureCode.FATAL, message=str(e))
            )

        try:
            snapshot = await self.tracker.record_pending(tx_id, reference.chain_ref)
        except (TrackingError, ValueError) as e:
            logger.error(f"Cannot record chain reference {reference.chain_ref!r} for {tx_id}: {e}")
            return await self.tracker.fail(
                tx_id,
                FailureReason(
                    code=FailureCode.FATAL,
                    message=f"Signer returned an unusable chain reference {reference.chain_ref!r}: {e}",
                ),
            )

        logger.info(
            f"Submitted {intent.operation.value} {tx_id} as {reference.chain_ref} "
            f"via {reference.path.value} path after {reference.attempts} attempt(s)"
        )

        if not snapshot.is_terminal:
            self._watch_confirmation_deadline(tx_id, intent.operation)
        return snapshot

    async def handle_confirmation(self, event: ConfirmationEvent) -> Optional[BridgeTransaction]:
        """Feed a confirmation event to the tracker. None if it was buffered."""
        return await self.tracker.record_confirmation(
            event.chain_ref,
            event.confirmation_count,
            event.block_reference,
        )

    async def cancel(self, transaction_id: str) -> BridgeTransaction:
        return await self.tracker.cancel(transaction_id)

    def get(self, transaction_id: str) -> BridgeTransaction:
        return self.tracker.get(transaction_id)

    def stats(self) -> Dict[str, Any]:
        stats = self.tracker.stats()
        stats["awaitingConfirmation"] = len(self._watchdogs)
        stats["inFlightSubmissions"] = sum(
            1
            for tx in self.tracker.list_transactions()
            if self.executor.is_in_flight(tx.correlation_id)
        )
        return stats

    async def shutdown(self) -> None:
        """Stop confirmation deadline watchers."""
        tasks = list(self._watchdogs.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._watchdogs.clear()

    # =========================================================================
    # Confirmation deadline
    # =========================================================================

    def _watch_confirmation_deadline(self, tx_id: str, operation: OperationKind) -> None:
        timeout = self.confirmation_timeouts[operation]
        task = asyncio.create_task(self._enforce_deadline(tx_id, timeout))
        self._watchdogs[tx_id] = task
        task.add_done_callback(lambda _: self._watchdogs.pop(tx_id, None))

    async def _enforce_deadline(self, tx_id: str, timeout: float) -> None:
        try:
            await self.tracker.wait_until_terminal(tx_id, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Confirmation deadline of {timeout:g}s passed for {tx_id}")
            await self.tracker.fail(
                tx_id,
                FailureReason(
                    code=FailureCode.CONFIRMATION_TIMEOUT,
                    message=f"Not confirmed within {timeout:g} seconds",
                ),
            )
