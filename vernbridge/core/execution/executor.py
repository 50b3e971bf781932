"""
Transaction executor for the bridge contract.

Drives one funds-moving contract call through the external signer:
- Primary path with a per-call timeout
- Bounded retries with exponential backoff for transient failures
- A single switch to the alternate path when the primary is unusable
- Immediate stop on user rejection or fatal failure

A transaction id is executed at most once at a time. A second request for
an id that is still in flight is rejected, never run in parallel.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from vernbridge.core.bridge.models import EncodedPayload, OperationKind
from vernbridge.core.recovery import strategies
from vernbridge.core.recovery.errors import (
    ErrorContext,
    ErrorKind,
    TransientSignerError,
    classify_error,
)
from vernbridge.core.recovery.strategies import BackoffPolicy, Sleeper

from .models import (
    AttemptRecord,
    ContractCall,
    ExecutionPath,
    ExecutionPolicy,
    TransactionReference,
)
from .signer import SignerClient


logger = logging.getLogger(__name__)

AttemptCallback = Callable[[int], Union[None, Awaitable[None]]]


class ExecutionError(Exception):
    """Terminal failure of an execution."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        attempts: int = 0,
        exhausted: bool = False,
        attempt_log: Optional[List[AttemptRecord]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.attempts = attempts
        self.exhausted = exhausted
        self.attempt_log = attempt_log or []

    @property
    def terminal_kind(self) -> ErrorKind:
        """Kind as seen by callers: a spent retry budget is fatal."""
        if self.exhausted:
            return ErrorKind.FATAL
        return self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "terminalKind": self.terminal_kind.value,
            "message": self.message,
            "attempts": self.attempts,
            "exhausted": self.exhausted,
            "attemptLog": [record.to_dict() for record in self.attempt_log],
        }


class ExecutionInProgressError(Exception):
    """An execution for this transaction id is already running."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Execution already in progress for transaction {transaction_id}")
        self.transaction_id = transaction_id


class TransactionExecutor:
    """
    Submits encoded payloads to the bridge contract through a SignerClient.

    Usage:
        executor = TransactionExecutor(signer, contract_address="0x...")
        ref = await executor.execute(payload, OperationKind.DEPOSIT, tx_id)
    """

    def __init__(
        self,
        signer: SignerClient,
        contract_address: str,
        policy: Optional[ExecutionPolicy] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.signer = signer
        self.contract_address = contract_address
        self.policy = policy or ExecutionPolicy()
        self.backoff = BackoffPolicy(
            max_attempts=self.policy.max_attempts,
            initial_delay_seconds=self.policy.initial_backoff_seconds,
            exponential_base=self.policy.backoff_multiplier,
            max_delay_seconds=self.policy.max_backoff_seconds,
            jitter=self.policy.jitter,
        )
        self._sleep = sleep or strategies.sleep
        self._in_flight: Set[str] = set()

    def is_in_flight(self, transaction_id: str) -> bool:
        return transaction_id in self._in_flight

    async def execute(
        self,
        payload: EncodedPayload,
        operation: OperationKind,
        transaction_id: str,
        on_attempt: Optional[AttemptCallback] = None,
    ) -> TransactionReference:
        """
        Submit the payload and return the chain reference.

        Raises:
            ExecutionInProgressError: the id is already being executed
            ExecutionError: the execution ended without a chain reference
        """
        # Claimed before the first await so concurrent callers cannot both pass
        if transaction_id in self._in_flight:
            raise ExecutionInProgressError(transaction_id)
        self._in_flight.add(transaction_id)

        try:
            call = ContractCall.from_payload(self.contract_address, payload, operation)
            return await self._run(call, transaction_id, on_attempt)
        finally:
            self._in_flight.discard(transaction_id)

    async def _run(
        self,
        call: ContractCall,
        transaction_id: str,
        on_attempt: Optional[AttemptCallback],
    ) -> TransactionReference:
        attempt_log: List[AttemptRecord] = []
        alternate_used = False
        last_error: Optional[ErrorContext] = None
        attempt = 0

        while self.backoff.has_attempts_left(attempt):
            attempt += 1
            if on_attempt is not None:
                result = on_attempt(attempt)
                if inspect.isawaitable(result):
                    await result

            logger.info(f"Submitting {call.entrypoint} for {transaction_id} (attempt {attempt})")
            try:
                chain_ref = await self._submit(self.signer.submit, call)
                return TransactionReference(
                    chain_ref=chain_ref,
                    path=ExecutionPath.PRIMARY,
                    attempts=attempt,
                )
            except Exception as e:
                last_error = classify_error(e)
            attempt_log.append(self._record(attempt, ExecutionPath.PRIMARY, last_error))

            if last_error.kind is ErrorKind.ALTERNATE_PATH_ELIGIBLE:
                if alternate_used:
                    raise self._terminal(last_error, attempt, attempt_log, exhausted=True)
                alternate_used = True

                logger.info(f"Primary path unusable for {transaction_id}, trying alternate path")
                try:
                    chain_ref = await self._submit(self.signer.submit_alternate, call)
                    return TransactionReference(
                        chain_ref=chain_ref,
                        path=ExecutionPath.ALTERNATE,
                        attempts=attempt,
                    )
                except Exception as e:
                    last_error = classify_error(e)
                attempt_log.append(self._record(attempt, ExecutionPath.ALTERNATE, last_error))

                if last_error.kind is ErrorKind.ALTERNATE_PATH_ELIGIBLE:
                    raise self._terminal(last_error, attempt, attempt_log, exhausted=True)

            if last_error.kind.is_terminal:
                raise self._terminal(last_error, attempt, attempt_log)

            if self.backoff.has_attempts_left(attempt):
                delay = self.backoff.get_delay(attempt)
                if last_error.retry_after_seconds is not None:
                    delay = max(delay, min(last_error.retry_after_seconds, self.backoff.max_delay_seconds))
                logger.warning(
                    f"Transient failure for {transaction_id}: {last_error.message}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        message = last_error.message if last_error else "no attempts made"
        raise self._terminal(
            ErrorContext(kind=ErrorKind.RETRYABLE_TRANSIENT, message=message),
            attempt,
            attempt_log,
            exhausted=True,
        )

    async def _submit(
        self,
        submit: Callable[[ContractCall], Awaitable[str]],
        call: ContractCall,
    ) -> str:
        try:
            return await asyncio.wait_for(submit(call), timeout=self.policy.timeout_seconds)
        except asyncio.TimeoutError:
            raise TransientSignerError(
                f"Signer did not respond within {self.policy.timeout_seconds:g}s"
            ) from None

    @staticmethod
    def _record(attempt: int, path: ExecutionPath, error: ErrorContext) -> AttemptRecord:
        return AttemptRecord(
            attempt=attempt,
            path=path,
            error_kind=error.kind.value,
            message=error.message,
        )

    @staticmethod
    def _terminal(
        error: ErrorContext,
        attempts: int,
        attempt_log: List[AttemptRecord],
        exhausted: bool = False,
    ) -> ExecutionError:
        logger.error(
            f"Execution failed ({error.kind.value}, attempts={attempts}"
            f"{', exhausted' if exhausted else ''}): {error.message}"
        )
        return ExecutionError(
            kind=error.kind,
            message=error.message,
            attempts=attempts,
            exhausted=exhausted,
            attempt_log=attempt_log,
        )
