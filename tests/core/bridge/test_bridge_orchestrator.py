"""
Tests for the Bridge Orchestrator

End-to-end runs of intents through validation, encoding, execution,
tracking and notification, with the signer scripted.
"""

from decimal import Decimal

import pytest

from vernbridge.core.bridge import (
    AddressCodec,
    AmountCodec,
    AmountOutOfRange,
    BridgeDirection,
    BridgeIntent,
    InvalidAddressFormat,
    InvalidIntent,
)
from vernbridge.core.bridge.orchestrator import BridgeOrchestrator
from vernbridge.core.execution import ExecutionPolicy, TransactionExecutor
from vernbridge.core.recovery import (
    ContractRejectedError,
    PathUnavailableError,
    TransientSignerError,
    UserRejectedError,
)
from vernbridge.core.tracking import (
    UPDATES_CHANNEL,
    BridgeState,
    BridgeStateTracker,
    CancellationNotAllowedError,
    ConfirmationEvent,
    FailureCode,
)
from vernbridge.services.notifications import NotificationBroadcaster

from conftest import GENESIS_ADDRESS, HANG, STARKNET_ACCOUNT

CONTRACT = "0x0124"

# Field encodings of the fixture addresses
GENESIS_FIELD = "0x10062e907b15cbf27d5425399ebf6f0fb50ebb88f18"
STARKNET_FIELD = "0x49d36570d4e46f48e99674bd3fcc84644ddd6b96f7c741b1562b82f9e004dc7"
P2WPKH_FIELD = "0x300751e76e8199196d454941c45d1b3a323f1433bd6"


@pytest.fixture
def build(no_sleep):
    """Factory for an orchestrator wired to a scripted signer."""

    def _build(signer, publisher=None, policy=None, **kwargs):
        tracker = BridgeStateTracker(publisher=publisher, confirmation_threshold=6, max_attempts=3)
        executor = TransactionExecutor(
            signer,
            contract_address=CONTRACT,
            policy=policy or ExecutionPolicy(),
            sleep=no_sleep,
        )
        return BridgeOrchestrator(
            AddressCodec(network="mainnet"),
            AmountCodec(),
            executor,
            tracker,
            **kwargs,
        )

    return _build


# =============================================================================
# Successful Runs
# =============================================================================

class TestSuccessfulBridge:
    """Intents that reach the chain."""

    @pytest.mark.asyncio
    async def test_deposit_to_completion(self, build, make_signer, deposit_intent):
        signer = make_signer(primary=["0xabc"])
        orchestrator = build(signer)

        pending = await orchestrator.submit(deposit_intent)

        assert pending.state is BridgeState.PENDING
        assert pending.chain_ref == "0xabc"
        assert pending.attempts == 1

        call = signer.primary_calls[0]
        assert call.contract_address == CONTRACT
        assert call.entrypoint == "initiate_bitcoin_deposit"
        assert call.calldata == ["0xf4240", "0x0", GENESIS_FIELD, STARKNET_FIELD]

        for count in (1, 4, 6):
            await orchestrator.handle_confirmation(
                ConfirmationEvent(chain_ref="0xabc", confirmation_count=count)
            )

        completed = orchestrator.get("0xabc")
        assert completed.state is BridgeState.COMPLETED
        assert completed.confirmations == 6
        assert completed.terminal_error is None

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_withdrawal_calldata(self, build, make_signer, withdrawal_intent):
        signer = make_signer(primary=["0xdef"])
        orchestrator = build(signer)

        await orchestrator.submit(withdrawal_intent)

        call = signer.primary_calls[0]
        assert call.entrypoint == "initiate_bitcoin_withdrawal"
        assert call.calldata == ["0x2faf080", "0x0", P2WPKH_FIELD]

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_transient_then_success(self, build, make_signer, no_sleep, deposit_intent):
        signer = make_signer(primary=[TransientSignerError("Network error"), "0xabc"])
        orchestrator = build(signer)

        tx = await orchestrator.submit(deposit_intent)

        assert tx.state is BridgeState.PENDING
        assert tx.attempts == 2
        assert no_sleep.delays == [3.0]

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_alternate_path(self, build, make_signer, deposit_intent):
        signer = make_signer(
            primary=[PathUnavailableError("execute multicall failed")],
            alternate=["0xalt"],
        )
        orchestrator = build(signer)

        tx = await orchestrator.submit(deposit_intent)

        assert tx.state is BridgeState.PENDING
        assert tx.chain_ref == "0xalt"
        assert tx.attempts == 1
        assert signer.alternate_calls[0].calldata == signer.primary_calls[0].calldata

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_caller_supplied_correlation_id(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=["0xabc"]))

        tx = await orchestrator.submit(deposit_intent, correlation_id="order-42")

        assert tx.correlation_id == "order-42"
        assert orchestrator.get("order-42").chain_ref == "0xabc"

        await orchestrator.shutdown()


# =============================================================================
# Failed Runs
# =============================================================================

class TestFailedBridge:
    """Intents that end in FAILED."""

    @pytest.mark.asyncio
    async def test_user_rejection_is_not_retried(self, build, make_signer, deposit_intent):
        signer = make_signer(primary=[UserRejectedError()])
        orchestrator = build(signer)

        tx = await orchestrator.submit(deposit_intent)

        assert tx.state is BridgeState.FAILED
        assert tx.terminal_error.code is FailureCode.USER_REJECTED
        assert tx.attempts == 1
        assert len(signer.primary_calls) == 1

    @pytest.mark.asyncio
    async def test_contract_rejection_is_fatal(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=[ContractRejectedError("Contract reverted")]))

        tx = await orchestrator.submit(deposit_intent)

        assert tx.terminal_error.code is FailureCode.FATAL
        assert tx.terminal_error.message == "Contract reverted"

    @pytest.mark.asyncio
    async def test_repeated_timeouts_exhaust_attempts(self, build, make_signer, no_sleep, deposit_intent):
        signer = make_signer(primary=[HANG, HANG, HANG])
        orchestrator = build(signer, policy=ExecutionPolicy(timeout_seconds=0.01))

        tx = await orchestrator.submit(deposit_intent)

        assert tx.state is BridgeState.FAILED
        assert tx.terminal_error.code is FailureCode.RETRYABLE_TRANSIENT
        assert tx.terminal_error.exhausted is True
        assert tx.attempts == 3
        assert no_sleep.delays == [3.0, 6.0]

    @pytest.mark.asyncio
    async def test_alternate_path_failing_again(self, build, make_signer, deposit_intent):
        signer = make_signer(
            primary=[PathUnavailableError("Method not found")],
            alternate=[PathUnavailableError("Method not found")],
        )
        orchestrator = build(signer)

        tx = await orchestrator.submit(deposit_intent)

        assert tx.terminal_error.code is FailureCode.ALTERNATE_PATH_ELIGIBLE
        assert tx.terminal_error.exhausted is True
        assert len(signer.alternate_calls) == 1

    @pytest.mark.asyncio
    async def test_duplicate_chain_reference_fails_second_transaction(
        self, build, make_signer, deposit_intent
    ):
        orchestrator = build(make_signer(primary=["0xabc", "0xabc"]))

        first = await orchestrator.submit(deposit_intent)
        second = await orchestrator.submit(deposit_intent)

        assert first.state is BridgeState.PENDING
        assert second.state is BridgeState.FAILED
        assert second.terminal_error.code is FailureCode.FATAL
        assert "0xabc" in second.terminal_error.message
        assert orchestrator.get(first.correlation_id).state is BridgeState.PENDING
        assert orchestrator.stats()["awaitingConfirmation"] == 1

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_empty_chain_reference_is_fatal(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=[""]))

        tx = await orchestrator.submit(deposit_intent)

        assert tx.state is BridgeState.FAILED
        assert tx.terminal_error.code is FailureCode.FATAL
        assert orchestrator.stats()["awaitingConfirmation"] == 0

    @pytest.mark.asyncio
    async def test_encoding_failure(self, build, make_signer, deposit_intent, monkeypatch):
        signer = make_signer()
        orchestrator = build(signer)

        def broken(amount, decimals):
            raise ValueError("limb overflow")

        monkeypatch.setattr(orchestrator.amount_codec, "to_wide_integer", broken)

        tx = await orchestrator.submit(deposit_intent)

        assert tx.state is BridgeState.FAILED
        assert tx.terminal_error.code is FailureCode.ENCODING_FAILED
        assert signer.primary_calls == []

    @pytest.mark.asyncio
    async def test_confirmation_deadline(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=["0xabc"]), deposit_confirmation_timeout=0.05)

        tx = await orchestrator.submit(deposit_intent)
        final = await orchestrator.tracker.wait_until_terminal(tx.correlation_id, timeout=2)

        assert final.state is BridgeState.FAILED
        assert final.terminal_error.code is FailureCode.CONFIRMATION_TIMEOUT
        assert final.terminal_error.message == "Not confirmed within 0.05 seconds"

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_late_confirmation_after_deadline_ignored(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=["0xabc"]), deposit_confirmation_timeout=0.05)
        tx = await orchestrator.submit(deposit_intent)
        await orchestrator.tracker.wait_until_terminal(tx.correlation_id, timeout=2)

        late = await orchestrator.handle_confirmation(
            ConfirmationEvent(chain_ref="0xabc", confirmation_count=6)
        )

        assert late.state is BridgeState.FAILED

        await orchestrator.shutdown()


# =============================================================================
# Validation
# =============================================================================

class TestValidation:
    """Invalid intents are rejected before anything is tracked."""

    @pytest.mark.asyncio
    async def test_invalid_bitcoin_address(self, build, make_signer):
        signer = make_signer()
        orchestrator = build(signer)
        intent = BridgeIntent(
            direction=BridgeDirection.SOURCE_TO_TARGET,
            amount=Decimal("0.01"),
            source_address="not-an-address",
            destination_address=STARKNET_ACCOUNT,
        )

        with pytest.raises(InvalidAddressFormat):
            await orchestrator.submit(intent)

        assert orchestrator.tracker.list_transactions() == []
        assert signer.primary_calls == []

    @pytest.mark.asyncio
    async def test_invalid_starknet_address(self, build, make_signer):
        orchestrator = build(make_signer())
        intent = BridgeIntent(
            direction=BridgeDirection.SOURCE_TO_TARGET,
            amount=Decimal("0.01"),
            source_address=GENESIS_ADDRESS,
            destination_address="0xzz",
        )

        with pytest.raises(InvalidAddressFormat):
            await orchestrator.submit(intent)
        assert orchestrator.tracker.list_transactions() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), Decimal("0.000000001")])
    async def test_unusable_amounts(self, build, make_signer, amount):
        orchestrator = build(make_signer())
        intent = BridgeIntent(
            direction=BridgeDirection.SOURCE_TO_TARGET,
            amount=amount,
            source_address=GENESIS_ADDRESS,
            destination_address=STARKNET_ACCOUNT,
        )

        with pytest.raises(AmountOutOfRange):
            await orchestrator.submit(intent)
        assert orchestrator.tracker.list_transactions() == []

    @pytest.mark.asyncio
    async def test_not_an_intent(self, build, make_signer):
        orchestrator = build(make_signer())

        with pytest.raises(InvalidIntent):
            await orchestrator.submit({"amount": "1"})


# =============================================================================
# Observers and Control
# =============================================================================

class TestObservation:

    @pytest.mark.asyncio
    async def test_observer_sees_transitions_in_order(self, build, make_signer, deposit_intent):
        broadcaster = NotificationBroadcaster()
        inbox = broadcaster.connect("obs-1")
        await broadcaster.subscribe("obs-1", UPDATES_CHANNEL)
        orchestrator = build(make_signer(primary=["0xabc"]), publisher=broadcaster)

        await orchestrator.submit(deposit_intent)
        await orchestrator.handle_confirmation(ConfirmationEvent(chain_ref="0xabc", confirmation_count=6))

        states = []
        message = inbox.get_nowait()
        while message is not None:
            states.append(message.data["transaction"]["state"])
            message = inbox.get_nowait()

        assert states == ["created", "encoding", "submitting", "pending", "confirming", "completed"]

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_early_confirmation_applied_on_submit(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=["0xabc"]))

        buffered = await orchestrator.handle_confirmation(
            ConfirmationEvent(chain_ref="0xabc", confirmation_count=2)
        )
        tx = await orchestrator.submit(deposit_intent)

        assert buffered is None
        assert tx.state is BridgeState.CONFIRMING
        assert tx.confirmations == 2

        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_stats(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=["0xabc"]))

        await orchestrator.submit(deposit_intent)
        stats = orchestrator.stats()

        assert stats["total"] == 1
        assert stats["awaitingConfirmation"] == 1
        assert stats["inFlightSubmissions"] == 0

        await orchestrator.shutdown()
        assert orchestrator.stats()["awaitingConfirmation"] == 0

    @pytest.mark.asyncio
    async def test_cancel_after_submission_refused(self, build, make_signer, deposit_intent):
        orchestrator = build(make_signer(primary=["0xabc"]))
        tx = await orchestrator.submit(deposit_intent)

        with pytest.raises(CancellationNotAllowedError):
            await orchestrator.cancel(tx.correlation_id)

        await orchestrator.shutdown()
