"""
Dependency container.

Builds every bridge component once from Settings. The FastAPI lifespan
creates one container per process and stores it on ``app.state``.
"""

from typing import Optional

from .config import Settings
from .core.bridge.address_codec import AddressCodec
from .core.bridge.amount_codec import AmountCodec
from .core.bridge.orchestrator import BridgeOrchestrator
from .core.execution.executor import TransactionExecutor
from .core.execution.models import ExecutionPolicy
from .core.execution.signer import HttpSignerClient, SignerClient
from .core.tracking.tracker import BridgeStateTracker
from .services.notifications.broadcaster import NotificationBroadcaster


class Container:
    """
    Lazily constructed, shared application components.

    Args:
        settings: Application settings
        signer: Signer override; defaults to an HttpSignerClient on
            ``settings.signer_url``
    """

    def __init__(self, settings: Settings, signer: Optional[SignerClient] = None):
        self.settings = settings
        self._signer = signer

        self._broadcaster: Optional[NotificationBroadcaster] = None
        self._tracker: Optional[BridgeStateTracker] = None
        self._executor: Optional[TransactionExecutor] = None
        self._orchestrator: Optional[BridgeOrchestrator] = None
        self._address_codec: Optional[AddressCodec] = None
        self._amount_codec: Optional[AmountCodec] = None

    @property
    def signer(self) -> SignerClient:
        if self._signer is None:
            self._signer = HttpSignerClient(
                self.settings.signer_url,
                timeout=self.settings.signer_request_timeout_seconds,
            )
        return self._signer

    @property
    def broadcaster(self) -> NotificationBroadcaster:
        if self._broadcaster is None:
            self._broadcaster = NotificationBroadcaster(
                queue_size=self.settings.observer_queue_size,
            )
        return self._broadcaster

    @property
    def tracker(self) -> BridgeStateTracker:
        if self._tracker is None:
            self._tracker = BridgeStateTracker(
                publisher=self.broadcaster,
                confirmation_threshold=self.settings.confirmation_threshold,
                max_attempts=self.settings.max_retries,
                max_buffered_confirmations=self.settings.max_buffered_confirmations,
                buffered_confirmation_ttl=self.settings.buffered_confirmation_ttl_seconds,
            )
        return self._tracker

    @property
    def address_codec(self) -> AddressCodec:
        if self._address_codec is None:
            self._address_codec = AddressCodec(network=self.settings.source_network)
        return self._address_codec

    @property
    def amount_codec(self) -> AmountCodec:
        if self._amount_codec is None:
            self._amount_codec = AmountCodec(
                min_amount=self.settings.min_amount,
                max_amount=self.settings.max_amount,
            )
        return self._amount_codec

    @property
    def executor(self) -> TransactionExecutor:
        if self._executor is None:
            self._executor = TransactionExecutor(
                self.signer,
                contract_address=self.settings.bridge_contract_address,
                policy=ExecutionPolicy(
                    timeout_seconds=self.settings.execution_timeout_seconds,
                    max_attempts=self.settings.max_retries,
                    initial_backoff_seconds=self.settings.retry_backoff_seconds,
                    backoff_multiplier=self.settings.retry_backoff_multiplier,
                    max_backoff_seconds=self.settings.retry_backoff_max_seconds,
                ),
            )
        return self._executor

    @property
    def orchestrator(self) -> BridgeOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = BridgeOrchestrator(
                address_codec=self.address_codec,
                amount_codec=self.amount_codec,
                executor=self.executor,
                tracker=self.tracker,
                source_decimals=self.settings.source_decimals,
                deposit_confirmation_timeout=self.settings.deposit_confirmation_timeout_seconds,
                withdrawal_confirmation_timeout=self.settings.withdrawal_confirmation_timeout_seconds,
            )
        return self._orchestrator

    async def shutdown(self) -> None:
        if self._orchestrator is not None:
            await self._orchestrator.shutdown()
        if self._broadcaster is not None:
            await self._broadcaster.close()
        if isinstance(self._signer, HttpSignerClient):
            await self._signer.close()
