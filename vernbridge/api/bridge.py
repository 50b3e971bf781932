"""
Bridge API Endpoints

Submission of deposit and withdrawal intents, views of tracked
transactions, cancellation before submission, and ingestion of
confirmation events from the source-chain monitor.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..container import Container
from ..core.bridge.errors import BridgeValidationError
from ..core.bridge.models import BridgeDirection, BridgeIntent
from ..core.tracking.models import (
    CancellationNotAllowedError,
    ConfirmationEvent,
    TransactionNotFoundError,
)
from .dependencies import get_container

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bridge")

_CORRELATION_ID_PATTERN = r"^[A-Za-z0-9_\-]{1,64}$"


# =============================================================================
# Request Models
# =============================================================================


class DepositRequest(BaseModel):
    """Move bitcoin from a Bitcoin address to a Starknet recipient."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal = Field(..., description="Amount in BTC")
    bitcoin_address: str = Field(..., alias="bitcoinAddress", description="Bitcoin address funding the deposit")
    starknet_recipient: str = Field(..., alias="starknetRecipient", description="Starknet account credited")
    correlation_id: Optional[str] = Field(
        None,
        alias="correlationId",
        pattern=_CORRELATION_ID_PATTERN,
        description="Caller-chosen transaction id",
    )

    def to_intent(self) -> BridgeIntent:
        return BridgeIntent(
            direction=BridgeDirection.SOURCE_TO_TARGET,
            amount=self.amount,
            source_address=self.bitcoin_address,
            destination_address=self.starknet_recipient,
        )


class WithdrawalRequest(BaseModel):
    """Move bridged bitcoin from a Starknet account back to a Bitcoin address."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal = Field(..., description="Amount in BTC")
    starknet_sender: str = Field(..., alias="starknetSender", description="Starknet account debited")
    btc_recipient: str = Field(..., alias="btcRecipient", description="Bitcoin address paid out")
    correlation_id: Optional[str] = Field(
        None,
        alias="correlationId",
        pattern=_CORRELATION_ID_PATTERN,
        description="Caller-chosen transaction id",
    )

    def to_intent(self) -> BridgeIntent:
        return BridgeIntent(
            direction=BridgeDirection.TARGET_TO_SOURCE,
            amount=self.amount,
            source_address=self.starknet_sender,
            destination_address=self.btc_recipient,
        )


# =============================================================================
# Response Models
# =============================================================================


class ConfirmationResponse(BaseModel):
    """Result of ingesting a confirmation event."""

    status: str  # "applied" or "buffered"
    transaction: Optional[Dict[str, Any]] = None


# =============================================================================
# Endpoints
# =============================================================================


async def _submit(container: Container, intent: BridgeIntent, correlation_id: Optional[str]) -> Dict[str, Any]:
    try:
        snapshot = await container.orchestrator.submit(intent, correlation_id=correlation_id)
    except BridgeValidationError as e:
        logger.info(f"Rejected {intent.operation.value} intent: {e.message}")
        raise HTTPException(status_code=400, detail=e.to_dict())
    except ValueError as e:
        # Correlation id already tracked
        raise HTTPException(status_code=409, detail=str(e))
    return snapshot.to_dict()


@router.post("/deposits", status_code=201)
async def submit_deposit(
    request: DepositRequest,
    container: Container = Depends(get_container),
) -> Dict[str, Any]:
    """Submit a deposit and return the transaction once it is pending or failed"""
    return await _submit(container, request.to_intent(), request.correlation_id)


@router.post("/withdrawals", status_code=201)
async def submit_withdrawal(
    request: WithdrawalRequest,
    container: Container = Depends(get_container),
) -> Dict[str, Any]:
    """Submit a withdrawal and return the transaction once it is pending or failed"""
    return await _submit(container, request.to_intent(), request.correlation_id)

@router.get("/stats")
async def bridge_stats(container: Container = Depends(get_container)) -> Dict[str, Any]:
    """Transaction counts per state and failure code"""
    return {
        "network": container.settings.source_network,
        "confirmationsRequired": container.settings.confirmation_threshold,
        "minAmount": str(container.settings.min_amount),
        "maxAmount": str(container.settings.max_amount),
        "transactions": container.orchestrator.stats(),
        "notifications": container.broadcaster.stats(),
    }


@router.get("/transactions/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    container: Container = Depends(get_container),
) -> Dict[str, Any]:
    """Look up a transaction by correlation id or chain reference"""
    try:
        return container.orchestrator.get(transaction_id).to_dict()
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/transactions/{transaction_id}/cancel")
async def cancel_transaction(
    transaction_id: str,
    container: Container = Depends(get_container),
) -> Dict[str, Any]:
    try:
        snapshot = await container.orchestrator.cancel(transaction_id)
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CancellationNotAllowedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return snapshot.to_dict()


@router.post("/confirmations", response_model=ConfirmationResponse)
async def ingest_confirmation(
    event: ConfirmationEvent,
    container: Container = Depends(get_container),
) -> ConfirmationResponse:
    """Apply a confirmation count reported by the chain monitor"""
    snapshot = await container.orchestrator.handle_confirmation(event)
    if snapshot is None:
        logger.info(f"Buffered confirmation for unknown reference {event.chain_ref}")
        return ConfirmationResponse(status="buffered")
    return ConfirmationResponse(status="applied", transaction=snapshot.to_dict())
