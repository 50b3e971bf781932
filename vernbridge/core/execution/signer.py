"""
Signer clients.

The executor reaches the external signer only through SignerClient. The
production implementation speaks JSON-RPC over HTTP; tests substitute
in-memory fakes.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from vernbridge.core.recovery.errors import (
    ContractRejectedError,
    PathUnavailableError,
    SignerError,
    TransientSignerError,
    UserRejectedError,
    classify_error,
)

from .models import ContractCall


logger = logging.getLogger(__name__)


# JSON-RPC error codes understood by the signer service
USER_REJECTED_CODE = 4001
METHOD_NOT_FOUND_CODE = -32601

PRIMARY_METHOD = "signer_execute"
ALTERNATE_METHOD = "signer_executeSingleCall"


class SignerClient(Protocol):
    """Opaque signing and execution service."""

    async def submit(self, call: ContractCall) -> str:
        """Submit through the primary path and return the chain reference."""
        ...

    async def submit_alternate(self, call: ContractCall) -> str:
        """Submit through the alternate path and return the chain reference."""
        ...


class HttpSignerClient:
    """
    JSON-RPC client for a remote signer.

    Every failure is raised as a SignerError subclass so the executor never
    has to inspect transport details.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 130.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._request_id = 0

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def submit(self, call: ContractCall) -> str:
        return await self._rpc_call(PRIMARY_METHOD, call)

    async def submit_alternate(self, call: ContractCall) -> str:
        return await self._rpc_call(ALTERNATE_METHOD, call)

    async def _rpc_call(self, method: str, call: ContractCall) -> str:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": [call.to_dict()],
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.base_url, json=payload)
        except httpx.TimeoutException as e:
            raise TransientSignerError(f"Signer request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientSignerError(f"Signer unreachable: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            retry_after = _parse_retry_after(response.headers.get("retry-after"))
            raise TransientSignerError(
                f"Signer returned HTTP {response.status_code}",
                retry_after=retry_after,
            )
        if response.status_code >= 400:
            raise ContractRejectedError(
                f"Signer returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ContractRejectedError("Signer returned a non-JSON response") from e
        if not isinstance(body, dict):
            raise ContractRejectedError("Signer returned a malformed JSON-RPC response")

        error = body.get("error")
        if error:
            raise _error_from_rpc(error if isinstance(error, dict) else {"message": str(error)})

        chain_ref = _extract_chain_ref(body.get("result"))
        if not chain_ref:
            raise ContractRejectedError("Signer response did not include a transaction hash")

        logger.debug(f"{method} accepted call to {call.entrypoint}: {chain_ref}")
        return chain_ref


def _extract_chain_ref(result: Any) -> Optional[str]:
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        return result.get("transaction_hash") or result.get("transactionHash")
    return None


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_from_rpc(error: Dict[str, Any]) -> SignerError:
    code = error.get("code")
    message = str(error.get("message") or "Signer error")
    details = {"code": code, "data": error.get("data")}

    if code == USER_REJECTED_CODE:
        return UserRejectedError(message, details=details)
    if code == METHOD_NOT_FOUND_CODE:
        return PathUnavailableError(message, details=details)

    context = classify_error(Exception(message))
    error_class = {
        UserRejectedError.kind: UserRejectedError,
        TransientSignerError.kind: TransientSignerError,
        PathUnavailableError.kind: PathUnavailableError,
    }.get(context.kind, ContractRejectedError)
    return error_class(message, details=details)
