"""Typed models used by the bridge subsystem."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

# Starknet field prime: 2^251 + 17 * 2^192 + 1
FIELD_PRIME = 2**251 + 17 * 2**192 + 1

UINT64_MAX = 2**64 - 1


class BridgeDirection(str, Enum):
    """Which way value moves across the bridge."""
    SOURCE_TO_TARGET = "source_to_target"   # Bitcoin -> Starknet (deposit)
    TARGET_TO_SOURCE = "target_to_source"   # Starknet -> Bitcoin (withdrawal)

    @property
    def operation(self) -> "OperationKind":
        if self is BridgeDirection.SOURCE_TO_TARGET:
            return OperationKind.DEPOSIT
        return OperationKind.WITHDRAWAL


class OperationKind(str, Enum):
    """Contract operation invoked on the target chain."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"

    @property
    def entrypoint(self) -> str:
        if self is OperationKind.DEPOSIT:
            return "initiate_bitcoin_deposit"
        return "initiate_bitcoin_withdrawal"


@dataclass(frozen=True)
class FieldElement:
    """An integer reduced below the Starknet field prime."""
    value: int

    def __post_init__(self):
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError(f"FieldElement value must be int, got {type(self.value).__name__}")
        if not 0 <= self.value < FIELD_PRIME:
            raise ValueError("FieldElement value outside the field")

    @classmethod
    def from_hex(cls, value: str) -> "FieldElement":
        return cls(int(value, 16))

    def to_hex(self) -> str:
        return hex(self.value)

    def is_zero(self) -> bool:
        return self.value == 0

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return self.to_hex()


@dataclass(frozen=True)
class WideInteger:
    """A 128-bit unsigned value split into two 64-bit limbs (Cairo u256 low/high)."""
    low: int
    high: int

    @property
    def value(self) -> int:
        return (self.high << 64) | self.low

    def to_dict(self) -> Dict[str, str]:
        return {"low": str(self.low), "high": str(self.high)}


@dataclass(frozen=True)
class BridgeIntent:
    """Caller-supplied request to move funds across the bridge.

    For a deposit the source address is a Bitcoin address and the
    destination a Starknet address; a withdrawal is the reverse.
    """
    direction: BridgeDirection
    amount: Decimal
    source_address: str
    destination_address: str

    @property
    def operation(self) -> OperationKind:
        return self.direction.operation

    @property
    def bitcoin_address(self) -> str:
        if self.direction is BridgeDirection.SOURCE_TO_TARGET:
            return self.source_address
        return self.destination_address

    @property
    def starknet_address(self) -> str:
        if self.direction is BridgeDirection.SOURCE_TO_TARGET:
            return self.destination_address
        return self.source_address

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "amount": str(self.amount),
            "sourceAddress": self.source_address,
            "destinationAddress": self.destination_address,
        }


@dataclass(frozen=True)
class EncodedPayload:
    """Wire-ready representation of an intent."""
    operation: OperationKind
    amount_limbs: WideInteger
    source_address_field: FieldElement
    destination_address_field: Optional[FieldElement] = None

    def to_calldata(self) -> List[str]:
        """Ordered contract arguments.

        Deposit:    [amount_low, amount_high, source_address, destination_address]
        Withdrawal: [amount_low, amount_high, source_address]
        """
        calldata = [
            hex(self.amount_limbs.low),
            hex(self.amount_limbs.high),
            self.source_address_field.to_hex(),
        ]
        if self.operation is OperationKind.DEPOSIT:
            if self.destination_address_field is None:
                raise ValueError("deposit payload requires a destination address field")
            calldata.append(self.destination_address_field.to_hex())
        return calldata
