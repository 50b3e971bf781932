"""
Bridge validation errors.

Raised while validating or encoding a BridgeIntent. All of them are local
and recoverable: the caller corrects the input and resubmits. They are
raised before a tracked transaction exists.
"""

from typing import Any, Dict, Optional


class BridgeValidationError(ValueError):
    """Base class for input errors detected before a transaction is created."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidAddressFormat(BridgeValidationError):
    """Address does not belong to any known family of its chain."""

    code = "INVALID_ADDRESS_FORMAT"


class UnsupportedAddressVariant(BridgeValidationError):
    """Address belongs to a known family but to a variant we cannot encode."""

    code = "UNSUPPORTED_ADDRESS_VARIANT"


class InvalidAmount(BridgeValidationError):
    """Amount is not a finite number."""

    code = "INVALID_AMOUNT"


class AmountOutOfRange(BridgeValidationError):
    """Amount is non-positive or outside the configured bounds."""

    code = "AMOUNT_OUT_OF_RANGE"


class InvalidIntent(BridgeValidationError):
    """Intent is structurally incomplete (unknown direction, missing fields)."""

    code = "INVALID_INTENT"
