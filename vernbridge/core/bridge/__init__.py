"""
Bridge Module

Address and amount encoding for the bridge contract calling convention.
The orchestrator lives in ``vernbridge.core.bridge.orchestrator``.
"""

from .address_codec import (
    SOURCE_ADDRESS_ENCODING_VERSION,
    AddressCodec,
    SourceAddress,
    SourceAddressFamily,
    SourceNetwork,
)
from .amount_codec import AmountCodec
from .errors import (
    AmountOutOfRange,
    BridgeValidationError,
    InvalidAddressFormat,
    InvalidAmount,
    InvalidIntent,
    UnsupportedAddressVariant,
)
from .models import (
    FIELD_PRIME,
    BridgeDirection,
    BridgeIntent,
    EncodedPayload,
    FieldElement,
    OperationKind,
    WideInteger,
)

__all__ = [
    # Codecs
    "AddressCodec",
    "AmountCodec",
    "SOURCE_ADDRESS_ENCODING_VERSION",
    "SourceAddress",
    "SourceAddressFamily",
    "SourceNetwork",
    # Models
    "FIELD_PRIME",
    "BridgeDirection",
    "BridgeIntent",
    "EncodedPayload",
    "FieldElement",
    "OperationKind",
    "WideInteger",
    # Errors
    "BridgeValidationError",
    "InvalidAddressFormat",
    "UnsupportedAddressVariant",
    "InvalidAmount",
    "AmountOutOfRange",
    "InvalidIntent",
]
