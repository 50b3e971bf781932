"""
Address encoding for the bridge contract calling convention.

Every address is mapped to exactly one field element by a single
deterministic function. There is no runtime search over candidate
encodings.

Source-chain (Bitcoin) layout, encoding version 1::

    value = family_tag << 168 | network_tag << 160 | hash160

    family_tag   1 = P2PKH, 2 = P2SH, 3 = P2WPKH
    network_tag  0 = mainnet, 1 = testnet
    hash160      20-byte public key hash, script hash or witness program

The value fits in 22 bytes, is never zero, and decodes back to the exact
address string. Witness programs longer than 20 bytes (P2WSH, taproot)
cannot be represented in one field element together with their tags and
are rejected as unsupported variants.

Target-chain (Starknet) addresses are already field elements written as
``0x`` + 64 hex digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import base58
import bech32

from .errors import InvalidAddressFormat, UnsupportedAddressVariant
from .models import FIELD_PRIME, FieldElement

SOURCE_ADDRESS_ENCODING_VERSION = 1

_FAMILY_SHIFT = 168
_NETWORK_SHIFT = 160
_HASH_MASK = (1 << 160) - 1

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{25,35}$")
_STARKNET_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_STARKNET_HEX_DIGITS = 64


class SourceAddressFamily(int, Enum):
    """Bitcoin address families the bridge can encode."""
    P2PKH = 1
    P2SH = 2
    P2WPKH = 3


class SourceNetwork(int, Enum):
    MAINNET = 0
    TESTNET = 1

    @classmethod
    def from_name(cls, name: str) -> "SourceNetwork":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown source network: {name}") from None


# base58 version byte -> (family, network)
_BASE58_VERSIONS = {
    0x00: (SourceAddressFamily.P2PKH, SourceNetwork.MAINNET),
    0x05: (SourceAddressFamily.P2SH, SourceNetwork.MAINNET),
    0x6F: (SourceAddressFamily.P2PKH, SourceNetwork.TESTNET),
    0xC4: (SourceAddressFamily.P2SH, SourceNetwork.TESTNET),
}
_BASE58_VERSION_BYTES = {v: k for k, v in _BASE58_VERSIONS.items()}

_BECH32_HRPS = {
    "bc": SourceNetwork.MAINNET,
    "tb": SourceNetwork.TESTNET,
}
_HRP_BY_NETWORK = {v: k for k, v in _BECH32_HRPS.items()}

# Checksum constant of bech32m, used by witness versions 1 and up
_BECH32M_CONST = 0x2BC830A3


@dataclass(frozen=True)
class SourceAddress:
    """A validated Bitcoin address broken into its encodable parts."""
    family: SourceAddressFamily
    network: SourceNetwork
    hash160: bytes


class AddressCodec:
    """Validates and encodes addresses of both chains into field elements.

    Usage:
        codec = AddressCodec(network="mainnet")
        felt = codec.encode_source_address("1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa")
        codec.decode_source_address(felt)  # -> the same string
    """

    def __init__(self, network: str = "mainnet"):
        self.network = SourceNetwork.from_name(network)

    # ------------------------------------------------------------------
    # Source chain
    # ------------------------------------------------------------------

    def parse_source_address(self, address: str) -> SourceAddress:
        """Validate a Bitcoin address against the supported families."""
        if not isinstance(address, str) or not address.strip():
            raise InvalidAddressFormat("Bitcoin address is required")

        candidate = address.strip()
        lowered = candidate.lower()
        for hrp in _BECH32_HRPS:
            if lowered.startswith(hrp + "1"):
                parsed = self._parse_segwit(candidate, hrp)
                break
        else:
            if not _BASE58_RE.fullmatch(candidate):
                raise InvalidAddressFormat(
                    f"Invalid Bitcoin address format: {candidate}. "
                    "Expected P2PKH, P2SH or bech32.",
                    details={"address": candidate},
                )
            parsed = self._parse_base58(candidate)

        if parsed.network is not self.network:
            raise UnsupportedAddressVariant(
                f"Bitcoin address {candidate} belongs to {parsed.network.name.lower()}, "
                f"bridge is configured for {self.network.name.lower()}",
                details={"address": candidate, "network": parsed.network.name.lower()},
            )
        return parsed

    def encode_source_address(self, address: str) -> FieldElement:
        parsed = self.parse_source_address(address)
        value = (
            (parsed.family.value << _FAMILY_SHIFT)
            | (parsed.network.value << _NETWORK_SHIFT)
            | int.from_bytes(parsed.hash160, "big")
        )
        return FieldElement(value)

    def decode_source_address(self, element: FieldElement) -> str:
        """Rebuild the Bitcoin address from its field element (display/audit only)."""
        value = int(element)
        family_tag = value >> _FAMILY_SHIFT
        network_tag = (value >> _NETWORK_SHIFT) & 0xFF
        try:
            family = SourceAddressFamily(family_tag)
            network = SourceNetwork(network_tag)
        except ValueError:
            raise InvalidAddressFormat(
                f"Field element {element.to_hex()} does not encode a Bitcoin address",
            ) from None

        hash160 = (value & _HASH_MASK).to_bytes(20, "big")
        if family is SourceAddressFamily.P2WPKH:
            address = bech32.encode(_HRP_BY_NETWORK[network], 0, list(hash160))
            if address is None:
                raise InvalidAddressFormat(f"Cannot rebuild segwit address from {element.to_hex()}")
            return address

        version = _BASE58_VERSION_BYTES[(family, network)]
        return base58.b58encode_check(bytes([version]) + hash160).decode("ascii")

    def _parse_base58(self, candidate: str) -> SourceAddress:
        try:
            payload = base58.b58decode_check(candidate)
        except ValueError:
            raise InvalidAddressFormat(
                f"Invalid Bitcoin address checksum: {candidate}",
                details={"address": candidate},
            ) from None

        if len(payload) != 21:
            raise UnsupportedAddressVariant(
                f"Unsupported base58 payload length {len(payload)} for {candidate}",
                details={"address": candidate, "payload_length": len(payload)},
            )

        family_network = _BASE58_VERSIONS.get(payload[0])
        if family_network is None:
            raise InvalidAddressFormat(
                f"Unknown base58 version byte 0x{payload[0]:02x} in {candidate}",
                details={"address": candidate},
            )
        family, network = family_network
        return SourceAddress(family=family, network=network, hash160=payload[1:])

    def _parse_segwit(self, candidate: str, hrp: str) -> SourceAddress:
        witver, witprog = bech32.decode(hrp, candidate)
        if witver is None:
            bech32m_version = _bech32m_witness_version(candidate, hrp)
            if bech32m_version is not None and bech32m_version >= 1:
                raise UnsupportedAddressVariant(
                    f"Unsupported segwit variant (version {bech32m_version}) for {candidate}",
                    details={"address": candidate, "witness_version": bech32m_version},
                )
            raise InvalidAddressFormat(
                f"Invalid bech32 address: {candidate}",
                details={"address": candidate},
            )
        if witver != 0 or len(witprog) != 20:
            raise UnsupportedAddressVariant(
                f"Unsupported segwit variant (version {witver}, "
                f"{len(witprog)}-byte program) for {candidate}",
                details={"address": candidate, "witness_version": witver},
            )
        return SourceAddress(
            family=SourceAddressFamily.P2WPKH,
            network=_BECH32_HRPS[hrp],
            hash160=bytes(witprog),
        )

    # ------------------------------------------------------------------
    # Target chain
    # ------------------------------------------------------------------

    def encode_destination_address(self, address: str) -> FieldElement:
        """Validate a Starknet address and return it as a field element."""
        if not isinstance(address, str) or not _STARKNET_RE.fullmatch(address.strip()):
            raise InvalidAddressFormat(
                f"Invalid Starknet address format: {address}. Expected 0x + 64 hex characters.",
                details={"address": address},
            )

        hex_part = address.strip()[2:]
        if len(hex_part) != _STARKNET_HEX_DIGITS:
            raise UnsupportedAddressVariant(
                f"Starknet address must have {_STARKNET_HEX_DIGITS} hex digits, got {len(hex_part)}",
                details={"address": address},
            )

        value = int(hex_part, 16)
        if value == 0 or value >= FIELD_PRIME:
            raise UnsupportedAddressVariant(
                f"Starknet address {address} is outside the field",
                details={"address": address},
            )
        return FieldElement(value)

    def encode_pair(self, bitcoin_address: str, starknet_address: str) -> Tuple[FieldElement, FieldElement]:
        return (
            self.encode_source_address(bitcoin_address),
            self.encode_destination_address(starknet_address),
        )


def _bech32m_witness_version(address: str, hrp: str) -> Optional[int]:
    """Witness version of an address carrying a valid bech32m checksum, else None.

    The bech32 package only verifies the original bech32 checksum, which
    taproot and later witness versions do not use.
    """
    if address.lower() != address and address.upper() != address:
        return None
    address = address.lower()
    separator = address.rfind("1")
    if address[:separator] != hrp or len(address) - separator < 8:
        return None

    data = [bech32.CHARSET.find(char) for char in address[separator + 1:]]
    if -1 in data:
        return None
    if bech32.bech32_polymod(bech32.bech32_hrp_expand(hrp) + data) != _BECH32M_CONST:
        return None
    return data[0]
