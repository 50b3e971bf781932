"""Conversion between source-chain decimal amounts and Cairo u256 limbs."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation, Overflow, localcontext
from typing import Any, Optional

from .errors import AmountOutOfRange, InvalidAmount
from .models import UINT64_MAX, WideInteger

_LIMB_BITS = 64
_MAX_WIDE_VALUE = (1 << 128) - 1
# Floor of the working precision; raised to fit longer inputs exactly
_PRECISION = 96


class AmountCodec:
    """Scales amounts to base units and splits them into two 64-bit limbs.

    Bounds are expressed in source-chain units (e.g. BTC) and come from
    configuration.
    """

    def __init__(
        self,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
    ):
        self.min_amount = self._coerce(min_amount) if min_amount is not None else None
        self.max_amount = self._coerce(max_amount) if max_amount is not None else None
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount must not exceed max_amount")

    @staticmethod
    def _coerce(amount: Any) -> Decimal:
        """Turn caller input into a finite Decimal or raise InvalidAmount."""
        if isinstance(amount, bool) or amount is None:
            raise InvalidAmount(f"Invalid amount: {amount!r}. Expected a number.")
        if isinstance(amount, Decimal):
            value = amount
        elif isinstance(amount, (int, float, str)):
            try:
                # str() keeps 0.01 as 0.01 instead of its binary float expansion
                value = Decimal(str(amount).strip())
            except InvalidOperation:
                raise InvalidAmount(f"Invalid amount: {amount!r}. Expected a number.") from None
        else:
            raise InvalidAmount(f"Invalid amount type: {type(amount).__name__}")

        if not value.is_finite():
            raise InvalidAmount(f"Amount must be finite, got {amount!r}")
        return value

    def validate(self, amount: Any) -> Decimal:
        """Check an amount against the configured bounds without encoding it."""
        value = self._coerce(amount)
        if value <= 0:
            raise AmountOutOfRange(
                f"Amount must be greater than 0, got {value}",
                details={"amount": str(value)},
            )
        if self.min_amount is not None and value < self.min_amount:
            raise AmountOutOfRange(
                f"Amount too small: {value}. Minimum is {self.min_amount}.",
                details={"amount": str(value), "minimum": str(self.min_amount)},
            )
        if self.max_amount is not None and value > self.max_amount:
            raise AmountOutOfRange(
                f"Amount too large: {value}. Maximum is {self.max_amount}.",
                details={"amount": str(value), "maximum": str(self.max_amount)},
            )
        return value

    def to_base_units(self, amount: Any, source_decimals: int) -> int:
        value = self.validate(amount)
        try:
            with localcontext() as ctx:
                # scaleb rounds to the context precision, so keep every input digit
                ctx.prec = max(_PRECISION, len(value.as_tuple().digits))
                scaled = value.scaleb(source_decimals).to_integral_value(rounding=ROUND_FLOOR)
        except (InvalidOperation, Overflow):
            raise InvalidAmount(f"Amount {value} cannot be scaled to {source_decimals} decimals") from None

        units = int(scaled)
        if units <= 0:
            raise AmountOutOfRange(
                f"Amount {value} is smaller than one base unit",
                details={"amount": str(value), "decimals": source_decimals},
            )
        if units > _MAX_WIDE_VALUE:
            raise AmountOutOfRange(f"Amount {value} does not fit in 128 bits")
        return units

    def to_wide_integer(self, amount: Any, source_decimals: int) -> WideInteger:
        units = self.to_base_units(amount, source_decimals)
        return WideInteger(low=units & UINT64_MAX, high=units >> _LIMB_BITS)

    def from_wide_integer(self, limbs: WideInteger, target_decimals: int) -> Decimal:
        for name, limb in (("low", limbs.low), ("high", limbs.high)):
            if isinstance(limb, bool) or not isinstance(limb, int) or not 0 <= limb <= UINT64_MAX:
                raise InvalidAmount(f"Limb {name}={limb!r} is not an unsigned 64-bit value")
        with localcontext() as ctx:
            ctx.prec = _PRECISION
            return Decimal(limbs.value).scaleb(-target_decimals)
