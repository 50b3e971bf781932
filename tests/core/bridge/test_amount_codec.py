"""
Tests for the Amount Codec

Scaling to base units, the two-limb split, and bound checks.
"""

from decimal import Decimal

import pytest

from vernbridge.core.bridge import AmountCodec, AmountOutOfRange, InvalidAmount, WideInteger


@pytest.fixture
def codec():
    return AmountCodec(min_amount=Decimal("0.001"), max_amount=Decimal("10"))


@pytest.fixture
def unbounded():
    return AmountCodec()


# =============================================================================
# Encoding
# =============================================================================

class TestToWideInteger:
    """Tests for amount -> (low, high) limbs."""

    def test_one_hundredth_of_a_coin(self, codec):
        limbs = codec.to_wide_integer(Decimal("0.01"), 8)

        assert limbs == WideInteger(low=1_000_000, high=0)
        assert limbs.to_dict() == {"low": "1000000", "high": "0"}

    def test_float_input_uses_decimal_representation(self, codec):
        assert codec.to_wide_integer(0.1, 8).low == 10_000_000
        assert codec.to_wide_integer(0.29, 8).low == 29_000_000

    def test_string_and_int_input(self, codec):
        assert codec.to_wide_integer("1.5", 8).low == 150_000_000
        assert codec.to_wide_integer(2, 8).low == 200_000_000

    def test_excess_precision_is_floored(self, codec):
        assert codec.to_wide_integer(Decimal("0.123456789"), 8).low == 12_345_678

    def test_long_inputs_are_floored_not_rounded(self, codec):
        """Inputs longer than the working precision still round down."""
        assert codec.to_base_units(Decimal("0.00" + "9" * 120), 8) == 999_999
        assert codec.to_base_units(Decimal("0." + "9" * 200), 8) == 99_999_999

    def test_value_spills_into_high_limb(self, unbounded):
        amount = Decimal(2**64).scaleb(-8)

        limbs = unbounded.to_wide_integer(amount, 8)

        assert limbs == WideInteger(low=0, high=1)
        assert limbs.value == 2**64

    def test_large_value_split(self, unbounded):
        units = (7 << 64) | 12345
        limbs = unbounded.to_wide_integer(Decimal(units).scaleb(-8), 8)

        assert limbs.low == 12345
        assert limbs.high == 7

    def test_zero_decimals(self, unbounded):
        assert unbounded.to_wide_integer(42, 0) == WideInteger(low=42, high=0)


class TestFromWideInteger:
    """Tests for limbs -> amount."""

    def test_decode(self, codec):
        assert codec.from_wide_integer(WideInteger(low=1_000_000, high=0), 8) == Decimal("0.01")

    def test_decode_high_limb(self, codec):
        assert codec.from_wide_integer(WideInteger(low=0, high=1), 0) == Decimal(2**64)

    @pytest.mark.parametrize(
        "amount",
        ["0.001", "0.01", "0.12345678", "1", "9.99999999", "10"],
    )
    def test_round_trip(self, codec, amount):
        """Amounts with at most 8 decimals survive encode/decode unchanged."""
        limbs = codec.to_wide_integer(Decimal(amount), 8)
        assert codec.from_wide_integer(limbs, 8) == Decimal(amount)

    def test_negative_limb_rejected(self, codec):
        with pytest.raises(InvalidAmount):
            codec.from_wide_integer(WideInteger(low=-1, high=0), 8)

    def test_oversized_limb_rejected(self, codec):
        with pytest.raises(InvalidAmount):
            codec.from_wide_integer(WideInteger(low=0, high=2**64), 8)

    def test_non_integer_limb_rejected(self, codec):
        with pytest.raises(InvalidAmount):
            codec.from_wide_integer(WideInteger(low=1.5, high=0), 8)


# =============================================================================
# Validation
# =============================================================================

class TestAmountValidation:
    """Tests for rejected amounts."""

    @pytest.mark.parametrize("amount", ["abc", "", None, True, [1], "NaN", "Infinity", float("inf")])
    def test_invalid_amount(self, codec, amount):
        with pytest.raises(InvalidAmount):
            codec.validate(amount)

    @pytest.mark.parametrize("amount", [0, -1, "-0.5"])
    def test_non_positive(self, codec, amount):
        with pytest.raises(AmountOutOfRange):
            codec.validate(amount)

    def test_below_minimum(self, codec):
        with pytest.raises(AmountOutOfRange, match="too small"):
            codec.to_wide_integer(Decimal("0.0009"), 8)

    def test_above_maximum(self, codec):
        with pytest.raises(AmountOutOfRange, match="too large"):
            codec.to_wide_integer(Decimal("10.00000001"), 8)

    def test_bounds_are_inclusive(self, codec):
        assert codec.validate("0.001") == Decimal("0.001")
        assert codec.validate("10") == Decimal("10")

    def test_below_one_base_unit(self, unbounded):
        with pytest.raises(AmountOutOfRange):
            unbounded.to_base_units(Decimal("0.000000001"), 8)

    def test_more_than_128_bits(self, unbounded):
        with pytest.raises(AmountOutOfRange):
            unbounded.to_base_units(Decimal("3402823669209384634633746074317.68211456"), 8)

    def test_min_above_max_rejected(self):
        with pytest.raises(ValueError):
            AmountCodec(min_amount=Decimal("5"), max_amount=Decimal("1"))

    def test_error_details(self, codec):
        with pytest.raises(AmountOutOfRange) as exc_info:
            codec.validate("20")

        assert exc_info.value.to_dict()["details"] == {"amount": "20", "maximum": "10"}
