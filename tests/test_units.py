"""
Balance unit conversion.
"""

from decimal import Decimal

import pytest

from govproxy.exceptions import ValidationError
from govproxy.units import format_balance, from_minor_units, to_minor_units


class TestToMinorUnits:

    def test_whole_amount_on_twelve_decimals(self):
        assert to_minor_units("650", 12) == 650_000_000_000_000

    def test_whole_amount_on_ten_decimals(self):
        assert to_minor_units("1000", 10) == 10_000_000_000_000

    def test_integer_input(self):
        assert to_minor_units(675, 12) == 675 * 10**12

    def test_fraction(self):
        assert to_minor_units("0.5", 10) == 5_000_000_000

    def test_excess_precision_is_truncated(self):
        assert to_minor_units("1.0000000000019", 12) == 1_000_000_000_001

    def test_decimal_input(self):
        assert to_minor_units(Decimal("0.1"), 12) == 100_000_000_000

    def test_long_fraction_never_rounds_up(self):
        assert to_minor_units("1.99999999999999999999999999999", 12) == 1_999_999_999_999

    def test_many_significant_digits(self):
        amount = "123456789012345678901234567.999999999999999"
        assert to_minor_units(amount, 12) == 123456789012345678901234567_999_999_999_999

    @pytest.mark.parametrize("amount", ["0", "-1", "0.0000000000001"])
    def test_non_positive_rejected(self, amount):
        with pytest.raises(ValidationError):
            to_minor_units(amount, 12)

    @pytest.mark.parametrize("amount", ["abc", "", "NaN", "Infinity", 1.5, True])
    def test_invalid_input_rejected(self, amount):
        with pytest.raises(ValidationError):
            to_minor_units(amount, 12)


class TestFormatting:

    def test_from_minor_units(self):
        assert from_minor_units(650_000_000_000_000, 12) == Decimal("650")

    def test_format_with_symbol(self):
        assert format_balance(650_000_000_000_000, 12, "KSM") == "650.0000 KSM"

    def test_format_truncates(self):
        assert format_balance(1_999_999_999, 10, "DOT") == "0.1999 DOT"

    def test_format_without_symbol(self):
        assert format_balance(0, 12) == "0.0000"

    def test_from_minor_units_is_exact_for_large_balances(self):
        minor = 12345678901234567890123456789012
        assert from_minor_units(minor, 12) == Decimal("12345678901234567890.123456789012")
