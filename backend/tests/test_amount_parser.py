"""Tests for free-text amount normalisation.

The separator rule decides how much money lands on a loan, so the cases
below pin it down exactly:
- Both separators: the later one is the decimal point
- Comma only: decimal point
- Dot only: untouched
- Empty / non-finite / non-positive input is rejected
"""

import pytest
from decimal import Decimal

from app.services.distribution.amount_parser import (
    AmountParseError,
    EmptyAmount,
    NonPositive,
    NotFinite,
    normalize_separators,
    parse_amount,
    parse_amount_lenient,
    try_parse_amount,
)


class TestNormalizeSeparators:

    def test_dot_grouping_comma_decimal(self):
        assert normalize_separators("1.234,56") == "1234.56"

    def test_comma_grouping_dot_decimal(self):
        assert normalize_separators("1,234.56") == "1234.56"

    def test_several_grouping_marks_removed(self):
        assert normalize_separators("1.234.567,89") == "1234567.89"
        assert normalize_separators("1,234,567.89") == "1234567.89"

    def test_comma_only_is_decimal(self):
        assert normalize_separators("1234,5") == "1234.5"

    def test_dot_only_left_alone(self):
        assert normalize_separators("100000.00") == "100000.00"

    def test_noise_stripped(self):
        assert normalize_separators("$ 1.500,00 COP") == "1500.00"

    def test_only_first_comma_becomes_point(self):
        assert normalize_separators("1,2,3") == "1.2,3"


class TestParseAmount:

    @pytest.mark.parametrize("raw, expected", [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("1234,5", Decimal("1234.50")),
        ("100000", Decimal("100000.00")),
        ("  $120 ", Decimal("120.00")),
        ("0,01", Decimal("0.01")),
    ])
    def test_valid_amounts(self, raw, expected):
        assert parse_amount(raw) == expected

    def test_two_decimal_input_reproduced_exactly(self):
        for raw in ("0.10", "19.99", "70.00", "29.99", "1000000.01"):
            assert parse_amount(raw) == Decimal(raw)

    def test_rounds_half_away_from_zero(self):
        assert parse_amount("2.345") == Decimal("2.35")
        assert parse_amount("2,344") == Decimal("2.34")
        assert parse_amount("0.005") == Decimal("0.01")

    def test_empty_after_stripping(self):
        with pytest.raises(EmptyAmount):
            parse_amount("abc")
        with pytest.raises(EmptyAmount):
            parse_amount("   ")

    def test_not_a_number(self):
        with pytest.raises(NotFinite):
            parse_amount("1,2,3")
        with pytest.raises(NotFinite):
            parse_amount("12-5")

    def test_zero_rejected(self):
        with pytest.raises(NonPositive):
            parse_amount("0,00")

    def test_negative_rejected(self):
        with pytest.raises(NonPositive):
            parse_amount("-50")

    def test_oversized_amount_rejected(self):
        with pytest.raises(NotFinite):
            parse_amount("1" * 30)
        with pytest.raises(NotFinite):
            parse_amount("1.000.000.000.000.000,00")

    def test_largest_amount_accepted(self):
        assert parse_amount("999999999999999.99") == Decimal("999999999999999.99")

    def test_errors_share_base_class_and_code(self):
        with pytest.raises(AmountParseError) as info:
            parse_amount("")
        assert info.value.code == "empty_amount"
        assert isinstance(info.value, ValueError)


class TestTryParseAmount:

    def test_returns_none_on_failure(self):
        assert try_parse_amount("n/a") is None
        assert try_parse_amount("-1") is None

    def test_returns_amount_on_success(self):
        assert try_parse_amount("45,5") == Decimal("45.50")


class TestParseAmountLenient:

    @pytest.mark.parametrize("value", [None, "", "abc", "-10", -10, True, float("nan"), float("inf")])
    def test_junk_becomes_zero(self, value):
        assert parse_amount_lenient(value) == Decimal("0.00")

    def test_oversized_values_become_zero(self):
        assert parse_amount_lenient("1" * 30) == Decimal("0.00")
        assert parse_amount_lenient(1e30) == Decimal("0.00")
        assert parse_amount_lenient(Decimal("1" * 30)) == Decimal("0.00")

    def test_numbers_are_rounded(self):
        assert parse_amount_lenient(10.005) == Decimal("10.01")
        assert parse_amount_lenient(7) == Decimal("7.00")
        assert parse_amount_lenient(Decimal("3.333")) == Decimal("3.33")

    def test_zero_number_allowed(self):
        assert parse_amount_lenient(0) == Decimal("0.00")

    def test_strings_use_separator_rule(self):
        assert parse_amount_lenient("1.000,25") == Decimal("1000.25")
