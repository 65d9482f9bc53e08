"""
Tests for the late fee calculator and money helpers
"""

import pytest
from decimal import Decimal

from advance_collections.fees import DEFAULT_LATE_FEE_POLICY, LateFeePolicy, calculate_late_fee
from advance_collections.money import Currency, format_money, quantize_money, to_decimal


class TestCalculateLateFee:
    """Weekly-accruing capped fee"""

    def test_ten_days_is_two_weeks(self):
        """Test that ten days overdue accrues two weeks"""
        fee = calculate_late_fee(Decimal('10000'), 10)

        assert fee.weeks_overdue == 2
        assert fee.fee_percent == Decimal('10')
        assert fee.fee_amount == Decimal('1000.00')
        assert fee.total_due == Decimal('11000.00')
        assert not fee.is_capped

    def test_not_overdue_has_no_fee(self):
        """Test no fee before the due date"""
        for days in (0, -1, -30):
            fee = calculate_late_fee(Decimal('500'), days)
            assert fee.fee_amount == Decimal('0.00')
            assert fee.total_due == Decimal('500.00')
            assert fee.weeks_overdue == 0

    def test_one_day_counts_as_a_full_week(self):
        """Test that a started week counts in full"""
        fee = calculate_late_fee(Decimal('1000'), 1)
        assert fee.fee_percent == Decimal('5')
        assert fee.fee_amount == Decimal('50.00')

    def test_fee_is_capped_at_twenty_percent(self):
        """Test the fee cap"""
        fee = calculate_late_fee(Decimal('1000'), 120)

        assert fee.fee_percent == Decimal('20')
        assert fee.fee_amount == Decimal('200.00')
        assert fee.capped_at == Decimal('20')
        assert fee.is_capped

    def test_fee_percent_bounded_and_non_decreasing(self):
        """Test that the fee grows with days and stays under the cap"""
        previous = Decimal('0')
        for days in range(0, 60):
            fee = calculate_late_fee(Decimal('2500'), days)
            assert Decimal('0') <= fee.fee_percent <= Decimal('20')
            assert fee.fee_percent >= previous
            previous = fee.fee_percent

    def test_rounds_half_up(self):
        """Test half-up rounding of the fee"""
        # 0.10 * 5% = 0.005 -> 0.01
        fee = calculate_late_fee(Decimal('0.10'), 3)
        assert fee.fee_amount == Decimal('0.01')

    def test_accepts_string_amount(self):
        fee = calculate_late_fee("1234.56", 7)
        assert fee.fee_amount == Decimal('61.73')

    def test_grace_period(self):
        """Test days inside the grace period"""
        policy = LateFeePolicy(grace_period_days=3)

        assert calculate_late_fee(Decimal('1000'), 3, policy).fee_amount == Decimal('0.00')
        assert calculate_late_fee(Decimal('1000'), 4, policy).fee_amount == Decimal('50.00')

    def test_custom_policy(self):
        """Test a custom fee policy"""
        policy = LateFeePolicy(percent_per_week=Decimal('2'), max_percent=Decimal('5'))

        assert calculate_late_fee(Decimal('1000'), 8, policy).fee_percent == Decimal('4')
        assert calculate_late_fee(Decimal('1000'), 30, policy).fee_percent == Decimal('5')

    def test_to_dict(self):
        data = calculate_late_fee(Decimal('10000'), 10).to_dict()
        assert data["fee_amount"] == "1000.00"
        assert data["is_capped"] is False

    def test_default_policy_values(self):
        assert DEFAULT_LATE_FEE_POLICY.percent_per_week == Decimal('5')
        assert DEFAULT_LATE_FEE_POLICY.max_percent == Decimal('20')


class TestMoneyHelpers:
    """Test money conversion and formatting"""

    def test_quantize_half_up(self):
        assert quantize_money(Decimal('2.345')) == Decimal('2.35')
        assert quantize_money(Decimal('2.344')) == Decimal('2.34')

    def test_to_decimal_avoids_float_artifacts(self):
        """Test that floats convert through their string form"""
        assert to_decimal(0.1) == Decimal('0.1')

    def test_to_decimal_rejects_garbage(self):
        """Test that non-numeric input raises ValueError"""
        with pytest.raises(ValueError):
            to_decimal("not-a-number")

    def test_format_money(self):
        assert format_money(Decimal('1250'), Currency.MXN) == "$1,250.00 MXN"
        assert format_money(Decimal('3.5'), Currency.USD) == "$3.50 USD"
