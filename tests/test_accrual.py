"""
Tests for the accrual calculator.
"""
from decimal import Decimal

import pytest

from loyalty.services.accrual import (
    ProgramConfig,
    calculate_points,
    promo_multiplier_for_code,
)
from loyalty.utils.exceptions import ValidationError


@pytest.fixture
def config():
    return ProgramConfig(
        program_id=1,
        points_per_currency=Decimal('1.00'),
        minimum_spend_for_points=Decimal('10.00'),
        bonus_multipliers={'happy_hour': Decimal('2.5')},
    )


class TestCalculatePoints:
    """Tests for calculate_points."""

    def test_base_rate_only(self, config):
        assert calculate_points(config, Decimal('30')) == Decimal('30.00')

    def test_tier_multiplier_applied(self, config):
        assert calculate_points(config, Decimal('40'), Decimal('1.25')) == Decimal('50.00')

    def test_tier_and_promo_multipliers_compound(self, config):
        points = calculate_points(config, Decimal('20'), Decimal('1.50'), Decimal('2'))
        assert points == Decimal('60.00')

    def test_points_per_currency_scales(self):
        config = ProgramConfig(
            program_id=1,
            points_per_currency=Decimal('2.50'),
            minimum_spend_for_points=Decimal('0'),
        )
        assert calculate_points(config, Decimal('12')) == Decimal('30.00')

    def test_rounds_half_up_to_two_places(self, config):
        # 13.332 * 1.25 = 16.665
        assert calculate_points(config, Decimal('13.332'), Decimal('1.25')) == Decimal('16.67')

    def test_below_minimum_spend_earns_nothing(self, config):
        assert calculate_points(config, Decimal('9.99')) == Decimal('0')

    def test_exactly_minimum_spend_earns(self, config):
        assert calculate_points(config, Decimal('10.00')) == Decimal('10.00')

    def test_inactive_program_earns_nothing(self):
        config = ProgramConfig(
            program_id=1,
            points_per_currency=Decimal('1'),
            minimum_spend_for_points=Decimal('0'),
            is_active=False,
        )
        assert calculate_points(config, Decimal('100')) == Decimal('0')

    def test_negative_spend_rejected(self, config):
        with pytest.raises(ValidationError) as exc_info:
            calculate_points(config, Decimal('-1'))
        assert exc_info.value.field == 'spend_amount'

    def test_non_numeric_spend_rejected(self, config):
        with pytest.raises(ValidationError):
            calculate_points(config, 'lots')

    def test_promo_multiplier_below_one_rejected(self, config):
        with pytest.raises(ValidationError) as exc_info:
            calculate_points(config, Decimal('30'), promo_multiplier=Decimal('0.5'))
        assert exc_info.value.code == 'INVALID_PROMO_MULTIPLIER'


class TestPromoMultiplierForCode:
    """Tests for promo code resolution."""

    def test_program_override_used(self, config):
        assert promo_multiplier_for_code(config, 'HAPPYHOUR') == Decimal('2.5')

    def test_default_used_when_program_has_no_override(self, config):
        assert promo_multiplier_for_code(config, 'BIRTHDAY') == Decimal('3.0')
        assert promo_multiplier_for_code(config, 'FIRSTORDER') == Decimal('1.5')

    def test_code_is_case_insensitive(self, config):
        assert promo_multiplier_for_code(config, ' firstorder ') == Decimal('1.5')

    def test_unknown_or_missing_code(self, config):
        assert promo_multiplier_for_code(config, 'SPRING10') == Decimal('1')
        assert promo_multiplier_for_code(config, None) == Decimal('1')
