"""
Accrual calculation.

Converts a spend amount into points:

    points = spend * points_per_currency * tier_multiplier * promo_multiplier

rounded half-up to the program's minor-unit precision. Spend below the
program's minimum earns nothing. The program configuration is passed in
explicitly as a ProgramConfig snapshot.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Optional

from ..utils.exceptions import ValidationError


# Promo codes recognised at order finalization, mapped to the program's
# bonus_multipliers key and the multiplier used when the program sets none.
PROMO_CODE_MULTIPLIERS = {
    'HAPPYHOUR': ('happy_hour', Decimal('2.0')),
    'BIRTHDAY': ('birthday', Decimal('3.0')),
    'FIRSTORDER': ('first_order', Decimal('1.5')),
}

ONE = Decimal('1')


@dataclass(frozen=True)
class ProgramConfig:
    """Immutable earning configuration for one program."""
    program_id: int
    points_per_currency: Decimal
    minimum_spend_for_points: Decimal
    bonus_multipliers: Dict[str, Decimal] = field(default_factory=dict)
    is_active: bool = True
    precision: int = 2

    @classmethod
    def from_model(cls, program, precision: int = 2) -> 'ProgramConfig':
        multipliers = {
            key: to_decimal(value, 'bonus_multipliers')
            for key, value in (program.bonus_multipliers or {}).items()
        }
        return cls(
            program_id=program.id,
            points_per_currency=Decimal(str(program.points_per_currency)),
            minimum_spend_for_points=Decimal(str(program.minimum_spend_for_points or 0)),
            bonus_multipliers=multipliers,
            is_active=bool(program.is_active),
            precision=precision,
        )

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.precision)


def to_decimal(value, field_name: str) -> Decimal:
    """Coerce a caller-supplied number to Decimal or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f'{field_name} must be a number', field_name)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'{field_name} must be a number', field_name)
    if not result.is_finite():
        raise ValidationError(f'{field_name} must be a finite number', field_name)
    return result


def round_points(value: Decimal, config: ProgramConfig) -> Decimal:
    return value.quantize(config.quantum, rounding=ROUND_HALF_UP)


def meets_minimum_spend(config: ProgramConfig, spend_amount: Decimal) -> bool:
    return spend_amount >= config.minimum_spend_for_points


def calculate_points(
    config: ProgramConfig,
    spend_amount,
    tier_multiplier=ONE,
    promo_multiplier=ONE
) -> Decimal:
    """
    Points earned for a spend.

    Returns zero for an inactive program or a spend below the minimum.

    Raises:
        ValidationError: negative or non-numeric spend, promo multiplier below 1
    """
    spend = to_decimal(spend_amount, 'spend_amount')
    if spend < 0:
        raise ValidationError('Spend amount cannot be negative', 'spend_amount')

    promo = to_decimal(promo_multiplier, 'promo_multiplier')
    if promo < ONE:
        raise ValidationError('Promo multiplier must be at least 1.0', 'promo_multiplier')

    tier = to_decimal(tier_multiplier, 'tier_multiplier')

    if not config.is_active or not meets_minimum_spend(config, spend):
        return round_points(Decimal('0'), config)

    return round_points(spend * config.points_per_currency * tier * promo, config)


def promo_multiplier_for_code(config: ProgramConfig, promo_code: Optional[str]) -> Decimal:
    """Multiplier granted by an order's promo code; 1.0 when none applies."""
    if not promo_code:
        return ONE

    entry = PROMO_CODE_MULTIPLIERS.get(promo_code.strip().upper())
    if entry is None:
        return ONE

    key, default = entry
    return config.bonus_multipliers.get(key, default)
