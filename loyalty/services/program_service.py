"""
Program Service.

Creates loyalty programs, appends tiers, and hands out the immutable
configuration snapshots the points engine works from.
"""
from decimal import Decimal
from typing import Dict, Any, Optional, Tuple
from flask import current_app

from ..extensions import db
from ..models.program import LoyaltyProgram, LoyaltyTier
from ..utils.exceptions import ProgramNotFoundError, ValidationError
from .accrual import ProgramConfig, to_decimal
from .tier_resolver import TierInfo, sort_tiers


class ProgramService:
    """
    Program and tier administration.

    Usage:
        service = ProgramService()
        program = service.create_program('Diner Rewards', points_per_currency=1)
        service.add_tier(program.id, 'bronze', min_points_required=0)
    """

    def create_program(
        self,
        name: str,
        points_per_currency=Decimal('1.00'),
        minimum_spend_for_points=Decimal('0'),
        bonus_multipliers: Dict[str, Any] = None,
        points_expiry_days: Optional[int] = None,
        currency_code: str = 'USD',
        description: str = None
    ) -> LoyaltyProgram:
        """
        Create a loyalty program.

        Raises:
            ValidationError: non-positive earning rate, negative minimum spend,
                or a bonus multiplier below 1.0
        """
        if not name or not name.strip():
            raise ValidationError('Program name is required', 'name')

        rate = to_decimal(points_per_currency, 'points_per_currency')
        if rate <= 0:
            raise ValidationError('points_per_currency must be positive', 'points_per_currency')

        minimum = to_decimal(minimum_spend_for_points, 'minimum_spend_for_points')
        if minimum < 0:
            raise ValidationError('minimum_spend_for_points cannot be negative', 'minimum_spend_for_points')

        multipliers = {}
        for key, value in (bonus_multipliers or {}).items():
            multiplier = to_decimal(value, 'bonus_multipliers')
            if multiplier < 1:
                raise ValidationError(f'Bonus multiplier {key} must be at least 1.0', 'bonus_multipliers')
            multipliers[key] = float(multiplier)

        if points_expiry_days is not None and points_expiry_days <= 0:
            raise ValidationError('points_expiry_days must be positive', 'points_expiry_days')

        program = LoyaltyProgram(
            name=name.strip(),
            description=description,
            currency_code=currency_code,
            points_per_currency=rate,
            minimum_spend_for_points=minimum,
            bonus_multipliers=multipliers,
            points_expiry_days=points_expiry_days,
            is_active=True
        )
        db.session.add(program)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f'Loyalty program created: {program.name} (id={program.id})')
        return program

    def add_tier(
        self,
        program_id: int,
        name: str,
        min_points_required,
        points_multiplier=Decimal('1.00'),
        discount_percentage=Decimal('0'),
        display_name: str = None,
        description: str = None
    ) -> LoyaltyTier:
        """
        Append a tier to a program.

        Thresholds must be strictly increasing in insertion order, so a new
        tier always sits above every existing one.

        Raises:
            ProgramNotFoundError: unknown program
            ValidationError: threshold not above the current maximum, multiplier
                below 1.0, discount outside 0-100
        """
        program = self.get_program(program_id)

        threshold = to_decimal(min_points_required, 'min_points_required')
        if threshold < 0:
            raise ValidationError('min_points_required cannot be negative', 'min_points_required')

        multiplier = to_decimal(points_multiplier, 'points_multiplier')
        if multiplier < 1:
            raise ValidationError('points_multiplier must be at least 1.0', 'points_multiplier')

        discount = to_decimal(discount_percentage, 'discount_percentage')
        if discount < 0 or discount > 100:
            raise ValidationError('discount_percentage must be between 0 and 100', 'discount_percentage')

        highest = db.session.query(
            db.func.max(LoyaltyTier.min_points_required)
        ).filter(LoyaltyTier.program_id == program.id).scalar()

        if highest is not None and threshold <= Decimal(str(highest)):
            raise ValidationError(
                f'min_points_required must exceed the current highest threshold ({highest})',
                'min_points_required'
            )

        sort_order = program.tiers.count()
        tier = LoyaltyTier(
            program_id=program.id,
            name=name,
            display_name=display_name or name.title(),
            description=description,
            min_points_required=threshold,
            points_multiplier=multiplier,
            discount_percentage=discount,
            sort_order=sort_order,
            is_active=True
        )
        db.session.add(tier)

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f'Tier added to program {program.id}: {tier.name} '
            f'(>= {threshold} pts, x{multiplier})'
        )
        return tier

    def get_program(self, program_id: int) -> LoyaltyProgram:
        program = db.session.get(LoyaltyProgram, program_id)
        if not program:
            raise ProgramNotFoundError(program_id)
        return program

    def get_program_config(self, program_id: int) -> ProgramConfig:
        """Immutable earning configuration for a program."""
        program = self.get_program(program_id)
        return ProgramConfig.from_model(
            program,
            precision=current_app.config.get('POINTS_PRECISION', 2)
        )

    def get_tiers(self, program_id: int) -> Tuple[TierInfo, ...]:
        """Active tiers of a program as a sorted, read-only tuple."""
        tiers = LoyaltyTier.query.filter_by(
            program_id=program_id,
            is_active=True
        ).all()
        return sort_tiers([TierInfo.from_model(t) for t in tiers])

    def deactivate_program(self, program_id: int) -> LoyaltyProgram:
        """Stop a program from accruing points. Existing balances are kept."""
        program = self.get_program(program_id)
        program.is_active = False

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f'Loyalty program deactivated: {program.name} (id={program.id})')
        return program
