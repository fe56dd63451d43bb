"""
LoyaltyProgram and LoyaltyTier models.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from ..extensions import db


class LoyaltyProgram(db.Model):
    """
    A restaurant's loyalty program.

    Holds the earning configuration that the accrual calculator reads through
    an immutable ProgramConfig snapshot.
    """
    __tablename__ = 'loyalty_programs'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    currency_code = db.Column(db.String(3), default='USD')

    # Earning configuration
    points_per_currency = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('1.00'))
    minimum_spend_for_points = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))
    bonus_multipliers = db.Column(db.JSON, default=dict)
    # Example: {"happy_hour": 2.0, "birthday": 3.0, "first_order": 1.5}

    # NULL = use POINTS_EXPIRY_DAYS from app config
    points_expiry_days = db.Column(db.Integer)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tiers = db.relationship('LoyaltyTier', backref='program', lazy='dynamic')
    accounts = db.relationship('LoyaltyAccount', backref='program', lazy='dynamic')

    def __repr__(self):
        return f'<LoyaltyProgram {self.name}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'currency_code': self.currency_code,
            'points_per_currency': float(self.points_per_currency),
            'minimum_spend_for_points': float(self.minimum_spend_for_points),
            'bonus_multipliers': self.bonus_multipliers or {},
            'points_expiry_days': self.points_expiry_days,
            'is_active': self.is_active
        }


class LoyaltyTier(db.Model):
    """
    A named band of point thresholds conferring a multiplier and discount.

    Tiers are append-only within a program: once a transaction references a
    tier it is never edited, and new tiers go above the current maximum.
    """
    __tablename__ = 'loyalty_tiers'

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('loyalty_programs.id'), nullable=False)

    name = db.Column(db.String(50), nullable=False)  # 'bronze', 'silver', 'gold'
    display_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    min_points_required = db.Column(db.Numeric(10, 2), nullable=False)
    points_multiplier = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('1.00'))
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('0'))

    sort_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_loyalty_tiers_program_threshold', 'program_id', 'min_points_required'),
    )

    def __repr__(self):
        return f'<LoyaltyTier {self.name}>'

    def calculate_discount(self, order_amount) -> Decimal:
        """Discount this tier grants on an order amount."""
        percentage = Decimal(str(self.discount_percentage or 0))
        if percentage <= 0:
            return Decimal('0.00')
        discount = Decimal(str(order_amount)) * percentage / Decimal('100')
        return discount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    def to_dict(self):
        return {
            'id': self.id,
            'program_id': self.program_id,
            'name': self.name,
            'display_name': self.display_name,
            'min_points_required': float(self.min_points_required),
            'points_multiplier': float(self.points_multiplier),
            'discount_percentage': float(self.discount_percentage),
            'sort_order': self.sort_order,
            'is_active': self.is_active
        }
