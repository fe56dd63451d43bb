"""
LoyaltyAccount model: one per customer per program.
"""
from datetime import datetime
from decimal import Decimal
from ..extensions import db


class LoyaltyAccount(db.Model):
    """
    Per-customer-per-program point balance.

    Running totals are denormalised from the transaction ledger and must
    always satisfy current_points == total_earned - total_redeemed - total_expired.
    Accounts are soft-deactivated, never deleted.
    """
    __tablename__ = 'loyalty_accounts'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False)  # owned by the customer service
    program_id = db.Column(db.Integer, db.ForeignKey('loyalty_programs.id'), nullable=False)
    tier_id = db.Column(db.Integer, db.ForeignKey('loyalty_tiers.id'))

    # Balances
    current_points = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))
    total_earned = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))
    total_redeemed = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))
    total_expired = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0'))

    # Activity
    last_earned_at = db.Column(db.DateTime)
    last_redeemed_at = db.Column(db.DateTime)
    expiry_date = db.Column(db.DateTime)

    is_active = db.Column(db.Boolean, default=True)

    # Optimistic lock counter
    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tier = db.relationship('LoyaltyTier')
    transactions = db.relationship('PointsTransaction', backref='account', lazy='dynamic')

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.UniqueConstraint('customer_id', 'program_id', name='uq_customer_program'),
        db.Index('ix_loyalty_accounts_expiry', 'expiry_date', 'current_points'),
        db.Index('ix_loyalty_accounts_tier', 'tier_id'),
    )

    def __repr__(self):
        return f'<LoyaltyAccount customer={self.customer_id} program={self.program_id}>'

    def is_expired(self, now: datetime = None) -> bool:
        """True once the expiry date has passed."""
        now = now or datetime.utcnow()
        return self.expiry_date is not None and self.expiry_date < now

    def available_points(self, now: datetime = None) -> Decimal:
        """Redeemable balance; expired balances are not available."""
        if self.is_expired(now):
            return Decimal('0.00')
        return Decimal(str(self.current_points or 0))

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'program_id': self.program_id,
            'tier_id': self.tier_id,
            'current_points': float(self.current_points),
            'available_points': float(self.available_points()),
            'total_earned': float(self.total_earned),
            'total_redeemed': float(self.total_redeemed),
            'total_expired': float(self.total_expired),
            'last_earned_at': self.last_earned_at.isoformat() if self.last_earned_at else None,
            'last_redeemed_at': self.last_redeemed_at.isoformat() if self.last_redeemed_at else None,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
            'is_active': self.is_active
        }
