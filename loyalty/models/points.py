"""
Points ledger model and the closed vocabularies it is written with.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


# ==================== Enums ====================

class TransactionType(str, Enum):
    """Ledger entry types."""
    EARNED = 'earned'              # Points earned (positive)
    REDEEMED = 'redeemed'          # Points redeemed (negative)
    EXPIRED = 'expired'            # Points expired (negative)
    TIER_UPGRADE = 'tier_upgrade'  # Tier change marker (zero)


class PointsSource(str, Enum):
    """Where points came from or went."""
    ORDER = 'order'
    BONUS = 'bonus'
    REFERRAL = 'referral'
    BIRTHDAY = 'birthday'
    HAPPY_HOUR = 'happy_hour'
    FIRST_ORDER = 'first_order'
    PROMOTION = 'promotion'
    EXPIRATION = 'expiration'              # written by the sweeper only
    TIER_PROGRESSION = 'tier_progression'  # written by tier changes only


# Sources a caller may pass when earning
EARN_SOURCES = frozenset({
    PointsSource.ORDER,
    PointsSource.BONUS,
    PointsSource.REFERRAL,
    PointsSource.BIRTHDAY,
    PointsSource.HAPPY_HOUR,
    PointsSource.FIRST_ORDER,
    PointsSource.PROMOTION,
})


class RedemptionType(str, Enum):
    """What points are spent on."""
    DISCOUNT = 'discount'
    FREE_ITEM = 'free_item'
    FREE_DELIVERY = 'free_delivery'


class PointsTransaction(db.Model):
    """
    Append-only points ledger.

    points_amount is signed: positive for earned, negative for redeemed and
    expired, zero for tier_upgrade. The sum over an account reconstructs its
    current_points exactly. Rows are never updated after insert.
    """
    __tablename__ = 'loyalty_transactions'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('loyalty_accounts.id'), nullable=False)

    # Transaction details
    transaction_type = db.Column(db.String(30), nullable=False)  # TransactionType
    points_amount = db.Column(db.Numeric(12, 2), nullable=False)
    balance_after = db.Column(db.Numeric(12, 2), nullable=False)

    # Source tracking
    source = db.Column(db.String(50), nullable=False)  # PointsSource or RedemptionType
    order_reference = db.Column(db.String(100))
    base_amount = db.Column(db.Numeric(12, 2))  # spend the points were computed from
    multiplier_applied = db.Column(db.Numeric(8, 4), default=1)
    description = db.Column(db.String(255))
    details = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_loyalty_transactions_account_type', 'account_id', 'transaction_type'),
        db.Index('ix_loyalty_transactions_order', 'order_reference'),
        db.Index('ix_loyalty_transactions_source', 'source'),
        db.Index('ix_loyalty_transactions_created', 'created_at'),
    )

    def __repr__(self):
        return f'<PointsTransaction {self.id}: {self.points_amount} pts for account {self.account_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'account_id': self.account_id,
            'transaction_type': self.transaction_type,
            'points_amount': float(self.points_amount),
            'balance_after': float(self.balance_after),
            'source': self.source,
            'order_reference': self.order_reference,
            'base_amount': float(self.base_amount) if self.base_amount is not None else None,
            'multiplier_applied': float(self.multiplier_applied) if self.multiplier_applied is not None else None,
            'description': self.description,
            'details': self.details,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
