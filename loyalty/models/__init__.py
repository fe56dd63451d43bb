"""
Database models for the loyalty points engine.
"""
from .program import LoyaltyProgram, LoyaltyTier
from .account import LoyaltyAccount
from .points import (
    # Enums
    TransactionType,
    PointsSource,
    RedemptionType,
    EARN_SOURCES,
    # Models
    PointsTransaction,
)

__all__ = [
    'LoyaltyProgram',
    'LoyaltyTier',
    'LoyaltyAccount',
    'TransactionType',
    'PointsSource',
    'RedemptionType',
    'EARN_SOURCES',
    'PointsTransaction',
]
