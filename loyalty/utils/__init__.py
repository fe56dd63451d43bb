"""
Utility modules for the loyalty engine.
"""
from .logging_config import setup_logging
from .exceptions import (
    LoyaltyError,
    NotFoundError,
    AccountNotFoundError,
    ProgramNotFoundError,
    TierNotFoundError,
    ValidationError,
    InsufficientPointsError,
    ConflictError,
    DuplicateError
)
