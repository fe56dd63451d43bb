"""
Business logic services for the loyalty points engine.
"""
from .points_service import PointsService
from .program_service import ProgramService
from .expiration import ExpirationSweeper

__all__ = [
    'PointsService',
    'ProgramService',
    'ExpirationSweeper'
]
