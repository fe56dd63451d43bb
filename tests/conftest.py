"""
Shared pytest fixtures.

The app fixture pushes an application context for the whole test and
builds the schema on in-memory SQLite.
"""
from decimal import Decimal

import pytest

from loyalty import create_app
from loyalty.extensions import db


@pytest.fixture
def app():
    """Application with a fresh in-memory database."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def program_service(app):
    from loyalty.services.program_service import ProgramService
    return ProgramService()


@pytest.fixture
def sample_program(app, program_service):
    """Program earning 1 point per currency unit above a spend of 10."""
    return program_service.create_program(
        name='Diner Rewards',
        points_per_currency=Decimal('1.00'),
        minimum_spend_for_points=Decimal('10.00'),
        bonus_multipliers={'happy_hour': 2.0, 'birthday': 3.0},
        points_expiry_days=365
    )


@pytest.fixture
def sample_tiers(app, program_service, sample_program):
    """Bronze / Silver / Gold / Platinum ladder."""
    return [
        program_service.add_tier(sample_program.id, 'bronze', 0, points_multiplier='1.00'),
        program_service.add_tier(sample_program.id, 'silver', 1000, points_multiplier='1.25',
                                 discount_percentage='5'),
        program_service.add_tier(sample_program.id, 'gold', 2500, points_multiplier='1.50',
                                 discount_percentage='10'),
        program_service.add_tier(sample_program.id, 'platinum', 5000, points_multiplier='2.00',
                                 discount_percentage='15'),
    ]


@pytest.fixture
def points_service(app, sample_program, sample_tiers):
    from loyalty.services.points_service import PointsService
    return PointsService(sample_program.id)


@pytest.fixture
def sample_account(app, points_service):
    """Customer 1, bronze, holding 500 points earned from a bonus."""
    account = points_service.enroll(customer_id=1)
    points_service.earn_points(customer_id=1, spend_amount=500, source='bonus')
    db.session.refresh(account)
    return account
