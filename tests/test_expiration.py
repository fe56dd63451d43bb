"""
Tests for the expiration sweeper.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from loyalty.extensions import db
from loyalty.models import LoyaltyAccount, PointsTransaction
from loyalty.services.expiration import ExpirationSweeper, expire_account


@pytest.fixture
def overdue_account(app, points_service):
    """Customer 2 holding 100 points that expired yesterday."""
    account = points_service.enroll(customer_id=2)
    points_service.earn_points(customer_id=2, spend_amount=100, source='bonus')
    account.expiry_date = datetime.utcnow() - timedelta(days=1)
    db.session.commit()
    return account


class TestExpireAccount:
    """Tests for expire_account."""

    def test_not_yet_expired_is_left_alone(self, sample_account):
        assert expire_account(sample_account, datetime.utcnow()) == Decimal('0')
        assert sample_account.current_points == Decimal('500')

    def test_expired_balance_moves_to_total_expired(self, overdue_account):
        expired = expire_account(overdue_account, datetime.utcnow())
        db.session.commit()

        assert expired == Decimal('100')
        assert overdue_account.current_points == Decimal('0')
        assert overdue_account.total_expired == Decimal('100')


class TestExpirationSweeper:
    """Tests for ExpirationSweeper.process_expirations."""

    def test_expires_overdue_accounts_only(self, sample_account, overdue_account):
        result = ExpirationSweeper().process_expirations()

        assert result['accounts_affected'] == 1
        assert result['total_points_expired'] == Decimal('100')
        assert result['errors'] == []

        db.session.refresh(sample_account)
        assert sample_account.current_points == Decimal('500')

    def test_writes_expired_transaction(self, overdue_account):
        ExpirationSweeper().process_expirations()

        transaction = PointsTransaction.query.filter_by(
            account_id=overdue_account.id,
            transaction_type='expired'
        ).one()
        assert transaction.points_amount == Decimal('-100')
        assert transaction.balance_after == Decimal('0')
        assert transaction.source == 'expiration'

    def test_second_run_expires_nothing(self, overdue_account):
        now = datetime.utcnow()
        ExpirationSweeper().process_expirations(now)

        result = ExpirationSweeper().process_expirations(now)

        assert result['accounts_affected'] == 0
        assert result['total_points_expired'] == Decimal('0')

    def test_keeps_ledger_consistent(self, points_service, overdue_account):
        ExpirationSweeper().process_expirations()

        result = points_service.verify_ledger(2)
        assert result['consistent'] is True
        assert result['current_points'] == Decimal('0.00')

    def test_reference_time_controls_cutoff(self, sample_account):
        """Accounts are swept relative to the supplied time."""
        assert ExpirationSweeper().process_expirations(datetime.utcnow())['accounts_affected'] == 0

        result = ExpirationSweeper().process_expirations(datetime.utcnow() + timedelta(days=366))

        assert result['accounts_affected'] == 1
        assert result['total_points_expired'] == Decimal('500')

    def test_program_filter(self, overdue_account, sample_program):
        assert ExpirationSweeper(program_id=sample_program.id + 1).process_expirations()['accounts_affected'] == 0
        assert ExpirationSweeper(program_id=sample_program.id).process_expirations()['accounts_affected'] == 1

    def test_failure_is_isolated_per_account(self, points_service, overdue_account):
        """One failing account does not stop the rest of the batch."""
        points_service.enroll(customer_id=3)
        points_service.earn_points(customer_id=3, spend_amount=40, source='bonus')
        other = LoyaltyAccount.query.filter_by(customer_id=3).one()
        other.expiry_date = datetime.utcnow() - timedelta(days=2)
        db.session.commit()

        original = ExpirationSweeper._expire_one

        def flaky(self, account_id, now):
            if account_id == overdue_account.id:
                raise RuntimeError('lock wait timeout')
            return original(self, account_id, now)

        with patch.object(ExpirationSweeper, '_expire_one', autospec=True, side_effect=flaky):
            result = ExpirationSweeper().process_expirations()

        assert result['accounts_affected'] == 1
        assert result['total_points_expired'] == Decimal('40')
        assert result['errors'] == [{'account_id': overdue_account.id, 'error': 'lock wait timeout'}]

        db.session.refresh(overdue_account)
        assert overdue_account.current_points == Decimal('100')
