"""
Tests for run_atomic conflict handling.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from loyalty.extensions import db
from loyalty.models import LoyaltyAccount, PointsTransaction
from loyalty.services.points_service import PointsService
from loyalty.utils.db import run_atomic, is_lock_conflict
from loyalty.utils.exceptions import ConflictError, InsufficientPointsError


def driver_error(message, **attrs):
    """OperationalError wrapping a DBAPI-style exception."""
    orig = Exception(message)
    for key, value in attrs.items():
        setattr(orig, key, value)
    return OperationalError('UPDATE loyalty_accounts ...', {}, orig)


def earned_count(account_id):
    return PointsTransaction.query.filter_by(account_id=account_id, transaction_type='earned').count()


class TestRunAtomic:
    """Tests for run_atomic."""

    def test_returns_operation_result(self, app):
        assert run_atomic(lambda: 'done', 'noop') == 'done'

    def test_retries_stale_data_then_succeeds(self, app):
        operation = MagicMock(side_effect=[StaleDataError('version mismatch'), 'ok'])

        assert run_atomic(operation, 'flaky update') == 'ok'
        assert operation.call_count == 2

    def test_gives_up_after_configured_attempts(self, app):
        operation = MagicMock(side_effect=StaleDataError('version mismatch'))

        with pytest.raises(ConflictError) as exc_info:
            run_atomic(operation, 'contended update')

        assert operation.call_count == app.config['LOYALTY_CONFLICT_RETRIES']
        assert exc_info.value.code == 'STATE_CONFLICT'

    def test_business_errors_are_not_retried(self, app):
        operation = MagicMock(side_effect=InsufficientPointsError(10, 20))

        with pytest.raises(InsufficientPointsError):
            run_atomic(operation, 'redemption')

        assert operation.call_count == 1

    def test_lock_timeout_is_retried(self, app):
        operation = MagicMock(side_effect=[driver_error('database is locked'), 'ok'])

        assert run_atomic(operation, 'busy update') == 'ok'
        assert operation.call_count == 2

    def test_other_operational_errors_propagate(self, app):
        """Missing tables or dropped connections are real faults, not conflicts."""
        operation = MagicMock(side_effect=driver_error('no such table: loyalty_accounts'))

        with pytest.raises(OperationalError):
            run_atomic(operation, 'broken update')

        assert operation.call_count == 1

    def test_optimistic_version_conflict(self, points_service, sample_account):
        """A stale version on flush surfaces as a conflict, never a lost update."""
        table = LoyaltyAccount.__table__

        def operation():
            account = db.session.get(LoyaltyAccount, sample_account.id)
            # Another writer bumps the version behind the session's back
            db.session.execute(
                table.update().where(table.c.id == account.id).values(version=table.c.version + 1)
            )
            account.current_points = account.current_points + 1
            db.session.flush()

        with pytest.raises(ConflictError):
            run_atomic(operation, 'racing update')

        assert points_service.verify_ledger(1)['consistent'] is True


class TestIsLockConflict:
    """Tests for is_lock_conflict."""

    @pytest.mark.parametrize('error', [
        driver_error('could not serialize access', pgcode='40001'),
        driver_error('deadlock detected', pgcode='40P01'),
        driver_error('could not obtain lock', sqlstate='55P03'),
        OperationalError('UPDATE', {}, Exception(1205, 'Lock wait timeout exceeded')),
        OperationalError('UPDATE', {}, Exception(1213, 'Deadlock found')),
        driver_error('database is locked'),
    ])
    def test_lock_failures(self, error):
        assert is_lock_conflict(error) is True

    @pytest.mark.parametrize('error', [
        driver_error('server closed the connection unexpectedly', pgcode='08006'),
        driver_error('no such table: loyalty_accounts'),
        OperationalError('UPDATE', {}, Exception(2006, 'MySQL server has gone away')),
    ])
    def test_other_failures(self, error):
        assert is_lock_conflict(error) is False


class TestConflictsThroughPointsService:
    """Conflicts raised mid-operation roll back staged ledger rows before retrying."""

    def test_accrual_retried_after_conflict(self, points_service, sample_account):
        original = PointsService._accrue
        calls = []

        def conflict_once(self, *args, **kwargs):
            result = original(self, *args, **kwargs)
            calls.append(result)
            if len(calls) == 1:
                raise StaleDataError('version mismatch')
            return result

        with patch.object(PointsService, '_accrue', autospec=True, side_effect=conflict_once):
            result = points_service.earn_points(customer_id=1, spend_amount=30, source='order')

        assert len(calls) == 2
        assert result['new_balance'] == Decimal('530.00')
        assert earned_count(sample_account.id) == 2
        assert points_service.verify_ledger(1)['consistent'] is True

    def test_redemption_retried_after_conflict(self, points_service, sample_account):
        real_commit = db.session.commit
        commits = []

        def conflict_once():
            commits.append(1)
            if len(commits) == 1:
                raise StaleDataError('version mismatch')
            return real_commit()

        with patch.object(db.session, 'commit', side_effect=conflict_once):
            result = points_service.redeem_points(customer_id=1, points_amount=200, redemption_type='discount')

        assert len(commits) == 2
        assert result['new_balance'] == Decimal('300')

        redeemed = PointsTransaction.query.filter_by(
            account_id=sample_account.id,
            transaction_type='redeemed'
        ).all()
        assert len(redeemed) == 1
        assert redeemed[0].points_amount == Decimal('-200')
        assert points_service.verify_ledger(1)['consistent'] is True

    def test_persistent_conflict_leaves_account_unchanged(self, app, points_service, sample_account):
        original = PointsService._accrue

        def always_conflict(self, *args, **kwargs):
            original(self, *args, **kwargs)
            raise StaleDataError('version mismatch')

        with patch.object(PointsService, '_accrue', autospec=True, side_effect=always_conflict) as accrue:
            with pytest.raises(ConflictError):
                points_service.earn_points(customer_id=1, spend_amount=30, source='order')

        assert accrue.call_count == app.config['LOYALTY_CONFLICT_RETRIES']

        db.session.refresh(sample_account)
        assert sample_account.current_points == Decimal('500')
        assert earned_count(sample_account.id) == 1
        assert points_service.verify_ledger(1)['consistent'] is True
