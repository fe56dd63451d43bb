"""
Expiration Sweeper.

Batch job that zeroes balances past their expiry date. Each account is
handled in its own short transaction, so one failing account neither blocks
the others nor holds a lock across the whole batch.

Run daily:
    flask loyalty expire-points
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional
from flask import current_app

from ..extensions import db
from ..models.account import LoyaltyAccount
from ..models.points import PointsTransaction, TransactionType, PointsSource
from ..utils.db import run_atomic


def expire_account(account: LoyaltyAccount, now: datetime) -> Decimal:
    """
    Move an overdue balance into total_expired and write the ledger row.

    Stages changes on the session without committing. Accounts that are not
    past expiry or already hold zero points are left alone.

    Returns:
        Points expired (zero when nothing happened)
    """
    current = Decimal(str(account.current_points or 0))
    if not account.is_expired(now) or current <= 0:
        return Decimal('0')

    account.total_expired = Decimal(str(account.total_expired or 0)) + current
    account.current_points = Decimal('0')

    db.session.add(PointsTransaction(
        account_id=account.id,
        transaction_type=TransactionType.EXPIRED.value,
        points_amount=-current,
        balance_after=Decimal('0'),
        source=PointsSource.EXPIRATION.value,
        multiplier_applied=Decimal('1'),
        description='Points expired',
        details={'expiry_date': account.expiry_date.isoformat()},
        created_at=now
    ))

    return current


class ExpirationSweeper:
    """
    Expire overdue balances across accounts.

    Usage:
        result = ExpirationSweeper().process_expirations()
        result = ExpirationSweeper(program_id=1).process_expirations(now)
    """

    def __init__(self, program_id: Optional[int] = None):
        self.program_id = program_id

    def find_expired_account_ids(self, now: datetime) -> list:
        query = db.session.query(LoyaltyAccount.id).filter(
            LoyaltyAccount.expiry_date.isnot(None),
            LoyaltyAccount.expiry_date < now,
            LoyaltyAccount.current_points > 0
        )
        if self.program_id is not None:
            query = query.filter(LoyaltyAccount.program_id == self.program_id)

        return [row.id for row in query.order_by(LoyaltyAccount.id).all()]

    def process_expirations(self, now: datetime = None) -> Dict[str, Any]:
        """
        Expire every overdue balance.

        Running twice with the same `now` expires nothing the second time.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            Dict with accounts_affected, total_points_expired and per-account errors
        """
        now = now or datetime.utcnow()

        results = {
            'accounts_affected': 0,
            'total_points_expired': Decimal('0'),
            'errors': []
        }

        for account_id in self.find_expired_account_ids(now):
            try:
                expired = run_atomic(
                    lambda: self._expire_one(account_id, now),
                    f'expiration of account {account_id}'
                )
            except Exception as e:
                current_app.logger.error(f"Failed to expire points for account {account_id}: {e}")
                results['errors'].append({
                    'account_id': account_id,
                    'error': str(e)
                })
                continue

            if expired > 0:
                results['accounts_affected'] += 1
                results['total_points_expired'] += expired
                current_app.logger.info(f"Expired {expired} pts for account {account_id}")

        current_app.logger.info(
            f"Points expiration completed: {results['total_points_expired']} points "
            f"expired across {results['accounts_affected']} accounts"
        )

        return results

    def _expire_one(self, account_id: int, now: datetime) -> Decimal:
        # Re-check under the row lock; another worker may have got here first
        account = LoyaltyAccount.query.filter_by(id=account_id).with_for_update().populate_existing().first()
        if account is None:
            return Decimal('0')
        return expire_account(account, now)
