"""
Points Service for the loyalty engine.

Points management for one loyalty program:
- Enrollment and soft deactivation of customer accounts
- Accrual from spend (base rate x tier multiplier x promo multiplier)
- Automatic tier progression to the highest qualifying tier
- All-or-nothing redemption against the available balance
- Expiration of overdue balances
- Balance, tier and history reads for display

ARCHITECTURE:
- LoyaltyAccount carries the running totals; PointsTransaction is the
  append-only ledger whose signed amounts sum to current_points
- Every mutation locks the account row and commits the balance change and
  its ledger rows in one transaction (see utils.db.run_atomic)
- Program configuration and tiers are read once per call as immutable
  snapshots and passed explicitly to the calculator and resolver
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.account import LoyaltyAccount
from ..models.points import (
    PointsTransaction,
    TransactionType,
    PointsSource,
    RedemptionType,
    EARN_SOURCES,
)
from ..utils.db import run_atomic
from ..utils.exceptions import (
    AccountNotFoundError,
    DuplicateError,
    InsufficientPointsError,
    ValidationError,
)
from .accrual import (
    ProgramConfig,
    calculate_points,
    promo_multiplier_for_code,
    to_decimal,
    ONE,
)
from .expiration import ExpirationSweeper, expire_account
from .program_service import ProgramService
from .tier_resolver import resolve_tier, find_tier, next_tier_progress


class PointsService:
    """
    Central service for all points-related operations on one program.

    Usage:
        service = PointsService(program_id)

        # Order finalization
        result = service.earn_points(customer_id, Decimal('42.50'), 'order', order_reference='A-1001')

        # Checkout
        result = service.redeem_points(customer_id, Decimal('200'), 'discount')
    """

    def __init__(self, program_id: int, program_service: ProgramService = None):
        """
        Initialize PointsService.

        Args:
            program_id: Loyalty program the accounts belong to
            program_service: Optional ProgramService (for tests)
        """
        self.program_id = program_id
        self.programs = program_service or ProgramService()

    # ==================== Account Lifecycle ====================

    def enroll(self, customer_id: int) -> LoyaltyAccount:
        """
        Create a customer's account in this program.

        The account starts at zero points in the lowest tier, with an expiry
        date one expiry period out. Re-enrolling a deactivated account
        reactivates it.

        Raises:
            ProgramNotFoundError: unknown program
            ValidationError: program is not active
            DuplicateError: customer already holds an active account
        """
        program = self.programs.get_program(self.program_id)
        if not program.is_active:
            raise ValidationError('Loyalty program is not active', 'program')

        existing = LoyaltyAccount.query.filter_by(
            customer_id=customer_id,
            program_id=self.program_id
        ).first()

        if existing:
            if existing.is_active:
                raise DuplicateError('Loyalty account', f'customer {customer_id}')
            existing.is_active = True
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            current_app.logger.info(f"Loyalty account reactivated: customer {customer_id}, program {self.program_id}")
            return existing

        tiers = self.programs.get_tiers(self.program_id)
        starting_tier = resolve_tier(tiers, Decimal('0'))
        now = datetime.utcnow()

        account = LoyaltyAccount(
            customer_id=customer_id,
            program_id=self.program_id,
            tier_id=starting_tier.id if starting_tier else None,
            current_points=Decimal('0'),
            total_earned=Decimal('0'),
            total_redeemed=Decimal('0'),
            total_expired=Decimal('0'),
            expiry_date=now + timedelta(days=self._get_expiry_days(program)),
            is_active=True
        )
        db.session.add(account)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateError('Loyalty account', f'customer {customer_id}')
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f"Loyalty account created: customer {customer_id}, program {self.program_id}, "
            f"tier {starting_tier.name if starting_tier else 'none'}"
        )
        return account

    def deactivate(self, customer_id: int) -> LoyaltyAccount:
        """Soft-deactivate an account. Balances and ledger are kept."""
        account = self._get_account(customer_id)
        account.is_active = False

        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f"Loyalty account deactivated: customer {customer_id}, program {self.program_id}")
        return account

    # ==================== Core Points Operations ====================

    def earn_points(
        self,
        customer_id: int,
        spend_amount,
        source: str,
        promo_multiplier=ONE,
        order_reference: str = None,
        description: str = None
    ) -> Dict[str, Any]:
        """
        Award points for a qualifying spend.

        Spend below the program minimum is a no-op: zero points and no ledger
        row. Otherwise the earned row is written and the account moves to the
        highest tier its new balance qualifies for, possibly skipping tiers.

        Args:
            customer_id: Customer whose account earns
            spend_amount: Monetary spend (>= 0)
            source: PointsSource value (order, bonus, referral, ...)
            promo_multiplier: Promotional multiplier (>= 1.0)
            order_reference: Optional order reference for the ledger
            description: Optional ledger description

        Returns:
            Dict with points_earned, new_balance, tier_upgraded, new_tier

        Raises:
            ValidationError: bad spend, source or multiplier; inactive account
            AccountNotFoundError / ProgramNotFoundError: unknown account or program
            ConflictError: concurrent updates persisted through retries
        """
        source = self._validate_earn_source(source)
        spend = self._validate_spend(spend_amount)
        promo = to_decimal(promo_multiplier, 'promo_multiplier')
        if promo < ONE:
            raise ValidationError('Promo multiplier must be at least 1.0', 'promo_multiplier')

        config = self.programs.get_program_config(self.program_id)
        tiers = self.programs.get_tiers(self.program_id)

        def operation():
            account = self._lock_account(customer_id)
            self._ensure_active(account)
            return self._accrue(
                account, config, tiers, spend, source, promo,
                order_reference, description, datetime.utcnow()
            )

        result = run_atomic(operation, f'points accrual for customer {customer_id}')
        self._log_accrual(customer_id, result, source)
        return result

    def record_order(
        self,
        customer_id: int,
        order_reference: str,
        subtotal,
        promo_code: str = None
    ) -> Dict[str, Any]:
        """
        Process loyalty points for a finalized order.

        Expires an overdue balance first (a fresh expiry window then starts),
        resolves the promo code to a multiplier, and accrues with source
        'order', all in one transaction.

        Returns:
            earn_points result plus points_expired
        """
        spend = self._validate_spend(subtotal)
        program = self.programs.get_program(self.program_id)
        config = self.programs.get_program_config(self.program_id)
        tiers = self.programs.get_tiers(self.program_id)
        promo = promo_multiplier_for_code(config, promo_code)
        expiry_days = self._get_expiry_days(program)

        def operation():
            account = self._lock_account(customer_id)
            self._ensure_active(account)
            now = datetime.utcnow()

            lapsed = account.is_expired(now)
            points_expired = expire_account(account, now)
            if lapsed:
                account.expiry_date = now + timedelta(days=expiry_days)

            result = self._accrue(
                account, config, tiers, spend, PointsSource.ORDER, promo,
                order_reference, f'Points earned from order #{order_reference}', now,
                details={'promo_code': promo_code}
            )
            result['points_expired'] = points_expired
            return result

        result = run_atomic(operation, f'order {order_reference} for customer {customer_id}')
        if result['points_expired'] > 0:
            current_app.logger.info(
                f"Expired {result['points_expired']} pts for customer {customer_id} before order {order_reference}"
            )
        self._log_accrual(customer_id, result, PointsSource.ORDER)
        return result

    def redeem_points(
        self,
        customer_id: int,
        points_amount,
        redemption_type: str,
        order_reference: str = None,
        description: str = None
    ) -> Dict[str, Any]:
        """
        Redeem points for a discount or benefit.

        All-or-nothing: the full amount is debited or nothing changes. Points
        on an account past its expiry date are not available.

        Args:
            customer_id: Customer whose account pays
            points_amount: Points to redeem (> 0)
            redemption_type: RedemptionType value (discount, free_item, free_delivery)
            order_reference: Optional order reference for the ledger
            description: Optional ledger description

        Returns:
            Dict with points_redeemed, new_balance, redemption_type

        Raises:
            ValidationError: non-positive amount, unknown type, inactive account
            InsufficientPointsError: amount exceeds the available balance
            AccountNotFoundError / ProgramNotFoundError: unknown account or program
        """
        redemption_type = self._validate_redemption_type(redemption_type)
        points = self._validate_points_amount(points_amount)
        self.programs.get_program(self.program_id)

        def operation():
            account = self._lock_account(customer_id)
            self._ensure_active(account)
            now = datetime.utcnow()

            available = account.available_points(now)
            if points > available:
                raise InsufficientPointsError(available, points)

            new_balance = Decimal(str(account.current_points)) - points
            account.current_points = new_balance
            account.total_redeemed = Decimal(str(account.total_redeemed or 0)) + points
            account.last_redeemed_at = now

            transaction = PointsTransaction(
                account_id=account.id,
                transaction_type=TransactionType.REDEEMED.value,
                points_amount=-points,
                balance_after=new_balance,
                source=redemption_type.value,
                order_reference=order_reference,
                multiplier_applied=ONE,
                description=description or f'Redeemed {points} points for {redemption_type.value}',
                details={'redemption_type': redemption_type.value, 'order_reference': order_reference},
                created_at=now
            )
            db.session.add(transaction)
            db.session.flush()

            return {
                'account_id': account.id,
                'points_redeemed': points,
                'new_balance': new_balance,
                'redemption_type': redemption_type.value,
                'transaction_id': transaction.id,
            }

        result = run_atomic(operation, f'points redemption for customer {customer_id}')

        current_app.logger.info(
            f"Points redeemed: customer {customer_id} -{points} pts for "
            f"{redemption_type.value}. New balance: {result['new_balance']}"
        )
        return result

    def validate_redemption(self, customer_id: int, points_amount) -> bool:
        """Whether a redemption would succeed right now. Changes nothing."""
        try:
            points = self._validate_points_amount(points_amount)
            account = self._get_account(customer_id)
        except (ValidationError, AccountNotFoundError):
            return False

        if not account.is_active:
            return False

        return points <= account.available_points()

    def process_expirations(self, now: datetime = None) -> Dict[str, Any]:
        """Expire overdue balances in this program."""
        return ExpirationSweeper(program_id=self.program_id).process_expirations(now)

    # ==================== Reads ====================

    def get_account_summary(self, customer_id: int) -> Dict[str, Any]:
        """
        Balance, tier and recent activity for display.

        Returns:
            Dict with balances, available points, current tier, next tier
            progress and the most recent transactions
        """
        account = self._get_account(customer_id)
        tiers = self.programs.get_tiers(self.program_id)
        tier = find_tier(tiers, account.tier_id)
        recent_limit = current_app.config.get('SUMMARY_RECENT_TRANSACTIONS', 10)

        recent = PointsTransaction.query.filter_by(
            account_id=account.id
        ).order_by(
            PointsTransaction.created_at.desc(),
            PointsTransaction.id.desc()
        ).limit(recent_limit).all()

        summary = account.to_dict()
        summary.update({
            'current_tier': tier.to_dict() if tier else None,
            'next_tier_progress': next_tier_progress(tiers, account.current_points),
            'recent_transactions': [t.to_dict() for t in recent],
        })
        return summary

    def get_points_history(
        self,
        customer_id: int,
        limit: int = 50,
        offset: int = 0,
        transaction_type: str = None
    ) -> Dict[str, Any]:
        """
        Get an account's points transaction history, newest first.

        Args:
            customer_id: Customer ID
            limit: Max records to return
            offset: Pagination offset
            transaction_type: Filter by type (earned, redeemed, expired, tier_upgrade)

        Returns:
            Dict with transaction history
        """
        account = self._get_account(customer_id)

        query = PointsTransaction.query.filter_by(account_id=account.id)

        if transaction_type:
            try:
                transaction_type = TransactionType(transaction_type)
            except ValueError:
                raise ValidationError(f'Unknown transaction type: {transaction_type}', 'transaction_type')
            query = query.filter_by(transaction_type=transaction_type.value)

        total = query.count()
        transactions = query.order_by(
            PointsTransaction.created_at.desc(),
            PointsTransaction.id.desc()
        ).limit(limit).offset(offset).all()

        return {
            'transactions': [t.to_dict() for t in transactions],
            'total': total,
            'limit': limit,
            'offset': offset
        }

    def calculate_tier_discount(self, customer_id: int, order_amount) -> Decimal:
        """Discount the account's current tier grants on an order amount."""
        amount = self._validate_spend(order_amount)
        account = self._get_account(customer_id)
        if not account.is_active or account.tier is None:
            return Decimal('0.00')
        return account.tier.calculate_discount(amount)

    def verify_ledger(self, customer_id: int) -> Dict[str, Any]:
        """
        Check an account against its ledger.

        Both the signed transaction sum and earned - redeemed - expired must
        equal current_points.
        """
        account = self._get_account(customer_id)

        ledger_sum = db.session.query(
            db.func.coalesce(db.func.sum(PointsTransaction.points_amount), 0)
        ).filter(
            PointsTransaction.account_id == account.id
        ).scalar()

        quantum = Decimal('0.01')
        current = Decimal(str(account.current_points)).quantize(quantum)
        ledger_sum = Decimal(str(ledger_sum or 0)).quantize(quantum)
        totals = (
            Decimal(str(account.total_earned))
            - Decimal(str(account.total_redeemed))
            - Decimal(str(account.total_expired))
        ).quantize(quantum)

        consistent = current == ledger_sum == totals
        if not consistent:
            current_app.logger.error(
                f"Ledger mismatch for account {account.id}: balance {current}, "
                f"ledger {ledger_sum}, totals {totals}"
            )

        return {
            'account_id': account.id,
            'consistent': consistent,
            'current_points': current,
            'ledger_sum': ledger_sum,
            'totals_balance': totals,
        }

    # ==================== Helper Methods ====================

    def _accrue(
        self,
        account: LoyaltyAccount,
        config: ProgramConfig,
        tiers,
        spend: Decimal,
        source: PointsSource,
        promo: Decimal,
        order_reference: Optional[str],
        description: Optional[str],
        now: datetime,
        details: Dict[str, Any] = None
    ) -> Dict[str, Any]:
        """Stage an accrual and any tier change on the session."""
        current_tier = find_tier(tiers, account.tier_id)
        tier_multiplier = current_tier.points_multiplier if current_tier else ONE
        points = calculate_points(config, spend, tier_multiplier, promo)
        balance = Decimal(str(account.current_points or 0))

        if points <= 0:
            return {
                'account_id': account.id,
                'points_earned': points,
                'new_balance': balance,
                'tier_upgraded': False,
                'new_tier': current_tier.name if current_tier else None,
                'multiplier_applied': tier_multiplier * promo,
                'transaction_id': None,
            }

        new_balance = balance + points
        account.current_points = new_balance
        account.total_earned = Decimal(str(account.total_earned or 0)) + points
        account.last_earned_at = now

        transaction_details = {
            'points_per_currency': float(config.points_per_currency),
            'tier_multiplier': float(tier_multiplier),
            'promo_multiplier': float(promo),
        }
        transaction_details.update(details or {})

        transaction = PointsTransaction(
            account_id=account.id,
            transaction_type=TransactionType.EARNED.value,
            points_amount=points,
            balance_after=new_balance,
            source=source.value,
            order_reference=order_reference,
            base_amount=spend,
            multiplier_applied=tier_multiplier * promo,
            description=description or f'Earned {points} points from {source.value}',
            details=transaction_details,
            created_at=now
        )
        db.session.add(transaction)

        # Tiers only move up; a balance spent down by redemption keeps its tier
        resolved = resolve_tier(tiers, new_balance)
        tier_upgraded = resolved is not None and (
            current_tier is None
            or resolved.min_points_required > current_tier.min_points_required
        )

        if tier_upgraded:
            account.tier_id = resolved.id
            db.session.add(PointsTransaction(
                account_id=account.id,
                transaction_type=TransactionType.TIER_UPGRADE.value,
                points_amount=Decimal('0'),
                balance_after=new_balance,
                source=PointsSource.TIER_PROGRESSION.value,
                multiplier_applied=ONE,
                description=f'Tier upgraded to {resolved.display_name}',
                details={
                    'old_tier_id': current_tier.id if current_tier else None,
                    'new_tier_id': resolved.id,
                    'new_tier_name': resolved.display_name,
                    'points_required': float(resolved.min_points_required),
                    'current_points': float(new_balance),
                },
                created_at=now
            ))

        db.session.flush()

        new_tier = resolved if tier_upgraded else current_tier
        return {
            'account_id': account.id,
            'points_earned': points,
            'new_balance': new_balance,
            'tier_upgraded': tier_upgraded,
            'new_tier': new_tier.name if new_tier else None,
            'multiplier_applied': tier_multiplier * promo,
            'transaction_id': transaction.id,
        }

    def _log_accrual(self, customer_id: int, result: Dict[str, Any], source: PointsSource):
        if result['points_earned'] <= 0:
            current_app.logger.info(
                f"No points earned: customer {customer_id} spend below minimum or program inactive"
            )
            return

        current_app.logger.info(
            f"Points earned: customer {customer_id} +{result['points_earned']} pts "
            f"(x{result['multiplier_applied']}) from {source.value}. New balance: {result['new_balance']}"
        )
        if result['tier_upgraded']:
            current_app.logger.info(f"Tier upgraded: customer {customer_id} -> {result['new_tier']}")

    def _get_account(self, customer_id: int) -> LoyaltyAccount:
        account = LoyaltyAccount.query.filter_by(
            customer_id=customer_id,
            program_id=self.program_id
        ).first()
        if not account:
            raise AccountNotFoundError(customer_id)
        return account

    def _lock_account(self, customer_id: int) -> LoyaltyAccount:
        """Load the account under a row lock with fresh column values."""
        account = LoyaltyAccount.query.filter_by(
            customer_id=customer_id,
            program_id=self.program_id
        ).with_for_update().populate_existing().first()
        if not account:
            raise AccountNotFoundError(customer_id)
        return account

    def _ensure_active(self, account: LoyaltyAccount):
        if not account.is_active:
            raise ValidationError('Loyalty account is not active', 'account')

    def _get_expiry_days(self, program) -> int:
        if program.points_expiry_days:
            return int(program.points_expiry_days)
        return int(current_app.config.get('POINTS_EXPIRY_DAYS', 365))

    def _validate_earn_source(self, source) -> PointsSource:
        try:
            source = PointsSource(source)
        except ValueError:
            raise ValidationError(f'Unknown points source: {source}', 'source')
        if source not in EARN_SOURCES:
            raise ValidationError(f'Points cannot be earned from source: {source.value}', 'source')
        return source

    def _validate_redemption_type(self, redemption_type) -> RedemptionType:
        try:
            return RedemptionType(redemption_type)
        except ValueError:
            raise ValidationError(f'Unknown redemption type: {redemption_type}', 'redemption_type')

    def _validate_spend(self, spend_amount) -> Decimal:
        spend = to_decimal(spend_amount, 'spend_amount')
        if spend < 0:
            raise ValidationError('Spend amount cannot be negative', 'spend_amount')
        return spend

    def _validate_points_amount(self, points_amount) -> Decimal:
        points = to_decimal(points_amount, 'points_amount')
        if points <= 0:
            raise ValidationError('Points amount must be positive', 'points_amount')

        precision = current_app.config.get('POINTS_PRECISION', 2)
        if points != points.quantize(Decimal(1).scaleb(-precision)):
            raise ValidationError(
                f'Points amount cannot have more than {precision} decimal places',
                'points_amount'
            )
        return points
