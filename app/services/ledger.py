"""
ITC Ledger Service
Debits a user's token balance before paid work and refunds it if that work fails.

Guarantees:
    - balance changes and transaction rows are written in the same commit
    - debit is an atomic conditional decrement (no read-then-write race)
    - a debit is refunded at most once (unique `refund_of`)
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import NonRetryableError
from app.models.wallet import UserWallet, ItcTransaction, TransactionType

logger = logging.getLogger(__name__)


class InsufficientBalanceError(NonRetryableError):
    """Wallet balance is below the cost of the step."""

    def __init__(self, user_id: str, required: int, available: int):
        super().__init__(
            f"Insufficient ITC balance: required {required}, available {available}",
            details={"user_id": user_id, "required": required, "available": available},
        )
        self.required = required
        self.available = available


class WalletNotFoundError(NonRetryableError):
    """User has no wallet row."""

    def __init__(self, user_id: str):
        super().__init__(f"Wallet not found for user {user_id}", details={"user_id": user_id})


class Ledger:
    """ITC debit/refund operations on top of a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, user_id: str) -> int:
        balance = self.db.execute(
            select(UserWallet.itc_balance).where(UserWallet.user_id == user_id)
        ).scalar_one_or_none()
        if balance is None:
            raise WalletNotFoundError(user_id)
        return balance

    def debit(
        self,
        user_id: str,
        amount: int,
        reference: str,
        job_id: Optional[str] = None,
    ) -> ItcTransaction:
        """
        Atomically check-and-decrement the balance and record a debit.

        Raises:
            InsufficientBalanceError: Balance below `amount` (nothing written)
            WalletNotFoundError: No wallet for the user
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")

        result = self.db.execute(
            update(UserWallet)
            .where(UserWallet.user_id == user_id, UserWallet.itc_balance >= amount)
            .values(itc_balance=UserWallet.itc_balance - amount, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            # Nothing was decremented; find out why
            available = self.get_balance(user_id)
            logger.info(
                f"[Ledger] Debit refused for {user_id}: required {amount}, available {available}"
            )
            raise InsufficientBalanceError(user_id, amount, available)

        balance_after = self.get_balance(user_id)
        transaction = ItcTransaction(
            id=f"itx_{uuid.uuid4().hex[:16]}",
            user_id=user_id,
            amount=-amount,
            type=TransactionType.DEBIT,
            reference=reference,
            balance_after=balance_after,
            job_id=job_id,
        )
        self.db.add(transaction)
        self.db.commit()

        logger.info(f"[Ledger] Debited {amount} ITC from {user_id} ({reference}), balance={balance_after}")
        return transaction

    def find_refund(self, debit_id: str) -> Optional[ItcTransaction]:
        return (
            self.db.query(ItcTransaction)
            .filter(ItcTransaction.refund_of == debit_id)
            .first()
        )

    def refund(self, debit: ItcTransaction, reason: str) -> ItcTransaction:
        """
        Credit back exactly what `debit` took.

        Calling this again for the same debit returns the existing refund. Losing
        a concurrent refund race rolls the session back, so callers commit their
        own pending changes first.
        """
        if debit.type != TransactionType.DEBIT:
            raise ValueError(f"Transaction {debit.id} is not a debit")

        existing = self.find_refund(debit.id)
        if existing:
            logger.warning(f"[Ledger] Debit {debit.id} already refunded by {existing.id}")
            return existing

        amount = -debit.amount
        try:
            self.db.execute(
                update(UserWallet)
                .where(UserWallet.user_id == debit.user_id)
                .values(itc_balance=UserWallet.itc_balance + amount, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            balance_after = self.get_balance(debit.user_id)
            refund = ItcTransaction(
                id=f"itx_{uuid.uuid4().hex[:16]}",
                user_id=debit.user_id,
                amount=amount,
                type=TransactionType.CREDIT,
                reference=f"refund:{reason}"[:255],
                balance_after=balance_after,
                job_id=debit.job_id,
                refund_of=debit.id,
            )
            self.db.add(refund)
            self.db.commit()
        except IntegrityError:
            # Another writer refunded this debit first
            self.db.rollback()
            existing = self.find_refund(debit.id)
            if existing is None:
                raise
            return existing

        logger.info(f"[Ledger] Refunded {amount} ITC to {debit.user_id} for debit {debit.id}: {reason}")
        return refund

    def refund_job(self, job_id: str, reason: str) -> List[ItcTransaction]:
        """Refund every debit taken for a job that has not been refunded yet."""
        debits = (
            self.db.query(ItcTransaction)
            .filter(ItcTransaction.job_id == job_id, ItcTransaction.type == TransactionType.DEBIT)
            .order_by(ItcTransaction.created_at)
            .all()
        )
        return [self.refund(debit, reason) for debit in debits if not self.find_refund(debit.id)]

    def get_transaction(self, transaction_id: str) -> Optional[ItcTransaction]:
        return self.db.get(ItcTransaction, transaction_id)
