"""
Wallet Models
ITC token balances and their signed transaction history.

itc_balance only changes together with a matching ItcTransaction row.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, CheckConstraint

from app.core.database import Base


class TransactionType:
    """Transaction type constants."""
    DEBIT = "debit"
    CREDIT = "credit"


class UserWallet(Base):
    """Per-user ITC balance."""

    __tablename__ = "user_wallets"

    user_id = Column(String, primary_key=True)
    itc_balance = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("itc_balance >= 0", name="ck_user_wallets_itc_non_negative"),
    )

    def __repr__(self):
        return f"<UserWallet {self.user_id} itc={self.itc_balance}>"


class ItcTransaction(Base):
    """Signed ledger entry. Debits are negative, credits positive."""

    __tablename__ = "itc_transactions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    reference = Column(String, nullable=True)
    balance_after = Column(Integer, nullable=True)

    job_id = Column(String, nullable=True, index=True)
    # A debit can be refunded at most once
    refund_of = Column(String, ForeignKey("itc_transactions.id"), nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<ItcTransaction {self.id} {self.type} {self.amount:+d}>"
