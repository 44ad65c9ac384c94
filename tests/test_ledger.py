import pytest

from app.models.wallet import ItcTransaction, TransactionType
from app.services.ledger import InsufficientBalanceError, Ledger, WalletNotFoundError


class TestDebit:

    def test_debit_decrements_and_records(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)

        transaction = ledger.debit("user-1", 30, reference="3d_angles:m3d-1", job_id="job-1")

        assert ledger.get_balance("user-1") == 70
        assert transaction.amount == -30
        assert transaction.type == TransactionType.DEBIT
        assert transaction.balance_after == 70
        assert transaction.job_id == "job-1"
        assert transaction.id.startswith("itx_")

    def test_insufficient_balance_writes_nothing(self, db, make_wallet):
        make_wallet(balance=10)
        ledger = Ledger(db)

        with pytest.raises(InsufficientBalanceError) as exc:
            ledger.debit("user-1", 20, reference="3d_concept:m3d-1")

        assert str(exc.value) == "Insufficient ITC balance: required 20, available 10"
        assert exc.value.retryable is False
        assert ledger.get_balance("user-1") == 10
        assert db.query(ItcTransaction).count() == 0

    def test_exact_balance_can_be_spent(self, db, make_wallet):
        make_wallet(balance=50)
        ledger = Ledger(db)
        ledger.debit("user-1", 50, reference="3d_convert:m3d-1")
        assert ledger.get_balance("user-1") == 0

    def test_second_debit_cannot_overdraw(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)
        ledger.debit("user-1", 60, reference="first")

        with pytest.raises(InsufficientBalanceError):
            ledger.debit("user-1", 60, reference="second")
        assert ledger.get_balance("user-1") == 40

    def test_missing_wallet(self, db):
        with pytest.raises(WalletNotFoundError):
            Ledger(db).debit("nobody", 10, reference="x")

    def test_amount_must_be_positive(self, db, make_wallet):
        make_wallet()
        with pytest.raises(ValueError):
            Ledger(db).debit("user-1", 0, reference="x")


class TestRefund:

    def test_refund_restores_balance(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)
        debit = ledger.debit("user-1", 30, reference="3d_angles:m3d-1", job_id="job-1")

        refund = ledger.refund(debit, "provider error")

        assert ledger.get_balance("user-1") == 100
        assert refund.amount == 30
        assert refund.type == TransactionType.CREDIT
        assert refund.refund_of == debit.id
        assert refund.job_id == "job-1"
        assert refund.reference == "refund:provider error"

    def test_refund_is_at_most_once(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)
        debit = ledger.debit("user-1", 30, reference="x")

        first = ledger.refund(debit, "boom")
        second = ledger.refund(debit, "boom again")

        assert first.id == second.id
        assert ledger.get_balance("user-1") == 100
        assert db.query(ItcTransaction).filter(ItcTransaction.refund_of == debit.id).count() == 1

    def test_refund_job_is_idempotent(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)
        ledger.debit("user-1", 20, reference="a", job_id="job-1")
        ledger.debit("user-1", 30, reference="b", job_id="job-1")
        ledger.debit("user-1", 5, reference="other job", job_id="job-2")

        refunds = ledger.refund_job("job-1", "failed")
        assert sorted(r.amount for r in refunds) == [20, 30]
        assert ledger.refund_job("job-1", "failed again") == []
        assert ledger.get_balance("user-1") == 95

    def test_only_debits_can_be_refunded(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)
        refund = ledger.refund(ledger.debit("user-1", 10, reference="x"), "r")
        with pytest.raises(ValueError):
            ledger.refund(refund, "refund of a refund")

    def test_long_reasons_are_truncated(self, db, make_wallet):
        make_wallet(balance=100)
        ledger = Ledger(db)
        refund = ledger.refund(ledger.debit("user-1", 10, reference="x"), "e" * 1000)
        assert len(refund.reference) == 255
