"""
Tests for the settlement operations: bill payment, reversal, deletion,
credit card invoice payment and duplicate bill cleanup.
"""

import pytest
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from src.crud import crud_account, crud_bill, crud_credit_card, crud_transaction
from src.db.core import BillStatus, SourceType, TransactionDB, NotFoundError
from src.models.account import AccountTypeEnum
from src.models.bill import BillStatusEnum
from src.models.transaction import TransactionStatusEnum
from src.services import reconciliation, settlement
from src.services.settlement import BillStateConflictError, InsufficientFundsError, SettlementStepError
from conftest import USER_ID, OTHER_USER_ID


def account_balance(db, account_id):
    db.expire_all()
    account = crud_account.read_db_account(db, account_id)
    return reconciliation.recompute_account_balance(db, account).computed


def settlements_for(db, bill_id):
    return db.query(TransactionDB).filter(TransactionDB.bill_id == bill_id).all()


class TestPayBill:

    def test_pay_then_revert_restores_balance(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00")

        result = settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert result.amount == Decimal("300.00")
        assert result.account_balance == Decimal("700.00")
        assert crud_bill.read_db_bill(db, bill.id).status == BillStatus.PAID
        [payment] = settlements_for(db, bill.id)
        assert payment.source_type == SourceType.BILL_PAYMENT
        assert payment.id == result.transaction_id

        reversal = settlement.revert_bill_payment(db, USER_ID, bill.id)

        assert reversal.transactions_removed == 1
        assert reversal.bill_status == BillStatusEnum.PENDING
        assert settlements_for(db, bill.id) == []
        assert account_balance(db, account.id) == Decimal("1000.00")

    def test_overdue_bill_can_be_paid(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("100.00")
        crud_bill.set_bill_status(db, bill.id, USER_ID, BillStatus.OVERDUE)

        settlement.pay_bill(db, USER_ID, bill.id, account.id)

        db.expire_all()
        assert crud_bill.read_db_bill(db, bill.id).status == BillStatus.PAID

    def test_second_payment_is_a_conflict(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        settlement.pay_bill(db, USER_ID, bill.id, account.id)

        with pytest.raises(BillStateConflictError):
            settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert len(settlements_for(db, bill.id)) == 1
        assert account_balance(db, account.id) == Decimal("700.00")

    def test_conditional_update_has_a_single_winner(self, session_factory, make_bill):
        bill = make_bill("300.00")
        first, second = session_factory(), session_factory()
        try:
            # Both sessions see the bill as pending before either writes
            assert crud_bill.read_db_bill(first, bill.id).status == BillStatus.PENDING
            assert crud_bill.read_db_bill(second, bill.id).status == BillStatus.PENDING

            assert crud_bill.mark_bill_paid_if_payable(first, bill.id, USER_ID) is True
            assert crud_bill.mark_bill_paid_if_payable(second, bill.id, USER_ID) is False
        finally:
            first.close()
            second.close()

    def test_lost_race_writes_nothing(self, db, make_account, make_bill, monkeypatch):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        monkeypatch.setattr(crud_bill, "mark_bill_paid_if_payable", lambda db, bill_id, user_id: False)

        with pytest.raises(BillStateConflictError):
            settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert settlements_for(db, bill.id) == []

    def test_bill_id_is_unique_across_transactions(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        crud_transaction.create_settlement_transaction(
            db, USER_ID, "Payment: Rent", bill.amount, account.id, SourceType.BILL_PAYMENT, bill_id=bill.id
        )

        with pytest.raises(ValueError):
            crud_transaction.create_settlement_transaction(
                db, USER_ID, "Payment: Rent", bill.amount, account.id, SourceType.BILL_PAYMENT, bill_id=bill.id
            )

    def test_insufficient_funds_leaves_bill_pending(self, db, make_account, make_bill):
        account = make_account("100.00")
        bill = make_bill("300.00")

        with pytest.raises(InsufficientFundsError):
            settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert crud_bill.read_db_bill(db, bill.id).status == BillStatus.PENDING
        assert settlements_for(db, bill.id) == []

    def test_credit_account_cannot_pay(self, db, make_account, make_bill):
        account = make_account("5000.00", account_type=AccountTypeEnum.CREDIT)
        bill = make_bill("300.00")

        with pytest.raises(ValueError):
            settlement.pay_bill(db, USER_ID, bill.id, account.id)

    def test_other_users_bill_is_not_found(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00", user_id=OTHER_USER_ID)

        with pytest.raises(NotFoundError):
            settlement.pay_bill(db, USER_ID, bill.id, account.id)

    def test_failed_settlement_reports_completed_steps(self, db, make_account, make_bill, monkeypatch):
        account = make_account("1000.00")
        bill = make_bill("300.00")

        def broken(*args, **kwargs):
            raise SQLAlchemyError("insert failed")

        monkeypatch.setattr(crud_transaction, "create_settlement_transaction", broken)

        with pytest.raises(SettlementStepError) as excinfo:
            settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert excinfo.value.operation == "pay_bill"
        assert excinfo.value.completed_steps == ["mark_bill_paid"]
        assert excinfo.value.failed_step == "create_settlement"

        # The partial state is detectable rather than a duplicate payment
        assert reconciliation.find_unsettled_paid_bills(db, USER_ID) == [bill.id]
        assert account_balance(db, account.id) == Decimal("1000.00")


class TestRevertBillPayment:

    def test_revert_is_idempotent(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        settlement.pay_bill(db, USER_ID, bill.id, account.id)

        settlement.revert_bill_payment(db, USER_ID, bill.id)
        again = settlement.revert_bill_payment(db, USER_ID, bill.id)

        assert again.transactions_removed == 0
        db.expire_all()
        assert crud_bill.read_db_bill(db, bill.id).status == BillStatus.PENDING
        assert account_balance(db, account.id) == Decimal("1000.00")

    def test_reverted_bill_can_be_paid_again(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        settlement.pay_bill(db, USER_ID, bill.id, account.id)
        settlement.revert_bill_payment(db, USER_ID, bill.id)

        settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert len(settlements_for(db, bill.id)) == 1

    def test_invoice_settled_card_bill_is_refused(self, db, make_account, make_card, make_bill, make_transaction):
        account = make_account("1000.00")
        card = make_card()
        make_transaction("100.00", credit_card_id=card.id)
        card_bill = make_bill("100.00", credit_card_id=card.id)
        settlement.pay_credit_card_invoice(db, USER_ID, card.id, account.id)

        with pytest.raises(BillStateConflictError):
            settlement.revert_bill_payment(db, USER_ID, card_bill.id)

        db.expire_all()
        assert crud_bill.read_db_bill(db, card_bill.id).status == BillStatus.PAID
        with pytest.raises(BillStateConflictError):
            settlement.pay_bill(db, USER_ID, card_bill.id, account.id)
        assert settlements_for(db, card_bill.id) == []
        assert account_balance(db, account.id) == Decimal("900.00")

    def test_failed_status_reset_reports_completed_steps(self, db, make_account, make_bill, monkeypatch):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        settlement.pay_bill(db, USER_ID, bill.id, account.id)

        def broken(*args, **kwargs):
            raise SQLAlchemyError("update failed")

        monkeypatch.setattr(crud_bill, "set_bill_status", broken)

        with pytest.raises(SettlementStepError) as excinfo:
            settlement.revert_bill_payment(db, USER_ID, bill.id)

        assert excinfo.value.completed_steps == ["delete_settlement"]
        assert excinfo.value.failed_step == "reset_bill_status"
        assert reconciliation.find_unsettled_paid_bills(db, USER_ID) == [bill.id]


class TestDeleteBill:

    def test_delete_removes_settlement_first(self, db, make_account, make_bill):
        account = make_account("1000.00")
        bill = make_bill("300.00")
        settlement.pay_bill(db, USER_ID, bill.id, account.id)

        assert settlement.delete_bill(db, USER_ID, bill.id) is True

        assert crud_bill.read_db_bill(db, bill.id) is None
        assert settlements_for(db, bill.id) == []
        assert account_balance(db, account.id) == Decimal("1000.00")

    def test_delete_unknown_bill(self, db):
        with pytest.raises(NotFoundError):
            settlement.delete_bill(db, USER_ID, 12345)


class TestCreditCardInvoice:

    def test_invoice_payment_clears_card(self, db, make_account, make_card, make_bill, make_transaction):
        account = make_account("1000.00")
        card = make_card()
        make_transaction("100.00", credit_card_id=card.id)
        make_transaction("50.00", credit_card_id=card.id, status=TransactionStatusEnum.PENDING)
        make_transaction("30.00", credit_card_id=card.id, status=TransactionStatusEnum.CANCELLED)
        card_bill = make_bill("150.00", credit_card_id=card.id, description="Card invoice")

        result = settlement.pay_credit_card_invoice(db, USER_ID, card.id, account.id)

        assert result.amount == Decimal("150.00")
        assert result.bills_settled == 1

        db.expire_all()
        card = crud_credit_card.read_db_credit_card(db, card.id)
        assert card.used_amount == Decimal("0.00")
        assert reconciliation.recompute_card_used_amount(db, card).computed == Decimal("0.00")
        assert account_balance(db, account.id) == Decimal("850.00")
        assert crud_bill.read_db_bill(db, card_bill.id).status == BillStatus.PAID
        assert reconciliation.find_unsettled_paid_bills(db, USER_ID) == []
        assert crud_bill.read_db_bill(db, card_bill.id).invoice_transaction_id == result.transaction_id

    def test_nothing_outstanding(self, db, make_account, make_card):
        account = make_account("1000.00")
        card = make_card()

        with pytest.raises(ValueError):
            settlement.pay_credit_card_invoice(db, USER_ID, card.id, account.id)

    def test_invoice_larger_than_balance(self, db, make_account, make_card, make_transaction):
        account = make_account("50.00")
        card = make_card()
        make_transaction("100.00", credit_card_id=card.id)

        with pytest.raises(InsufficientFundsError):
            settlement.pay_credit_card_invoice(db, USER_ID, card.id, account.id)

    def test_failed_bill_settlement_reports_completed_steps(self, db, make_account, make_card,
                                                             make_transaction, monkeypatch):
        account = make_account("1000.00")
        card = make_card()
        make_transaction("100.00", credit_card_id=card.id)

        def broken(*args, **kwargs):
            raise SQLAlchemyError("bulk update failed")

        monkeypatch.setattr(crud_bill, "mark_card_bills_paid", broken)

        with pytest.raises(SettlementStepError) as excinfo:
            settlement.pay_credit_card_invoice(db, USER_ID, card.id, account.id)

        assert excinfo.value.completed_steps == ["create_settlement", "reset_used_amount"]
        assert excinfo.value.failed_step == "settle_card_bills"


class TestCleanupDuplicateBills:

    def test_keeps_oldest_pending_bill_per_card(self, db, make_card, make_bill):
        card = make_card(name="First")
        other = make_card(name="Second")
        kept = make_bill("100.00", credit_card_id=card.id, description="Invoice 1")
        make_bill("100.00", credit_card_id=card.id, description="Invoice 2")
        make_bill("100.00", credit_card_id=card.id, description="Invoice 3")
        single = make_bill("80.00", credit_card_id=other.id)
        unrelated = make_bill("300.00")

        result = settlement.cleanup_duplicate_card_bills(db, USER_ID)

        assert result.duplicates_removed == 2
        remaining = {b.id for b in crud_bill.read_db_bills(db, USER_ID)}
        assert remaining == {kept.id, single.id, unrelated.id}

    def test_paid_card_bills_are_left_alone(self, db, make_card, make_bill):
        card = make_card()
        paid = make_bill("100.00", credit_card_id=card.id)
        crud_bill.mark_bill_paid_if_payable(db, paid.id, USER_ID)
        make_bill("100.00", credit_card_id=card.id)

        assert settlement.cleanup_duplicate_card_bills(db, USER_ID).duplicates_removed == 0
