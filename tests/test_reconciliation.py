"""
Tests for derived balances.

Account balances and card used amounts are recomputed from the ledger; the
stored values are only written back when they drift.
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from sqlalchemy.exc import SQLAlchemyError

from src.crud import crud_account, crud_bill, crud_credit_card, crud_transaction
from src.db.core import TransactionType, TransactionStatus, SourceType, BillStatus
from src.models.transaction import TransactionTypeEnum, TransactionStatusEnum
from src.services import reconciliation, settlement
from src.services.reconciliation import DerivedBalance
from conftest import USER_ID


def entry(amount, transaction_type=TransactionType.EXPENSE, status=TransactionStatus.COMPLETED,
          source_type=SourceType.MANUAL):
    return SimpleNamespace(
        amount=Decimal(amount), transaction_type=transaction_type, status=status, source_type=source_type
    )


class TestFolds:
    """The pure balance folds over transaction lists."""

    def test_account_balance_counts_completed_only(self):
        transactions = [
            entry("1000.00", TransactionType.INCOME),
            entry("300.00"),
            entry("50.00", status=TransactionStatus.PENDING),
            entry("20.00", status=TransactionStatus.CANCELLED),
            entry("5.00", TransactionType.INCOME, status=TransactionStatus.PENDING),
        ]
        assert reconciliation.compute_account_balance(transactions) == Decimal("700.00")

    def test_empty_ledger_is_zero(self):
        assert reconciliation.compute_account_balance([]) == Decimal("0.00")
        assert reconciliation.compute_card_used_amount([]) == Decimal("0.00")

    def test_card_used_amount_includes_pending_and_skips_cancelled(self):
        transactions = [
            entry("100.00"),
            entry("50.00", status=TransactionStatus.PENDING),
            entry("30.00", status=TransactionStatus.CANCELLED),
        ]
        assert reconciliation.compute_card_used_amount(transactions) == Decimal("150.00")

    def test_card_settlements_offset_purchases(self):
        transactions = [
            entry("100.00"),
            entry("50.00", status=TransactionStatus.PENDING),
            entry("150.00", source_type=SourceType.INVOICE_PAYMENT),
        ]
        assert reconciliation.compute_card_used_amount(transactions) == Decimal("0.00")

    def test_card_ignores_income(self):
        transactions = [entry("100.00"), entry("40.00", TransactionType.INCOME)]
        assert reconciliation.compute_card_used_amount(transactions) == Decimal("100.00")


class TestDerivedBalance:

    def test_drift_within_tolerance_is_ignored(self):
        item = DerivedBalance(entity_id=1, stored=Decimal("100.00"), computed=Decimal("100.005"))
        assert not item.drifted

    def test_drift_above_tolerance(self):
        item = DerivedBalance(entity_id=1, stored=Decimal("100.00"), computed=Decimal("100.02"))
        assert item.drifted

    def test_failed_recompute_never_drifts(self):
        item = DerivedBalance(entity_id=1, stored=Decimal("100.00"), computed=Decimal("999.00"), recomputed=False)
        assert not item.drifted


class TestRecompute:
    """Recomputation against the database."""

    def test_account_balance_follows_ledger(self, db, make_account, make_transaction):
        account = make_account("1000.00")
        make_transaction("300.00", account_id=account.id)
        make_transaction("80.00", account_id=account.id, status=TransactionStatusEnum.PENDING)
        make_transaction("250.00", TransactionTypeEnum.INCOME, account_id=account.id)

        derived = reconciliation.recompute_account_balance(db, account)

        assert derived.recomputed
        assert derived.computed == Decimal("950.00")
        assert derived.stored == Decimal("1000.00")
        assert derived.drifted

    def test_card_used_amount_example(self, db, make_card, make_transaction):
        card = make_card()
        make_transaction("100.00", credit_card_id=card.id)
        make_transaction("50.00", credit_card_id=card.id, status=TransactionStatusEnum.PENDING)
        make_transaction("30.00", credit_card_id=card.id, status=TransactionStatusEnum.CANCELLED)

        derived = reconciliation.recompute_card_used_amount(db, card)

        assert derived.computed == Decimal("150.00")
        assert derived.stored == Decimal("0.00")

    def test_query_failure_keeps_stored_value(self, db, make_account, monkeypatch):
        account = make_account("1000.00")

        def broken(db, account_id):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(crud_transaction, "read_completed_for_account", broken)

        derived = reconciliation.recompute_account_balance(db, account)

        assert not derived.recomputed
        assert derived.computed == Decimal("1000.00")
        assert not derived.drifted

    def test_one_failing_account_does_not_block_the_others(self, db, make_account, monkeypatch):
        healthy = make_account("500.00", name="Healthy")
        failing = make_account("700.00", name="Failing")
        original = crud_transaction.read_completed_for_account

        def flaky(db, account_id):
            if account_id == failing.id:
                raise SQLAlchemyError("timeout")
            return original(db, account_id)

        monkeypatch.setattr(crud_transaction, "read_completed_for_account", flaky)

        results = {item.entity_id: item for item in reconciliation.recompute_account_balances(db, [healthy, failing])}

        assert results[healthy.id].recomputed
        assert results[healthy.id].computed == Decimal("500.00")
        assert not results[failing.id].recomputed


class TestPersist:
    """Write-back of drifted values."""

    def test_persist_corrects_drift_once(self, db, session_factory, make_account):
        account = make_account("1000.00")
        crud_account.update_account_balance(db, account.id, Decimal("4321.00"))

        derived = reconciliation.recompute_account_balances(db, [account])
        assert reconciliation.persist_account_balances(session_factory, derived) == 1

        db.expire_all()
        account = crud_account.read_db_account(db, account.id)
        assert account.balance == Decimal("1000.00")

        derived = reconciliation.recompute_account_balances(db, [account])
        assert not derived[0].drifted
        assert reconciliation.persist_account_balances(session_factory, derived) == 0

    def test_persist_skips_failures(self, db, session_factory, make_account, monkeypatch):
        first = make_account("100.00", name="First")
        second = make_account("200.00", name="Second")
        derived = [
            DerivedBalance(entity_id=first.id, stored=Decimal("0.00"), computed=Decimal("100.00")),
            DerivedBalance(entity_id=second.id, stored=Decimal("0.00"), computed=Decimal("200.00")),
        ]
        original = crud_account.update_account_balance

        def flaky(db, account_id, new_balance):
            if account_id == first.id:
                raise SQLAlchemyError("write rejected")
            return original(db, account_id, new_balance)

        monkeypatch.setattr(crud_account, "update_account_balance", flaky)

        assert reconciliation.persist_account_balances(session_factory, derived) == 1

    def test_persist_missing_entity_is_logged_not_raised(self, session_factory):
        derived = [DerivedBalance(entity_id=9999, stored=Decimal("0.00"), computed=Decimal("10.00"))]
        assert reconciliation.persist_card_used_amounts(session_factory, derived) == 0

    def test_card_write_back(self, db, session_factory, make_card, make_transaction):
        card = make_card()
        make_transaction("120.00", credit_card_id=card.id)

        derived = reconciliation.recompute_card_used_amounts(db, [card])
        assert reconciliation.persist_card_used_amounts(session_factory, derived) == 1

        db.expire_all()
        assert crud_credit_card.read_db_credit_card(db, card.id).used_amount == Decimal("120.00")


class TestInconsistencyDetection:

    def test_paid_bill_without_settlement_is_reported(self, db, make_bill):
        bill = make_bill()
        crud_bill.mark_bill_paid_if_payable(db, bill.id, USER_ID)

        assert reconciliation.find_unsettled_paid_bills(db, USER_ID) == [bill.id]

    def test_card_bill_paid_after_invoice_is_reported(self, db, make_account, make_card, make_bill,
                                                      make_transaction):
        account = make_account("1000.00")
        card = make_card()
        make_transaction("100.00", credit_card_id=card.id)
        invoiced = make_bill("100.00", credit_card_id=card.id, description="Covered by invoice")
        settlement.pay_credit_card_invoice(db, USER_ID, card.id, account.id)

        later = make_bill("40.00", credit_card_id=card.id, description="Opened after invoice")
        crud_bill.mark_bill_paid_if_payable(db, later.id, USER_ID)

        assert reconciliation.find_unsettled_paid_bills(db, USER_ID) == [later.id]
        assert invoiced.id not in reconciliation.find_unsettled_paid_bills(db, USER_ID)

    def test_settlement_for_unpaid_bill_is_orphaned(self, db, make_account, make_bill):
        account = make_account()
        bill = make_bill()
        settlement = crud_transaction.create_settlement_transaction(
            db, USER_ID, "Payment: Rent", Decimal("300.00"), account.id, SourceType.BILL_PAYMENT, bill_id=bill.id
        )

        assert reconciliation.find_orphan_settlements(db, USER_ID) == [settlement.id]

    def test_report_lists_every_entity(self, db, make_account, make_card):
        make_account("100.00", name="A")
        make_account("200.00", name="B")
        make_card()

        report = reconciliation.build_reconciliation_report(db, USER_ID)

        assert len(report.accounts) == 2
        assert len(report.credit_cards) == 1
        assert report.unsettled_paid_bill_ids == []
        assert report.orphan_settlement_ids == []
        assert all(not item.drifted for item in report.accounts)
