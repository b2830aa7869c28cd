"""
Settlement Service

Multi-step operations that touch bills, transactions and credit cards. Each
step commits on its own; there is no transaction spanning the steps. Step
order biases a partial failure toward a detectable state (a paid bill without
a settlement) rather than a duplicate payment, and a failure after the first
step raises SettlementStepError describing what was already applied.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.crud import crud_account, crud_bill, crud_credit_card, crud_transaction
from src.db.core import AccountDB, AccountType, BillStatus, NotFoundError, SourceType
from src.models.settlement import (
    BillPaymentResult,
    BillReversalResult,
    InvoicePaymentResult,
    BillCleanupResult,
)
from src.models.bill import BillStatusEnum
from src.services import reconciliation
from src.logging_config import get_logger

logger = get_logger(__name__)


class BillStateConflictError(Exception):
    """The bill is not in a state that allows the operation (e.g. already paid)"""
    pass


class InsufficientFundsError(ValueError):
    pass


class SettlementStepError(Exception):
    """A step failed after earlier steps were committed"""

    def __init__(self, operation: str, completed_steps: List[str], failed_step: str, cause: Exception):
        self.operation = operation
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step
        self.cause = cause
        super().__init__(
            f"{operation} failed at '{failed_step}' after {completed_steps}: {cause}"
        )


def _paying_account(db: Session, user_id: str, account_id: int, amount: Decimal) -> AccountDB:
    """Load the account a payment is debited from and check it can cover the amount"""
    account = crud_account.read_db_account(db, account_id, user_id)
    if not account:
        raise NotFoundError(f"Account with id {account_id} not found")

    if account.account_type == AccountType.CREDIT:
        raise ValueError("Payments cannot be made from a credit account")

    available = reconciliation.recompute_account_balance(db, account).computed
    if available < amount:
        raise InsufficientFundsError(
            f"Account {account_id} balance {available} does not cover {amount}"
        )
    return account


# ===== BILL PAYMENT =====

def pay_bill(db: Session, user_id: str, bill_id: int, account_id: int,
             payment_date: Optional[date] = None) -> BillPaymentResult:
    """
    Pay a bill from an account.

    1. mark_bill_paid: conditional pending/overdue -> paid. Losing a race to
       another payment raises BillStateConflictError before anything is written.
    2. create_settlement: the expense transaction carrying bill_id.
    """
    operation = "pay_bill"
    bill = crud_bill.read_db_bill(db, bill_id, user_id)
    if not bill:
        raise NotFoundError(f"Bill with id {bill_id} not found")
    if bill.status == BillStatus.PAID:
        raise BillStateConflictError(f"Bill {bill_id} is already paid")

    amount = bill.amount
    description = bill.description
    credit_card_id = bill.credit_card_id
    _paying_account(db, user_id, account_id, amount)

    logger.info(f"Paying bill {bill_id} ({amount}) from account {account_id}")

    if not crud_bill.mark_bill_paid_if_payable(db, bill_id, user_id):
        raise BillStateConflictError(f"Bill {bill_id} was settled by another request")
    completed = ["mark_bill_paid"]

    try:
        settlement = crud_transaction.create_settlement_transaction(
            db,
            user_id=user_id,
            description=f"Payment: {description}",
            amount=amount,
            account_id=account_id,
            source_type=SourceType.BILL_PAYMENT,
            transaction_date=payment_date,
            bill_id=bill_id,
            credit_card_id=credit_card_id,
        )
    except (SQLAlchemyError, ValueError) as e:
        db.rollback()
        logger.error(f"Bill {bill_id} is marked paid but has no settlement: {e}")
        raise SettlementStepError(operation, completed, "create_settlement", e) from e

    account = crud_account.read_db_account(db, account_id, user_id)
    balance = reconciliation.recompute_account_balance(db, account).computed

    return BillPaymentResult(
        bill_id=bill_id,
        transaction_id=settlement.id,
        account_id=account_id,
        amount=amount,
        account_balance=balance,
    )


def revert_bill_payment(db: Session, user_id: str, bill_id: int) -> BillReversalResult:
    """
    Undo a bill payment. Safe to repeat.

    1. delete_settlement: remove transactions carrying bill_id; none found is tolerated.
    2. reset_bill_status: bill back to pending.

    Bills settled by a card invoice payment are refused: the invoice covers
    the whole card and stays in place.
    """
    operation = "revert_bill_payment"
    bill = crud_bill.read_db_bill(db, bill_id, user_id)
    if not bill:
        raise NotFoundError(f"Bill with id {bill_id} not found")
    if bill.invoice_transaction_id is not None:
        raise BillStateConflictError(
            f"Bill {bill_id} was settled by invoice payment {bill.invoice_transaction_id} and cannot be reverted"
        )

    removed = crud_transaction.delete_transactions_by_bill(db, user_id, bill_id)
    if removed == 0:
        logger.info(f"No settlement found for bill {bill_id}, treating as already reverted")
    completed = ["delete_settlement"]

    try:
        crud_bill.set_bill_status(db, bill_id, user_id, BillStatus.PENDING)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Settlement for bill {bill_id} removed but bill is still paid: {e}")
        raise SettlementStepError(operation, completed, "reset_bill_status", e) from e

    logger.info(f"Reverted payment of bill {bill_id}")
    return BillReversalResult(
        bill_id=bill_id,
        transactions_removed=removed,
        bill_status=BillStatusEnum.PENDING,
    )


def delete_bill(db: Session, user_id: str, bill_id: int) -> bool:
    """Remove a bill together with its settlement transaction, settlement first"""
    operation = "delete_bill"
    bill = crud_bill.read_db_bill(db, bill_id, user_id)
    if not bill:
        raise NotFoundError(f"Bill with id {bill_id} not found")

    crud_transaction.delete_transactions_by_bill(db, user_id, bill_id)
    try:
        return crud_bill.delete_db_bill(db, bill_id, user_id)
    except (SQLAlchemyError, ValueError) as e:
        db.rollback()
        raise SettlementStepError(operation, ["delete_settlement"], "delete_bill", e) from e


# ===== CREDIT CARD INVOICE =====

def pay_credit_card_invoice(db: Session, user_id: str, credit_card_id: int, account_id: int,
                            payment_date: Optional[date] = None) -> InvoicePaymentResult:
    """
    Settle a card's whole outstanding amount from an account.

    1. create_settlement: invoice-payment expense for the derived used amount.
    2. reset_used_amount: write 0 to the card; recomputation agrees since the
       settlement offsets the purchases.
    3. settle_card_bills: the card's pending bills become paid.
    """
    operation = "pay_credit_card_invoice"
    card = crud_credit_card.read_db_credit_card(db, credit_card_id, user_id)
    if not card:
        raise NotFoundError(f"Credit card with id {credit_card_id} not found")

    amount = reconciliation.recompute_card_used_amount(db, card).computed
    if amount <= 0:
        raise ValueError(f"Credit card {credit_card_id} has no outstanding amount")

    _paying_account(db, user_id, account_id, amount)

    logger.info(f"Paying invoice of credit card {credit_card_id} ({amount}) from account {account_id}")

    settlement = crud_transaction.create_settlement_transaction(
        db,
        user_id=user_id,
        description=f"Invoice payment {card.name} - {card.bank}",
        amount=amount,
        account_id=account_id,
        source_type=SourceType.INVOICE_PAYMENT,
        transaction_date=payment_date,
        credit_card_id=credit_card_id,
    )
    completed = ["create_settlement"]

    try:
        crud_credit_card.update_used_amount(db, credit_card_id, Decimal('0.00'))
        completed.append("reset_used_amount")
        bills_settled = crud_bill.mark_card_bills_paid(db, credit_card_id, user_id, settlement.id)
    except (SQLAlchemyError, NotFoundError, ValueError) as e:
        db.rollback()
        failed = "settle_card_bills" if "reset_used_amount" in completed else "reset_used_amount"
        logger.error(f"Invoice payment for credit card {credit_card_id} stopped at {failed}: {e}")
        raise SettlementStepError(operation, completed, failed, e) from e

    return InvoicePaymentResult(
        credit_card_id=credit_card_id,
        transaction_id=settlement.id,
        account_id=account_id,
        amount=amount,
        bills_settled=bills_settled,
    )


def cleanup_duplicate_card_bills(db: Session, user_id: str) -> BillCleanupResult:
    """Keep the oldest pending bill per card and delete the rest"""
    bills = crud_bill.read_pending_card_bills(db, user_id)

    seen_cards = set()
    removed = 0
    for bill in bills:
        if bill.credit_card_id not in seen_cards:
            seen_cards.add(bill.credit_card_id)
            continue
        try:
            crud_bill.delete_db_bill(db, bill.id, user_id)
            removed += 1
        except (SQLAlchemyError, ValueError) as e:
            db.rollback()
            logger.error(f"Error deleting duplicate bill {bill.id}: {e}")

    logger.info(f"Bill cleanup for user {user_id} removed {removed} duplicates")
    return BillCleanupResult(duplicates_removed=removed)
