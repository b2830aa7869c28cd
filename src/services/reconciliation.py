"""
Balance Reconciliation Service

Account balances and credit card used amounts are caches of the transaction
ledger. They are recomputed on every read and written back when the stored
value has drifted by more than BALANCE_TOLERANCE.

Accounts sum completed transactions: income adds, expense subtracts.
Cards sum pending and completed purchases and subtract the settlements that
reference the card, so a fully paid invoice recomputes to zero.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import BALANCE_TOLERANCE
from src.crud import crud_account, crud_bill, crud_credit_card, crud_transaction
from src.db.core import (
    AccountDB,
    CreditCardDB,
    TransactionDB,
    NotFoundError,
    TransactionType,
    TransactionStatus,
    BillStatus,
    SourceType,
    SETTLEMENT_SOURCES,
)
from src.models.settlement import DerivedBalanceResponse, ReconciliationReport
from src.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DerivedBalance:
    entity_id: int
    stored: Decimal
    computed: Decimal
    # False when the ledger query failed and the stored value was kept
    recomputed: bool = True

    @property
    def drifted(self) -> bool:
        return self.recomputed and abs(self.computed - self.stored) > BALANCE_TOLERANCE

    def to_response(self) -> DerivedBalanceResponse:
        return DerivedBalanceResponse(
            entity_id=self.entity_id,
            stored=self.stored,
            computed=self.computed,
            recomputed=self.recomputed,
            drifted=self.drifted,
        )


# ===== PURE FOLDS =====

def compute_account_balance(transactions: Iterable[TransactionDB]) -> Decimal:
    """Sum of completed income minus completed expenses"""
    total = Decimal('0.00')
    for transaction in transactions:
        if transaction.status != TransactionStatus.COMPLETED:
            continue
        if transaction.transaction_type == TransactionType.INCOME:
            total += transaction.amount
        elif transaction.transaction_type == TransactionType.EXPENSE:
            total -= transaction.amount
    return total


def compute_card_used_amount(transactions: Iterable[TransactionDB]) -> Decimal:
    """Outstanding card balance: purchases minus settlements, cancelled ignored"""
    total = Decimal('0.00')
    for transaction in transactions:
        if transaction.transaction_type != TransactionType.EXPENSE:
            continue
        if transaction.status == TransactionStatus.CANCELLED:
            continue
        if transaction.source_type in SETTLEMENT_SOURCES:
            total -= transaction.amount
        else:
            total += transaction.amount
    return total


# ===== RECOMPUTATION =====

def recompute_account_balance(db: Session, account: AccountDB) -> DerivedBalance:
    """Recompute one account. A failing ledger query keeps the stored balance."""
    stored = account.balance if account.balance is not None else Decimal('0.00')
    try:
        transactions = crud_transaction.read_completed_for_account(db, account.id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not recompute balance for account {account.id}: {e}")
        return DerivedBalance(entity_id=account.id, stored=stored, computed=stored, recomputed=False)

    return DerivedBalance(entity_id=account.id, stored=stored, computed=compute_account_balance(transactions))


def recompute_account_balances(db: Session, accounts: Iterable[AccountDB]) -> List[DerivedBalance]:
    return [recompute_account_balance(db, account) for account in accounts]


def recompute_card_used_amount(db: Session, card: CreditCardDB) -> DerivedBalance:
    """Recompute one card. A failing ledger query keeps the stored used amount."""
    stored = card.used_amount if card.used_amount is not None else Decimal('0.00')
    try:
        transactions = crud_transaction.read_expenses_for_card(db, card.id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not recompute used amount for credit card {card.id}: {e}")
        return DerivedBalance(entity_id=card.id, stored=stored, computed=stored, recomputed=False)

    return DerivedBalance(entity_id=card.id, stored=stored, computed=compute_card_used_amount(transactions))


def recompute_card_used_amounts(db: Session, cards: Iterable[CreditCardDB]) -> List[DerivedBalance]:
    return [recompute_card_used_amount(db, card) for card in cards]


# ===== WRITE-BACK =====

def _persist(session_factory: Callable[[], Session], derived: Iterable[DerivedBalance],
             writer: Callable[[Session, int, Decimal], object], label: str) -> int:
    written = 0
    for item in derived:
        if not item.drifted:
            continue
        db = session_factory()
        try:
            writer(db, item.entity_id, item.computed)
            written += 1
            logger.info(f"Corrected {label} {item.entity_id}: {item.stored} -> {item.computed}")
        except (SQLAlchemyError, NotFoundError, ValueError) as e:
            db.rollback()
            logger.warning(f"Failed to persist derived value for {label} {item.entity_id}: {e}")
        finally:
            db.close()
    return written


def persist_account_balances(session_factory: Callable[[], Session], derived: Iterable[DerivedBalance]) -> int:
    """
    Write drifted account balances back to storage, one session per account.
    Failures are logged and never raised. Returns the number of rows written.
    """
    return _persist(session_factory, derived, crud_account.update_account_balance, "account")


def persist_card_used_amounts(session_factory: Callable[[], Session], derived: Iterable[DerivedBalance]) -> int:
    """Write drifted card used amounts back to storage; same contract as persist_account_balances"""
    return _persist(session_factory, derived, crud_credit_card.update_used_amount, "credit card")


# ===== INCONSISTENCY DETECTION =====

def find_unsettled_paid_bills(db: Session, user_id: str) -> List[int]:
    """
    Paid bills with no settlement: no transaction carries their bill_id and
    the bill does not point at an existing invoice payment. An invoice paid
    for the card before the bill was marked paid does not count.
    """
    settlements = crud_transaction.read_settlements(db, user_id)
    settled_bill_ids = {t.bill_id for t in settlements if t.bill_id is not None}
    invoice_ids = {t.id for t in settlements if t.source_type == SourceType.INVOICE_PAYMENT}

    unsettled = []
    for bill in crud_bill.read_db_bills(db, user_id):
        if bill.status != BillStatus.PAID or bill.id in settled_bill_ids:
            continue
        if bill.invoice_transaction_id is not None and bill.invoice_transaction_id in invoice_ids:
            continue
        unsettled.append(bill.id)
    return unsettled


def find_orphan_settlements(db: Session, user_id: str) -> List[int]:
    """Bill settlements whose bill is missing or no longer paid"""
    orphans = []
    for transaction in crud_transaction.read_settlements(db, user_id):
        if transaction.source_type != SourceType.BILL_PAYMENT:
            continue
        bill = crud_bill.read_db_bill(db, transaction.bill_id, user_id) if transaction.bill_id else None
        if bill is None or bill.status != BillStatus.PAID:
            orphans.append(transaction.id)
    return orphans


def build_reconciliation_report(db: Session, user_id: str) -> ReconciliationReport:
    accounts = recompute_account_balances(db, crud_account.read_db_accounts(db, user_id))
    cards = recompute_card_used_amounts(db, crud_credit_card.read_db_credit_cards(db, user_id))

    report = ReconciliationReport(
        accounts=[item.to_response() for item in accounts],
        credit_cards=[item.to_response() for item in cards],
        unsettled_paid_bill_ids=find_unsettled_paid_bills(db, user_id),
        orphan_settlement_ids=find_orphan_settlements(db, user_id),
    )

    if report.unsettled_paid_bill_ids or report.orphan_settlement_ids:
        logger.warning(
            f"User {user_id} has {len(report.unsettled_paid_bill_ids)} unsettled paid bills "
            f"and {len(report.orphan_settlement_ids)} orphan settlements"
        )
    return report
