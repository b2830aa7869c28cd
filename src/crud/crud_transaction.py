from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import desc
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from src.db.core import (
    TransactionDB,
    AccountDB,
    CreditCardDB,
    CategoryDB,
    NotFoundError,
    TransactionType,
    TransactionStatus,
    SourceType,
    SETTLEMENT_SOURCES,
)
from src.models.transaction import TransactionCreate, TransactionUpdate, TransactionFilter
from src.logging_config import get_logger

logger = get_logger(__name__)


# ===== UTILITY FUNCTIONS =====

def _verify_links(db: Session, user_id: str, account_id: Optional[int], credit_card_id: Optional[int],
                  category_id: Optional[int]) -> None:
    """Verify that every referenced entity exists and belongs to the user"""

    if account_id:
        account = db.query(AccountDB).filter(AccountDB.id == account_id, AccountDB.user_id == user_id).first()
        if not account:
            raise NotFoundError(f"Account with id {account_id} not found")

    if credit_card_id:
        card = db.query(CreditCardDB).filter(CreditCardDB.id == credit_card_id, CreditCardDB.user_id == user_id).first()
        if not card:
            raise NotFoundError(f"Credit card with id {credit_card_id} not found")

    if category_id:
        category = db.query(CategoryDB).filter(CategoryDB.id == category_id, CategoryDB.user_id == user_id).first()
        if not category:
            raise NotFoundError(f"Category with id {category_id} not found")


# ===== DATABASE OPERATIONS =====

def create_db_transaction(db: Session, user_id: str, transaction_data: TransactionCreate) -> TransactionDB:
    """Create a new manual transaction"""

    _verify_links(db, user_id, transaction_data.account_id, transaction_data.credit_card_id,
                  transaction_data.category_id)

    db_transaction = TransactionDB(
        user_id=user_id,
        account_id=transaction_data.account_id,
        credit_card_id=transaction_data.credit_card_id,
        category_id=transaction_data.category_id,
        description=transaction_data.description,
        amount=transaction_data.amount,
        transaction_type=TransactionType(transaction_data.transaction_type.value),
        status=TransactionStatus(transaction_data.status.value),
        transaction_date=transaction_data.transaction_date,
        source_type=SourceType.MANUAL,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_transaction)
        db.commit()
        db.refresh(db_transaction)
        return db_transaction
    except IntegrityError:
        db.rollback()
        raise ValueError("Transaction creation failed due to database constraint")


def create_settlement_transaction(db: Session, user_id: str, description: str, amount: Decimal,
                                  account_id: int, source_type: SourceType,
                                  transaction_date: Optional[date] = None,
                                  bill_id: Optional[int] = None,
                                  credit_card_id: Optional[int] = None) -> TransactionDB:
    """
    Insert the completed expense that settles a bill or a card invoice.

    The unique constraint on bill_id rejects a second settlement for the same bill.
    """
    db_transaction = TransactionDB(
        user_id=user_id,
        account_id=account_id,
        credit_card_id=credit_card_id,
        bill_id=bill_id,
        description=description,
        amount=round(amount, 2),
        transaction_type=TransactionType.EXPENSE,
        status=TransactionStatus.COMPLETED,
        transaction_date=transaction_date or date.today(),
        source_type=source_type,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_transaction)
        db.commit()
        db.refresh(db_transaction)
        return db_transaction
    except IntegrityError:
        db.rollback()
        raise ValueError(f"A settlement transaction already exists for bill {bill_id}")


def read_db_transaction(db: Session, transaction_id: int, user_id: Optional[str] = None) -> Optional[TransactionDB]:
    """Read a transaction by ID"""

    query = db.query(TransactionDB).filter(TransactionDB.id == transaction_id)

    if user_id:
        query = query.filter(TransactionDB.user_id == user_id)

    return query.first()


def read_db_transactions(db: Session, user_id: str, filters: Optional[TransactionFilter] = None,
                         skip: int = 0, limit: int = 100) -> List[TransactionDB]:
    """Read transactions with filtering and pagination, most recent first"""

    query = db.query(TransactionDB).filter(TransactionDB.user_id == user_id)

    if filters:
        if filters.account_id:
            query = query.filter(TransactionDB.account_id == filters.account_id)

        if filters.credit_card_id:
            query = query.filter(TransactionDB.credit_card_id == filters.credit_card_id)

        if filters.bill_id:
            query = query.filter(TransactionDB.bill_id == filters.bill_id)

        if filters.category_id:
            query = query.filter(TransactionDB.category_id == filters.category_id)

        if filters.transaction_type:
            query = query.filter(TransactionDB.transaction_type == TransactionType(filters.transaction_type.value))

        if filters.status:
            query = query.filter(TransactionDB.status == TransactionStatus(filters.status.value))

        if filters.date_from:
            query = query.filter(TransactionDB.transaction_date >= filters.date_from)

        if filters.date_to:
            query = query.filter(TransactionDB.transaction_date <= filters.date_to)

    query = query.order_by(desc(TransactionDB.transaction_date), desc(TransactionDB.id))

    return query.offset(skip).limit(limit).all()


def read_completed_for_account(db: Session, account_id: int) -> List[TransactionDB]:
    """Transactions by account_id + status == completed"""
    return db.query(TransactionDB).filter(
        TransactionDB.account_id == account_id,
        TransactionDB.status == TransactionStatus.COMPLETED
    ).all()


def read_expenses_for_card(db: Session, credit_card_id: int) -> List[TransactionDB]:
    """Transactions by credit_card_id + type == expense"""
    return db.query(TransactionDB).filter(
        TransactionDB.credit_card_id == credit_card_id,
        TransactionDB.transaction_type == TransactionType.EXPENSE
    ).all()


def read_settlements(db: Session, user_id: str) -> List[TransactionDB]:
    """All transactions created by the settlement operations"""
    return db.query(TransactionDB).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.source_type.in_(SETTLEMENT_SOURCES)
    ).all()


def update_db_transaction(db: Session, transaction_id: int, user_id: str,
                          transaction_updates: TransactionUpdate) -> TransactionDB:
    """Update an existing transaction. Derived balances pick the change up on the next read."""

    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")

    if db_transaction.source_type in SETTLEMENT_SOURCES:
        raise ValueError("Settlement transactions change only by reverting the payment or deleting the bill")

    update_data = transaction_updates.model_dump(exclude_unset=True)

    _verify_links(db, user_id, update_data.get('account_id'), update_data.get('credit_card_id'),
                  update_data.get('category_id'))

    for field, value in update_data.items():
        if field == 'transaction_type' and value:
            setattr(db_transaction, field, TransactionType(value.value))
        elif field == 'status' and value:
            setattr(db_transaction, field, TransactionStatus(value.value))
        else:
            setattr(db_transaction, field, value)

    db_transaction.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_transaction)
        return db_transaction
    except IntegrityError:
        db.rollback()
        raise ValueError("Transaction update failed due to database constraint")


def delete_db_transaction(db: Session, transaction_id: int, user_id: str) -> bool:
    """Delete a transaction by id"""

    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")

    if db_transaction.bill_id is not None or db_transaction.source_type in SETTLEMENT_SOURCES:
        raise ValueError("Settlement transactions are removed by reverting the bill payment")

    db.delete(db_transaction)
    db.commit()
    return True


def delete_transactions_by_bill(db: Session, user_id: str, bill_id: int) -> int:
    """Delete the settlement linked to a bill. Returns the number of rows removed (0 is not an error)."""

    deleted = db.query(TransactionDB).filter(
        TransactionDB.bill_id == bill_id,
        TransactionDB.user_id == user_id
    ).delete(synchronize_session=False)
    db.commit()
    return deleted
