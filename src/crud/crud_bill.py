from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime

from src.db.core import BillDB, AccountDB, CreditCardDB, NotFoundError, BillStatus
from src.models.bill import BillCreate, BillUpdate, BillStatusEnum


# Statuses a bill can be paid from
PAYABLE_STATUSES = (BillStatus.PENDING, BillStatus.OVERDUE)


# ===== DATABASE OPERATIONS =====

def _verify_links(db: Session, user_id: str, account_id: Optional[int], credit_card_id: Optional[int]) -> None:
    if account_id:
        account = db.query(AccountDB).filter(AccountDB.id == account_id, AccountDB.user_id == user_id).first()
        if not account:
            raise NotFoundError(f"Account with id {account_id} not found")

    if credit_card_id:
        card = db.query(CreditCardDB).filter(CreditCardDB.id == credit_card_id, CreditCardDB.user_id == user_id).first()
        if not card:
            raise NotFoundError(f"Credit card with id {credit_card_id} not found")


def create_db_bill(db: Session, user_id: str, bill_data: BillCreate) -> BillDB:
    """Create a new pending bill"""

    _verify_links(db, user_id, bill_data.account_id, bill_data.credit_card_id)

    db_bill = BillDB(
        user_id=user_id,
        description=bill_data.description,
        amount=bill_data.amount,
        due_date=bill_data.due_date,
        status=BillStatus.PENDING,
        category=bill_data.category,
        recurring=bill_data.recurring,
        credit_card_id=bill_data.credit_card_id,
        account_id=bill_data.account_id,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_bill)
        db.commit()
        db.refresh(db_bill)
        return db_bill
    except IntegrityError:
        db.rollback()
        raise ValueError("Bill creation failed due to database constraint")


def read_db_bill(db: Session, bill_id: int, user_id: Optional[str] = None) -> Optional[BillDB]:
    query = db.query(BillDB).filter(BillDB.id == bill_id)

    if user_id:
        query = query.filter(BillDB.user_id == user_id)

    return query.first()


def read_db_bills(db: Session, user_id: str, status: Optional[BillStatusEnum] = None,
                  credit_card_id: Optional[int] = None) -> List[BillDB]:
    """Read bills ordered by due date"""

    query = db.query(BillDB).filter(BillDB.user_id == user_id)

    if status:
        query = query.filter(BillDB.status == BillStatus(status.value))

    if credit_card_id:
        query = query.filter(BillDB.credit_card_id == credit_card_id)

    return query.order_by(BillDB.due_date.asc(), BillDB.id.asc()).all()


def read_pending_card_bills(db: Session, user_id: str) -> List[BillDB]:
    """Pending bills linked to a card, grouped by card and oldest first"""
    return db.query(BillDB).filter(
        BillDB.user_id == user_id,
        BillDB.status == BillStatus.PENDING,
        BillDB.credit_card_id.isnot(None)
    ).order_by(BillDB.credit_card_id.asc(), BillDB.created_at.asc(), BillDB.id.asc()).all()


def update_db_bill(db: Session, bill_id: int, user_id: str, bill_updates: BillUpdate) -> BillDB:
    db_bill = read_db_bill(db, bill_id, user_id)
    if not db_bill:
        raise NotFoundError(f"Bill with id {bill_id} not found")

    update_data = bill_updates.model_dump(exclude_unset=True)

    if 'status' in update_data and db_bill.status == BillStatus.PAID:
        raise ValueError("A paid bill is reopened by reverting its payment")

    _verify_links(db, user_id, update_data.get('account_id'), update_data.get('credit_card_id'))

    for field, value in update_data.items():
        if field == 'status' and value:
            setattr(db_bill, field, BillStatus(value.value))
        else:
            setattr(db_bill, field, value)

    db_bill.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_bill)
        return db_bill
    except IntegrityError:
        db.rollback()
        raise ValueError("Bill update failed due to database constraint")


def mark_bill_paid_if_payable(db: Session, bill_id: int, user_id: str) -> bool:
    """
    Conditionally flip a bill to paid.

    The status check and the write are a single UPDATE, so of two concurrent
    payment attempts only one sees a matching row. Returns whether this call
    performed the transition.
    """
    updated = db.query(BillDB).filter(
        BillDB.id == bill_id,
        BillDB.user_id == user_id,
        BillDB.status.in_(PAYABLE_STATUSES)
    ).update({BillDB.status: BillStatus.PAID, BillDB.updated_at: datetime.utcnow()}, synchronize_session=False)
    db.commit()
    return updated == 1


def set_bill_status(db: Session, bill_id: int, user_id: str, status: BillStatus) -> int:
    """Update a bill's status by id, dropping any invoice link. Returns the number of rows updated."""
    updated = db.query(BillDB).filter(
        BillDB.id == bill_id,
        BillDB.user_id == user_id
    ).update({
        BillDB.status: status,
        BillDB.invoice_transaction_id: None,
        BillDB.updated_at: datetime.utcnow()
    }, synchronize_session=False)
    db.commit()
    return updated


def mark_card_bills_paid(db: Session, credit_card_id: int, user_id: str, invoice_transaction_id: int) -> int:
    """Bulk-update the card's pending bills to paid, recording the invoice payment that settled them"""
    updated = db.query(BillDB).filter(
        BillDB.credit_card_id == credit_card_id,
        BillDB.user_id == user_id,
        BillDB.status == BillStatus.PENDING
    ).update({
        BillDB.status: BillStatus.PAID,
        BillDB.invoice_transaction_id: invoice_transaction_id,
        BillDB.updated_at: datetime.utcnow()
    }, synchronize_session=False)
    db.commit()
    return updated


def delete_db_bill(db: Session, bill_id: int, user_id: str) -> bool:
    db_bill = read_db_bill(db, bill_id, user_id)
    if not db_bill:
        raise NotFoundError(f"Bill with id {bill_id} not found")

    try:
        db.delete(db_bill)
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        raise ValueError("Cannot delete bill while a settlement transaction references it")
