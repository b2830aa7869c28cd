from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from src.db.core import CreditCardDB, BillDB, TransactionDB, NotFoundError, CardStatus
from src.models.credit_card import CreditCardCreate, CreditCardUpdate


# ===== DATABASE OPERATIONS =====

def create_db_credit_card(db: Session, user_id: str, card_data: CreditCardCreate) -> CreditCardDB:
    """Create a new credit card with nothing used"""

    db_card = CreditCardDB(
        user_id=user_id,
        name=card_data.name,
        bank=card_data.bank,
        card_limit=card_data.card_limit,
        used_amount=Decimal("0.00"),
        due_date=card_data.due_date,
        closing_date=card_data.closing_date,
        status=CardStatus(card_data.status.value),
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_card)
        db.commit()
        db.refresh(db_card)
        return db_card
    except IntegrityError:
        db.rollback()
        raise ValueError("Credit card creation failed due to database constraint")


def read_db_credit_card(db: Session, card_id: int, user_id: Optional[str] = None) -> Optional[CreditCardDB]:
    query = db.query(CreditCardDB).filter(CreditCardDB.id == card_id)

    if user_id:
        query = query.filter(CreditCardDB.user_id == user_id)

    return query.first()


def read_db_credit_cards(db: Session, user_id: str) -> List[CreditCardDB]:
    return db.query(CreditCardDB).filter(
        CreditCardDB.user_id == user_id
    ).order_by(CreditCardDB.created_at.desc(), CreditCardDB.id.desc()).all()


def update_db_credit_card(db: Session, card_id: int, user_id: str, card_updates: CreditCardUpdate) -> CreditCardDB:
    db_card = read_db_credit_card(db, card_id, user_id)
    if not db_card:
        raise NotFoundError(f"Credit card with id {card_id} not found")

    update_data = card_updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field == 'status' and value:
            setattr(db_card, field, CardStatus(value.value))
        else:
            setattr(db_card, field, value)

    db_card.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_card)
        return db_card
    except IntegrityError:
        db.rollback()
        raise ValueError("Credit card update failed due to database constraint")


def delete_db_credit_card(db: Session, card_id: int, user_id: str) -> bool:
    """Delete a card, keeping its transactions and bills unlinked"""

    db_card = read_db_credit_card(db, card_id, user_id)
    if not db_card:
        raise NotFoundError(f"Credit card with id {card_id} not found")

    try:
        db.query(TransactionDB).filter(
            TransactionDB.credit_card_id == card_id
        ).update({TransactionDB.credit_card_id: None}, synchronize_session=False)
        db.query(BillDB).filter(
            BillDB.credit_card_id == card_id
        ).update({BillDB.credit_card_id: None}, synchronize_session=False)

        db.delete(db_card)
        db.commit()
        return True
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"Failed to delete credit card: {str(e)}")


def update_used_amount(db: Session, card_id: int, used_amount: Decimal) -> CreditCardDB:
    """Write the card's used_amount field directly"""

    db_card = db.query(CreditCardDB).filter(CreditCardDB.id == card_id).first()
    if not db_card:
        raise NotFoundError(f"Credit card with id {card_id} not found")

    db_card.used_amount = round(used_amount, 2)
    db_card.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_card)
        return db_card
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"Failed to update used amount: {str(e)}")
