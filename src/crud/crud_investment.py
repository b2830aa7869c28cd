from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from src.db.core import InvestmentDB, InvestmentType, NotFoundError
from src.models.investment import InvestmentCreate, InvestmentUpdate, InvestmentSummary


# ===== DATABASE OPERATIONS =====

def create_db_investment(db: Session, user_id: str, investment_data: InvestmentCreate) -> InvestmentDB:
    db_investment = InvestmentDB(
        user_id=user_id,
        name=investment_data.name,
        investment_type=InvestmentType(investment_data.investment_type.value),
        invested_amount=investment_data.invested_amount,
        current_value=investment_data.current_value,
        quantity=investment_data.quantity
    )

    try:
        db.add(db_investment)
        db.commit()
        db.refresh(db_investment)
        return db_investment
    except IntegrityError:
        db.rollback()
        raise ValueError("Investment creation failed due to database constraint.")

def read_db_investment(db: Session, investment_id: int, user_id: str) -> Optional[InvestmentDB]:
    return db.query(InvestmentDB).filter(InvestmentDB.id == investment_id, InvestmentDB.user_id == user_id).first()

def read_db_investments(db: Session, user_id: str) -> List[InvestmentDB]:
    return db.query(InvestmentDB).filter(
        InvestmentDB.user_id == user_id
    ).order_by(InvestmentDB.created_at.desc(), InvestmentDB.id.desc()).all()

def update_db_investment(db: Session, investment_id: int, user_id: str, investment_updates: InvestmentUpdate) -> InvestmentDB:
    db_investment = read_db_investment(db, investment_id, user_id)
    if not db_investment:
        raise NotFoundError(f"Investment with id {investment_id} not found.")

    update_data = investment_updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field == 'investment_type' and value:
            setattr(db_investment, field, InvestmentType(value.value))
        else:
            setattr(db_investment, field, value)
    db_investment.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_investment)
        return db_investment
    except IntegrityError:
        db.rollback()
        raise ValueError("Investment update failed due to database constraint.")

def delete_db_investment(db: Session, investment_id: int, user_id: str) -> bool:
    db_investment = read_db_investment(db, investment_id, user_id)
    if not db_investment:
        raise NotFoundError(f"Investment with id {investment_id} not found.")

    db.delete(db_investment)
    db.commit()
    return True

def get_investment_summary(db: Session, user_id: str) -> InvestmentSummary:
    """Totals and profit/loss across the user's portfolio"""
    investments = read_db_investments(db, user_id)

    total_invested = Decimal('0.00')
    total_current = Decimal('0.00')
    value_by_type = {}

    for investment in investments:
        total_invested += investment.invested_amount
        total_current += investment.current_value
        key = investment.investment_type.value
        value_by_type[key] = value_by_type.get(key, Decimal('0.00')) + investment.current_value

    profit_loss = total_current - total_invested
    percentage = round(profit_loss / total_invested * 100, 2) if total_invested > 0 else None

    return InvestmentSummary(
        total_invested=total_invested,
        total_current=total_current,
        profit_loss=profit_loss,
        profit_loss_percentage=percentage,
        value_by_type=value_by_type
    )
