from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime

from src.db.core import SalaryDB, AccountDB, NotFoundError
from src.models.salary import SalaryCreate, SalaryUpdate


def _verify_account(db: Session, user_id: str, account_id: int) -> None:
    account = db.query(AccountDB).filter(AccountDB.id == account_id, AccountDB.user_id == user_id).first()
    if not account:
        raise NotFoundError(f"Account with id {account_id} not found")


def create_db_salary(db: Session, user_id: str, salary_data: SalaryCreate) -> SalaryDB:
    _verify_account(db, user_id, salary_data.account_id)

    db_salary = SalaryDB(
        user_id=user_id,
        **salary_data.model_dump()
    )

    try:
        db.add(db_salary)
        db.commit()
        db.refresh(db_salary)
        return db_salary
    except IntegrityError:
        db.rollback()
        raise ValueError("Salary creation failed due to database constraint")


def read_db_salary(db: Session, salary_id: int, user_id: str) -> Optional[SalaryDB]:
    return db.query(SalaryDB).filter(SalaryDB.id == salary_id, SalaryDB.user_id == user_id).first()


def read_db_salaries(db: Session, user_id: str) -> List[SalaryDB]:
    return db.query(SalaryDB).filter(
        SalaryDB.user_id == user_id
    ).order_by(SalaryDB.created_at.desc(), SalaryDB.id.desc()).all()


def update_db_salary(db: Session, salary_id: int, user_id: str, salary_updates: SalaryUpdate) -> SalaryDB:
    db_salary = read_db_salary(db, salary_id, user_id)
    if not db_salary:
        raise NotFoundError(f"Salary with id {salary_id} not found")

    update_data = salary_updates.model_dump(exclude_unset=True)
    if 'account_id' in update_data:
        _verify_account(db, user_id, update_data['account_id'])

    gross = update_data.get('gross_amount', db_salary.gross_amount)
    net = update_data.get('net_amount', db_salary.net_amount)
    if net > gross:
        raise ValueError("Net amount cannot exceed gross amount")

    for field, value in update_data.items():
        setattr(db_salary, field, value)
    db_salary.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_salary)
        return db_salary
    except IntegrityError:
        db.rollback()
        raise ValueError("Salary update failed due to database constraint")


def delete_db_salary(db: Session, salary_id: int, user_id: str) -> bool:
    db_salary = read_db_salary(db, salary_id, user_id)
    if not db_salary:
        raise NotFoundError(f"Salary with id {salary_id} not found")

    db.delete(db_salary)
    db.commit()
    return True
