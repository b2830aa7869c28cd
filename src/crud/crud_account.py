from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal

from src.db.core import AccountDB, BillDB, SalaryDB, TransactionDB, NotFoundError, AccountType, TransactionType, TransactionStatus
from src.models.account import AccountCreate, AccountUpdate, AccountTypeEnum
from src.logging_config import get_logger

logger = get_logger(__name__)


# ===== DATABASE OPERATIONS =====

def create_db_account(db: Session, user_id: str, account_data: AccountCreate) -> AccountDB:
    """Create a new account. A non-zero opening balance is booked as a completed transaction."""

    db_account = AccountDB(
        user_id=user_id,
        name=account_data.name,
        bank=account_data.bank,
        account_type=AccountType(account_data.account_type.value),
        balance=account_data.balance,
        balance_last_updated=datetime.utcnow(),
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_account)
        db.flush()

        if account_data.balance != 0:
            db.add(TransactionDB(
                user_id=user_id,
                account_id=db_account.id,
                description="Opening balance",
                amount=abs(account_data.balance),
                transaction_type=TransactionType.INCOME if account_data.balance > 0 else TransactionType.EXPENSE,
                status=TransactionStatus.COMPLETED,
                transaction_date=date.today(),
            ))

        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ValueError("Account creation failed due to database constraint")


def read_db_account(db: Session, account_id: int, user_id: Optional[str] = None) -> Optional[AccountDB]:
    """Read an account by ID, optionally filtering by user"""

    query = db.query(AccountDB).filter(AccountDB.id == account_id)

    if user_id:
        query = query.filter(AccountDB.user_id == user_id)

    return query.first()


def read_db_accounts(db: Session, user_id: str, account_type: Optional[AccountTypeEnum] = None) -> List[AccountDB]:
    """Read accounts for a user, newest first"""

    query = db.query(AccountDB).filter(AccountDB.user_id == user_id)

    if account_type:
        query = query.filter(AccountDB.account_type == AccountType(account_type.value))

    return query.order_by(AccountDB.created_at.desc(), AccountDB.id.desc()).all()


def update_db_account(db: Session, account_id: int, user_id: str, account_updates: AccountUpdate) -> AccountDB:
    """Update an existing account"""

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    update_data = account_updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field == 'account_type' and value:
            setattr(db_account, field, AccountType(value.value))
        else:
            setattr(db_account, field, value)

    db_account.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ValueError("Account update failed due to database constraint")


def delete_db_account(db: Session, account_id: int, user_id: str) -> int:
    """
    Delete an account. Its transactions and bills are kept and unlinked.
    Returns the number of transactions left orphaned.
    """

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    salaries = db.query(SalaryDB).filter(SalaryDB.account_id == account_id).count()
    if salaries:
        raise ValueError("Cannot delete account with configured salaries")

    try:
        orphaned = db.query(TransactionDB).filter(
            TransactionDB.account_id == account_id
        ).update({TransactionDB.account_id: None}, synchronize_session=False)
        db.query(BillDB).filter(
            BillDB.account_id == account_id
        ).update({BillDB.account_id: None}, synchronize_session=False)

        db.delete(db_account)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"Failed to delete account: {str(e)}")

    logger.info(f"Deleted account {account_id}, {orphaned} transactions left unlinked")
    return orphaned


def update_account_balance(db: Session, account_id: int, new_balance: Decimal) -> AccountDB:
    """Write back an account's derived balance"""

    db_account = db.query(AccountDB).filter(AccountDB.id == account_id).first()
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    db_account.balance = round(new_balance, 2)
    db_account.balance_last_updated = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"Failed to update account balance: {str(e)}")
