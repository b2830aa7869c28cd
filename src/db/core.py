from typing import Optional
from sqlalchemy import create_engine, ForeignKey, Index, UniqueConstraint, Boolean, Integer, String, DECIMAL, DateTime, Date
from sqlalchemy.types import Enum
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Mapped, relationship, mapped_column
from datetime import datetime, date
from decimal import Decimal
import enum

from src.config import DATABASE_URL, SQL_ECHO


class NotFoundError(Exception):
    pass


class Base(DeclarativeBase):
    pass


class AccountType(enum.Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"


class TransactionType(enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SourceType(enum.Enum):
    MANUAL = "manual"
    BILL_PAYMENT = "bill_payment"
    INVOICE_PAYMENT = "invoice_payment"


# Transactions created by the settlement sagas rather than by the user
SETTLEMENT_SOURCES = (SourceType.BILL_PAYMENT, SourceType.INVOICE_PAYMENT)


class CardStatus(enum.Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


class BillStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class CategoryType(enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class InvestmentType(enum.Enum):
    STOCK = "stock"
    FUND = "fund"
    CRYPTO = "crypto"
    FIXED = "fixed"


class AccountDB(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_accounts_user", "user_id"),
    )

    # Core Account Identification
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Account Details
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType))

    # Derived from completed transactions, see services.reconciliation
    balance: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), default=Decimal("0.00"))
    balance_last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transactions = relationship("TransactionDB", back_populates="account")
    salaries = relationship("SalaryDB", back_populates="account")


class CategoryDB(Base):
    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_user_category_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category_type: Mapped[CategoryType] = mapped_column(Enum(CategoryType), default=CategoryType.EXPENSE)
    color: Mapped[Optional[str]] = mapped_column(String(7))  # Hex color code
    icon: Mapped[Optional[str]] = mapped_column(String(50))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    transactions = relationship("TransactionDB", back_populates="category")


class CreditCardDB(Base):
    __tablename__ = "credit_cards"

    __table_args__ = (
        Index("idx_credit_cards_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank: Mapped[str] = mapped_column(String(255), nullable=False)
    card_limit: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)

    # Derived from the card's expense transactions, see services.reconciliation
    used_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), default=Decimal("0.00"))

    # Day of month
    due_date: Mapped[int] = mapped_column(Integer, nullable=False)
    closing_date: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[CardStatus] = mapped_column(Enum(CardStatus), default=CardStatus.ACTIVE)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    transactions = relationship("TransactionDB", back_populates="credit_card")
    bills = relationship("BillDB", back_populates="credit_card")


class BillDB(Base):
    __tablename__ = "bills"

    __table_args__ = (
        Index("idx_bills_user_due", "user_id", "due_date"),
        Index("idx_bills_card_status", "credit_card_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BillStatus] = mapped_column(Enum(BillStatus), default=BillStatus.PENDING)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    recurring: Mapped[bool] = mapped_column(Boolean, default=False)

    # Link to the card purchase that originated the bill
    credit_card_id: Mapped[Optional[int]] = mapped_column(ForeignKey("credit_cards.id"))
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    # Invoice payment that settled the bill, if any
    invoice_transaction_id: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    credit_card = relationship("CreditCardDB", back_populates="bills")


class TransactionDB(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        # Performance indexes for the recomputation queries
        Index("idx_transactions_user_date", "user_id", "transaction_date"),
        Index("idx_transactions_account_status", "account_id", "status"),
        Index("idx_transactions_card_type", "credit_card_id", "transaction_type"),

        # At most one settlement per bill
        UniqueConstraint("bill_id", name="uq_transaction_bill"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Links (all nullable, no cascades)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    credit_card_id: Mapped[Optional[int]] = mapped_column(ForeignKey("credit_cards.id"))
    bill_id: Mapped[Optional[int]] = mapped_column(ForeignKey("bills.id"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    # Basic Transaction Data
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))
    status: Mapped[TransactionStatus] = mapped_column(Enum(TransactionStatus), default=TransactionStatus.COMPLETED)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_type: Mapped[SourceType] = mapped_column(Enum(SourceType), default=SourceType.MANUAL)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("AccountDB", back_populates="transactions")
    credit_card = relationship("CreditCardDB", back_populates="transactions")
    category = relationship("CategoryDB", back_populates="transactions")


class SalaryDB(Base):
    __tablename__ = "salaries"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"))

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    payment_day: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("AccountDB", back_populates="salaries")


class InvestmentDB(Base):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    investment_type: Mapped[InvestmentType] = mapped_column(Enum(InvestmentType))
    invested_amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    current_value: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    quantity: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(15, 6))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserSettingsDB(Base):
    __tablename__ = "user_settings"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_settings_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="BRL")
    date_format: Mapped[str] = mapped_column(String(20), default="dd/MM/yyyy")
    theme: Mapped[str] = mapped_column(String(20), default="system")
    notifications_bills: Mapped[bool] = mapped_column(Boolean, default=True)
    notifications_budget: Mapped[bool] = mapped_column(Boolean, default=True)
    notifications_monthly: Mapped[bool] = mapped_column(Boolean, default=False)
    notifications_investments: Mapped[bool] = mapped_column(Boolean, default=False)
    animations_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# sqlite connections are shared across the request thread pool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=SQL_ECHO, connect_args=connect_args)
session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency to get the database session
def get_db():
    database = session_local()
    try:
        yield database
    finally:
        database.close()


# Dependency for work that outlives the request session (background writes)
def get_session_factory():
    return session_local
