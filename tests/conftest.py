import os

# The app module builds its engine at import time; keep it off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.crud import crud_account, crud_bill, crud_credit_card, crud_transaction
from src.db.core import Base, get_db, get_session_factory
from src.models.account import AccountCreate, AccountTypeEnum
from src.models.bill import BillCreate
from src.models.credit_card import CreditCardCreate
from src.models.transaction import TransactionCreate, TransactionTypeEnum, TransactionStatusEnum
from src.services.query_cache import QueryCache

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    from src.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.query_cache = QueryCache()

    with TestClient(app, headers={"X-User-Id": USER_ID}) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ===== FACTORIES =====

@pytest.fixture
def make_account(db):
    def _make(balance="1000.00", account_type=AccountTypeEnum.CHECKING, user_id=USER_ID, name="Checking"):
        return crud_account.create_db_account(db, user_id, AccountCreate(
            name=name, bank="Test Bank", account_type=account_type, balance=Decimal(balance)
        ))
    return _make


@pytest.fixture
def make_card(db):
    def _make(user_id=USER_ID, name="Rewards"):
        return crud_credit_card.create_db_credit_card(db, user_id, CreditCardCreate(
            name=name, bank="Test Bank", card_limit=Decimal("5000.00"), due_date=10, closing_date=3
        ))
    return _make


@pytest.fixture
def make_bill(db):
    def _make(amount="300.00", credit_card_id=None, user_id=USER_ID, description="Rent"):
        return crud_bill.create_db_bill(db, user_id, BillCreate(
            description=description,
            amount=Decimal(amount),
            due_date=date.today() + timedelta(days=5),
            credit_card_id=credit_card_id,
        ))
    return _make


@pytest.fixture
def make_transaction(db):
    def _make(amount, transaction_type=TransactionTypeEnum.EXPENSE, status=TransactionStatusEnum.COMPLETED,
              account_id=None, credit_card_id=None, user_id=USER_ID, description="Purchase"):
        return crud_transaction.create_db_transaction(db, user_id, TransactionCreate(
            description=description,
            amount=Decimal(amount),
            transaction_type=transaction_type,
            status=status,
            transaction_date=date.today(),
            account_id=account_id,
            credit_card_id=credit_card_id,
        ))
    return _make
