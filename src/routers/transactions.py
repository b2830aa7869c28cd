from fastapi import APIRouter, HTTPException, Query
from typing import List, Optional
from datetime import date
from fastapi.params import Depends
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from src.db.core import NotFoundError, get_db
from src.models.transaction import (
    TransactionCreate,
    TransactionUpdate,
    TransactionResponse,
    TransactionFilter,
    TransactionTypeEnum,
    TransactionStatusEnum,
)
from src.crud.crud_transaction import (
    create_db_transaction,
    read_db_transaction,
    read_db_transactions,
    update_db_transaction,
    delete_db_transaction,
)
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services.query_cache import QueryCache, TRANSACTIONS

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
)


@router.post("/", status_code=201)
def create_transaction(transaction: TransactionCreate, db: Session = Depends(get_db),
                       user_id: str = Depends(get_current_user_id),
                       cache: QueryCache = Depends(get_query_cache)) -> TransactionResponse:
    try:
        db_transaction = create_db_transaction(db, user_id, transaction)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except IntegrityError as e:
        raise HTTPException(status_code=400, detail="Database integrity error.") from e
    cache.invalidate_for("create_transaction", user_id)
    return TransactionResponse.model_validate(db_transaction)


@router.get("/")
def read_transactions(
    account_id: Optional[int] = None,
    credit_card_id: Optional[int] = None,
    bill_id: Optional[int] = None,
    category_id: Optional[int] = None,
    transaction_type: Optional[TransactionTypeEnum] = None,
    status: Optional[TransactionStatusEnum] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
) -> List[TransactionResponse]:
    filters = TransactionFilter(
        account_id=account_id,
        credit_card_id=credit_card_id,
        bill_id=bill_id,
        category_id=category_id,
        transaction_type=transaction_type,
        status=status,
        date_from=date_from,
        date_to=date_to,
    )

    def load():
        transactions = read_db_transactions(db, user_id, filters=filters, skip=skip, limit=limit)
        return [TransactionResponse.model_validate(t) for t in transactions]

    key = (TRANSACTIONS, user_id, "list", filters.model_dump_json(), skip, limit)
    return cache.get_or_load(key, load)


@router.get("/{transaction_id}")
def read_transaction(transaction_id: int, db: Session = Depends(get_db),
                     user_id: str = Depends(get_current_user_id)) -> TransactionResponse:
    db_transaction = read_db_transaction(db, transaction_id=transaction_id, user_id=user_id)
    if not db_transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return TransactionResponse.model_validate(db_transaction)


@router.put("/{transaction_id}")
def update_transaction(transaction_id: int, transaction: TransactionUpdate, db: Session = Depends(get_db),
                       user_id: str = Depends(get_current_user_id),
                       cache: QueryCache = Depends(get_query_cache)) -> TransactionResponse:
    try:
        db_transaction = update_db_transaction(db, transaction_id=transaction_id, user_id=user_id, transaction_updates=transaction)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    cache.invalidate_for("update_transaction", user_id)
    return TransactionResponse.model_validate(db_transaction)


@router.delete("/{transaction_id}")
def delete_transaction(transaction_id: int, db: Session = Depends(get_db),
                       user_id: str = Depends(get_current_user_id),
                       cache: QueryCache = Depends(get_query_cache)) -> TransactionResponse:
    db_transaction = read_db_transaction(db, transaction_id=transaction_id, user_id=user_id)
    if not db_transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    deleted = TransactionResponse.model_validate(db_transaction)
    try:
        delete_db_transaction(db, transaction_id=transaction_id, user_id=user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    cache.invalidate_for("delete_transaction", user_id)
    return deleted
