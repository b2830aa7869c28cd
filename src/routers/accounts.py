from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Any, Callable, Dict, List, Optional

from src.crud import crud_account
from src.models import account as account_models
from src.db.core import AccountDB, get_db, get_session_factory, NotFoundError
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services import reconciliation
from src.services.query_cache import QueryCache, ACCOUNTS

router = APIRouter(
    prefix="/accounts",
    tags=["accounts"],
)


def _with_derived_balances(
    db: Session,
    accounts: List[AccountDB],
    background_tasks: BackgroundTasks,
    session_factory: Callable[[], Session],
    fallbacks: Optional[List[int]] = None,
) -> List[account_models.AccountResponse]:
    """
    Recompute balances, schedule the write-back of drifted ones, return computed values.

    Ids of accounts whose ledger query failed, and so report their stored
    balance, are appended to fallbacks.
    """
    derived = reconciliation.recompute_account_balances(db, accounts)
    if fallbacks is not None:
        fallbacks.extend(item.entity_id for item in derived if not item.recomputed)
    if any(item.drifted for item in derived):
        background_tasks.add_task(reconciliation.persist_account_balances, session_factory, derived)

    return [
        account_models.AccountResponse.model_validate(account).model_copy(update={"balance": item.computed})
        for account, item in zip(accounts, derived)
    ]


@router.post("/", response_model=account_models.AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    account: account_models.AccountCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Create a new account for the current user.
    """
    try:
        db_account = crud_account.create_db_account(db=db, user_id=user_id, account_data=account)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("create_account", user_id)
    return db_account


@router.get("/", response_model=List[account_models.AccountResponse])
def read_accounts(
    background_tasks: BackgroundTasks,
    account_type: Optional[account_models.AccountTypeEnum] = None,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Retrieve the current user's accounts with balances recomputed from the ledger.
    """
    fallbacks: List[int] = []

    def load():
        accounts = crud_account.read_db_accounts(db=db, user_id=user_id, account_type=account_type)
        return _with_derived_balances(db, accounts, background_tasks, session_factory, fallbacks)

    key = (ACCOUNTS, user_id, "list", account_type.value if account_type else None)
    return cache.get_or_load(key, load, should_cache=lambda _: not fallbacks)


@router.get("/{account_id}", response_model=account_models.AccountResponse)
def read_account(
    account_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Retrieve a specific account by its ID.
    """
    fallbacks: List[int] = []

    def load():
        db_account = crud_account.read_db_account(db=db, account_id=account_id, user_id=user_id)
        if db_account is None:
            return None
        return _with_derived_balances(db, [db_account], background_tasks, session_factory, fallbacks)[0]

    account = cache.get_or_load((ACCOUNTS, user_id, account_id), load, should_cache=lambda _: not fallbacks)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return account


@router.put("/{account_id}", response_model=account_models.AccountResponse)
def update_account(
    account_id: int,
    account: account_models.AccountUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Update an account's name, bank or type.
    """
    try:
        db_account = crud_account.update_db_account(
            db=db, account_id=account_id, user_id=user_id, account_updates=account
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_account", user_id)
    return _with_derived_balances(db, [db_account], background_tasks, session_factory)[0]


@router.delete("/{account_id}")
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
) -> Dict[str, Any]:
    """
    Delete an account. Its transactions are kept and left without an account.
    """
    try:
        orphaned = crud_account.delete_db_account(db=db, account_id=account_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    cache.invalidate_for("delete_account", user_id)
    return {"message": f"Account {account_id} deleted.", "orphaned_transactions": orphaned}
