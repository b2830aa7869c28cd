from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from src.crud import crud_bill
from src.models import bill as bill_models
from src.models.settlement import (
    BillPaymentRequest,
    BillPaymentResult,
    BillReversalResult,
    BillCleanupResult,
)
from src.db.core import get_db, NotFoundError
from src.routers.dependencies import get_current_user_id, get_query_cache, settlement_http_error
from src.services import settlement
from src.services.settlement import BillStateConflictError, SettlementStepError
from src.services.query_cache import QueryCache, BILLS

router = APIRouter(
    prefix="/bills",
    tags=["bills"],
)


@router.post("/", response_model=bill_models.BillResponse, status_code=status.HTTP_201_CREATED)
def create_bill(
    bill: bill_models.BillCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_bill = crud_bill.create_db_bill(db=db, user_id=user_id, bill_data=bill)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("create_bill", user_id)
    return db_bill


@router.get("/", response_model=List[bill_models.BillResponse])
def read_bills(
    bill_status: Optional[bill_models.BillStatusEnum] = None,
    credit_card_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    def load():
        bills = crud_bill.read_db_bills(db=db, user_id=user_id, status=bill_status, credit_card_id=credit_card_id)
        return [bill_models.BillResponse.model_validate(b) for b in bills]

    key = (BILLS, user_id, "list", bill_status.value if bill_status else None, credit_card_id)
    return cache.get_or_load(key, load)


@router.post("/cleanup-duplicates", response_model=BillCleanupResult)
def cleanup_duplicate_bills(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Keep one pending bill per credit card, deleting the newer duplicates.
    """
    result = settlement.cleanup_duplicate_card_bills(db, user_id)
    cache.invalidate_for("cleanup_duplicate_bills", user_id)
    return result


@router.get("/{bill_id}", response_model=bill_models.BillResponse)
def read_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    db_bill = crud_bill.read_db_bill(db=db, bill_id=bill_id, user_id=user_id)
    if db_bill is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bill not found")
    return db_bill


@router.put("/{bill_id}", response_model=bill_models.BillResponse)
def update_bill(
    bill_id: int,
    bill: bill_models.BillUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_bill = crud_bill.update_db_bill(db=db, bill_id=bill_id, user_id=user_id, bill_updates=bill)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_bill", user_id)
    return db_bill


@router.delete("/{bill_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bill(
    bill_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Delete a bill and any settlement transaction recorded for it.
    """
    try:
        settlement.delete_bill(db, user_id, bill_id)
    except (NotFoundError, SettlementStepError) as e:
        cache.invalidate_for("delete_bill", user_id)
        raise settlement_http_error(e)
    cache.invalidate_for("delete_bill", user_id)


@router.post("/{bill_id}/pay", response_model=BillPaymentResult)
def pay_bill(
    bill_id: int,
    payment: BillPaymentRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Pay a pending or overdue bill from an account.

    A bill that is already paid, or that another request pays first, returns 409.
    """
    try:
        result = settlement.pay_bill(
            db, user_id, bill_id=bill_id, account_id=payment.account_id, payment_date=payment.payment_date
        )
    except SettlementStepError as e:
        cache.invalidate_for("pay_bill", user_id)
        raise settlement_http_error(e)
    except (NotFoundError, BillStateConflictError, ValueError) as e:
        raise settlement_http_error(e)
    cache.invalidate_for("pay_bill", user_id)
    return result


@router.post("/{bill_id}/revert", response_model=BillReversalResult)
def revert_bill_payment(
    bill_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Remove a bill's settlement and return it to pending. Repeating the call is harmless.
    """
    try:
        result = settlement.revert_bill_payment(db, user_id, bill_id=bill_id)
    except (NotFoundError, BillStateConflictError, SettlementStepError) as e:
        cache.invalidate_for("revert_bill_payment", user_id)
        raise settlement_http_error(e)
    cache.invalidate_for("revert_bill_payment", user_id)
    return result
