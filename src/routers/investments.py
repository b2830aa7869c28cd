from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from src.crud import crud_investment
from src.models import investment as investment_models
from src.db.core import get_db, NotFoundError
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services.query_cache import QueryCache, INVESTMENTS

router = APIRouter(
    prefix="/investments",
    tags=["investments"],
)


@router.post("/", response_model=investment_models.InvestmentResponse, status_code=status.HTTP_201_CREATED)
def create_investment(
    investment: investment_models.InvestmentCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_investment = crud_investment.create_db_investment(db=db, user_id=user_id, investment_data=investment)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("create_investment", user_id)
    return db_investment


@router.get("/", response_model=List[investment_models.InvestmentResponse])
def read_investments(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    def load():
        investments = crud_investment.read_db_investments(db=db, user_id=user_id)
        return [investment_models.InvestmentResponse.model_validate(i) for i in investments]

    return cache.get_or_load((INVESTMENTS, user_id, "list"), load)


@router.get("/summary", response_model=investment_models.InvestmentSummary)
def read_investment_summary(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Totals invested and current value, profit/loss and value per investment type.
    """
    return cache.get_or_load(
        (INVESTMENTS, user_id, "summary"),
        lambda: crud_investment.get_investment_summary(db=db, user_id=user_id)
    )


@router.get("/{investment_id}", response_model=investment_models.InvestmentResponse)
def read_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    db_investment = crud_investment.read_db_investment(db=db, investment_id=investment_id, user_id=user_id)
    if db_investment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Investment not found")
    return db_investment


@router.put("/{investment_id}", response_model=investment_models.InvestmentResponse)
def update_investment(
    investment_id: int,
    investment: investment_models.InvestmentUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_investment = crud_investment.update_db_investment(
            db=db, investment_id=investment_id, user_id=user_id, investment_updates=investment
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_investment", user_id)
    return db_investment


@router.delete("/{investment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        crud_investment.delete_db_investment(db=db, investment_id=investment_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    cache.invalidate_for("delete_investment", user_id)
