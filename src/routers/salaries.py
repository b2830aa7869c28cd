from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from src.crud import crud_salary
from src.models import salary as salary_models
from src.db.core import get_db, NotFoundError
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services.query_cache import QueryCache, SALARIES

router = APIRouter(
    prefix="/salaries",
    tags=["salaries"],
)


@router.post("/", response_model=salary_models.SalaryResponse, status_code=status.HTTP_201_CREATED)
def create_salary(
    salary: salary_models.SalaryCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_salary = crud_salary.create_db_salary(db=db, user_id=user_id, salary_data=salary)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("create_salary", user_id)
    return db_salary


@router.get("/", response_model=List[salary_models.SalaryResponse])
def read_salaries(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    def load():
        return [salary_models.SalaryResponse.model_validate(s) for s in crud_salary.read_db_salaries(db=db, user_id=user_id)]

    return cache.get_or_load((SALARIES, user_id, "list"), load)


@router.get("/{salary_id}", response_model=salary_models.SalaryResponse)
def read_salary(
    salary_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    db_salary = crud_salary.read_db_salary(db=db, salary_id=salary_id, user_id=user_id)
    if db_salary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Salary not found")
    return db_salary


@router.put("/{salary_id}", response_model=salary_models.SalaryResponse)
def update_salary(
    salary_id: int,
    salary: salary_models.SalaryUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_salary = crud_salary.update_db_salary(db=db, salary_id=salary_id, user_id=user_id, salary_updates=salary)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_salary", user_id)
    return db_salary


@router.delete("/{salary_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_salary(
    salary_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        crud_salary.delete_db_salary(db=db, salary_id=salary_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    cache.invalidate_for("delete_salary", user_id)
