from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from src.crud import crud_category
from src.models import category as category_models
from src.db.core import get_db, NotFoundError
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services.query_cache import QueryCache, CATEGORIES

router = APIRouter(
    prefix="/categories",
    tags=["categories"],
)

@router.post("/", response_model=category_models.CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    category: category_models.CategoryCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Create a category for the current user. Names are unique per user.
    """
    try:
        db_category = crud_category.create_db_category(db=db, user_id=user_id, category_data=category)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("create_category", user_id)
    return db_category

@router.get("/", response_model=List[category_models.CategoryResponse])
def read_categories(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    def load():
        categories = crud_category.read_db_categories(db=db, user_id=user_id)
        return [category_models.CategoryResponse.model_validate(c) for c in categories]

    return cache.get_or_load((CATEGORIES, user_id, "list"), load)

@router.get("/{category_id}", response_model=category_models.CategoryResponse)
def read_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id)
):
    db_category = crud_category.read_db_category(db=db, category_id=category_id, user_id=user_id)
    if db_category is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return db_category

@router.put("/{category_id}", response_model=category_models.CategoryResponse)
def update_category(
    category_id: int,
    category: category_models.CategoryUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_category = crud_category.update_db_category(
            db=db, category_id=category_id, user_id=user_id, category_updates=category
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_category", user_id)
    return db_category

@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    Delete a category. Transactions that used it become uncategorized.
    """
    try:
        crud_category.delete_db_category(db=db, category_id=category_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("delete_category", user_id)
