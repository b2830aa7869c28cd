from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional

from src.crud import crud_settings
from src.models.settings import UserSettingsUpdate, UserSettingsResponse
from src.db.core import get_db
from src.routers.dependencies import get_current_user_id, get_query_cache
from src.services.query_cache import QueryCache, SETTINGS

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
)


@router.get("/", response_model=Optional[UserSettingsResponse])
def read_settings(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    """
    The current user's preferences, or null if they were never saved.
    """
    def load():
        db_settings = crud_settings.read_db_settings(db=db, user_id=user_id)
        return UserSettingsResponse.model_validate(db_settings) if db_settings else None

    return cache.get_or_load((SETTINGS, user_id), load)


@router.put("/", response_model=UserSettingsResponse)
def update_settings(
    settings: UserSettingsUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    cache: QueryCache = Depends(get_query_cache)
):
    try:
        db_settings = crud_settings.upsert_db_settings(db=db, user_id=user_id, settings_data=settings)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    cache.invalidate_for("update_settings", user_id)
    return db_settings
