from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
from datetime import datetime

from src.db.core import UserSettingsDB
from src.models.settings import UserSettingsUpdate


def read_db_settings(db: Session, user_id: str) -> Optional[UserSettingsDB]:
    return db.query(UserSettingsDB).filter(UserSettingsDB.user_id == user_id).first()


def upsert_db_settings(db: Session, user_id: str, settings_data: UserSettingsUpdate) -> UserSettingsDB:
    """Create the user's settings row on first write, update it afterwards"""

    db_settings = read_db_settings(db, user_id)
    if db_settings is None:
        db_settings = UserSettingsDB(user_id=user_id)
        db.add(db_settings)

    for field, value in settings_data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(db_settings, field, value)
    db_settings.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_settings)
        return db_settings
    except IntegrityError:
        db.rollback()
        raise ValueError("Settings update failed due to database constraint")
