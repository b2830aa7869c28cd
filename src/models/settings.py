from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


# ===== USER SETTINGS PYDANTIC MODELS =====

class UserSettingsUpdate(BaseModel):
    """Create-or-update payload; unset fields keep their current value"""
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    date_format: Optional[str] = Field(None, max_length=20)
    theme: Optional[str] = Field(None, pattern=r"^(light|dark|system)$")
    notifications_bills: Optional[bool] = None
    notifications_budget: Optional[bool] = None
    notifications_monthly: Optional[bool] = None
    notifications_investments: Optional[bool] = None
    animations_enabled: Optional[bool] = None


class UserSettingsResponse(BaseModel):
    user_id: str
    currency: str
    date_format: str
    theme: str
    notifications_bills: bool
    notifications_budget: bool
    notifications_monthly: bool
    notifications_investments: bool
    animations_enabled: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
