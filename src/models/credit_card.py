from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ===== CREDIT CARD PYDANTIC MODELS =====

class CardStatusEnum(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


class CreditCardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Card name")
    bank: str = Field(..., min_length=1, max_length=255, description="Issuing bank")
    card_limit: Decimal = Field(..., ge=0, description="Credit limit")
    due_date: int = Field(..., ge=1, le=31, description="Invoice due day of month")
    closing_date: int = Field(..., ge=1, le=31, description="Invoice closing day of month")
    status: CardStatusEnum = Field(default=CardStatusEnum.ACTIVE)

    @field_validator('name', 'bank')
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator('card_limit')
    @classmethod
    def validate_card_limit(cls, v: Decimal) -> Decimal:
        return round(v, 2)


class CreditCardUpdate(BaseModel):
    """Update card - all fields optional. used_amount is derived and cannot be set."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    bank: Optional[str] = Field(None, min_length=1, max_length=255)
    card_limit: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[int] = Field(None, ge=1, le=31)
    closing_date: Optional[int] = Field(None, ge=1, le=31)
    status: Optional[CardStatusEnum] = None

    @field_validator('card_limit')
    @classmethod
    def validate_card_limit(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return round(v, 2) if v is not None else v


class CreditCardResponse(BaseModel):
    id: int
    user_id: str
    name: str
    bank: str
    card_limit: Decimal
    used_amount: Decimal
    due_date: int
    closing_date: int
    status: CardStatusEnum
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
