from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ===== BILL PYDANTIC MODELS =====

class BillStatusEnum(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class BillCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    due_date: date
    category: Optional[str] = Field(None, max_length=100)
    recurring: bool = False
    credit_card_id: Optional[int] = Field(None, description="Card whose purchase originated the bill")
    account_id: Optional[int] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return round(v, 2)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        return v.strip()


class BillUpdate(BaseModel):
    """Update bill - status may only move between pending and overdue here"""
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[Decimal] = Field(None, gt=0)
    due_date: Optional[date] = None
    category: Optional[str] = Field(None, max_length=100)
    recurring: Optional[bool] = None
    status: Optional[BillStatusEnum] = None
    credit_card_id: Optional[int] = None
    account_id: Optional[int] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return round(v, 2) if v is not None else v

    @field_validator('status')
    @classmethod
    def validate_status(cls, v: Optional[BillStatusEnum]) -> Optional[BillStatusEnum]:
        if v == BillStatusEnum.PAID:
            raise ValueError('Bills are marked paid through the payment operation')
        return v


class BillResponse(BaseModel):
    id: int
    user_id: str
    description: str
    amount: Decimal
    due_date: date
    status: BillStatusEnum
    category: Optional[str]
    recurring: bool
    credit_card_id: Optional[int]
    account_id: Optional[int]
    invoice_transaction_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
