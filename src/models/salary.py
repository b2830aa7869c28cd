from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal


# ===== SALARY PYDANTIC MODELS =====

class SalaryCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    gross_amount: Decimal = Field(..., gt=0)
    net_amount: Decimal = Field(..., gt=0)
    account_id: int = Field(..., description="Account the salary is paid into")
    payment_day: int = Field(..., ge=1, le=31)
    is_active: bool = True

    @field_validator('gross_amount', 'net_amount')
    @classmethod
    def validate_amounts(cls, v: Decimal) -> Decimal:
        return round(v, 2)

    @model_validator(mode='after')
    def validate_net_not_above_gross(self):
        if self.net_amount > self.gross_amount:
            raise ValueError('Net amount cannot exceed gross amount')
        return self


class SalaryUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    gross_amount: Optional[Decimal] = Field(None, gt=0)
    net_amount: Optional[Decimal] = Field(None, gt=0)
    account_id: Optional[int] = None
    payment_day: Optional[int] = Field(None, ge=1, le=31)
    is_active: Optional[bool] = None


class SalaryResponse(BaseModel):
    id: int
    description: str
    gross_amount: Decimal
    net_amount: Decimal
    account_id: int
    payment_day: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
