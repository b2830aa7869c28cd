from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ===== INVESTMENT PYDANTIC MODELS =====

class InvestmentTypeEnum(str, Enum):
    STOCK = "stock"
    FUND = "fund"
    CRYPTO = "crypto"
    FIXED = "fixed"


class InvestmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    investment_type: InvestmentTypeEnum
    invested_amount: Decimal = Field(..., ge=0)
    current_value: Decimal = Field(..., ge=0)
    quantity: Optional[Decimal] = Field(None, gt=0, description="Shares/units held, if applicable")

    @field_validator('invested_amount', 'current_value')
    @classmethod
    def validate_amounts(cls, v: Decimal) -> Decimal:
        return round(v, 2)


class InvestmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    investment_type: Optional[InvestmentTypeEnum] = None
    invested_amount: Optional[Decimal] = Field(None, ge=0)
    current_value: Optional[Decimal] = Field(None, ge=0)
    quantity: Optional[Decimal] = Field(None, gt=0)


class InvestmentResponse(BaseModel):
    id: int
    name: str
    investment_type: InvestmentTypeEnum
    invested_amount: Decimal
    current_value: Decimal
    quantity: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvestmentSummary(BaseModel):
    """Portfolio totals"""
    total_invested: Decimal
    total_current: Decimal
    profit_loss: Decimal
    profit_loss_percentage: Optional[Decimal]
    value_by_type: dict
