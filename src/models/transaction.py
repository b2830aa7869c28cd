from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


# ===== TRANSACTION PYDANTIC MODELS =====

class TransactionTypeEnum(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SourceTypeEnum(str, Enum):
    MANUAL = "manual"
    BILL_PAYMENT = "bill_payment"
    INVOICE_PAYMENT = "invoice_payment"


class TransactionCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500, description="Transaction description")
    amount: Decimal = Field(..., gt=0, description="Transaction amount, always positive")
    transaction_type: TransactionTypeEnum = Field(..., description="Income or expense")
    status: TransactionStatusEnum = Field(default=TransactionStatusEnum.COMPLETED)
    transaction_date: date = Field(..., description="Date of the transaction")
    account_id: Optional[int] = Field(None, description="Owning account")
    credit_card_id: Optional[int] = Field(None, description="Card the purchase was made with")
    category_id: Optional[int] = Field(None, description="The ID of the transaction's category")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return round(v, 2)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        return v.strip()


class TransactionUpdate(BaseModel):
    """Update transaction - all fields optional"""
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    amount: Optional[Decimal] = Field(None, gt=0)
    transaction_type: Optional[TransactionTypeEnum] = None
    status: Optional[TransactionStatusEnum] = None
    transaction_date: Optional[date] = None
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    category_id: Optional[int] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return round(v, 2) if v is not None else v

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class TransactionFilter(BaseModel):
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    bill_id: Optional[int] = None
    category_id: Optional[int] = None
    transaction_type: Optional[TransactionTypeEnum] = None
    status: Optional[TransactionStatusEnum] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class TransactionResponse(BaseModel):
    id: int
    user_id: str
    description: str
    amount: Decimal
    transaction_type: TransactionTypeEnum
    status: TransactionStatusEnum
    transaction_date: date
    source_type: SourceTypeEnum
    account_id: Optional[int]
    credit_card_id: Optional[int]
    bill_id: Optional[int]
    category_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
