from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ===== ACCOUNT PYDANTIC MODELS =====

class AccountTypeEnum(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Account name")
    bank: str = Field(..., min_length=1, max_length=255, description="Financial institution name")
    account_type: AccountTypeEnum = Field(..., description="Type of account")
    balance: Decimal = Field(default=Decimal('0.00'), description="Opening balance, recorded as a transaction")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('bank')
    @classmethod
    def validate_bank(cls, v: str) -> str:
        return v.strip()

    @field_validator('balance')
    @classmethod
    def validate_balance(cls, v: Decimal) -> Decimal:
        # Round to 2 decimal places
        return round(v, 2)


class AccountUpdate(BaseModel):
    """Update account - all fields optional. The balance is derived and cannot be set."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    bank: Optional[str] = Field(None, min_length=1, max_length=255)
    account_type: Optional[AccountTypeEnum] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @field_validator('bank')
    @classmethod
    def validate_bank(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class AccountResponse(BaseModel):
    """Account data returned to client, balance recomputed from the ledger"""
    id: int
    user_id: str
    name: str
    bank: str
    account_type: AccountTypeEnum
    balance: Decimal
    balance_last_updated: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
