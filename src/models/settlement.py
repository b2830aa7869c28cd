from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date
from decimal import Decimal

from src.models.bill import BillStatusEnum


# ===== SETTLEMENT & RECONCILIATION PYDANTIC MODELS =====

class BillPaymentRequest(BaseModel):
    account_id: int = Field(..., description="Account the bill is paid from")
    payment_date: Optional[date] = Field(None, description="Defaults to today")


class BillPaymentResult(BaseModel):
    bill_id: int
    transaction_id: int
    account_id: int
    amount: Decimal
    account_balance: Decimal


class BillReversalResult(BaseModel):
    bill_id: int
    transactions_removed: int
    bill_status: BillStatusEnum


class InvoicePaymentRequest(BaseModel):
    account_id: int = Field(..., description="Account the invoice is paid from")
    payment_date: Optional[date] = Field(None, description="Defaults to today")


class InvoicePaymentResult(BaseModel):
    credit_card_id: int
    transaction_id: int
    account_id: int
    amount: Decimal
    bills_settled: int


class BillCleanupResult(BaseModel):
    duplicates_removed: int


class DerivedBalanceResponse(BaseModel):
    entity_id: int
    stored: Decimal
    computed: Decimal
    recomputed: bool
    drifted: bool


class ReconciliationReport(BaseModel):
    """Derived values and the detectable inconsistencies left by partial sagas"""
    accounts: List[DerivedBalanceResponse]
    credit_cards: List[DerivedBalanceResponse]
    unsettled_paid_bill_ids: List[int]
    orphan_settlement_ids: List[int]
