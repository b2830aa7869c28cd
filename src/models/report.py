from pydantic import BaseModel
from typing import List, Dict
from decimal import Decimal


# ===== REPORT PYDANTIC MODELS =====

class MonthlyTotals(BaseModel):
    month: int
    income: Decimal
    expenses: Decimal
    balance: Decimal


class FinancialSummary(BaseModel):
    """Dashboard totals; account and card figures use derived balances"""
    year: int
    total_income: Decimal
    total_expenses: Decimal
    total_accounts: Decimal
    total_investments: Decimal
    total_credit_debt: Decimal
    net_worth: Decimal
    monthly: List[MonthlyTotals]
    expenses_by_category: Dict[str, Decimal]
