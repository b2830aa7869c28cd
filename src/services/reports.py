"""
Reports Service

Dashboard figures: income and expense totals, a month-by-month series for a
year, expenses per category and a net worth built from derived balances.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.orm import Session

from src.crud import crud_account, crud_category, crud_credit_card, crud_investment
from src.db.core import TransactionDB, TransactionType, TransactionStatus
from src.models.report import FinancialSummary, MonthlyTotals
from src.services import reconciliation


UNCATEGORIZED = "Uncategorized"


def build_financial_summary(db: Session, user_id: str, year: Optional[int] = None) -> FinancialSummary:
    year = year or date.today().year

    transactions = db.query(TransactionDB).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.status != TransactionStatus.CANCELLED
    ).all()

    category_names = {c.id: c.name for c in crud_category.read_db_categories(db, user_id)}

    total_income = Decimal('0.00')
    total_expenses = Decimal('0.00')
    monthly_income = {month: Decimal('0.00') for month in range(1, 13)}
    monthly_expenses = {month: Decimal('0.00') for month in range(1, 13)}
    by_category: Dict[str, Decimal] = {}

    for transaction in transactions:
        in_year = transaction.transaction_date.year == year
        month = transaction.transaction_date.month

        if transaction.transaction_type == TransactionType.INCOME:
            total_income += transaction.amount
            if in_year:
                monthly_income[month] += transaction.amount
        else:
            total_expenses += transaction.amount
            if in_year:
                monthly_expenses[month] += transaction.amount
            name = category_names.get(transaction.category_id, UNCATEGORIZED)
            by_category[name] = by_category.get(name, Decimal('0.00')) + transaction.amount

    accounts = reconciliation.recompute_account_balances(db, crud_account.read_db_accounts(db, user_id))
    cards = reconciliation.recompute_card_used_amounts(db, crud_credit_card.read_db_credit_cards(db, user_id))
    investments = crud_investment.read_db_investments(db, user_id)

    total_accounts = sum((item.computed for item in accounts), Decimal('0.00'))
    total_credit_debt = sum((item.computed for item in cards), Decimal('0.00'))
    total_investments = sum((i.current_value for i in investments), Decimal('0.00'))

    monthly = [
        MonthlyTotals(
            month=month,
            income=monthly_income[month],
            expenses=monthly_expenses[month],
            balance=monthly_income[month] - monthly_expenses[month],
        )
        for month in range(1, 13)
    ]

    return FinancialSummary(
        year=year,
        total_income=total_income,
        total_expenses=total_expenses,
        total_accounts=total_accounts,
        total_investments=total_investments,
        total_credit_debt=total_credit_debt,
        net_worth=total_accounts + total_investments - total_credit_debt,
        monthly=monthly,
        expenses_by_category=by_category,
    )
