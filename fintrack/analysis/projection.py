"""
Annual Projection

Month-by-month cash flow for one year. Transactions land in the month
of their own date, exactly as in FinanceStore.get_summary; a fixed
transaction is not repeated across months. Investments count as an
outflow in the month they were created.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from fintrack.models.finance import (
    AnnualProjection,
    Investment,
    MonthProjection,
    Transaction,
    TransactionType,
)


def annual_projection(
    transactions: Iterable[Transaction],
    investments: Iterable[Investment] = (),
    year: Optional[int] = None,
) -> AnnualProjection:
    year = year or date.today().year
    months = [MonthProjection(month=m) for m in range(1, 13)]

    for tx in transactions:
        if tx.date.year != year:
            continue
        row = months[tx.date.month - 1]
        if tx.type == TransactionType.INCOME:
            row.income += Decimal(tx.amount)
        else:
            row.expense += Decimal(tx.amount)

    for investment in investments:
        if investment.created_at.year != year:
            continue
        months[investment.created_at.month - 1].investment += investment.amount_invested

    return AnnualProjection(year=year, months=months)
