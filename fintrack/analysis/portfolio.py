"""
Portfolio Figures

Derived investment values. Live prices override the stored snapshot
here and only here: nothing in this module writes back to an Investment.
"""

from decimal import Decimal
from typing import Iterable, Mapping

from fintrack.models.finance import Investment, PortfolioSummary


def current_value(investment: Investment, prices: Mapping[str, Decimal]) -> Decimal:
    """
    Value of one position.

    Live price × quantity when a live price exists; otherwise the stored
    snapshot if it is set, otherwise the cost basis.
    """
    live_price = prices.get(investment.name)
    if live_price is not None:
        return Decimal(live_price) * investment.quantity
    if investment.current_value > 0:
        return investment.current_value
    return investment.amount_invested


def summarize(
    investments: Iterable[Investment],
    prices: Mapping[str, Decimal],
) -> PortfolioSummary:
    """Totals, profit and allocation (by current value) for a portfolio."""
    total_invested = Decimal("0")
    total_current = Decimal("0")
    allocation: dict[str, Decimal] = {}

    for investment in investments:
        value = current_value(investment, prices)
        total_invested += investment.amount_invested
        total_current += value
        allocation[investment.type.value] = allocation.get(investment.type.value, Decimal("0")) + value

    profit = total_current - total_invested
    profit_percent = (profit / total_invested * 100) if total_invested > 0 else Decimal("0")

    return PortfolioSummary(
        total_invested=total_invested,
        total_current=total_current,
        profit=profit,
        profit_percent=profit_percent,
        allocation=allocation,
    )
