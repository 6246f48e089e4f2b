"""
Local Heuristic Analyzer

Deterministic budget tips computed without any model call. Used for the
proactive tip bubble and as the assistant's offline/fallback answer.

Rules, in emission order:
1. Expenses above 90% of income (with income > 0)
2. Negative balance
3. Largest expense category and its total
"""

from decimal import Decimal
from typing import Iterable

from fintrack.models.finance import Transaction, TransactionType


HIGH_SPEND_RATIO = Decimal("0.9")

HIGH_SPEND_TIP = "⚠️ Careful! You have already spent more than 90% of what you earned."
NEGATIVE_BALANCE_TIP = "🚨 Your balance is negative. Avoid new non-essential spending."


def _category_label(category) -> str:
    return getattr(category, "value", str(category))


def top_expense_categories(transactions: Iterable[Transaction]) -> list[tuple[str, Decimal]]:
    """
    Sum expenses per category, largest first.

    Ties keep first-seen order (sorted() is stable).
    """
    totals: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.type != TransactionType.EXPENSE:
            continue
        label = _category_label(tx.category)
        totals[label] = totals.get(label, Decimal("0")) + Decimal(tx.amount)
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def analyze(transactions: Iterable[Transaction], balance) -> list[str]:
    """
    Produce ordered, human-readable budget tips.

    Args:
        transactions: Transactions to analyze (any order)
        balance: Current balance the caller wants judged

    Returns:
        Tips in rule order; callers usually show only the first
    """
    transactions = list(transactions)
    tips: list[str] = []

    total_income = sum(
        (Decimal(t.amount) for t in transactions if t.type == TransactionType.INCOME),
        Decimal("0"),
    )
    total_expense = sum(
        (Decimal(t.amount) for t in transactions if t.type == TransactionType.EXPENSE),
        Decimal("0"),
    )

    if total_income > 0 and total_expense > total_income * HIGH_SPEND_RATIO:
        tips.append(HIGH_SPEND_TIP)

    if Decimal(str(balance)) < 0:
        tips.append(NEGATIVE_BALANCE_TIP)

    ranked = top_expense_categories(transactions)
    if ranked:
        category, amount = ranked[0]
        tips.append(
            f"💡 Your biggest expense is **{category}** ({amount:.2f}). "
            "Try cutting back here."
        )

    return tips
