"""
Installment Splitting

Turns one purchase into N monthly transactions. Each part carries the
per-installment share, never the total.
"""

import calendar
from datetime import date
from decimal import ROUND_DOWN, Decimal

from fintrack.models.finance import (
    DESCRIPTION_MAX_LENGTH,
    Installment,
    TransactionDraft,
    TransactionType,
)


CENT = Decimal("0.01")


def add_months(start: date, months: int) -> date:
    """Shift a date by whole months, clamping to the target month's last day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def build_installment_drafts(draft: TransactionDraft, count: int) -> list[TransactionDraft]:
    """
    Split an expense into ``count`` monthly installments.

    ``draft.amount`` is the purchase total. Shares are rounded down to
    the cent and the remainder goes on the last installment, so the
    parts always add up to the total.

    Raises:
        ValueError: If count < 2 or the draft is not an expense
    """
    if count < 2:
        raise ValueError("An installment purchase needs at least 2 parts")
    if draft.type != TransactionType.EXPENSE:
        raise ValueError("Only expenses can be split into installments")

    total = Decimal(draft.amount)
    share = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    last_share = total - share * (count - 1)

    # Leave room for the longest " (i/count)" suffix
    room = DESCRIPTION_MAX_LENGTH - len(f" ({count}/{count})")
    base = draft.description[:room].rstrip()

    drafts = []
    for i in range(count):
        drafts.append(
            TransactionDraft.model_validate({
                **draft.model_dump(),
                "description": f"{base} ({i + 1}/{count})",
                "amount": last_share if i == count - 1 else share,
                "date": add_months(draft.date, i),
                "is_fixed": False,
                "installment": Installment(current=i + 1, total=count),
            })
        )
    return drafts
