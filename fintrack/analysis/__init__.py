"""Deterministic analysis package (no model calls, no I/O)."""

from fintrack.analysis.heuristics import analyze, top_expense_categories
from fintrack.analysis.installments import add_months, build_installment_drafts
from fintrack.analysis.portfolio import current_value, summarize
from fintrack.analysis.projection import annual_projection

__all__ = [
    "add_months",
    "analyze",
    "annual_projection",
    "build_installment_drafts",
    "current_value",
    "summarize",
    "top_expense_categories",
]
