"""
Core Data Models for the Finance Tracker

These models define the schemas for all session data:
transactions, investments, the user profile and derived summaries.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Amounts are Decimal, never float.
Summing floats drifts; summaries must be exact to the cent.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


class Category(str, Enum):
    """
    Supported transaction categories.

    DESIGN DECISION: A closed label set rather than free text keeps
    the per-category tips and charts consistent.
    """
    SALARY = "Salary"
    FOOD = "Food"
    HOUSING = "Housing"
    TRANSPORT = "Transport"
    LEISURE = "Leisure"
    HEALTH = "Health"
    EDUCATION = "Education"
    OTHER = "Other"

    @classmethod
    def parse(cls, label: Optional[str]) -> "Category":
        """Map a free-text label (e.g. from the AI) to a category, defaulting to OTHER."""
        if not label:
            return cls.OTHER
        wanted = label.strip().lower()
        for category in cls:
            if category.value.lower() == wanted or category.name.lower() == wanted:
                return category
        return cls.OTHER


class InvestmentType(str, Enum):
    """Investment asset classes."""
    STOCKS = "Stocks"
    REITS = "REITs"
    FIXED_INCOME = "Fixed Income"
    CRYPTO = "Crypto"
    FUNDS = "Funds"
    OTHER = "Other"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


# =============================================================================
# TRANSACTIONS
# =============================================================================

DESCRIPTION_MAX_LENGTH = 200


class Installment(BaseModel):
    """Position of a transaction inside a multi-part purchase."""

    current: int = Field(..., ge=1)
    total: int = Field(..., ge=1)

    @model_validator(mode='after')
    def validate_position(self) -> 'Installment':
        if self.current > self.total:
            raise ValueError("Installment index cannot exceed the installment count")
        return self


class TransactionDraft(BaseModel):
    """
    A transaction as entered by the user or proposed by the assistant.

    Has no identity yet: the store assigns a temporary id and the
    storage backend assigns the final one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(
        ...,
        min_length=1,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="What the money was for"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Amount; for installments this is the per-installment share"
    )
    type: TransactionType
    category: Category = Category.OTHER
    date: date
    is_fixed: bool = Field(
        default=False,
        description="Recurs every month (salary, rent)"
    )
    installment: Optional[Installment] = None


class Transaction(TransactionDraft):
    """A transaction owned by a user."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)

    @classmethod
    def from_draft(cls, draft: TransactionDraft, id: str, user_id: str) -> "Transaction":
        return cls(id=id, user_id=user_id, **draft.model_dump())


# =============================================================================
# INVESTMENTS
# =============================================================================

class InvestmentDraft(BaseModel):
    """An investment position before it is saved."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Ticker or asset name (used as the quote lookup key)"
    )
    type: InvestmentType = InvestmentType.STOCKS
    amount_invested: Decimal = Field(
        ...,
        ge=0,
        description="Cost basis"
    )
    current_value: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Last saved valuation; may be stale"
    )
    quantity: Decimal = Field(
        default=Decimal("1"),
        ge=0,
        description="Units held (fractional allowed)"
    )


class Investment(InvestmentDraft):
    """A saved investment position."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MarketQuote(BaseModel):
    """Live price for one ticker."""

    symbol: str
    current_price: Decimal
    change_percent: Decimal = Decimal("0")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# =============================================================================
# USER PROFILE
# =============================================================================

class UserProfile(BaseModel):
    """
    The signed-in user.

    Dashboard layouts map a page name ("principal", "analytics")
    to the ordered list of widget-instance ids shown on it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    avatar_url: Optional[str] = None
    is_premium: bool = False
    trial_start: Optional[datetime] = None
    dashboard_layouts: dict[str, list[str]] = Field(default_factory=dict)
    reservation_balance: Decimal = Field(
        default=Decimal("0"),
        description="Running total of money set aside"
    )

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else self.name


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class Summary(BaseModel):
    """Totals for the selected month."""

    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    reservation: Decimal = Decimal("0")


class PortfolioSummary(BaseModel):
    """Investment totals using live prices where available."""

    total_invested: Decimal = Decimal("0")
    total_current: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    profit_percent: Decimal = Decimal("0")
    allocation: dict[str, Decimal] = Field(default_factory=dict)


class MonthProjection(BaseModel):
    """One month of the annual projection."""

    month: int = Field(..., ge=1, le=12)
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    investment: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.income - self.expense - self.investment


class AnnualProjection(BaseModel):
    """Twelve monthly rows plus yearly totals."""

    year: int
    months: list[MonthProjection]

    @property
    def total_income(self) -> Decimal:
        return sum((m.income for m in self.months), Decimal("0"))

    @property
    def total_expense(self) -> Decimal:
        return sum((m.expense for m in self.months), Decimal("0"))

    @property
    def total_investment(self) -> Decimal:
        return sum((m.investment for m in self.months), Decimal("0"))

    @property
    def total_balance(self) -> Decimal:
        return sum((m.balance for m in self.months), Decimal("0"))
