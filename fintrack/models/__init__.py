"""
Data Models Package

This package contains all Pydantic models used in the finance tracker.
All data flowing through the system must conform to these schemas.
"""

from fintrack.models.finance import (
    AnnualProjection,
    Category,
    Installment,
    Investment,
    InvestmentDraft,
    InvestmentType,
    MarketQuote,
    MonthProjection,
    PortfolioSummary,
    Summary,
    Theme,
    Transaction,
    TransactionDraft,
    TransactionType,
    UserProfile,
)
from fintrack.models.assistant import (
    ADD_ACTION_TYPES,
    ActionType,
    AIAction,
    AIActionData,
    AIResponse,
    ChatMessage,
    MessageRole,
    RiskAssessment,
    RiskLevel,
)
from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "AnnualProjection",
    "Category",
    "Installment",
    "Investment",
    "InvestmentDraft",
    "InvestmentType",
    "MarketQuote",
    "MonthProjection",
    "PortfolioSummary",
    "Summary",
    "Theme",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "UserProfile",
    # Assistant models
    "ADD_ACTION_TYPES",
    "ActionType",
    "AIAction",
    "AIActionData",
    "AIResponse",
    "ChatMessage",
    "MessageRole",
    "RiskAssessment",
    "RiskLevel",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
