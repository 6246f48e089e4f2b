"""Services package."""

from fintrack.services.market import QuoteService
from fintrack.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsInvestmentStorage,
    GoogleSheetsProfileStorage,
    GoogleSheetsTransactionStorage,
    InMemoryInvestmentStorage,
    InMemoryProfileStorage,
    InMemoryTransactionStorage,
    InvestmentStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Market
    "QuoteService",
    # Storage services
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsInvestmentStorage",
    "GoogleSheetsProfileStorage",
    "GoogleSheetsTransactionStorage",
    "InMemoryInvestmentStorage",
    "InMemoryProfileStorage",
    "InMemoryTransactionStorage",
    "InvestmentStorageInterface",
    "NotFoundError",
    "ProfileStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]
