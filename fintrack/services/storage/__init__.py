"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the durable backend; the in-memory backend serves tests
and unconfigured runs.
"""

from fintrack.services.storage.interface import (
    ConnectionError,
    InvestmentStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from fintrack.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsInvestmentStorage,
    GoogleSheetsProfileStorage,
    GoogleSheetsTransactionStorage,
)
from fintrack.services.storage.memory import (
    InMemoryInvestmentStorage,
    InMemoryProfileStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "InvestmentStorageInterface",
    "ProfileStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsInvestmentStorage",
    "GoogleSheetsProfileStorage",
    "GoogleSheetsTransactionStorage",
    # In-memory implementation
    "InMemoryInvestmentStorage",
    "InMemoryProfileStorage",
    "InMemoryTransactionStorage",
]
