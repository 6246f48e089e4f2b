"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface per logical collection
(transactions, investments, profiles). This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and offline runs
3. Keep the store decoupled from the storage implementation

Every operation is a single request/response. Nothing here retries:
the store decides what a failure means (rollback), not the adapter.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from fintrack.models.finance import (
    Investment,
    InvestmentDraft,
    Transaction,
    TransactionDraft,
    UserProfile,
)


class TransactionStorageInterface(ABC):
    """Durable copy of a user's transactions."""

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """
        List a user's transactions, newest first.

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def create_transaction(
        self,
        user_id: str,
        draft: TransactionDraft,
    ) -> Transaction:
        """
        Persist a new transaction.

        Returns:
            The canonical record, carrying the storage-assigned id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Transaction:
        """
        Apply a partial update.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Delete a transaction. Deleting a missing id is not an error.

        Raises:
            StorageError: If the write fails
        """
        pass


class InvestmentStorageInterface(ABC):
    """Durable copy of a user's investments."""

    @abstractmethod
    async def list_investments(self, user_id: str) -> list[Investment]:
        """List a user's investments, newest first."""
        pass

    @abstractmethod
    async def create_investment(
        self,
        user_id: str,
        draft: InvestmentDraft,
    ) -> Investment:
        """Persist a new investment and return the canonical record."""
        pass

    @abstractmethod
    async def update_investment(
        self,
        investment_id: str,
        updates: dict[str, Any],
    ) -> Investment:
        """Apply a partial update (e.g. re-saving current_value)."""
        pass

    @abstractmethod
    async def delete_investment(self, investment_id: str) -> None:
        pass


class ProfileStorageInterface(ABC):
    """Durable copy of user profiles (layouts and reservation included)."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Retrieve a profile.

        Returns:
            The profile if found, None otherwise
        """
        pass

    @abstractmethod
    async def save_profile(self, profile: UserProfile) -> UserProfile:
        """
        Insert or replace a profile.

        Raises:
            StorageError: If the write fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
