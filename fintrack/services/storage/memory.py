"""
In-Memory Storage Implementation

Used by the tests and when Google Sheets isn't configured, so the app
still runs (nothing survives a restart). Records are copied on the way
in and out so callers can never mutate the stored copy by accident.
"""

from typing import Any, Optional
from uuid import uuid4

from fintrack.models.finance import (
    Investment,
    InvestmentDraft,
    Transaction,
    TransactionDraft,
    UserProfile,
)
from fintrack.services.storage.interface import (
    InvestmentStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._rows: dict[str, Transaction] = {
            tx.id: tx.model_copy() for tx in transactions or []
        }

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        rows = [tx.model_copy() for tx in self._rows.values() if tx.user_id == user_id]
        rows.sort(key=lambda t: t.date, reverse=True)
        return rows

    async def create_transaction(
        self,
        user_id: str,
        draft: TransactionDraft,
    ) -> Transaction:
        transaction = Transaction.from_draft(draft, id=str(uuid4()), user_id=user_id)
        self._rows[transaction.id] = transaction
        return transaction.model_copy()

    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Transaction:
        current = self._rows.get(transaction_id)
        if current is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        updated = Transaction.model_validate({**current.model_dump(), **updates, "id": current.id})
        self._rows[transaction_id] = updated
        return updated.model_copy()

    async def delete_transaction(self, transaction_id: str) -> None:
        self._rows.pop(transaction_id, None)


class InMemoryInvestmentStorage(InvestmentStorageInterface):

    def __init__(self, investments: Optional[list[Investment]] = None):
        self._rows: dict[str, Investment] = {
            inv.id: inv.model_copy() for inv in investments or []
        }

    async def list_investments(self, user_id: str) -> list[Investment]:
        rows = [inv.model_copy() for inv in self._rows.values() if inv.user_id == user_id]
        rows.sort(key=lambda i: i.created_at, reverse=True)
        return rows

    async def create_investment(
        self,
        user_id: str,
        draft: InvestmentDraft,
    ) -> Investment:
        investment = Investment(id=str(uuid4()), user_id=user_id, **draft.model_dump())
        self._rows[investment.id] = investment
        return investment.model_copy()

    async def update_investment(
        self,
        investment_id: str,
        updates: dict[str, Any],
    ) -> Investment:
        current = self._rows.get(investment_id)
        if current is None:
            raise NotFoundError(f"Investment not found: {investment_id}")
        updated = Investment.model_validate({**current.model_dump(), **updates, "id": current.id})
        self._rows[investment_id] = updated
        return updated.model_copy()

    async def delete_investment(self, investment_id: str) -> None:
        self._rows.pop(investment_id, None)


class InMemoryProfileStorage(ProfileStorageInterface):

    def __init__(self, profiles: Optional[list[UserProfile]] = None):
        self._rows: dict[str, UserProfile] = {
            p.id: p.model_copy(deep=True) for p in profiles or []
        }

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        profile = self._rows.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def save_profile(self, profile: UserProfile) -> UserProfile:
        self._rows[profile.id] = profile.model_copy(deep=True)
        return profile.model_copy(deep=True)
