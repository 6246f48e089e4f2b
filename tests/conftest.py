"""
Shared fixtures for the finance tracker tests.

No real network or spreadsheet access: storage is in-memory (with
switches to make writes fail or wait) and model backends are scripted.
"""

import asyncio
import json
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from fintrack.agents import FinancialAssistant, ModelBackend
from fintrack.audit import AuditLogger
from fintrack.models.finance import (
    Category,
    Investment,
    Transaction,
    TransactionDraft,
    TransactionType,
    UserProfile,
)
from fintrack.services.storage import (
    InMemoryInvestmentStorage,
    InMemoryProfileStorage,
    InMemoryTransactionStorage,
    StorageError,
)
from fintrack.store import FinanceStore


TODAY = date(2024, 5, 15)
USER_ID = "user-1"
USER_NAME = "Ana Silva"
SALARY_LABEL = "Monthly Salary"


def make_draft(
    description: str = "Groceries",
    amount: str = "50.00",
    type: TransactionType = TransactionType.EXPENSE,
    category: Category = Category.FOOD,
    on: date = TODAY,
    is_fixed: bool = False,
) -> TransactionDraft:
    return TransactionDraft(
        description=description,
        amount=Decimal(amount),
        type=type,
        category=category,
        date=on,
        is_fixed=is_fixed,
    )


def make_transaction(id: str, user_id: str = USER_ID, **kwargs) -> Transaction:
    return Transaction.from_draft(make_draft(**kwargs), id=id, user_id=user_id)


def ai_reply(
    message: str = "Got it!",
    risk_level: str = "low",
    risk_message: str = "All good.",
    action: Optional[dict] = None,
    fenced: bool = False,
) -> str:
    """Build a model reply in the JSON shape the prompt asks for."""
    payload = {
        "message": message,
        "riskAssessment": {"riskLevel": risk_level, "message": risk_message},
    }
    if action is not None:
        payload["action"] = action
    text = json.dumps(payload)
    return f"```json\n{text}\n```" if fenced else text


class FlakyTransactionStorage(InMemoryTransactionStorage):
    """In-memory storage whose writes can be made to fail or to wait on a gate."""

    def __init__(self, transactions=None):
        super().__init__(transactions)
        self.fail_create = False
        self.fail_update = False
        self.fail_delete = False
        self.fail_list = False
        self.create_gate: Optional[asyncio.Event] = None
        self.deleted: list[str] = []

    async def list_transactions(self, user_id):
        if self.fail_list:
            raise StorageError("list failed")
        return await super().list_transactions(user_id)

    async def create_transaction(self, user_id, draft):
        gate = self.create_gate
        if gate is not None:
            await gate.wait()
        if self.fail_create:
            raise StorageError("create failed")
        return await super().create_transaction(user_id, draft)

    async def update_transaction(self, transaction_id, updates):
        if self.fail_update:
            raise StorageError("update failed")
        return await super().update_transaction(transaction_id, updates)

    async def delete_transaction(self, transaction_id):
        if self.fail_delete:
            raise StorageError("delete failed")
        self.deleted.append(transaction_id)
        await super().delete_transaction(transaction_id)


class FlakyInvestmentStorage(InMemoryInvestmentStorage):

    def __init__(self, investments=None):
        super().__init__(investments)
        self.fail_writes = False

    async def create_investment(self, user_id, draft):
        if self.fail_writes:
            raise StorageError("create failed")
        return await super().create_investment(user_id, draft)

    async def update_investment(self, investment_id, updates):
        if self.fail_writes:
            raise StorageError("update failed")
        return await super().update_investment(investment_id, updates)

    async def delete_investment(self, investment_id):
        if self.fail_writes:
            raise StorageError("delete failed")
        await super().delete_investment(investment_id)


class FlakyProfileStorage(InMemoryProfileStorage):

    def __init__(self, profiles=None):
        super().__init__(profiles)
        self.fail_save = False

    async def save_profile(self, profile: UserProfile) -> UserProfile:
        if self.fail_save:
            raise StorageError("save failed")
        return await super().save_profile(profile)


class ScriptedBackend(ModelBackend):
    """Returns queued replies in order; an Exception in the queue is raised."""

    def __init__(self, name: str, replies: list):
        self.name = name
        self._replies = list(replies)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def audit_logger():
    return AuditLogger(history_size=500)


@pytest.fixture
def transaction_storage():
    return FlakyTransactionStorage()


@pytest.fixture
def investment_storage():
    return FlakyInvestmentStorage()


@pytest.fixture
def profile_storage():
    return FlakyProfileStorage()


@pytest.fixture
def store(transaction_storage, investment_storage, profile_storage, audit_logger):
    return FinanceStore(
        transaction_storage,
        investment_storage,
        profile_storage,
        audit_logger=audit_logger,
        salary_label=SALARY_LABEL,
        today=lambda: TODAY,
    )


@pytest.fixture
def backend():
    return ScriptedBackend("fake-model", [ai_reply()])


@pytest.fixture
def assistant(backend, audit_logger):
    return FinancialAssistant(backends=[backend], audit_logger=audit_logger, recent_limit=10)


def event_types(audit_logger: AuditLogger) -> list[str]:
    return [event.event_type.value for event in audit_logger.history]


def make_investment(id: str, name: str = "PETR4", user_id: str = USER_ID, **kwargs) -> Investment:
    values = {
        "amount_invested": Decimal("1000"),
        "current_value": Decimal("0"),
        "quantity": Decimal("10"),
    }
    values.update(kwargs)
    return Investment(id=id, user_id=user_id, name=name, **values)
