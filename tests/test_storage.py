"""
Tests for the Google Sheets storage backends.

A fake worksheet stands in for gspread: it keeps rows as lists of
strings, the way get_all_values() returns them.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import USER_ID, make_draft
from fintrack.models.finance import (
    Category,
    Installment,
    InvestmentDraft,
    InvestmentType,
    TransactionType,
    UserProfile,
)
from fintrack.services.storage import NotFoundError, StorageError
from fintrack.services.storage.google_sheets import (
    INVESTMENT_COLUMNS,
    PROFILE_COLUMNS,
    TRANSACTION_COLUMNS,
    GoogleSheetsInvestmentStorage,
    GoogleSheetsProfileStorage,
    GoogleSheetsTransactionStorage,
)


class FakeWorksheet:

    def __init__(self, header: list[str], rows=None):
        self.rows = [list(header)] + [list(r) for r in rows or []]

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def delete_rows(self, index):
        del self.rows[index - 1]

    def update_cell(self, row, col, value):
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = str(value)


class FakeClient:

    def __init__(self, transactions=None, investments=None, profiles=None):
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS, transactions)
        self.investments = FakeWorksheet(INVESTMENT_COLUMNS, investments)
        self.profiles = FakeWorksheet(PROFILE_COLUMNS, profiles)

    def get_transactions_sheet(self):
        return self.transactions

    def get_investments_sheet(self):
        return self.investments

    def get_profiles_sheet(self):
        return self.profiles


class BrokenClient(FakeClient):

    def get_transactions_sheet(self):
        raise RuntimeError("quota exceeded")


TX_ROW = ["t1", USER_ID, "Rent", "1200.00", "expense", "Housing", "2024-05-01", "True", "", "2024-05-01T08:00:00"]


class TestTransactionSheet:
    """Tests for GoogleSheetsTransactionStorage."""

    @pytest.mark.asyncio
    async def test_row_mapping(self):
        """Test that a row becomes a Transaction."""
        storage = GoogleSheetsTransactionStorage(FakeClient(transactions=[TX_ROW]))

        [tx] = await storage.list_transactions(USER_ID)

        assert tx.id == "t1"
        assert tx.amount == Decimal("1200.00")
        assert tx.type == TransactionType.EXPENSE
        assert tx.category == Category.HOUSING
        assert tx.date == date(2024, 5, 1)
        assert tx.is_fixed is True
        assert tx.installment is None

    @pytest.mark.asyncio
    async def test_filters_by_user_and_skips_malformed_rows(self):
        """Test that other users' rows and broken rows are ignored."""
        rows = [
            TX_ROW,
            ["t2", "someone-else"] + TX_ROW[2:],
            ["t3", USER_ID, "Bad", "not-a-number", "expense", "Food", "2024-05-02"],
            ["t4", USER_ID, "Bad type", "1.00", "transfer", "Food", "2024-05-02"],
            [],
        ]
        storage = GoogleSheetsTransactionStorage(FakeClient(transactions=rows))

        transactions = await storage.list_transactions(USER_ID)

        assert [t.id for t in transactions] == ["t1"]

    @pytest.mark.asyncio
    async def test_sorted_newest_first(self):
        """Test the list order."""
        older = ["t0", USER_ID, "Old", "1.00", "expense", "Food", "2024-01-01"]
        storage = GoogleSheetsTransactionStorage(FakeClient(transactions=[older, TX_ROW]))

        transactions = await storage.list_transactions(USER_ID)

        assert [t.id for t in transactions] == ["t1", "t0"]

    @pytest.mark.asyncio
    async def test_create_appends_row(self):
        """Test that created transactions round through the sheet with installment data."""
        client = FakeClient()
        storage = GoogleSheetsTransactionStorage(client)
        draft = make_draft("Phone (1/3)", amount="33.33").model_copy(
            update={"installment": Installment(current=1, total=3)}
        )

        saved = await storage.create_transaction(USER_ID, draft)
        [loaded] = await storage.list_transactions(USER_ID)

        assert len(client.transactions.rows) == 2
        assert saved.id and saved.id == loaded.id
        assert loaded.installment == Installment(current=1, total=3)
        assert loaded.amount == Decimal("33.33")

    @pytest.mark.asyncio
    async def test_update_rewrites_row(self):
        """Test that only the given fields change."""
        client = FakeClient(transactions=[TX_ROW])
        storage = GoogleSheetsTransactionStorage(client)

        updated = await storage.update_transaction("t1", {"amount": Decimal("1300.00")})

        assert updated.amount == Decimal("1300.00")
        assert updated.description == "Rent"
        assert client.transactions.rows[1][3] == "1300.00"
        assert client.transactions.rows[1][9] == "2024-05-01T08:00:00"

    @pytest.mark.asyncio
    async def test_update_unknown_id(self):
        """Test that updating a missing row raises NotFoundError."""
        storage = GoogleSheetsTransactionStorage(FakeClient())

        with pytest.raises(NotFoundError):
            await storage.update_transaction("missing", {"amount": Decimal("1")})

    @pytest.mark.asyncio
    async def test_delete(self):
        """Test that the row is removed and unknown ids are ignored."""
        client = FakeClient(transactions=[TX_ROW])
        storage = GoogleSheetsTransactionStorage(client)

        await storage.delete_transaction("missing")
        await storage.delete_transaction("t1")

        assert client.transactions.rows == [TRANSACTION_COLUMNS]

    @pytest.mark.asyncio
    async def test_sheet_failure_becomes_storage_error(self):
        """Test that client errors are wrapped."""
        storage = GoogleSheetsTransactionStorage(BrokenClient())

        with pytest.raises(StorageError):
            await storage.list_transactions(USER_ID)
        with pytest.raises(StorageError):
            await storage.create_transaction(USER_ID, make_draft())


class TestInvestmentSheet:
    """Tests for GoogleSheetsInvestmentStorage."""

    @pytest.mark.asyncio
    async def test_create_and_list(self):
        """Test that an investment survives the row mapping."""
        storage = GoogleSheetsInvestmentStorage(FakeClient())
        draft = InvestmentDraft(
            name="HGLG11",
            type=InvestmentType.REITS,
            amount_invested=Decimal("1500"),
            quantity=Decimal("9.5"),
        )

        saved = await storage.create_investment(USER_ID, draft)
        [loaded] = await storage.list_investments(USER_ID)

        assert loaded.id == saved.id
        assert loaded.type == InvestmentType.REITS
        assert loaded.quantity == Decimal("9.5")
        assert loaded.amount_invested == Decimal("1500")

    @pytest.mark.asyncio
    async def test_update_snapshot(self):
        """Test saving a new current value."""
        row = ["i1", USER_ID, "PETR4", "Stocks", "1000", "0", "10", "2024-03-02T12:00:00"]
        client = FakeClient(investments=[row])
        storage = GoogleSheetsInvestmentStorage(client)

        updated = await storage.update_investment("i1", {"current_value": Decimal("1100")})

        assert updated.current_value == Decimal("1100")
        assert updated.created_at == datetime(2024, 3, 2, 12, 0, tzinfo=timezone.utc)
        assert client.investments.rows[1][5] == "1100"

    @pytest.mark.asyncio
    async def test_naive_and_aware_rows_sort_together(self):
        """Test that older naive timestamps are read as UTC next to newer aware ones."""
        rows = [
            ["old", USER_ID, "PETR4", "Stocks", "1", "0", "1", "2024-03-02T12:00:00"],
            ["new", USER_ID, "VALE3", "Stocks", "1", "0", "1", "2024-03-02T13:00:00+00:00"],
        ]
        storage = GoogleSheetsInvestmentStorage(FakeClient(investments=rows))

        loaded = await storage.list_investments(USER_ID)

        assert [i.id for i in loaded] == ["new", "old"]
        assert all(i.created_at.tzinfo is not None for i in loaded)


class TestProfileSheet:
    """Tests for GoogleSheetsProfileStorage."""

    @pytest.mark.asyncio
    async def test_missing_profile(self):
        """Test that an unknown user has no profile."""
        storage = GoogleSheetsProfileStorage(FakeClient())

        assert await storage.get_profile(USER_ID) is None

    @pytest.mark.asyncio
    async def test_save_inserts_then_updates(self):
        """Test profile upsert with layouts and reservation."""
        client = FakeClient()
        storage = GoogleSheetsProfileStorage(client)
        profile = UserProfile(id=USER_ID, name="Ana Silva")

        await storage.save_profile(profile)
        await storage.save_profile(profile.model_copy(update={
            "dashboard_layouts": {"principal": ["summary", "annual"]},
            "reservation_balance": Decimal("250.00"),
        }))
        loaded = await storage.get_profile(USER_ID)

        assert len(client.profiles.rows) == 2
        assert loaded.name == "Ana Silva"
        assert loaded.dashboard_layouts == {"principal": ["summary", "annual"]}
        assert loaded.reservation_balance == Decimal("250.00")
        assert loaded.avatar_url is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
