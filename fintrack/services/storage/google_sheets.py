"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the durable backend because:
1. Users can look at (and export) their own data directly
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for one household)
- No transactions across rows (the store rolls back locally instead)
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet with snake_case headers.
The _x_to_row / _row_to_x pairs are the only place where the
model <-> row mapping is defined.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from fintrack.config import get_settings
from fintrack.models.finance import (
    Category,
    Installment,
    Investment,
    InvestmentDraft,
    InvestmentType,
    Transaction,
    TransactionDraft,
    TransactionType,
    UserProfile,
)
from fintrack.services.storage.interface import (
    ConnectionError,
    InvestmentStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "description",
    "amount",
    "type",
    "category",
    "date",
    "is_fixed",
    "installment_json",
    "created_at",
]

INVESTMENT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "type",
    "amount_invested",
    "current_value",
    "quantity",
    "created_at",
]

PROFILE_COLUMNS = [
    "id",
    "name",
    "avatar_url",
    "is_premium",
    "trial_start",
    "dashboard_layouts_json",
    "reservation_balance",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _parse_timestamp(value: str) -> Optional[datetime]:
    """Read an ISO timestamp cell; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and retries opening the connection.
    Worksheets are created with their header row on first use.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_investments_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.investments_sheet_name, INVESTMENT_COLUMNS)

    def get_profiles_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.profiles_sheet_name, PROFILE_COLUMNS)


def _find_row(all_rows: list[list], record_id: str) -> Optional[int]:
    """Return the 1-based sheet row index holding record_id (row 1 is the header)."""
    for idx, row in enumerate(all_rows[1:], start=2):
        if row and row[0] == record_id:
            return idx
    return None


def _rewrite_row(sheet: gspread.Worksheet, row_index: int, values: list) -> None:
    for col_idx, value in enumerate(values, start=1):
        sheet.update_cell(row_index, col_idx, value)


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row; installment metadata is JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction, created_at: Optional[datetime] = None) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            tx.id,
            tx.user_id,
            tx.description,
            str(tx.amount),
            tx.type.value,
            tx.category.value,
            tx.date.isoformat(),
            str(tx.is_fixed),
            json.dumps(tx.installment.model_dump()) if tx.installment else "",
            (created_at or datetime.now(timezone.utc)).isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        installment_json = _safe_get(row, 8)
        return Transaction(
            id=_safe_get(row, 0),
            user_id=_safe_get(row, 1),
            description=_safe_get(row, 2),
            amount=Decimal(_safe_get(row, 3, "0")),
            type=TransactionType(_safe_get(row, 4)),
            category=Category.parse(_safe_get(row, 5)),
            date=date.fromisoformat(_safe_get(row, 6)[:10]),
            is_fixed=_safe_get(row, 7).lower() == "true",
            installment=Installment(**json.loads(installment_json)) if installment_json else None,
        )

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0] or _safe_get(row, 1) != user_id:
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except Exception:
                continue  # Skip malformed rows

        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def create_transaction(
        self,
        user_id: str,
        draft: TransactionDraft,
    ) -> Transaction:
        transaction = Transaction.from_draft(draft, id=str(uuid4()), user_id=user_id)
        try:
            sheet = self._client.get_transactions_sheet()
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")
        return transaction

    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            row_index = _find_row(all_rows, transaction_id)
            if row_index is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")

            row = all_rows[row_index - 1]
            current = self._row_to_transaction(row)
            updated = Transaction.model_validate({**current.model_dump(), **updates, "id": current.id})
            created_at = _safe_get(row, 9)
            _rewrite_row(
                sheet,
                row_index,
                self._transaction_to_row(
                    updated,
                    _parse_timestamp(created_at),
                ),
            )
            return updated
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: str) -> None:
        try:
            sheet = self._client.get_transactions_sheet()
            row_index = _find_row(sheet.get_all_values(), transaction_id)
            if row_index is not None:
                sheet.delete_rows(row_index)
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")


class GoogleSheetsInvestmentStorage(InvestmentStorageInterface):
    """Google Sheets implementation of investment storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _investment_to_row(self, inv: Investment) -> list:
        return [
            inv.id,
            inv.user_id,
            inv.name,
            inv.type.value,
            str(inv.amount_invested),
            str(inv.current_value),
            str(inv.quantity),
            inv.created_at.isoformat(),
        ]

    def _row_to_investment(self, row: list) -> Investment:
        created_at = _safe_get(row, 7)
        return Investment(
            id=_safe_get(row, 0),
            user_id=_safe_get(row, 1),
            name=_safe_get(row, 2),
            type=InvestmentType(_safe_get(row, 3, InvestmentType.OTHER.value)),
            amount_invested=Decimal(_safe_get(row, 4, "0")),
            current_value=Decimal(_safe_get(row, 5, "0")),
            quantity=Decimal(_safe_get(row, 6, "0")),
            created_at=_parse_timestamp(created_at) or datetime.now(timezone.utc),
        )

    async def list_investments(self, user_id: str) -> list[Investment]:
        try:
            sheet = self._client.get_investments_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list investments: {e}")

        investments = []
        for row in all_rows:
            if not row or not row[0] or _safe_get(row, 1) != user_id:
                continue
            try:
                investments.append(self._row_to_investment(row))
            except Exception:
                continue

        investments.sort(key=lambda i: i.created_at, reverse=True)
        return investments

    async def create_investment(
        self,
        user_id: str,
        draft: InvestmentDraft,
    ) -> Investment:
        investment = Investment(id=str(uuid4()), user_id=user_id, **draft.model_dump())
        try:
            sheet = self._client.get_investments_sheet()
            sheet.append_row(self._investment_to_row(investment), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save investment: {e}")
        return investment

    async def update_investment(
        self,
        investment_id: str,
        updates: dict[str, Any],
    ) -> Investment:
        try:
            sheet = self._client.get_investments_sheet()
            all_rows = sheet.get_all_values()
            row_index = _find_row(all_rows, investment_id)
            if row_index is None:
                raise NotFoundError(f"Investment not found: {investment_id}")

            current = self._row_to_investment(all_rows[row_index - 1])
            updated = Investment.model_validate({**current.model_dump(), **updates, "id": current.id})
            _rewrite_row(sheet, row_index, self._investment_to_row(updated))
            return updated
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update investment: {e}")

    async def delete_investment(self, investment_id: str) -> None:
        try:
            sheet = self._client.get_investments_sheet()
            row_index = _find_row(sheet.get_all_values(), investment_id)
            if row_index is not None:
                sheet.delete_rows(row_index)
        except Exception as e:
            raise StorageError(f"Failed to delete investment: {e}")


class GoogleSheetsProfileStorage(ProfileStorageInterface):
    """
    Google Sheets implementation of profile storage.

    Layouts are JSON-serialized; the reservation balance lives on
    the profile row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _profile_to_row(self, profile: UserProfile) -> list:
        return [
            profile.id,
            profile.name,
            profile.avatar_url or "",
            str(profile.is_premium),
            profile.trial_start.isoformat() if profile.trial_start else "",
            json.dumps(profile.dashboard_layouts),
            str(profile.reservation_balance),
        ]

    def _row_to_profile(self, row: list) -> UserProfile:
        layouts_json = _safe_get(row, 5)
        trial_start = _safe_get(row, 4)
        return UserProfile(
            id=_safe_get(row, 0),
            name=_safe_get(row, 1),
            avatar_url=_safe_get(row, 2) or None,
            is_premium=_safe_get(row, 3).lower() == "true",
            trial_start=datetime.fromisoformat(trial_start) if trial_start else None,
            dashboard_layouts=json.loads(layouts_json) if layouts_json else {},
            reservation_balance=Decimal(_safe_get(row, 6, "0")),
        )

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            sheet = self._client.get_profiles_sheet()
            all_rows = sheet.get_all_values()
            row_index = _find_row(all_rows, user_id)
            if row_index is None:
                return None
            return self._row_to_profile(all_rows[row_index - 1])
        except Exception as e:
            raise StorageError(f"Failed to get profile: {e}")

    async def save_profile(self, profile: UserProfile) -> UserProfile:
        try:
            sheet = self._client.get_profiles_sheet()
            row = self._profile_to_row(profile)
            row_index = _find_row(sheet.get_all_values(), profile.id)
            if row_index is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                _rewrite_row(sheet, row_index, row)
            return profile
        except Exception as e:
            raise StorageError(f"Failed to save profile: {e}")
