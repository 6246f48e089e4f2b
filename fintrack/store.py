"""
Finance Store

The single source of truth for a session's data: the signed-in user,
transactions, investments and UI preferences.

DESIGN DECISION: One store instance per session, passed to whoever
needs it. There is no module-level store, so every test builds its own.

MUTATION CONTRACT:
1. Apply the change locally and notify subscribers (optimistic)
2. Issue the remote write
3. On success, swap in the canonical record by id, in place
4. On failure, roll back locally and audit the error

No mutator raises on a remote failure. Callers get None/False back.

Every optimistic insert is tracked as an explicit entry
(temp id → final id, pending → confirmed | rolled_back | discarded)
rather than by searching the list for matching fields.
"""

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ValidationError

from fintrack.analysis.installments import build_installment_drafts
from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.config import get_settings
from fintrack.models.audit import AuditEventType
from fintrack.models.finance import (
    Category,
    Investment,
    InvestmentDraft,
    Summary,
    Theme,
    Transaction,
    TransactionDraft,
    TransactionType,
    UserProfile,
)
from fintrack.services.storage import (
    InMemoryInvestmentStorage,
    InMemoryProfileStorage,
    InvestmentStorageInterface,
    ProfileStorageInterface,
    TransactionStorageInterface,
)


TEMP_ID_PREFIX = "temp-"

# Namespace for deriving stable user ids from display names
USER_ID_NAMESPACE = uuid.UUID("6f1c2a52-3c3e-4b8e-9a57-6a2b3c1d9e01")


class StoreEvent(str, Enum):
    """Why subscribers are being notified."""
    HYDRATED = "hydrated"
    CLEARED = "cleared"
    TRANSACTIONS_CHANGED = "transactions_changed"
    INVESTMENTS_CHANGED = "investments_changed"
    PROFILE_CHANGED = "profile_changed"
    PREFERENCES_CHANGED = "preferences_changed"


class OptimisticStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"
    DISCARDED = "discarded"  # removed locally before the create confirmed


class OptimisticEntry(BaseModel):
    """Tracks one optimistic insert from temporary id to final id."""

    temp_id: str
    collection: str
    status: OptimisticStatus = OptimisticStatus.PENDING
    final_id: Optional[str] = None


StoreListener = Callable[["FinanceStore", StoreEvent], None]


class FinanceStore:
    """
    Session state container with optimistic, rollback-safe mutators.

    All mutators are meant to run on one asyncio loop; there is no
    locking. Two mutations on the same record at once have no
    guaranteed outcome.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        investment_storage: Optional[InvestmentStorageInterface] = None,
        profile_storage: Optional[ProfileStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        salary_label: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ):
        self._transaction_storage = transaction_storage
        self._investment_storage = investment_storage or InMemoryInvestmentStorage()
        self._profile_storage = profile_storage or InMemoryProfileStorage()
        self._audit_logger = audit_logger or AuditLogger()
        self._salary_label = salary_label or get_settings().app.salary_label
        self._today = today

        self.current_user: Optional[UserProfile] = None
        self.theme: Theme = Theme.LIGHT
        self.selected_date: date = today()

        self._transactions: list[Transaction] = []
        self._investments: list[Investment] = []
        self._optimistic: dict[str, OptimisticEntry] = {}
        self._listeners: list[StoreListener] = []

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def transactions(self) -> list[Transaction]:
        """Copy of the transaction list (newest inserts first)."""
        return list(self._transactions)

    @property
    def investments(self) -> list[Investment]:
        return list(self._investments)

    @property
    def reservation_balance(self) -> Decimal:
        if self.current_user is None:
            return Decimal("0")
        return self.current_user.reservation_balance

    @property
    def salary_label(self) -> str:
        return self._salary_label

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    def optimistic_entry(self, temp_id: str) -> Optional[OptimisticEntry]:
        return self._optimistic.get(temp_id)

    def is_pending(self, record_id: str) -> bool:
        entry = self._optimistic.get(record_id)
        return entry is not None and entry.status == OptimisticStatus.PENDING

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """
        Register a listener called after every state change.

        Returns:
            A function that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, event)
            except Exception as e:
                # A broken subscriber must not break the mutation
                self._audit_logger.log_error(
                    "listener_failed",
                    str(e),
                    details={"event": event.value},
                )

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def login(self, name: str) -> bool:
        """
        Start a session for a display name.

        Authentication is handled elsewhere; the user id is derived
        from the name so the same name reloads the same data.
        """
        user_id = str(uuid.uuid5(USER_ID_NAMESPACE, name.strip().lower()))
        return await self.load_session(user_id, name)

    async def load_session(self, user_id: str, name: Optional[str] = None) -> bool:
        """
        Hydrate the store from storage (the source of truth on reload).

        Creates the profile on first login. Returns False if storage
        could not be read; the store is then left empty for that user.
        """
        correlation_id = create_correlation_id()
        try:
            profile = await self._profile_storage.get_profile(user_id)
            if profile is None:
                profile = await self._profile_storage.save_profile(
                    UserProfile(id=user_id, name=name or "User")
                )
            transactions = await self._transaction_storage.list_transactions(user_id)
            investments = await self._investment_storage.list_investments(user_id)
        except Exception as e:
            self._audit_logger.log_error(
                "session_load_failed",
                str(e),
                details={"user_id": user_id},
                correlation_id=correlation_id,
            )
            self.current_user = UserProfile(id=user_id, name=name or "User")
            self._transactions = []
            self._investments = []
            self._optimistic.clear()
            self._notify(StoreEvent.HYDRATED)
            return False

        self.current_user = profile
        self._transactions = list(transactions)
        self._investments = list(investments)
        self._optimistic.clear()
        self._audit_logger.log_profile_change(
            AuditEventType.SESSION_LOADED,
            user_id,
            {"transactions": len(transactions), "investments": len(investments)},
            correlation_id=correlation_id,
        )
        self._notify(StoreEvent.HYDRATED)
        return True

    def logout(self) -> None:
        user_id = self.current_user.id if self.current_user else None
        self.current_user = None
        self._transactions = []
        self._investments = []
        self._optimistic.clear()
        if user_id:
            self._audit_logger.log_profile_change(AuditEventType.SESSION_CLEARED, user_id, {})
        self._notify(StoreEvent.CLEARED)

    def set_selected_date(self, selected: date) -> None:
        self.selected_date = selected
        self._notify(StoreEvent.PREFERENCES_CHANGED)

    def toggle_theme(self) -> Theme:
        self.theme = Theme.DARK if self.theme == Theme.LIGHT else Theme.LIGHT
        self._notify(StoreEvent.PREFERENCES_CHANGED)
        return self.theme

    # -------------------------------------------------------------------------
    # Selectors
    # -------------------------------------------------------------------------

    def _user_transactions(self) -> list[Transaction]:
        if self.current_user is None:
            return []
        return [t for t in self._transactions if t.user_id == self.current_user.id]

    def get_summary(self) -> Summary:
        """
        Totals for the selected month.

        A transaction counts when its own date falls in the selected
        month and year; is_fixed does not make it recur here.
        """
        target = self.selected_date
        total_income = Decimal("0")
        total_expense = Decimal("0")

        for tx in self._user_transactions():
            if tx.date.year != target.year or tx.date.month != target.month:
                continue
            if tx.type == TransactionType.INCOME:
                total_income += tx.amount
            else:
                total_expense += tx.amount

        return Summary(
            total_income=total_income,
            total_expense=total_expense,
            balance=total_income - total_expense,
            reservation=self.reservation_balance,
        )

    def get_balance(self) -> Decimal:
        """All-time income minus expense (the assistant's notion of balance)."""
        balance = Decimal("0")
        for tx in self._user_transactions():
            balance += tx.amount if tx.type == TransactionType.INCOME else -tx.amount
        return balance

    def find_salary_transactions(self) -> list[Transaction]:
        return [
            t for t in self._transactions
            if t.type == TransactionType.INCOME
            and t.is_fixed
            and t.description == self._salary_label
        ]

    # -------------------------------------------------------------------------
    # Optimistic primitives
    # -------------------------------------------------------------------------

    def _get_items(self, collection: str) -> list:
        return self._transactions if collection == "transactions" else self._investments

    def _set_items(self, collection: str, items: list) -> None:
        if collection == "transactions":
            self._transactions = items
        else:
            self._investments = items

    @staticmethod
    def _event_for(collection: str) -> StoreEvent:
        if collection == "transactions":
            return StoreEvent.TRANSACTIONS_CHANGED
        return StoreEvent.INVESTMENTS_CHANGED

    @staticmethod
    def _entity_type(collection: str) -> str:
        return collection.rstrip("s")

    async def _insert_optimistic(
        self,
        collection: str,
        temp_record: Any,
        create: Callable[[], Awaitable[Any]],
        delete: Callable[[str], Awaitable[None]],
        correlation_id: Optional[UUID],
    ) -> Optional[Any]:
        temp_id = temp_record.id
        entity_type = self._entity_type(collection)
        entry = OptimisticEntry(temp_id=temp_id, collection=collection)
        self._optimistic[temp_id] = entry

        self._set_items(collection, [temp_record] + self._get_items(collection))
        self._audit_logger.log_record_added(entity_type, temp_id, correlation_id)
        self._notify(self._event_for(collection))

        try:
            saved = await create()
        except Exception as e:
            entry.status = OptimisticStatus.ROLLED_BACK
            self._optimistic.pop(temp_id, None)
            self._set_items(
                collection,
                [r for r in self._get_items(collection) if r.id != temp_id],
            )
            self._audit_logger.log_record_rolled_back(entity_type, temp_id, str(e), correlation_id)
            self._notify(self._event_for(collection))
            return None

        self._optimistic.pop(temp_id, None)
        entry.final_id = saved.id

        if entry.status == OptimisticStatus.DISCARDED:
            # Removed locally while the create was in flight
            try:
                await delete(saved.id)
            except Exception as e:
                self._audit_logger.log_error(
                    "discarded_record_not_deleted",
                    str(e),
                    details={"entity_type": entity_type, "id": saved.id},
                    correlation_id=correlation_id,
                )
            return None

        entry.status = OptimisticStatus.CONFIRMED
        self._set_items(
            collection,
            [saved if r.id == temp_id else r for r in self._get_items(collection)],
        )
        self._audit_logger.log_record_confirmed(entity_type, temp_id, saved.id, correlation_id)
        self._notify(self._event_for(collection))
        return saved

    async def _remove_optimistic(
        self,
        collection: str,
        record_id: str,
        delete: Callable[[str], Awaitable[None]],
        correlation_id: Optional[UUID],
    ) -> bool:
        entity_type = self._entity_type(collection)
        items = self._get_items(collection)
        if not any(r.id == record_id for r in items):
            return False

        snapshot = list(items)
        self._set_items(collection, [r for r in items if r.id != record_id])
        self._notify(self._event_for(collection))

        entry = self._optimistic.get(record_id)
        if entry is not None and entry.status == OptimisticStatus.PENDING:
            # Nothing exists remotely yet; the pending create cleans up
            entry.status = OptimisticStatus.DISCARDED
            self._audit_logger.log_record_removed(entity_type, record_id, correlation_id)
            return True

        try:
            await delete(record_id)
        except Exception as e:
            self._set_items(collection, snapshot)
            self._audit_logger.log_record_restored(entity_type, record_id, str(e), correlation_id)
            self._notify(self._event_for(collection))
            return False

        self._audit_logger.log_record_removed(entity_type, record_id, correlation_id)
        return True

    async def _update_optimistic(
        self,
        collection: str,
        record_id: str,
        updates: dict[str, Any],
        update: Callable[[str, dict[str, Any]], Awaitable[Any]],
    ) -> Optional[Any]:
        entity_type = self._entity_type(collection)
        items = self._get_items(collection)
        current = next((r for r in items if r.id == record_id), None)
        if current is None or self.is_pending(record_id):
            return None

        try:
            changed = type(current).model_validate(
                {**current.model_dump(), **updates, "id": current.id, "user_id": current.user_id}
            )
        except ValidationError as e:
            self._audit_logger.log_error(
                "invalid_update",
                str(e),
                details={"entity_type": entity_type, "id": record_id},
            )
            return None

        snapshot = list(items)
        self._set_items(collection, [changed if r.id == record_id else r for r in items])
        self._notify(self._event_for(collection))

        try:
            saved = await update(record_id, changed.model_dump(include=set(updates)))
        except Exception as e:
            self._set_items(collection, snapshot)
            self._audit_logger.log_record_rolled_back(entity_type, record_id, str(e))
            self._notify(self._event_for(collection))
            return None

        self._set_items(
            collection,
            [saved if r.id == record_id else r for r in self._get_items(collection)],
        )
        self._audit_logger.log_record_updated(entity_type, record_id, sorted(updates))
        self._notify(self._event_for(collection))
        return saved

    async def _save_profile_optimistic(
        self,
        changed: UserProfile,
        event_type: AuditEventType,
        details: dict,
    ) -> bool:
        previous = self.current_user
        self.current_user = changed
        self._notify(StoreEvent.PROFILE_CHANGED)

        try:
            await self._profile_storage.save_profile(changed)
        except Exception as e:
            if self.current_user is changed:
                self.current_user = previous
            self._audit_logger.log_record_rolled_back("profile", changed.id, str(e))
            self._notify(StoreEvent.PROFILE_CHANGED)
            return False

        self._audit_logger.log_profile_change(event_type, changed.id, details)
        return True

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Add a transaction for the current user.

        Returns:
            The storage-confirmed transaction, or None when there is no
            user, the write failed (rolled back) or the record was
            removed before the write confirmed
        """
        if self.current_user is None:
            return None

        user_id = self.current_user.id
        try:
            temp = Transaction.from_draft(draft, id=f"{TEMP_ID_PREFIX}{uuid4()}", user_id=user_id)
        except ValidationError as e:
            self._audit_logger.log_error("invalid_transaction", str(e), correlation_id=correlation_id)
            return None
        return await self._insert_optimistic(
            "transactions",
            temp,
            lambda: self._transaction_storage.create_transaction(user_id, draft),
            self._transaction_storage.delete_transaction,
            correlation_id,
        )

    async def add_installment_purchase(
        self,
        draft: TransactionDraft,
        count: int,
    ) -> list[Optional[Transaction]]:
        """
        Split a purchase (draft.amount = total) into monthly installments and add each.

        Returns one entry per installment (None where that write failed),
        or an empty list if the purchase cannot be split.
        """
        correlation_id = create_correlation_id()
        try:
            parts = build_installment_drafts(draft, count)
        except ValueError as e:
            self._audit_logger.log_error("invalid_installment_purchase", str(e), correlation_id=correlation_id)
            return []

        results = []
        for part in parts:
            results.append(await self.add_transaction(part, correlation_id))
        return results

    async def remove_transaction(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Remove a transaction.

        On a remote failure the whole previous list is restored.
        """
        return await self._remove_optimistic(
            "transactions",
            transaction_id,
            self._transaction_storage.delete_transaction,
            correlation_id,
        )

    async def edit_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Optional[Transaction]:
        """Partially update a transaction (not allowed while its create is pending)."""
        return await self._update_optimistic(
            "transactions",
            transaction_id,
            updates,
            self._transaction_storage.update_transaction,
        )

    async def set_fixed_salary(self, amount) -> Optional[Transaction]:
        """
        Replace the recurring salary.

        Every existing salary entry is removed (each independently, so a
        partial failure can leave local and remote out of step), then one
        new entry is added if amount > 0. Not safe against concurrent calls.
        """
        if self.current_user is None:
            return None

        correlation_id = create_correlation_id()
        for tx in self.find_salary_transactions():
            await self.remove_transaction(tx.id, correlation_id)

        amount = Decimal(str(amount))
        if amount <= 0:
            return None

        return await self.add_transaction(
            TransactionDraft(
                description=self._salary_label,
                amount=amount,
                type=TransactionType.INCOME,
                category=Category.SALARY,
                date=self._today(),
                is_fixed=True,
            ),
            correlation_id,
        )

    # -------------------------------------------------------------------------
    # Investments
    # -------------------------------------------------------------------------

    async def add_investment(self, draft: InvestmentDraft) -> Optional[Investment]:
        if self.current_user is None:
            return None

        user_id = self.current_user.id
        try:
            temp = Investment(id=f"{TEMP_ID_PREFIX}{uuid4()}", user_id=user_id, **draft.model_dump())
        except ValidationError as e:
            self._audit_logger.log_error("invalid_investment", str(e))
            return None
        return await self._insert_optimistic(
            "investments",
            temp,
            lambda: self._investment_storage.create_investment(user_id, draft),
            self._investment_storage.delete_investment,
            None,
        )

    async def remove_investment(self, investment_id: str) -> bool:
        return await self._remove_optimistic(
            "investments",
            investment_id,
            self._investment_storage.delete_investment,
            None,
        )

    async def update_investment(
        self,
        investment_id: str,
        updates: dict[str, Any],
    ) -> Optional[Investment]:
        """Re-save fields of an investment, e.g. a refreshed current_value."""
        return await self._update_optimistic(
            "investments",
            investment_id,
            updates,
            self._investment_storage.update_investment,
        )

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def add_to_reservation(self, amount) -> bool:
        """
        Add a caller-validated positive amount to the reservation total
        and persist the new total on the profile.
        """
        if self.current_user is None:
            return False

        amount = Decimal(str(amount))
        if amount <= 0:
            self._audit_logger.log_error(
                "invalid_reservation_amount",
                f"Reservation amounts must be positive, got {amount}",
            )
            return False

        changed = self.current_user.model_copy(
            update={"reservation_balance": self.current_user.reservation_balance + amount}
        )
        return await self._save_profile_optimistic(
            changed,
            AuditEventType.RESERVATION_UPDATED,
            {"added": str(amount), "total": str(changed.reservation_balance)},
        )

    async def update_layout(self, page: str, ordered_ids: list[str]) -> bool:
        """Replace the widget order of one dashboard page and persist it."""
        if self.current_user is None:
            return False

        layouts = dict(self.current_user.dashboard_layouts)
        layouts[page] = list(ordered_ids)
        changed = self.current_user.model_copy(update={"dashboard_layouts": layouts})
        return await self._save_profile_optimistic(
            changed,
            AuditEventType.LAYOUT_UPDATED,
            {"page": page, "widgets": len(ordered_ids)},
        )

    async def update_profile(
        self,
        name: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> bool:
        if self.current_user is None:
            return False

        updates: dict[str, Any] = {}
        if name is not None and name.strip():
            updates["name"] = name.strip()
        if avatar_url is not None:
            updates["avatar_url"] = avatar_url or None
        if not updates:
            return True

        changed = self.current_user.model_copy(update=updates)
        return await self._save_profile_optimistic(
            changed,
            AuditEventType.PROFILE_UPDATED,
            {"fields": sorted(updates)},
        )
