"""
Assistant Session

The conversation around FinancialAssistant: chat history, the staged
action awaiting confirmation, the risk tip bubble and the automatic
monitor that asks for a risk check after a new transaction.

STATE MACHINE:
    idle → awaiting_response → (responded | errored)

    Orthogonal pending-action flag:
    none → staged → (committed | cancelled)

CRITICAL: A proposed action never touches the store until the user
confirms it. Confirming goes through FinanceStore.add_transaction,
so it gets the same optimistic/rollback treatment as a manual entry.
"""

import asyncio
import time
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from fintrack.agents.ai_agents import FinancialAssistant
from fintrack.analysis.heuristics import analyze
from fintrack.audit import AuditLogger
from fintrack.config import get_settings
from fintrack.models.assistant import (
    ActionType,
    AIAction,
    AIActionData,
    AIResponse,
    ChatMessage,
    MessageRole,
    RiskAssessment,
    RiskLevel,
)
from fintrack.models.audit import AuditEventType
from fintrack.models.finance import (
    DESCRIPTION_MAX_LENGTH,
    Category,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from fintrack.store import FinanceStore, StoreEvent


GREETING = "Hi! I'm your financial assistant. How can I help with your money today?"
MONITOR_PROMPT = "Check whether this new transaction affects my future balance."
CONFIRMED_REPLY = "✅ Done! Transaction added."
CONFIRM_FAILED_REPLY = "❌ Error adding transaction."
CANCELLED_REPLY = "👍 Cancelled. Anything else?"
INTERNAL_ERROR_REPLY = "Sorry, I had an internal error."

DEFAULT_EXPENSE_DESCRIPTION = "Expense via AI"
DEFAULT_INCOME_DESCRIPTION = "Income via AI"

CENT = Decimal("0.01")


class AssistantState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    RESPONDED = "responded"
    ERRORED = "errored"


class PendingActionStatus(str, Enum):
    NONE = "none"
    STAGED = "staged"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class TipBubble:
    """
    The dismissible tip shown next to the assistant.

    The latest AI risk assessment wins over the local tips. Showing the
    bubble (re)starts its auto-hide timer and sets a matching deadline,
    so the bubble also hides when no loop is running to fire the timer.
    """

    def __init__(self, auto_hide_seconds: float = 8.0):
        self.risk: Optional[RiskAssessment] = None
        self._visible = True
        self._auto_hide_seconds = auto_hide_seconds
        self._hide_at: Optional[float] = None
        self._hide_handle: Optional[asyncio.TimerHandle] = None

    @property
    def visible(self) -> bool:
        if self._hide_at is not None and time.monotonic() >= self._hide_at:
            self._auto_hide()
        return self._visible

    @property
    def is_high_risk(self) -> bool:
        return self.risk is not None and self.risk.risk_level == RiskLevel.HIGH

    def active_tip(self, local_tips: list[str]) -> Optional[str]:
        if self.risk is not None:
            return self.risk.message
        return local_tips[0] if local_tips else None

    def show_risk(self, risk: RiskAssessment) -> None:
        self.risk = risk
        self.show()

    def show(self) -> None:
        self._visible = True
        self._hide_at = time.monotonic() + self._auto_hide_seconds
        self._schedule_hide()

    def dismiss(self) -> None:
        self._visible = False
        self._hide_at = None
        self.cancel()

    def reset(self) -> None:
        self.risk = None
        self.dismiss()

    def cancel(self) -> None:
        if self._hide_handle is not None:
            self._hide_handle.cancel()
            self._hide_handle = None

    def _schedule_hide(self) -> None:
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the deadline alone hides the bubble
            return
        self._hide_handle = loop.call_later(self._auto_hide_seconds, self._auto_hide)

    def _auto_hide(self) -> None:
        self.cancel()
        self._hide_at = None
        self._visible = False


class TransactionMonitor:
    """
    Debounced edge detector on the transaction count.

    Every observation cancels the pending timer and starts a new one.
    When the timer fires, the callback runs only if the count is
    exactly one more than the last settled count and the session is
    not busy. The settled count is updated either way, so bulk loads
    (+2 or more) and deletions never trigger.
    """

    def __init__(
        self,
        on_new_transaction: Callable[[], Awaitable[None]],
        debounce_seconds: float = 2.0,
        is_busy: Callable[[], bool] = lambda: False,
    ):
        self._on_new_transaction = on_new_transaction
        self._debounce_seconds = debounce_seconds
        self._is_busy = is_busy
        self._baseline = 0
        self._latest = 0
        self._dirty = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def baseline(self) -> int:
        return self._baseline

    @property
    def has_pending_check(self) -> bool:
        return self._dirty

    def reset(self, count: int) -> None:
        """Adopt count as the settled baseline without triggering (hydration)."""
        self.cancel()
        self._baseline = count
        self._latest = count

    def observe(self, count: int) -> None:
        self._latest = count
        self._dirty = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Settled by the next flush()
            return
        self._handle = loop.call_later(self._debounce_seconds, self._settle)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._dirty = False

    def _settle(self) -> None:
        self._handle = None
        self._dirty = False
        count = self._latest
        fire = count == self._baseline + 1 and not self._is_busy()
        self._baseline = count
        if fire:
            task = asyncio.get_running_loop().create_task(self._on_new_transaction())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def flush(self) -> None:
        """Settle a pending observation now and wait for any check it starts."""
        if self._dirty:
            if self._handle is not None:
                self._handle.cancel()
            self._settle()
        if self._tasks:
            await asyncio.gather(*list(self._tasks))


class AssistantSession:
    """
    One user's conversation with the assistant.

    Subscribes to the store on creation; call close() to detach.
    """

    def __init__(
        self,
        store: FinanceStore,
        assistant: FinancialAssistant,
        audit_logger: Optional[AuditLogger] = None,
        debounce_seconds: Optional[float] = None,
        tip_auto_hide_seconds: Optional[float] = None,
        today: Callable[[], date] = date.today,
    ):
        if debounce_seconds is None or tip_auto_hide_seconds is None:
            app_settings = get_settings().app
            if debounce_seconds is None:
                debounce_seconds = app_settings.monitor_debounce_seconds
            if tip_auto_hide_seconds is None:
                tip_auto_hide_seconds = app_settings.tip_auto_hide_seconds

        self._store = store
        self._assistant = assistant
        self._audit_logger = audit_logger or AuditLogger()
        self._today = today

        self.messages: list[ChatMessage] = [
            ChatMessage(role=MessageRole.ASSISTANT, content=GREETING)
        ]
        self.state = AssistantState.IDLE
        self.pending_action: Optional[AIAction] = None
        self.pending_status = PendingActionStatus.NONE

        self.tip = TipBubble(tip_auto_hide_seconds)
        self.monitor = TransactionMonitor(
            self._run_risk_check,
            debounce_seconds,
            is_busy=lambda: self.is_busy,
        )
        self.monitor.reset(len(store.transactions))
        self._unsubscribe = store.subscribe(self._on_store_event)

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    @property
    def assistant(self) -> FinancialAssistant:
        return self._assistant

    @property
    def is_busy(self) -> bool:
        return self.state == AssistantState.AWAITING_RESPONSE

    @property
    def user_first_name(self) -> str:
        if self._store.current_user is None:
            return "User"
        return self._store.current_user.first_name

    @property
    def local_tips(self) -> list[str]:
        transactions = self._store.transactions
        if not transactions:
            return []
        return analyze(transactions, self._store.get_balance())

    @property
    def active_tip(self) -> Optional[str]:
        return self.tip.active_tip(self.local_tips)

    # -------------------------------------------------------------------------
    # Store events
    # -------------------------------------------------------------------------

    def _on_store_event(self, store: FinanceStore, event: StoreEvent) -> None:
        if event == StoreEvent.HYDRATED:
            self.monitor.reset(len(store.transactions))
        elif event == StoreEvent.CLEARED:
            self.monitor.reset(0)
            self._reset_conversation()
        elif event == StoreEvent.TRANSACTIONS_CHANGED:
            self.monitor.observe(len(store.transactions))

    def _reset_conversation(self) -> None:
        self.messages = [ChatMessage(role=MessageRole.ASSISTANT, content=GREETING)]
        self.state = AssistantState.IDLE
        self.pending_action = None
        self.pending_status = PendingActionStatus.NONE
        self.tip.reset()

    async def _run_risk_check(self) -> None:
        self._audit_logger.log_assistant_event(
            AuditEventType.RISK_CHECK_TRIGGERED,
            "New transaction detected; asking for a risk check",
            details={"transactions": len(self._store.transactions)},
        )
        try:
            response = await self._assistant.respond(
                MONITOR_PROMPT,
                self._store.transactions,
                self._store.get_balance(),
                self.user_first_name,
            )
        except Exception as e:
            self._audit_logger.log_error("risk_check_failed", str(e))
            return
        self.tip.show_risk(response.risk_assessment)

    # -------------------------------------------------------------------------
    # Conversation
    # -------------------------------------------------------------------------

    def _append(self, role: MessageRole, content: str) -> None:
        self.messages.append(ChatMessage(role=role, content=content))

    async def send(self, text: str) -> Optional[AIResponse]:
        """
        Send a user message and record the reply.

        Any previously staged action is dropped. Returns the reply,
        or None for blank input or an internal error.
        """
        text = (text or "").strip()
        if not text:
            return None

        self._append(MessageRole.USER, text)
        self.state = AssistantState.AWAITING_RESPONSE
        self.pending_action = None
        self.pending_status = PendingActionStatus.NONE

        try:
            response = await self._assistant.respond(
                text,
                self._store.transactions,
                self._store.get_balance(),
                self.user_first_name,
            )
        except Exception as e:
            self._audit_logger.log_error("assistant_failed", str(e))
            self._append(MessageRole.ASSISTANT, INTERNAL_ERROR_REPLY)
            self.state = AssistantState.ERRORED
            return None

        action = response.stageable_action
        if action is not None:
            self.pending_action = action
            self.pending_status = PendingActionStatus.STAGED
            self._audit_logger.log_assistant_event(
                AuditEventType.ACTION_STAGED,
                f"Action {action.type.value} staged for confirmation",
                details=action.data.model_dump(exclude_none=True, mode="json") if action.data else {},
            )

        self.tip.show_risk(response.risk_assessment)
        self._append(MessageRole.ASSISTANT, response.message)
        self.state = AssistantState.RESPONDED
        return response

    def _draft_from_action(self, action: AIAction) -> TransactionDraft:
        data = action.data or AIActionData()

        if action.type == ActionType.ADD_INCOME:
            direction = TransactionType.INCOME
        elif action.type == ActionType.ADD_EXPENSE:
            direction = TransactionType.EXPENSE
        else:
            direction = data.type or TransactionType.EXPENSE

        if direction == TransactionType.INCOME:
            default_description = DEFAULT_INCOME_DESCRIPTION
        else:
            default_description = DEFAULT_EXPENSE_DESCRIPTION

        amount = Decimal(str(data.amount or 0)).quantize(CENT, rounding=ROUND_HALF_UP)

        return TransactionDraft(
            description=(data.description or default_description)[:DESCRIPTION_MAX_LENGTH],
            amount=amount,
            type=direction,
            category=Category.parse(data.category),
            date=self._parse_date(data.date),
            is_fixed=False,
        )

    def _parse_date(self, value: Optional[str]) -> date:
        if value:
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError:
                pass
        return self._today()

    async def confirm_action(self) -> Optional[Transaction]:
        """
        Commit the staged action through the store.

        Returns:
            The saved transaction, or None if nothing was staged or the
            write failed (the store has already rolled back)
        """
        if self.pending_status != PendingActionStatus.STAGED or self.pending_action is None:
            return None

        action = self.pending_action
        self.pending_action = None

        try:
            draft = self._draft_from_action(action)
        except (ValidationError, InvalidOperation) as e:
            self._audit_logger.log_error("invalid_action_data", str(e))
            draft = None

        saved = await self._store.add_transaction(draft) if draft is not None else None

        if saved is None:
            self.pending_status = PendingActionStatus.NONE
            self._append(MessageRole.ASSISTANT, CONFIRM_FAILED_REPLY)
            return None

        self.pending_status = PendingActionStatus.COMMITTED
        self._audit_logger.log_assistant_event(
            AuditEventType.ACTION_COMMITTED,
            f"Action {action.type.value} committed",
            details={"transaction_id": saved.id},
        )
        self._append(MessageRole.ASSISTANT, CONFIRMED_REPLY)
        return saved

    def cancel_action(self) -> bool:
        """Discard the staged action. No store mutation happens."""
        if self.pending_status != PendingActionStatus.STAGED:
            return False

        action = self.pending_action
        self.pending_action = None
        self.pending_status = PendingActionStatus.CANCELLED
        self._audit_logger.log_assistant_event(
            AuditEventType.ACTION_CANCELLED,
            f"Action {action.type.value if action else 'unknown'} cancelled",
        )
        self._append(MessageRole.ASSISTANT, CANCELLED_REPLY)
        return True

    def close(self) -> None:
        self._unsubscribe()
        self.monitor.cancel()
        self.tip.cancel()
