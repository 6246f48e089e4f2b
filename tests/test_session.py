"""
Tests for AssistantSession, TransactionMonitor and TipBubble.

The session is wired to a real FinanceStore on in-memory storage and a
scripted model backend.
"""

import asyncio
import time
from datetime import date
from decimal import Decimal

import pytest

from conftest import (
    TODAY,
    USER_ID,
    USER_NAME,
    ScriptedBackend,
    ai_reply,
    event_types,
    make_draft,
    make_transaction,
)
from fintrack.agents import (
    AssistantSession,
    AssistantState,
    FinancialAssistant,
    PendingActionStatus,
    TipBubble,
    TransactionMonitor,
)
from fintrack.agents.session import (
    CANCELLED_REPLY,
    CONFIRM_FAILED_REPLY,
    CONFIRMED_REPLY,
    GREETING,
    INTERNAL_ERROR_REPLY,
    MONITOR_PROMPT,
)
from fintrack.models.assistant import MessageRole, RiskAssessment, RiskLevel
from fintrack.models.finance import Category, TransactionType
from fintrack.store import FinanceStore


def make_session(store, backend, audit_logger, debounce_seconds=60.0, tip_auto_hide_seconds=60.0):
    assistant = FinancialAssistant(backends=[backend], audit_logger=audit_logger, recent_limit=10)
    return AssistantSession(
        store,
        assistant,
        audit_logger=audit_logger,
        debounce_seconds=debounce_seconds,
        tip_auto_hide_seconds=tip_auto_hide_seconds,
        today=lambda: TODAY,
    )


class BrokenAssistant(FinancialAssistant):
    async def respond(self, *args, **kwargs):
        raise RuntimeError("unexpected")


class TestConversation:
    """Tests for sending messages."""

    def test_starts_with_greeting(self, store, backend, audit_logger):
        """Test the initial assistant message."""
        session = make_session(store, backend, audit_logger)

        assert [m.content for m in session.messages] == [GREETING]
        assert session.state == AssistantState.IDLE

    @pytest.mark.asyncio
    async def test_send_records_reply_and_risk(self, store, audit_logger):
        """Test that a reply is appended and its risk shown."""
        backend = ScriptedBackend("m", [ai_reply(message="Looks fine!", risk_level="medium", risk_message="Watch it")])
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)

        reply = await session.send("How am I doing?")

        assert reply.message == "Looks fine!"
        assert [m.role for m in session.messages[-2:]] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert session.state == AssistantState.RESPONDED
        assert session.active_tip == "Watch it"
        assert session.tip.visible

    @pytest.mark.asyncio
    async def test_prompt_uses_first_name(self, store, backend, audit_logger):
        """Test that the user is addressed by first name."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)

        await session.send("hello")

        assert "User name: Ana" in backend.prompts[0]

    @pytest.mark.asyncio
    async def test_blank_message_is_ignored(self, store, backend, audit_logger):
        """Test that whitespace-only input does nothing."""
        session = make_session(store, backend, audit_logger)

        assert await session.send("   ") is None
        assert len(session.messages) == 1
        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_internal_error(self, store, audit_logger):
        """Test that an unexpected error becomes an apology."""
        session = AssistantSession(
            store,
            BrokenAssistant(backends=[], audit_logger=audit_logger, recent_limit=10),
            audit_logger=audit_logger,
            debounce_seconds=60.0,
            tip_auto_hide_seconds=60.0,
        )

        assert await session.send("hi") is None
        assert session.messages[-1].content == INTERNAL_ERROR_REPLY
        assert session.state == AssistantState.ERRORED


class TestActions:
    """Tests for staging, confirming and cancelling proposed actions."""

    async def staged_session(self, store, audit_logger, action, *later_replies):
        backend = ScriptedBackend("m", [ai_reply(action=action), *later_replies])
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)
        await session.send("I spent 50 at the market")
        return session

    @pytest.mark.asyncio
    async def test_confirm_commits_transaction(self, store, audit_logger):
        """Test that confirming adds the proposed transaction."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_expense",
            "data": {"description": "Market", "amount": 50, "category": "food", "date": "2024-05-10"},
        })
        assert session.pending_status == PendingActionStatus.STAGED

        saved = await session.confirm_action()

        assert saved.description == "Market"
        assert saved.amount == Decimal("50.00")
        assert saved.category == Category.FOOD
        assert saved.date == date(2024, 5, 10)
        assert saved.type == TransactionType.EXPENSE
        assert [t.id for t in store.transactions] == [saved.id]
        assert session.pending_status == PendingActionStatus.COMMITTED
        assert session.messages[-1].content == CONFIRMED_REPLY
        assert "action_committed" in event_types(audit_logger)

    @pytest.mark.asyncio
    async def test_confirm_without_amount_commits_zero(self, store, audit_logger):
        """Test that a missing amount defaults to zero."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_expense",
            "data": {"description": "Something"},
        })

        saved = await session.confirm_action()

        assert saved.amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_confirm_defaults_for_income(self, store, audit_logger):
        """Test description, category and date defaults."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_income",
            "data": {"amount": 1000, "category": "Lottery", "date": "someday"},
        })

        saved = await session.confirm_action()

        assert saved.description == "Income via AI"
        assert saved.type == TransactionType.INCOME
        assert saved.category == Category.OTHER
        assert saved.date == TODAY

    @pytest.mark.asyncio
    async def test_confirm_reads_loose_values(self, store, audit_logger):
        """Test that a decimal-comma amount and a capitalized direction commit."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_transaction",
            "data": {"description": "Lunch", "amount": "50,00", "type": "Expense"},
        })

        saved = await session.confirm_action()

        assert saved.amount == Decimal("50.00")
        assert saved.type == TransactionType.EXPENSE
        assert saved.description == "Lunch"

    @pytest.mark.asyncio
    async def test_add_transaction_uses_data_type(self, store, audit_logger):
        """Test that add_transaction takes its direction from data.type."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_transaction",
            "data": {"amount": 20, "type": "income"},
        })

        saved = await session.confirm_action()

        assert saved.type == TransactionType.INCOME

    @pytest.mark.asyncio
    async def test_remove_action_is_not_staged(self, store, audit_logger):
        """Test that remove_transaction proposals are never staged."""
        session = await self.staged_session(store, audit_logger, {
            "type": "remove_transaction",
            "data": {"description": "Market"},
        })

        assert session.pending_status == PendingActionStatus.NONE
        assert await session.confirm_action() is None

    @pytest.mark.asyncio
    async def test_cancel(self, store, audit_logger):
        """Test that cancelling discards the action without mutation."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_expense",
            "data": {"amount": 50},
        })

        assert session.cancel_action() is True

        assert session.pending_action is None
        assert session.pending_status == PendingActionStatus.CANCELLED
        assert session.messages[-1].content == CANCELLED_REPLY
        assert store.transactions == []
        assert session.cancel_action() is False

    @pytest.mark.asyncio
    async def test_confirm_failure(self, store, transaction_storage, audit_logger):
        """Test that a failed write is reported and nothing stays staged."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_expense",
            "data": {"amount": 50},
        })
        transaction_storage.fail_create = True

        assert await session.confirm_action() is None
        assert session.messages[-1].content == CONFIRM_FAILED_REPLY
        assert session.pending_status == PendingActionStatus.NONE
        assert store.transactions == []

    @pytest.mark.asyncio
    async def test_new_message_drops_staged_action(self, store, audit_logger):
        """Test that sending again clears a staged action."""
        session = await self.staged_session(store, audit_logger, {
            "type": "add_expense",
            "data": {"amount": 50},
        }, ai_reply())
        assert session.pending_status == PendingActionStatus.STAGED

        await session.send("never mind")

        assert session.pending_status == PendingActionStatus.NONE


class TestMonitorThroughStore:
    """Tests for the automatic risk check wired to store changes."""

    @pytest.mark.asyncio
    async def test_single_add_triggers_once(self, store, backend, audit_logger):
        """Test that one new transaction triggers exactly one check."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)

        await store.add_transaction(make_draft())
        await session.monitor.flush()
        await session.monitor.flush()

        assert len(backend.prompts) == 1
        assert MONITOR_PROMPT in backend.prompts[0]
        assert "risk_check_triggered" in event_types(audit_logger)

    @pytest.mark.asyncio
    async def test_check_updates_tip(self, store, audit_logger):
        """Test that the check's risk assessment replaces the tip."""
        backend = ScriptedBackend("m", [ai_reply(risk_level="high", risk_message="Balance at risk")])
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)

        await store.add_transaction(make_draft())
        await session.monitor.flush()

        assert session.active_tip == "Balance at risk"
        assert session.tip.is_high_risk
        assert len(session.messages) == 1

    @pytest.mark.asyncio
    async def test_debounce_timer_fires(self, store, backend, audit_logger):
        """Test that the check runs on its own after the quiet period."""
        session = make_session(store, backend, audit_logger, debounce_seconds=0.01)
        await store.load_session(USER_ID, USER_NAME)

        await store.add_transaction(make_draft())
        await asyncio.sleep(0.05)
        await session.monitor.flush()

        assert len(backend.prompts) == 1

    @pytest.mark.asyncio
    async def test_bulk_add_never_triggers(self, store, backend, audit_logger):
        """Test that +3 within one quiet period does not trigger."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)

        await store.add_installment_purchase(make_draft(amount="90.00"), 3)
        await session.monitor.flush()

        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_removal_never_triggers(self, store, backend, audit_logger):
        """Test that a deletion does not trigger."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)
        saved = await store.add_transaction(make_draft())
        await session.monitor.flush()
        backend.prompts.clear()

        await store.remove_transaction(saved.id)
        await session.monitor.flush()

        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_hydration_never_triggers(self, transaction_storage, profile_storage, backend, audit_logger):
        """Test that loading a session with stored data does not trigger."""
        transaction_storage = type(transaction_storage)([make_transaction("t1")])
        store = FinanceStore(transaction_storage, profile_storage=profile_storage, audit_logger=audit_logger, today=lambda: TODAY)
        session = make_session(store, backend, audit_logger)

        await store.load_session(USER_ID, USER_NAME)
        await session.monitor.flush()

        assert backend.prompts == []
        assert session.monitor.baseline == 1

    @pytest.mark.asyncio
    async def test_rolled_back_add_never_triggers(self, store, transaction_storage, backend, audit_logger):
        """Test that an insert that was rolled back does not trigger."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)
        transaction_storage.fail_create = True

        await store.add_transaction(make_draft())
        await session.monitor.flush()

        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_logout_resets_conversation(self, store, backend, audit_logger):
        """Test that clearing the session resets the chat."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)
        await session.send("hello")

        store.logout()

        assert [m.content for m in session.messages] == [GREETING]
        assert session.state == AssistantState.IDLE

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, store, backend, audit_logger):
        """Test that a closed session ignores store changes."""
        session = make_session(store, backend, audit_logger)
        await store.load_session(USER_ID, USER_NAME)
        session.close()

        await store.add_transaction(make_draft())
        await session.monitor.flush()

        assert backend.prompts == []


class TestTransactionMonitor:
    """Tests for the debounced edge detector on its own."""

    def make_monitor(self, calls, debounce_seconds=0.01, busy=False):
        async def on_new_transaction():
            calls.append(True)

        return TransactionMonitor(on_new_transaction, debounce_seconds, is_busy=lambda: busy)

    @pytest.mark.asyncio
    async def test_new_observation_cancels_pending_timer(self):
        """Test that 0 → 1 → 2 inside one quiet period is judged as +2."""
        calls = []
        monitor = self.make_monitor(calls)

        monitor.observe(1)
        monitor.observe(2)
        await asyncio.sleep(0.05)

        assert calls == []
        assert monitor.baseline == 2

    @pytest.mark.asyncio
    async def test_fires_after_quiet_period(self):
        """Test that a settled +1 fires once."""
        calls = []
        monitor = self.make_monitor(calls)

        monitor.observe(1)
        await asyncio.sleep(0.05)
        await monitor.flush()

        assert calls == [True]

    @pytest.mark.asyncio
    async def test_busy_session_skips_check(self):
        """Test that no check starts while a reply is awaited."""
        calls = []
        monitor = self.make_monitor(calls, busy=True)

        monitor.observe(1)
        await monitor.flush()

        assert calls == []
        assert monitor.baseline == 1

    @pytest.mark.asyncio
    async def test_reset_adopts_baseline(self):
        """Test that reset cancels pending work without firing."""
        calls = []
        monitor = self.make_monitor(calls)

        monitor.observe(1)
        monitor.reset(7)
        await asyncio.sleep(0.05)
        await monitor.flush()

        assert calls == []
        assert monitor.baseline == 7

    def test_observe_without_loop_settles_on_flush(self):
        """Test that observations outside a running loop wait for flush."""
        calls = []
        monitor = self.make_monitor(calls)

        monitor.observe(1)
        assert monitor.has_pending_check

        asyncio.run(monitor.flush())

        assert calls == [True]


class TestTipBubble:
    """Tests for the tip bubble."""

    def test_risk_takes_precedence(self):
        """Test that the AI risk message beats local tips."""
        bubble = TipBubble()
        assert bubble.active_tip(["local"]) == "local"

        bubble.risk = RiskAssessment(risk_level=RiskLevel.LOW, message="ai")

        assert bubble.active_tip(["local"]) == "ai"

    def test_no_tip(self):
        """Test that nothing is shown without tips."""
        assert TipBubble().active_tip([]) is None

    @pytest.mark.asyncio
    async def test_auto_hide(self):
        """Test that the bubble hides itself after the timeout."""
        bubble = TipBubble(auto_hide_seconds=0.01)

        bubble.show_risk(RiskAssessment(risk_level=RiskLevel.HIGH, message="careful"))
        assert bubble.visible

        await asyncio.sleep(0.05)
        assert not bubble.visible

    def test_auto_hide_without_running_loop(self):
        """Test that the deadline hides the bubble when no timer can fire."""
        bubble = TipBubble(auto_hide_seconds=0.01)

        bubble.show()
        assert bubble.visible

        time.sleep(0.05)
        assert not bubble.visible

    def test_initial_bubble_stays_until_shown_or_dismissed(self):
        """Test that the local tip has no deadline before the first show."""
        bubble = TipBubble(auto_hide_seconds=0.01)

        time.sleep(0.02)

        assert bubble.visible

    @pytest.mark.asyncio
    async def test_dismiss(self):
        """Test manual dismissal."""
        bubble = TipBubble(auto_hide_seconds=10)
        bubble.show()

        bubble.dismiss()

        assert not bubble.visible


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
