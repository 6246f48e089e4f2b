"""
Tests for the orchestration layer: the portfolio refresh flow and
the application wiring.
"""

from decimal import Decimal

import pytest

from conftest import USER_ID, USER_NAME
from fintrack import orchestrator
from fintrack.config import get_settings
from fintrack.models.audit import AuditEventType
from fintrack.models.finance import InvestmentDraft
from fintrack.orchestrator import PortfolioFlow, create_app_components
from fintrack.services.market import QuoteService
from fintrack.services.storage import ConnectionError, InMemoryTransactionStorage


class FixedQuoteService(QuoteService):

    def __init__(self, prices: dict[str, Decimal]):
        self.prices = prices
        self.requested: list[str] = []

    async def get_prices(self, tickers):
        self.requested = list(tickers)
        return {t: self.prices[t] for t in self.requested if t in self.prices}


async def seeded_store(store):
    await store.load_session(USER_ID, USER_NAME)
    await store.add_investment(InvestmentDraft(
        name="PETR4", amount_invested=Decimal("300"), quantity=Decimal("10"),
    ))
    await store.add_investment(InvestmentDraft(
        name="TESOURO", amount_invested=Decimal("500"), current_value=Decimal("520"),
    ))
    return store


class TestPortfolioFlow:
    """Tests for PortfolioFlow."""

    @pytest.mark.asyncio
    async def test_refresh_uses_live_prices(self, store):
        """Test that resolved tickers are priced live and the rest fall back."""
        await seeded_store(store)
        quotes = FixedQuoteService({"PETR4": Decimal("35")})
        flow = PortfolioFlow(store, quotes)

        prices, summary = await flow.refresh()

        assert sorted(quotes.requested) == ["PETR4", "TESOURO"]
        assert prices == {"PETR4": Decimal("35")}
        assert summary.total_invested == Decimal("800")
        assert summary.total_current == Decimal("870")

    @pytest.mark.asyncio
    async def test_refresh_never_writes(self, store):
        """Test that a refresh alone leaves stored values untouched."""
        await seeded_store(store)
        flow = PortfolioFlow(store, FixedQuoteService({"PETR4": Decimal("35")}))

        await flow.refresh()

        petr = next(i for i in store.investments if i.name == "PETR4")
        assert petr.current_value == Decimal("0")

    @pytest.mark.asyncio
    async def test_save_snapshot(self, store):
        """Test that only changed, live-priced values are saved."""
        await seeded_store(store)
        flow = PortfolioFlow(store, FixedQuoteService({"PETR4": Decimal("35")}))
        prices, _ = await flow.refresh()

        assert await flow.save_snapshot(prices) == 1
        assert await flow.save_snapshot(prices) == 0

        petr = next(i for i in store.investments if i.name == "PETR4")
        assert petr.current_value == Decimal("350.00")


class TestAppWiring:
    """Tests for create_app_components."""

    @pytest.fixture(autouse=True)
    def no_gemini_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "")
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_in_memory_components(self):
        """Test wiring without storage or an API key."""
        store, session, flow, sheets_client = create_app_components(use_storage=False)

        assert sheets_client is None
        assert isinstance(store._transaction_storage, InMemoryTransactionStorage)
        assert session.assistant.is_offline
        assert isinstance(flow, PortfolioFlow)

    def test_unreachable_sheets_falls_back_to_memory(self, monkeypatch):
        """Test that a failed Sheets connection is audited and memory is used."""
        class UnreachableSheetsClient:
            def connect(self):
                raise ConnectionError("Spreadsheet not found: abc")

        monkeypatch.setattr(orchestrator, "GoogleSheetsClient", UnreachableSheetsClient)

        store, _, _, sheets_client = create_app_components(use_storage=True)

        errors = [
            e for e in store.audit_logger.history
            if e.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        ]
        assert sheets_client is None
        assert isinstance(store._transaction_storage, InMemoryTransactionStorage)
        assert errors[0].details == {"service": "google_sheets"}
        assert "Spreadsheet not found" in errors[0].error_message

    def test_runtime_api_key(self):
        """Test that a key supplied at runtime enables the model backends."""
        _, session, _, _ = create_app_components(use_storage=False, api_key="test-key")

        assert not session.assistant.is_offline

    @pytest.mark.asyncio
    async def test_session_follows_store(self):
        """Test that the session is subscribed to the store it was built with."""
        store, session, _, _ = create_app_components(use_storage=False)
        await store.load_session(USER_ID, USER_NAME)
        await session.send("hello")

        store.logout()

        assert len(session.messages) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
