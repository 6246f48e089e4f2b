"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows that span more than one of them:
1. Portfolio refresh (tickers → live quotes → derived values → optional snapshot)
2. Application wiring (storage → store → assistant → session)

DESIGN DECISION: Storage is optional at wiring time. If Google Sheets
isn't configured the app still runs on in-memory storage, so the
dashboard and the assistant can be tried without any credentials.
"""

from decimal import Decimal
from typing import Optional

import structlog

from fintrack.agents import AssistantSession, FinancialAssistant
from fintrack.analysis.portfolio import current_value, summarize
from fintrack.audit import AuditLogger
from fintrack.config import get_settings
from fintrack.models.finance import PortfolioSummary
from fintrack.services.market import QuoteService
from fintrack.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsInvestmentStorage,
    GoogleSheetsProfileStorage,
    GoogleSheetsTransactionStorage,
    InMemoryInvestmentStorage,
    InMemoryProfileStorage,
    InMemoryTransactionStorage,
)
from fintrack.store import FinanceStore


logger = structlog.get_logger(__name__)


class PortfolioFlow:
    """
    Orchestrates the portfolio refresh.

    Flow:
    1. Collect the tickers of the current user's investments
    2. Fetch live quotes (missing symbols just fall back)
    3. Derive current values and the portfolio summary
    4. Optionally re-save changed current values (explicit user action)

    Live prices are never written back unless save_snapshot is called.
    """

    def __init__(
        self,
        store: FinanceStore,
        quote_service: Optional[QuoteService] = None,
    ):
        self._store = store
        self._quote_service = quote_service or QuoteService()

    async def refresh(self) -> tuple[dict[str, Decimal], PortfolioSummary]:
        """
        Returns:
            (prices, summary) where prices only holds resolved tickers
        """
        investments = self._store.investments
        prices = await self._quote_service.get_prices(inv.name for inv in investments)
        return prices, summarize(investments, prices)

    async def save_snapshot(self, prices: dict[str, Decimal]) -> int:
        """
        Persist live-priced current values on the investments.

        Returns:
            How many investments were updated successfully
        """
        updated = 0
        for investment in self._store.investments:
            if investment.name not in prices:
                continue
            value = current_value(investment, prices).quantize(Decimal("0.01"))
            if value == investment.current_value:
                continue
            if await self._store.update_investment(investment.id, {"current_value": value}):
                updated += 1
        return updated


def create_app_components(
    use_storage: bool = True,
    api_key: Optional[str] = None,
) -> tuple[FinanceStore, AssistantSession, PortfolioFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.
        api_key: Gemini key supplied at runtime; overrides settings

    Returns:
        (store, assistant_session, portfolio_flow, sheets_client)
    """
    app_settings = get_settings().app
    audit_logger = AuditLogger(history_size=100)
    sheets_client = None

    transaction_storage = None
    investment_storage = None
    profile_storage = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            investment_storage = GoogleSheetsInvestmentStorage(sheets_client)
            profile_storage = GoogleSheetsProfileStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            audit_logger.log_external_service_error("google_sheets", str(e))
            sheets_client = None
            transaction_storage = None

    if transaction_storage is None:
        transaction_storage = InMemoryTransactionStorage()
        investment_storage = InMemoryInvestmentStorage()
        profile_storage = InMemoryProfileStorage()

    store = FinanceStore(
        transaction_storage,
        investment_storage,
        profile_storage,
        audit_logger=audit_logger,
        salary_label=app_settings.salary_label,
    )

    assistant = FinancialAssistant(audit_logger=audit_logger)
    if api_key:
        assistant.use_api_key(api_key)

    session = AssistantSession(
        store,
        assistant,
        audit_logger=audit_logger,
        debounce_seconds=app_settings.monitor_debounce_seconds,
        tip_auto_hide_seconds=app_settings.tip_auto_hide_seconds,
    )

    portfolio_flow = PortfolioFlow(store, QuoteService(audit_logger=audit_logger))

    return store, session, portfolio_flow, sheets_client
