"""
Streamlit Frontend for the Finance Tracker

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before the assistant changes anything
3. Clear error messages in simple language
4. Visual feedback for all operations

Every session gets its own store and assistant session (kept in
st.session_state), driven by one persistent event loop so the
assistant's monitor and tip timers survive between reruns.
"""

import asyncio
import html
import re
from datetime import date
from decimal import Decimal

import streamlit as st
from pydantic import ValidationError

from fintrack.agents import AssistantSession, PendingActionStatus
from fintrack.analysis import annual_projection
from fintrack.config import validate_all_settings
from fintrack.models.assistant import MessageRole
from fintrack.models.audit import AuditEventType
from fintrack.models.finance import (
    DESCRIPTION_MAX_LENGTH,
    Category,
    InvestmentDraft,
    InvestmentType,
    Theme,
    TransactionDraft,
    TransactionType,
)
from fintrack.orchestrator import PortfolioFlow, create_app_components
from fintrack.store import FinanceStore


# Page configuration
st.set_page_config(
    page_title="Finance Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .tip-box {
        padding: 16px;
        background-color: #cce5ff;
        border-radius: 10px;
        border-left: 5px solid #004085;
        margin: 10px 0;
    }
    .risk-box {
        padding: 16px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


DASHBOARD_WIDGETS = {
    "summary": "Monthly summary",
    "reservation": "Reservation",
    "transactions": "Transactions",
    "annual": "Annual projection",
}
DEFAULT_LAYOUT = list(DASHBOARD_WIDGETS)


def get_loop() -> asyncio.AbstractEventLoop:
    """One event loop per browser session."""
    if "loop" not in st.session_state:
        st.session_state.loop = asyncio.new_event_loop()
    return st.session_state.loop


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = get_loop()
    asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def get_components() -> tuple[FinanceStore, AssistantSession, PortfolioFlow]:
    """Get or create this session's components."""
    if "components" not in st.session_state:
        # Components are built on the session loop so their timers attach to it
        async def build():
            return create_app_components(
                use_storage=True,
                api_key=st.session_state.get("gemini_api_key"),
            )

        store, session, portfolio_flow, _ = run_async(build())
        st.session_state.components = (store, session, portfolio_flow)
    return st.session_state.components


def settle(session: AssistantSession) -> None:
    """
    Let the transaction monitor run its pending risk check now.

    The session loop only runs inside run_async, so timers scheduled on
    it (the debounce and the tip auto-hide) never fire between reruns.
    The tip bubble also keeps a wall-clock deadline for that reason.
    """
    run_async(session.monitor.flush())


def money(value) -> str:
    return f"{Decimal(value):,.2f}"


def main():
    """Main application entry point."""
    store, session, portfolio_flow = get_components()

    if store.current_user is None:
        render_login_page(store)
        return

    # Sidebar navigation
    st.sidebar.title("💰 Finance Tracker")
    st.sidebar.markdown(f"Signed in as **{store.current_user.name}**")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "📈 Investments", "🤖 Assistant", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    render_tip_bubble(session)

    if page == "📊 Dashboard":
        render_dashboard_page(store, session)
    elif page == "📈 Investments":
        render_investments_page(store, portfolio_flow)
    elif page == "🤖 Assistant":
        render_assistant_page(session)
    elif page == "⚙️ Settings":
        render_settings_page(store, session)


def render_login_page(store: FinanceStore):
    st.title("💰 Finance Tracker")
    with st.form("login"):
        name = st.text_input("Your name")
        if st.form_submit_button("Start") and name.strip():
            if not run_async(store.login(name)):
                st.warning("Could not load your saved data. Starting with an empty session.")
            st.rerun()


def tip_bubble_html(tip: str, high_risk: bool) -> str:
    """Tip markup with the text escaped; only **bold** runs become tags."""
    box = "risk-box" if high_risk else "tip-box"
    title = "Risk alert" if high_risk else "Smart tip"
    body = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", html.escape(tip))
    return f'<div class="{box}"><strong>{title}</strong><br>{body}</div>'


def render_tip_bubble(session: AssistantSession):
    """Sidebar tip: AI risk assessment first, local heuristics otherwise."""
    tip = session.active_tip
    if not tip or not session.tip.visible:
        return

    st.sidebar.markdown(
        tip_bubble_html(tip, session.tip.is_high_risk),
        unsafe_allow_html=True,
    )
    if st.sidebar.button("Dismiss tip"):
        session.tip.dismiss()
        st.rerun()


def render_dashboard_page(store: FinanceStore, session: AssistantSession):
    st.title("📊 Dashboard")

    selected = st.date_input("Month", value=store.selected_date)
    if selected != store.selected_date:
        store.set_selected_date(selected)

    layout = store.current_user.dashboard_layouts.get("principal") or DEFAULT_LAYOUT
    for widget_id in layout:
        if widget_id == "summary":
            render_summary_widget(store)
        elif widget_id == "reservation":
            render_reservation_widget(store)
        elif widget_id == "transactions":
            render_transactions_widget(store, session)
        elif widget_id == "annual":
            render_annual_widget(store)


def render_summary_widget(store: FinanceStore):
    summary = store.get_summary()
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", money(summary.total_income))
    col2.metric("Expenses", money(summary.total_expense))
    col3.metric("Balance", money(summary.balance))
    col4.metric("Reserved", money(summary.reservation))


def render_reservation_widget(store: FinanceStore):
    with st.expander("🏦 Reservation"):
        with st.form("reservation"):
            amount = st.number_input("Set aside", min_value=0.0, step=10.0)
            if st.form_submit_button("Add to reservation"):
                if amount <= 0:
                    st.error("Enter an amount greater than zero.")
                elif run_async(store.add_to_reservation(Decimal(str(amount)))):
                    st.success("Reservation updated.")
                else:
                    st.error("Could not save the reservation. Please try again.")


def render_transactions_widget(store: FinanceStore, session: AssistantSession):
    st.markdown("### Transactions")

    with st.expander("➕ Add transaction"):
        with st.form("add_transaction", clear_on_submit=True):
            description = st.text_input("Description", max_chars=DESCRIPTION_MAX_LENGTH)
            amount = st.number_input("Amount", min_value=0.0, step=1.0)
            tx_type = st.selectbox(
                "Type",
                options=list(TransactionType),
                format_func=lambda t: t.value.title(),
            )
            category = st.selectbox(
                "Category",
                options=list(Category),
                format_func=lambda c: c.value,
            )
            tx_date = st.date_input("Date", value=date.today())
            is_fixed = st.checkbox("Fixed (recurs monthly)")
            installments = st.number_input("Installments", min_value=1, max_value=48, value=1)

            if st.form_submit_button("Save"):
                try:
                    draft = TransactionDraft(
                        description=description,
                        amount=Decimal(str(amount)).quantize(Decimal("0.01")),
                        type=tx_type,
                        category=category,
                        date=tx_date,
                        is_fixed=is_fixed,
                    )
                except ValidationError as e:
                    st.error(f"Invalid transaction: {e.errors()[0]['msg']}")
                    draft = None

                if draft is not None:
                    if installments > 1 and tx_type == TransactionType.EXPENSE:
                        results = run_async(store.add_installment_purchase(draft, int(installments)))
                        saved = bool(results) and all(results)
                    else:
                        saved = run_async(store.add_transaction(draft)) is not None
                    settle(session)
                    if saved:
                        st.success("Transaction saved.")
                    else:
                        st.error("Could not save the transaction. Please try again.")

    summary_month = store.selected_date
    month_transactions = [
        t for t in store.transactions
        if t.date.year == summary_month.year and t.date.month == summary_month.month
    ]
    if not month_transactions:
        st.info("No transactions this month yet.")
        return

    for tx in month_transactions:
        col1, col2, col3, col4 = st.columns([4, 2, 2, 1])
        label = tx.description + (" 🔁" if tx.is_fixed else "")
        col1.markdown(f"**{label}**  \n{tx.date.isoformat()} · {tx.category.value}")
        sign = "+" if tx.type == TransactionType.INCOME else "-"
        col2.markdown(f"{sign}{money(tx.amount)}")
        col3.markdown("⏳ saving" if store.is_pending(tx.id) else "")
        if col4.button("🗑️", key=f"remove-{tx.id}"):
            if not run_async(store.remove_transaction(tx.id)):
                st.error("Could not delete the transaction.")
            settle(session)
            st.rerun()


def render_annual_widget(store: FinanceStore):
    with st.expander("📅 Annual projection"):
        year = st.number_input("Year", value=store.selected_date.year, step=1)
        projection = annual_projection(store.transactions, store.investments, int(year))
        st.dataframe(
            [
                {
                    "Month": row.month,
                    "Income": float(row.income),
                    "Expenses": float(row.expense),
                    "Invested": float(row.investment),
                    "Balance": float(row.balance),
                }
                for row in projection.months
            ],
            use_container_width=True,
        )
        st.markdown(
            f"**Year balance:** {money(projection.total_balance)} "
            f"(income {money(projection.total_income)}, "
            f"expenses {money(projection.total_expense)})"
        )


def render_investments_page(store: FinanceStore, portfolio_flow: PortfolioFlow):
    st.title("📈 Investments")

    with st.expander("➕ Add investment"):
        with st.form("add_investment", clear_on_submit=True):
            name = st.text_input("Ticker or name", max_chars=50, help="e.g. PETR4")
            inv_type = st.selectbox(
                "Type",
                options=list(InvestmentType),
                format_func=lambda t: t.value,
            )
            amount = st.number_input("Amount invested", min_value=0.0, step=10.0)
            quantity = st.number_input("Quantity", min_value=0.0, value=1.0, step=1.0)
            if st.form_submit_button("Save") and name.strip():
                draft = InvestmentDraft(
                    name=name.upper(),
                    type=inv_type,
                    amount_invested=Decimal(str(amount)),
                    current_value=Decimal(str(amount)),
                    quantity=Decimal(str(quantity)),
                )
                if run_async(store.add_investment(draft)) is None:
                    st.error("Could not save the investment.")

    if not store.investments:
        st.info("No investments yet.")
        return

    prices, summary = run_async(portfolio_flow.refresh())

    col1, col2, col3 = st.columns(3)
    col1.metric("Invested", money(summary.total_invested))
    col2.metric("Current", money(summary.total_current))
    col3.metric("Profit", money(summary.profit), f"{summary.profit_percent:.2f}%")

    for inv in store.investments:
        col1, col2, col3 = st.columns([4, 3, 1])
        live = "🟢 live" if inv.name in prices else "⚪ saved"
        col1.markdown(f"**{inv.name}** · {inv.type.value} · {inv.quantity} units")
        col2.markdown(f"{money(prices[inv.name] * inv.quantity) if inv.name in prices else money(inv.current_value or inv.amount_invested)} ({live})")
        if col3.button("🗑️", key=f"remove-inv-{inv.id}"):
            if not run_async(store.remove_investment(inv.id)):
                st.error("Could not delete the investment.")
            st.rerun()

    if prices and st.button("💾 Save current prices"):
        updated = run_async(portfolio_flow.save_snapshot(prices))
        st.success(f"Updated {updated} investment(s).")


def render_assistant_page(session: AssistantSession):
    st.title("🤖 Assistant")

    if session.assistant.is_offline:
        st.warning("⚠️ Offline mode (basic). Add your Gemini API key in Settings for real intelligence.")

    for message in session.messages:
        role = "user" if message.role == MessageRole.USER else "assistant"
        with st.chat_message(role):
            st.markdown(message.content)

    if session.pending_status == PendingActionStatus.STAGED and session.pending_action:
        data = session.pending_action.data
        with st.container(border=True):
            st.markdown("**Confirmation needed.** Add this transaction?")
            st.markdown(
                f"- Description: **{data.description or 'N/A'}**\n"
                f"- Amount: **{(data.amount or 0):.2f}**\n"
                f"- Category: **{data.category or 'Other'}**"
            )
            col1, col2 = st.columns(2)
            if col1.button("👍 Confirm"):
                run_async(session.confirm_action())
                settle(session)
                st.rerun()
            if col2.button("👎 Cancel"):
                session.cancel_action()
                st.rerun()

    prompt = st.chat_input(
        "Ask me anything...",
        disabled=session.pending_status == PendingActionStatus.STAGED,
    )
    if prompt:
        with st.spinner("Thinking..."):
            run_async(session.send(prompt))
        st.rerun()


def render_settings_page(store: FinanceStore, session: AssistantSession):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Profile")
    with st.form("profile"):
        name = st.text_input("Name", value=store.current_user.name)
        avatar_url = st.text_input("Avatar URL", value=store.current_user.avatar_url or "")
        if st.form_submit_button("Save profile"):
            if not run_async(store.update_profile(name=name, avatar_url=avatar_url)):
                st.error("Could not save your profile.")

    st.markdown("### Fixed salary")
    with st.form("salary"):
        current = store.find_salary_transactions()
        salary = st.number_input(
            "Monthly salary",
            min_value=0.0,
            value=float(current[0].amount) if current else 0.0,
            step=100.0,
        )
        if st.form_submit_button("Save salary"):
            run_async(store.set_fixed_salary(Decimal(str(salary))))
            settle(session)
            st.success("Salary updated.")

    st.markdown("### Dashboard layout")
    layout = store.current_user.dashboard_layouts.get("principal") or DEFAULT_LAYOUT
    chosen = st.multiselect(
        "Widgets, in order",
        options=list(DASHBOARD_WIDGETS),
        default=layout,
        format_func=lambda w: DASHBOARD_WIDGETS[w],
    )
    if st.button("Save layout"):
        if not run_async(store.update_layout("principal", chosen)):
            st.error("Could not save the layout.")

    st.markdown("### Appearance")
    if st.button(f"Switch to {'dark' if store.theme == Theme.LIGHT else 'light'} theme"):
        store.toggle_theme()

    st.markdown("### Assistant")
    api_key = st.text_input(
        "Gemini API key",
        value=st.session_state.get("gemini_api_key", ""),
        type="password",
    )
    if st.button("Save API key"):
        st.session_state.gemini_api_key = api_key
        session.assistant.use_api_key(api_key)
        st.success("Assistant updated.")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
        ("Market quotes", "market"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    service_errors = [
        event for event in store.audit_logger.history
        if event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
    ]
    if service_errors:
        with st.expander(f"Recent service errors ({len(service_errors)})"):
            for event in reversed(service_errors[-10:]):
                st.caption(f"{event.timestamp:%H:%M:%S} · {event.details.get('service')}: {event.error_message}")

    st.markdown("---")
    if st.button("Log out"):
        store.logout()
        st.rerun()


if __name__ == "__main__":
    main()
