"""AI assistant package."""

from fintrack.agents.ai_agents import (
    FinancialAssistant,
    GeminiBackend,
    ModelBackend,
    build_prompt,
    clean_ai_response,
    create_gemini_backends,
    parse_ai_response,
    summarize_context,
)
from fintrack.agents.session import (
    AssistantSession,
    AssistantState,
    PendingActionStatus,
    TipBubble,
    TransactionMonitor,
)

__all__ = [
    "AssistantSession",
    "AssistantState",
    "FinancialAssistant",
    "GeminiBackend",
    "ModelBackend",
    "PendingActionStatus",
    "TipBubble",
    "TransactionMonitor",
    "build_prompt",
    "clean_ai_response",
    "create_gemini_backends",
    "parse_ai_response",
    "summarize_context",
]
