"""
AI Assistant Pipeline

DESIGN DECISION: The model is an untrusted text generator behind one
narrow interface (ModelBackend.generate). Everything it returns is
cleaned, parsed and validated against AIResponse before use.

CRITICAL BOUNDARIES:

1. THE MODEL:
   - CAN: Answer with advice, propose ONE transaction, rate the risk
   - CANNOT: Change any data (proposals are staged for the user)
   - CANNOT: Reach the user with a malformed reply

2. THE PIPELINE:
   - Tries each configured backend in order
   - A failing or malformed backend is logged and skipped
   - After the last backend, answers from the local heuristics
   - Never raises to the caller

No API key means offline mode: no remote call is attempted at all.
"""

import json
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

import google.generativeai as genai
from pydantic import ValidationError

from fintrack.analysis.heuristics import analyze
from fintrack.audit import AuditLogger, create_correlation_id
from fintrack.config import get_settings
from fintrack.models.assistant import AIResponse, RiskAssessment, RiskLevel
from fintrack.models.audit import AuditEventType
from fintrack.models.finance import Transaction, TransactionType


OFFLINE_MESSAGE = (
    "Hi {name}! I'm in offline mode. "
    "Add your API key in Settings to make me smarter."
)
OFFLINE_RISK_MESSAGE = "Offline mode active."

FALLBACK_MESSAGE = (
    "I'm having trouble connecting right now. "
    "But I analyzed your data locally: "
)
FALLBACK_EMPTY_TIP = "Everything looks in order."
FALLBACK_RISK_MESSAGE = "AI unavailable."


# =============================================================================
# MODEL BACKENDS
# =============================================================================

class ModelBackend(ABC):
    """One text-generation model. Adding a backend never touches validation."""

    name: str = "backend"

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Send the full prompt, return the raw reply text.

        May raise anything; the assistant treats it as a failed attempt.
        """
        pass


class GeminiBackend(ModelBackend):
    """Google Gemini through google-generativeai."""

    def __init__(self, api_key: str, model_name: str, temperature: float = 0.2):
        self.name = model_name
        genai.configure(api_key=api_key)
        self._model = genai.GenerativeModel(
            model_name=model_name,
            generation_config={
                "temperature": temperature,
                "response_mime_type": "application/json",
            }
        )

    async def generate(self, prompt: str) -> str:
        response = await self._model.generate_content_async(prompt)
        return response.text


def create_gemini_backends(api_key: Optional[str] = None) -> list[ModelBackend]:
    """
    Build the ordered Gemini backends from settings.

    An explicit api_key (e.g. typed into the settings page) wins over
    the configured one. Returns [] when there is no key at all.
    """
    settings = get_settings().gemini
    key = (api_key or settings.api_key or "").strip()
    if not key:
        return []
    return [
        GeminiBackend(key, model_name, settings.temperature)
        for model_name in settings.model_names_list
    ]


# =============================================================================
# REPLY PARSING
# =============================================================================

def clean_ai_response(text: str) -> str:
    """Strip markdown code fences models wrap JSON in."""
    return text.strip().replace("```json", "").replace("```", "").strip()


def parse_ai_response(text: Optional[str]) -> Optional[AIResponse]:
    """
    Turn raw model text into a validated reply.

    Returns:
        The AIResponse, or None if the text is not a JSON object of
        the required shape (message and riskAssessment are mandatory)
    """
    if not text:
        return None
    try:
        data = json.loads(clean_ai_response(text))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return AIResponse.model_validate(data)
    except ValidationError:
        return None


# =============================================================================
# PROMPT
# =============================================================================

def recent_transactions(
    transactions: Iterable[Transaction],
    limit: int = 10,
) -> list[Transaction]:
    """Most recent first by date."""
    return sorted(transactions, key=lambda t: t.date, reverse=True)[:limit]


def summarize_context(
    user_name: str,
    balance,
    transactions: Iterable[Transaction],
    limit: int = 10,
) -> str:
    lines = [
        f"User name: {user_name}",
        f"Current balance: {Decimal(str(balance)):.2f}",
        "Recent transactions:",
    ]
    for tx in recent_transactions(transactions, limit):
        direction = "in" if tx.type == TransactionType.INCOME else "out"
        lines.append(
            f"- {tx.date.isoformat()}: {tx.description} ({tx.category.value}) "
            f"| {tx.amount:.2f} ({direction})"
        )
    return "\n".join(lines)


def build_prompt(
    user_name: str,
    summary: str,
    user_message: str,
    today: Optional[date] = None,
) -> str:
    today = today or date.today()
    return f"""You are "RoboFin", a smart and proactive personal finance assistant.

YOUR GOALS:
1. Answer the user with friendly advice or answers, ALWAYS calling them by the name "{user_name}".
2. IDENTIFY whether the user wants to add a transaction (expense or income) and structure it.
3. ASSESS the user's current financial risk. If a new transaction is added, check whether it puts the balance at risk.

USER DATA:
{summary}

USER QUESTION OR ACTION: "{user_message}"

REQUIRED OUTPUT:
You MUST reply with ONLY one valid JSON object, no markdown, with this structure:
{{
  "message": "Your text reply (use emojis, be brief and friendly with {user_name})",
  "action": {{
    "type": "add_expense" | "add_income" | "none",
    "data": {{
      "description": "e.g. McDonald's",
      "amount": 50.00,
      "category": "Food | Leisure | Housing | Transport | Salary | Health | Education | Other",
      "date": "YYYY-MM-DD" (use today's date {today.isoformat()} if not specified)
    }}
  }},
  "riskAssessment": {{
    "riskLevel": "high" | "medium" | "low",
    "message": "A short alert (max 10 words) or tip based on the balance and the impact of the new transaction."
  }},
  "confidence": 0.0 to 1.0 (how sure you are about the action)
}}

RULES:
- If the user says "I spent 50 at the grocery store", action.type = "add_expense".
- If the user says "I received 1000", action.type = "add_income".
- If the balance is negative or the new expense makes it negative, riskLevel = "high".
- If the user only says hello, riskAssessment should be a short greeting or a generic tip.

IMPORTANT:
- Do NOT use markdown
- Do NOT use backticks
- Do NOT write text outside the JSON
- Return ONLY the JSON object"""


# =============================================================================
# ASSISTANT
# =============================================================================

class FinancialAssistant:
    """
    Produces one validated reply per user message.

    RESPONSIBILITIES:
    - Build the prompt from the user's recent data
    - Try each backend in order, validating every reply
    - Fall back to local heuristics when no backend succeeds

    BOUNDARIES:
    - NEVER mutates data (actions are proposals only)
    - NEVER shows an unvalidated reply
    """

    def __init__(
        self,
        backends: Optional[Sequence[ModelBackend]] = None,
        audit_logger: Optional[AuditLogger] = None,
        recent_limit: Optional[int] = None,
    ):
        self._backends = list(backends) if backends is not None else create_gemini_backends()
        self._audit_logger = audit_logger or AuditLogger()
        self._recent_limit = recent_limit or get_settings().app.recent_transaction_limit

    @property
    def is_offline(self) -> bool:
        return not self._backends

    @property
    def backend_names(self) -> list[str]:
        return [backend.name for backend in self._backends]

    def use_api_key(self, api_key: Optional[str]) -> None:
        """Rebuild the Gemini backends for a key supplied at runtime."""
        self._backends = create_gemini_backends(api_key)

    def _offline_response(self, tips: list[str], balance: Decimal, user_name: str) -> AIResponse:
        return AIResponse(
            message=OFFLINE_MESSAGE.format(name=user_name),
            risk_assessment=RiskAssessment(
                risk_level=RiskLevel.HIGH if balance < 0 else RiskLevel.LOW,
                message=tips[0] if tips else OFFLINE_RISK_MESSAGE,
            ),
        )

    def _fallback_response(self, tips: list[str], balance: Decimal) -> AIResponse:
        return AIResponse(
            message=FALLBACK_MESSAGE + (tips[0] if tips else FALLBACK_EMPTY_TIP),
            risk_assessment=RiskAssessment(
                risk_level=RiskLevel.HIGH if balance < 0 else RiskLevel.LOW,
                message=tips[0] if tips else FALLBACK_RISK_MESSAGE,
            ),
        )

    async def respond(
        self,
        user_message: str,
        transactions: Iterable[Transaction],
        balance,
        user_name: str = "User",
    ) -> AIResponse:
        """
        Answer one message.

        Args:
            user_message: What the user typed (or the monitor's check)
            transactions: The user's transactions (any order)
            balance: Balance the model should judge risk against
            user_name: First name to address the user by

        Returns:
            A validated reply; offline and fallback replies included
        """
        correlation_id = create_correlation_id()
        transactions = list(transactions)
        balance = Decimal(str(balance))

        if self.is_offline:
            self._audit_logger.log_assistant_event(
                AuditEventType.AI_OFFLINE,
                "No API key configured; answered locally",
                correlation_id=correlation_id,
            )
            return self._offline_response(analyze(transactions, balance), balance, user_name)

        summary = summarize_context(user_name, balance, transactions, self._recent_limit)
        prompt = build_prompt(user_name, summary, user_message)

        for backend in self._backends:
            try:
                text = await backend.generate(prompt)
            except Exception as e:
                self._audit_logger.log_ai_model_failed(backend.name, str(e), correlation_id)
                continue

            parsed = parse_ai_response(text)
            if parsed is None:
                self._audit_logger.log_assistant_event(
                    AuditEventType.AI_RESPONSE_REJECTED,
                    f"Reply from {backend.name} failed validation",
                    details={"model": backend.name, "preview": (text or "")[:200]},
                    correlation_id=correlation_id,
                )
                continue

            return parsed

        self._audit_logger.log_assistant_event(
            AuditEventType.AI_FALLBACK_USED,
            "All models failed; answered from local analysis",
            details={"models": self.backend_names},
            correlation_id=correlation_id,
        )
        return self._fallback_response(analyze(transactions, balance), balance)
