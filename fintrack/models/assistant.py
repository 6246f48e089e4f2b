"""
Assistant Models

The single place where the shape of a model reply is defined.
Replies are untrusted text: they are parsed and validated against
AIResponse before anything in the app looks at them.

CRITICAL: riskAssessment and message are mandatory. A reply missing
either is rejected as a whole, never partially shown.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fintrack.models.finance import TransactionType


class ActionType(str, Enum):
    """Actions the model may propose."""
    ADD_EXPENSE = "add_expense"
    ADD_INCOME = "add_income"
    ADD_TRANSACTION = "add_transaction"
    REMOVE_TRANSACTION = "remove_transaction"
    NONE = "none"


# Action types that are staged for confirmation and commit a new transaction
ADD_ACTION_TYPES = frozenset({
    ActionType.ADD_EXPENSE,
    ActionType.ADD_INCOME,
    ActionType.ADD_TRANSACTION,
})


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AIActionData(BaseModel):
    """
    Transaction fields proposed by the model.

    Everything is optional: defaults are filled in at confirmation time.
    Models are loose with formats, so a value that cannot be read is
    dropped (None) instead of rejecting the whole reply.
    """
    model_config = ConfigDict(extra="ignore")

    description: Optional[str] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    type: Optional[TransactionType] = None
    date: Optional[str] = None

    @field_validator("description", "category", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, (dict, list)):
            return None
        text = str(v).strip()
        return text or None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Optional[Decimal]:
        """Accept numbers and numeric strings like "50,00" or "R$ 1.234,56"."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float, Decimal)):
            text = str(v)
        elif isinstance(v, str):
            text = "".join(ch for ch in v if ch.isdigit() or ch in ",.-")
            if "," in text and "." in text:
                # The last separator is the decimal one
                if text.rfind(",") > text.rfind("."):
                    text = text.replace(".", "").replace(",", ".")
                else:
                    text = text.replace(",", "")
            elif "," in text:
                text = text.replace(",", ".")
        else:
            return None
        try:
            amount = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
        if not amount.is_finite():
            return None
        return abs(amount)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Optional[TransactionType]:
        if not isinstance(v, str):
            return None
        try:
            return TransactionType(v.strip().lower())
        except ValueError:
            return None

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, (bool, dict, list)):
            return None
        text = str(v).strip()
        return text or None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class AIAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: ActionType
    data: Optional[AIActionData] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("data", mode="before")
    @classmethod
    def drop_non_mapping_data(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None


class RiskAssessment(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    risk_level: RiskLevel = Field(..., alias="riskLevel")
    message: str


class AIResponse(BaseModel):
    """
    A validated assistant reply.

    Field aliases match the camelCase JSON the prompt asks for.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str
    action: Optional[AIAction] = None
    risk_assessment: RiskAssessment = Field(..., alias="riskAssessment")
    confidence: Optional[float] = None

    @property
    def stageable_action(self) -> Optional[AIAction]:
        """The action to stage for confirmation, if this reply carries one."""
        if (
            self.action is not None
            and self.action.type in ADD_ACTION_TYPES
            and self.action.data is not None
            and not self.action.data.is_empty()
        ):
            return self.action
        return None


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One line of the conversation (held in memory only)."""

    role: MessageRole
    content: str
