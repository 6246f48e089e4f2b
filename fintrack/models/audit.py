"""
Audit Models for the Finance Tracker

Every mutation outcome and every assistant outcome is logged.
This provides:
1. Traceability of optimistic updates (who was rolled back, and why)
2. Debugging information when a backend misbehaves
3. Ability to reconstruct a session's history from the logs

DESIGN DECISION: Audit events are append-only structured log lines.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    SESSION_LOADED = "session_loaded"
    SESSION_CLEARED = "session_cleared"

    # Optimistic mutations
    RECORD_ADDED = "record_added"
    RECORD_CONFIRMED = "record_confirmed"
    RECORD_ROLLED_BACK = "record_rolled_back"
    RECORD_REMOVED = "record_removed"
    RECORD_RESTORED = "record_restored"
    RECORD_UPDATED = "record_updated"

    # Profile
    RESERVATION_UPDATED = "reservation_updated"
    LAYOUT_UPDATED = "layout_updated"
    PROFILE_UPDATED = "profile_updated"

    # Assistant
    AI_MODEL_FAILED = "ai_model_failed"
    AI_RESPONSE_REJECTED = "ai_response_rejected"
    AI_FALLBACK_USED = "ai_fallback_used"
    AI_OFFLINE = "ai_offline"
    ACTION_STAGED = "action_staged"
    ACTION_COMMITTED = "action_committed"
    ACTION_CANCELLED = "action_cancelled"
    RISK_CHECK_TRIGGERED = "risk_check_triggered"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'investment', 'profile')"
    )
    entity_id: Optional[str] = None

    # Groups the events of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_added("transaction", temp_id)
        event = AuditEventBuilder.record_rolled_back("transaction", temp_id, str(e))
    """

    @staticmethod
    def record_added(
        entity_type: str,
        temp_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_ADDED,
            entity_type=entity_type,
            entity_id=temp_id,
            correlation_id=correlation_id,
            description=f"Optimistic {entity_type} inserted",
        )

    @staticmethod
    def record_confirmed(
        entity_type: str,
        temp_id: str,
        final_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CONFIRMED,
            entity_type=entity_type,
            entity_id=final_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} confirmed by storage",
            details={"temp_id": temp_id},
        )

    @staticmethod
    def record_rolled_back(
        entity_type: str,
        entity_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Remote write failed; {entity_type} change rolled back",
            error_message=error_message,
        )

    @staticmethod
    def record_removed(
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_REMOVED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} removed",
        )

    @staticmethod
    def record_restored(
        entity_type: str,
        entity_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_RESTORED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Remote delete failed; {entity_type} list restored",
            error_message=error_message,
        )

    @staticmethod
    def record_updated(
        entity_type: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} updated",
            details={"fields": fields},
        )

    @staticmethod
    def profile_changed(
        event_type: AuditEventType,
        user_id: str,
        details: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="profile",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Profile change: {event_type.value}",
            details=details,
        )

    @staticmethod
    def ai_model_failed(
        model_name: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_MODEL_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="model",
            entity_id=model_name,
            correlation_id=correlation_id,
            description=f"Model {model_name} did not produce a usable reply",
            error_message=reason,
        )

    @staticmethod
    def assistant_event(
        event_type: AuditEventType,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type="assistant",
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.WARNING,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
