"""
Audit Logger

DESIGN DECISION: Every mutation outcome in the store and every
assistant outcome is logged as a structured event.
This provides:
1. Traceability of optimistic updates and their rollbacks
2. Debugging capability when a backend misbehaves
3. A single place where "errors are logged, not raised" actually happens

The audit logger never raises: a logging failure must not turn a
handled rollback into an unhandled exception.
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
)


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Events go to the structured local log. Callers that want to
    inspect what happened (tests, the settings page) can keep a
    bounded in-memory history via ``history_size``.
    """

    def __init__(self, history_size: int = 0):
        """
        Args:
            history_size: How many recent events to keep in memory.
                          0 disables the history.
        """
        self._logger = structlog.get_logger("fintrack.audit")
        self._history_size = history_size
        self._history: list[AuditEvent] = []

    @property
    def history(self) -> list[AuditEvent]:
        return list(self._history)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at a level matching its severity."""
        log_dict = event.to_log_dict()

        try:
            if event.severity.value == "error":
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            elif event.severity.value == "debug":
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Last resort; the event itself is kept below
            structlog.get_logger().error("audit_log_failed", error=str(e))

        if self._history_size:
            self._history.append(event)
            del self._history[:-self._history_size]

    def log_record_added(
        self,
        entity_type: str,
        temp_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_added(entity_type, temp_id, correlation_id))

    def log_record_confirmed(
        self,
        entity_type: str,
        temp_id: str,
        final_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_confirmed(entity_type, temp_id, final_id, correlation_id))

    def log_record_rolled_back(
        self,
        entity_type: str,
        entity_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_rolled_back(entity_type, entity_id, error_message, correlation_id))

    def log_record_removed(
        self,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_removed(entity_type, entity_id, correlation_id))

    def log_record_restored(
        self,
        entity_type: str,
        entity_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_restored(entity_type, entity_id, error_message, correlation_id))

    def log_record_updated(
        self,
        entity_type: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_updated(entity_type, entity_id, fields, correlation_id))

    def log_profile_change(
        self,
        event_type: AuditEventType,
        user_id: str,
        details: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.profile_changed(event_type, user_id, details, correlation_id))

    def log_ai_model_failed(
        self,
        model_name: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.ai_model_failed(model_name, reason, correlation_id))

    def log_assistant_event(
        self,
        event_type: AuditEventType,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.assistant_event(event_type, description, details, correlation_id))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.system_error(error_type, error_message, details, correlation_id))

    def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.external_service_error(service, error_message, correlation_id))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g. saving the salary)
    and pass it through all subsequent operations.
    """
    return uuid4()
