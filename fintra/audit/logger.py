"""
Audit Logger

Every command the finance store runs is logged, including the ones it
rejects. The audit logger:
- Logs every event through structlog at the event's severity
- Keeps the most recent events in memory for the caller to display
- Never raises into the command that produced the event
- Supports correlation IDs to trace the events of one command
"""

from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fintra.models.audit import AuditEvent, AuditEventBuilder, AuditEventType


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

    Logs events to the structured local log and remembers the last
    `history_size` of them.
    """

    def __init__(self, history_size: int = 200):
        self._logger = structlog.get_logger("fintra.audit")
        self._history: deque[AuditEvent] = deque(maxlen=history_size)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._history.append(event)
        log_dict = event.to_log_dict()

        try:
            if event.severity.value in ("error", "critical"):
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Logging must never break a command that already committed
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )

    def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._history))[:limit]

    def log_record_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        """Log a committed command."""
        self.log(AuditEventBuilder.record_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            correlation_id=correlation_id,
            details=details,
        ))

    def log_input_rejected(
        self,
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log a command rejected by validation."""
        self.log(AuditEventBuilder.input_rejected(
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        ))

    def log_record_not_found(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.record_not_found(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            correlation_id=correlation_id,
        ))

    def log_contributions_processed(
        self,
        month: int,
        year: int,
        contributions: list[dict],
        remaining: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.contributions_processed(
            month=month,
            year=year,
            contributions=contributions,
            remaining=remaining,
            correlation_id=correlation_id,
        ))

    def log_data_loaded(
        self,
        counts: dict[str, int],
        migrated: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.data_loaded(
            counts=counts,
            migrated=migrated,
            correlation_id=correlation_id,
        ))

    def log_import_event(
        self,
        event_type: AuditEventType,
        description: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.import_event(
            event_type=event_type,
            description=description,
            correlation_id=correlation_id,
            details=details,
            error_message=error_message,
        ))

    def log_persistence_failed(
        self,
        key: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.persistence_failed(
            key=key,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of every store command.
    """
    return uuid4()
