"""
Audit Models for Fintra

Every command the finance store executes (and every command it rejects)
is described by an AuditEvent. Events are logged through structlog and
kept in a bounded in-memory history.

Audit events are append-only.
"""

import datetime as dt
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Loading
    DATA_LOADED = "data_loaded"
    LEGACY_RECORDS_MIGRATED = "legacy_records_migrated"

    # Commands
    SALARY_SET = "salary_set"
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    GOAL_ADDED = "goal_added"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    CONFIG_UPDATED = "config_updated"

    # Goal funding
    CONTRIBUTIONS_PROCESSED = "contributions_processed"

    # Rejections
    INPUT_REJECTED = "input_rejected"
    RECORD_NOT_FOUND = "record_not_found"

    # Backup
    EXPORT_CREATED = "export_created"
    IMPORT_APPLIED = "import_applied"
    IMPORT_REJECTED = "import_rejected"
    IMPORT_CANCELLED = "import_cancelled"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'salary')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking the events of one command
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user command?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
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
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_changed(
            AuditEventType.GOAL_ADDED, "goal", goal.id, "Goal added: Trip", correlation_id
        )
    """

    @staticmethod
    def record_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def input_rejected(
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INPUT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Invalid {entity_type} rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def record_not_found(
        entity_type: str,
        entity_id: str,
        operation: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_NOT_FOUND,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Cannot {operation} {entity_type}: id {entity_id} not found",
            details={"operation": operation},
            is_user_action=True,
        )

    @staticmethod
    def contributions_processed(
        month: int,
        year: int,
        contributions: list[dict],
        remaining: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRIBUTIONS_PROCESSED,
            entity_type="period",
            entity_id=f"{year:04d}-{month:02d}",
            correlation_id=correlation_id,
            description=(
                f"Goal contributions for {month:02d}/{year}: "
                f"{len(contributions)} new"
            ),
            details={
                "contributions": contributions,
                "remaining_balance": remaining,
            },
        )

    @staticmethod
    def data_loaded(
        counts: dict[str, int],
        migrated: dict[str, int],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.LEGACY_RECORDS_MIGRATED
                if any(migrated.values())
                else AuditEventType.DATA_LOADED
            ),
            correlation_id=correlation_id,
            description="Finance data loaded from storage",
            details={"counts": counts, "migrated": migrated},
        )

    @staticmethod
    def import_event(
        event_type: AuditEventType,
        description: str,
        correlation_id: UUID,
        details: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        severity = (
            AuditSeverity.WARNING
            if event_type == AuditEventType.IMPORT_REJECTED
            else AuditSeverity.INFO
        )
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            entity_type="backup",
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def persistence_failed(
        key: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="storage_key",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Could not persist {key}",
            error_message=error_message,
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
