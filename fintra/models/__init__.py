"""
Data Models Package

This package contains all Pydantic models used by Fintra.
All data flowing through the store must conform to these schemas.
"""

from fintra.models.finance import (
    ContributionType,
    FinanceConfig,
    Goal,
    GoalContribution,
    GoalDraft,
    Money,
    Period,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    TransactionType,
    new_id,
    to_money,
)
from fintra.models.validation import ValidationIssue, ValidationResult
from fintra.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "ContributionType",
    "FinanceConfig",
    "Goal",
    "GoalContribution",
    "GoalDraft",
    "Money",
    "Period",
    "Transaction",
    "TransactionCategory",
    "TransactionDraft",
    "TransactionType",
    "new_id",
    "to_money",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
