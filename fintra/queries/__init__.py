"""Read-only query package."""

from fintra.queries.summary import (
    GoalProgress,
    MonthlySummary,
    TransactionLine,
    build_monthly_summary,
)

__all__ = [
    "GoalProgress",
    "MonthlySummary",
    "TransactionLine",
    "build_monthly_summary",
]
