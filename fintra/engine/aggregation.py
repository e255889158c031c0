"""
Monthly Aggregation Engine

Filters transactions by visibility and reduces them to the month's totals.

    balance           = salary + income - expenses
    available balance = balance - goal contributions of the month

The headline balance ignores goal contributions; the available balance is
what the contribution processor may still allocate, so a month's surplus
is consumed at most once however often it is processed.
"""

from decimal import Decimal
from typing import Iterable, Sequence, TypeVar

from pydantic import BaseModel

from fintra.engine.visibility import is_visible
from fintra.models.finance import (
    ZERO,
    GoalContribution,
    Money,
    TransactionCategory,
    TransactionDraft,
    TransactionType,
)


class MonthlyTotals(BaseModel):
    """Sums of the transactions visible in one month."""

    total_expenses: Money = ZERO
    total_income: Money = ZERO
    debit_expenses: Money = ZERO
    credit_expenses: Money = ZERO
    transaction_count: int = 0


TransactionT = TypeVar("TransactionT", bound=TransactionDraft)


def transactions_for_month(
    transactions: Iterable[TransactionT],
    month: int,
    year: int,
) -> list[TransactionT]:
    """Visible transactions of (month, year), in their original order."""
    return [t for t in transactions if is_visible(t, month, year)]


def summarize(transactions: Sequence[TransactionDraft]) -> MonthlyTotals:
    """Reduce an already filtered list to its totals."""
    total_expenses = ZERO
    total_income = ZERO
    debit_expenses = ZERO
    credit_expenses = ZERO

    for transaction in transactions:
        if transaction.category == TransactionCategory.INCOME:
            total_income += transaction.amount
            continue

        total_expenses += transaction.amount
        if transaction.type == TransactionType.DEBIT:
            debit_expenses += transaction.amount
        elif transaction.type == TransactionType.CREDIT:
            credit_expenses += transaction.amount

    return MonthlyTotals(
        total_expenses=total_expenses,
        total_income=total_income,
        debit_expenses=debit_expenses,
        credit_expenses=credit_expenses,
        transaction_count=len(transactions),
    )


def monthly_totals(
    transactions: Iterable[TransactionDraft],
    month: int,
    year: int,
) -> MonthlyTotals:
    return summarize(transactions_for_month(transactions, month, year))


def contributions_for_month(
    contributions: Iterable[GoalContribution],
    month: int,
    year: int,
) -> list[GoalContribution]:
    return [c for c in contributions if c.month == month and c.year == year]


def balance(
    salary: Decimal,
    transactions: Iterable[TransactionDraft],
    month: int,
    year: int,
) -> Decimal:
    """salary + income - expenses for the month."""
    totals = monthly_totals(transactions, month, year)
    return salary + totals.total_income - totals.total_expenses


def available_balance(
    salary: Decimal,
    transactions: Iterable[TransactionDraft],
    contributions: Iterable[GoalContribution],
    month: int,
    year: int,
) -> Decimal:
    """Balance of the month net of the contributions already made for it."""
    allocated = sum(
        (c.amount for c in contributions_for_month(contributions, month, year)),
        ZERO,
    )
    return balance(salary, transactions, month, year) - allocated
