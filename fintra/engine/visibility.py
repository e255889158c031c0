"""
Temporal Visibility Rule

Decides whether a transaction counts toward a given month:
- income, debit expenses and one-off credit expenses count only in the
  month of their date
- recurring credit expenses count in `recurring_months` consecutive months
  starting at (start_month, start_year)

Everything here is a pure function of the transaction and the period.
"""

from typing import Optional

from fintra.models.finance import Period, TransactionDraft, TransactionType


def _recurring_window(transaction: TransactionDraft) -> tuple[int, int]:
    """(first month index, number of months) of a recurring transaction."""
    start = transaction.start_period.index
    months = transaction.recurring_months or 1
    return start, months


def _is_recurring_credit(transaction: TransactionDraft) -> bool:
    return transaction.type == TransactionType.CREDIT and transaction.is_recurring


def is_visible(transaction: TransactionDraft, month: int, year: int) -> bool:
    """Whether `transaction` counts toward (month, year)."""
    if not _is_recurring_credit(transaction):
        return transaction.date.month == month and transaction.date.year == year

    start, months = _recurring_window(transaction)
    diff = (year * 12 + month) - start
    return 0 <= diff < months


def installment_number(
    transaction: TransactionDraft,
    month: int,
    year: int,
) -> Optional[int]:
    """
    1-based position of (month, year) in the transaction's window.

    One-off transactions are installment 1 of 1 in their month.
    Returns None when the transaction is not visible in the period.
    """
    if not is_visible(transaction, month, year):
        return None
    if not _is_recurring_credit(transaction):
        return 1
    start, _ = _recurring_window(transaction)
    return (year * 12 + month) - start + 1


def visible_periods(transaction: TransactionDraft) -> list[Period]:
    """Every period the transaction is visible in, in calendar order."""
    if not _is_recurring_credit(transaction):
        return [transaction.period]
    start, months = _recurring_window(transaction)
    return [Period.from_index(start + offset) for offset in range(months)]
