"""
Legacy Record Migration

Older versions of the app stored different shapes:
- `Expense` records (under the `expenses` key) with no `category` and
  only credit/debit types
- goals with a flat `monthlyTarget` instead of a contribution policy
- goals without `currentAmount`/`isActive`

The functions here upcast one raw (already JSON-decoded) record into the
current shape. They run once, when collections are loaded or imported,
and are no-ops on current records.
"""

from typing import Any

from fintra.models.finance import (
    ContributionType,
    TransactionCategory,
    TransactionType,
)


_RECURRING_ONLY_FIELDS = ("dueDay", "recurringMonths", "startMonth", "startYear")


def upcast_transaction(raw: dict[str, Any]) -> dict[str, Any]:
    """Upcast a legacy Expense (or a current Transaction) record."""
    record = dict(raw)

    if record.get("id") is not None:
        # The first version generated ids with Date.now() and stored numbers
        record["id"] = str(record["id"])

    if record.get("category") is None:
        if record.get("type") == TransactionType.INCOME.value:
            record["category"] = TransactionCategory.INCOME.value
        else:
            record["category"] = TransactionCategory.EXPENSE.value

    if record.get("type") is None and record["category"] == TransactionCategory.INCOME.value:
        record["type"] = TransactionType.INCOME.value

    if record.get("type") != TransactionType.CREDIT.value:
        record["isRecurring"] = False

    if not record.get("isRecurring"):
        record["isRecurring"] = False
        for field in _RECURRING_ONLY_FIELDS:
            record.pop(field, None)

    return record


def upcast_goal(raw: dict[str, Any]) -> dict[str, Any]:
    """Upcast a goal using `monthlyTarget` to the fixed contribution policy."""
    record = dict(raw)

    if record.get("id") is not None:
        record["id"] = str(record["id"])

    monthly_target = record.pop("monthlyTarget", None)
    if record.get("contributionType") is None:
        record["contributionType"] = ContributionType.FIXED.value
        if record.get("contributionValue") is None:
            record["contributionValue"] = monthly_target

    record.setdefault("currentAmount", 0)
    record.setdefault("isActive", True)
    return record


def upcast_contribution(raw: dict[str, Any]) -> dict[str, Any]:
    """Contributions only changed the type of their ids."""
    record = dict(raw)
    for field in ("id", "goalId"):
        if record.get(field) is not None:
            record[field] = str(record[field])
    return record


def needs_migration(raw: dict[str, Any], kind: str) -> bool:
    """Tell whether a raw record is in a legacy shape."""
    if kind == "transaction":
        return raw.get("category") is None
    if kind == "goal":
        return "monthlyTarget" in raw or raw.get("contributionType") is None
    return False
