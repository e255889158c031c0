"""
Record Codec

Turns the store's collections into the text blobs written to the
key-value store and back. Every collection is a self-contained JSON
document under its own key; dates travel as ISO-8601 strings.

Decoding runs the legacy migration on every record, so a collection
written by an older version comes back in the current shape.
"""

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Sequence, TypeVar

from pydantic import ValidationError

from fintra.models.finance import (
    FinanceConfig,
    FinanceModel,
    Goal,
    GoalContribution,
    Transaction,
    to_money,
)
from fintra.models.migration import (
    needs_migration,
    upcast_contribution,
    upcast_goal,
    upcast_transaction,
)
from fintra.services.storage.interface import StorageError


ModelT = TypeVar("ModelT", bound=FinanceModel)


class CorruptDataError(StorageError):
    """A stored value could not be decoded into records."""
    pass


class StorageKeys:
    """The stable key of every persisted collection."""

    def __init__(self, prefix: str = "@Fintra:"):
        self.prefix = prefix
        self.salary = f"{prefix}salary"
        self.transactions = f"{prefix}transactions"
        self.goals = f"{prefix}goals"
        self.contributions = f"{prefix}goalContributions"
        self.config = f"{prefix}config"
        # Written by the first version, before income existed
        self.legacy_expenses = f"{prefix}expenses"


def encode_records(records: Sequence[FinanceModel]) -> str:
    return json.dumps([record.to_record() for record in records], ensure_ascii=False)


def _decode_records(
    text: str,
    model: type[ModelT],
    upcast: Callable[[dict[str, Any]], dict[str, Any]],
    kind: str,
) -> tuple[list[ModelT], int]:
    try:
        raw_records = json.loads(text)
    except ValueError as e:
        raise CorruptDataError(f"Stored {kind} collection is not valid JSON: {e}") from e

    if not isinstance(raw_records, list):
        raise CorruptDataError(f"Stored {kind} collection is not a list")

    records: list[ModelT] = []
    migrated = 0
    for index, raw in enumerate(raw_records):
        if not isinstance(raw, dict):
            raise CorruptDataError(f"{kind} #{index} is not an object")
        if needs_migration(raw, kind):
            migrated += 1
        try:
            records.append(model.model_validate(upcast(raw)))
        except ValidationError as e:
            raise CorruptDataError(f"{kind} #{index} is invalid: {e}") from e

    return records, migrated


def decode_transactions(text: str) -> tuple[list[Transaction], int]:
    """Decode transactions; also returns how many were legacy records."""
    return _decode_records(text, Transaction, upcast_transaction, "transaction")


def decode_goals(text: str) -> tuple[list[Goal], int]:
    """Decode goals; also returns how many were legacy records."""
    return _decode_records(text, Goal, upcast_goal, "goal")


def decode_contributions(text: str) -> list[GoalContribution]:
    records, _ = _decode_records(
        text, GoalContribution, upcast_contribution, "contribution"
    )
    return records


def encode_salary(amount: Decimal) -> str:
    return str(amount)


def decode_salary(text: Optional[str]) -> Decimal:
    """The salary is stored as a bare number, e.g. `3500` or `3500.5`."""
    if text is None or not text.strip():
        return Decimal("0")
    try:
        return to_money(text.strip())
    except (InvalidOperation, ValueError) as e:
        raise CorruptDataError(f"Stored salary is not a number: {text!r}") from e


def encode_config(config: FinanceConfig) -> str:
    return json.dumps(config.to_record())


def decode_config(text: Optional[str], default_day: int = 1) -> FinanceConfig:
    if text is None or not text.strip():
        return FinanceConfig(goal_contribution_day=default_day)
    try:
        return FinanceConfig.model_validate_json(text)
    except ValidationError as e:
        raise CorruptDataError(f"Stored configuration is invalid: {e}") from e
