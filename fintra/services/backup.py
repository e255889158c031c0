"""
Backup Import/Export

The interchange file is a single JSON document:

    {
        "salary": 3500.0,
        "transacoes": [...],
        "metas": [...],
        "contribuicoes": [...],
        "resumo": {...}
    }

The Portuguese top-level names are part of the file format shared with
the mobile app and must not be translated. Records use the same camelCase
shape as the stored collections.

Importing never touches the store by itself: `parse_import_document`
only returns validated data, and the store replaces its state after the
user confirms.
"""

import datetime as dt
import json
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from fintra import __version__
from fintra.engine.contributions import contributed_total
from fintra.models.finance import (
    ZERO,
    FinanceModel,
    Goal,
    GoalContribution,
    Money,
    Period,
    Transaction,
    to_money,
)
from fintra.models.migration import (
    upcast_contribution,
    upcast_goal,
    upcast_transaction,
)
from fintra.validation.validator import parse_amount


SALARY_KEY = "salary"
TRANSACTIONS_KEY = "transacoes"
GOALS_KEY = "metas"
CONTRIBUTIONS_KEY = "contribuicoes"
SUMMARY_KEY = "resumo"

REQUIRED_KEYS = (SALARY_KEY, TRANSACTIONS_KEY, GOALS_KEY, CONTRIBUTIONS_KEY)

ModelT = TypeVar("ModelT", bound=FinanceModel)


class BackupImportError(Exception):
    """The import document is malformed or inconsistent."""
    pass


class BackupData(BaseModel):
    """Everything a backup carries besides the summary."""

    salary: Money = ZERO
    transactions: list[Transaction] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    contributions: list[GoalContribution] = Field(default_factory=list)


class ImportPreview(BaseModel):
    """What the user is asked to confirm before their data is replaced."""

    incoming_salary: Money
    incoming_transactions: int
    incoming_goals: int
    incoming_contributions: int
    current_transactions: int
    current_goals: int
    current_contributions: int
    warnings: list[str] = Field(default_factory=list)

    @property
    def replaces_existing_data(self) -> bool:
        return bool(
            self.current_transactions or self.current_goals or self.current_contributions
        )


class ImportResult(BaseModel):
    applied: bool
    preview: ImportPreview


# =============================================================================
# EXPORT
# =============================================================================

def build_export_document(
    data: BackupData,
    period: Period,
    balance: Decimal,
    available_balance: Decimal,
    exported_at: Optional[dt.datetime] = None,
) -> dict[str, Any]:
    """Build the interchange document for `data`."""
    exported_at = exported_at or dt.datetime.now(dt.timezone.utc)
    return {
        SALARY_KEY: float(data.salary),
        TRANSACTIONS_KEY: [t.to_record() for t in data.transactions],
        GOALS_KEY: [g.to_record() for g in data.goals],
        CONTRIBUTIONS_KEY: [c.to_record() for c in data.contributions],
        SUMMARY_KEY: {
            "dataExportacao": exported_at.isoformat(),
            "versao": __version__,
            "mes": period.month,
            "ano": period.year,
            "totalTransacoes": len(data.transactions),
            "totalMetas": len(data.goals),
            "totalContribuicoes": len(data.contributions),
            "saldo": float(balance),
            "saldoDisponivel": float(available_balance),
        },
    }


def dumps_document(document: Mapping[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2)


# =============================================================================
# IMPORT
# =============================================================================

def _load_document(raw: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(raw, (str, bytes)):
        try:
            document = json.loads(raw)
        except ValueError as e:
            raise BackupImportError(f"The file is not valid JSON: {e}") from e
    else:
        document = raw

    if not isinstance(document, Mapping):
        raise BackupImportError("The file does not contain a backup object")

    if not any(key in document for key in REQUIRED_KEYS):
        raise BackupImportError(
            "The file is not a Fintra backup: expected at least one of "
            + ", ".join(REQUIRED_KEYS)
        )
    return document


def _parse_records(
    document: Mapping[str, Any],
    key: str,
    model: type[ModelT],
    upcast: Callable[[dict[str, Any]], dict[str, Any]],
) -> list[ModelT]:
    raw_records = document.get(key)
    if raw_records is None:
        return []
    if not isinstance(raw_records, list):
        raise BackupImportError(f"'{key}' must be a list")

    records: list[ModelT] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_records):
        if not isinstance(raw, dict):
            raise BackupImportError(f"{key}[{index}] is not an object")
        try:
            record = model.model_validate(upcast(raw))
        except ValidationError as e:
            raise BackupImportError(f"{key}[{index}] is invalid: {e}") from e

        if record.id in seen:
            raise BackupImportError(f"{key}[{index}] repeats id {record.id}")
        seen.add(record.id)
        records.append(record)
    return records


def _parse_salary(document: Mapping[str, Any]) -> Decimal:
    value = document.get(SALARY_KEY)
    if value is None:
        return ZERO
    try:
        salary = parse_amount(value)
    except ValueError as e:
        raise BackupImportError(f"'{SALARY_KEY}' is invalid: {e}") from e
    if salary < 0:
        raise BackupImportError(f"'{SALARY_KEY}' cannot be negative")
    return to_money(salary)


def _check_contributions(
    goals: Sequence[Goal],
    contributions: Sequence[GoalContribution],
) -> list[str]:
    """Reject dangling or duplicated contributions; warn on mismatched totals."""
    goal_ids = {g.id for g in goals}
    periods: set[tuple[str, int, int]] = set()

    for index, contribution in enumerate(contributions):
        if contribution.goal_id not in goal_ids:
            raise BackupImportError(
                f"{CONTRIBUTIONS_KEY}[{index}] refers to unknown goal {contribution.goal_id}"
            )
        slot = (contribution.goal_id, contribution.month, contribution.year)
        if slot in periods:
            raise BackupImportError(
                f"{CONTRIBUTIONS_KEY}[{index}] is a second contribution to goal "
                f"{contribution.goal_id} for {contribution.month:02d}/{contribution.year}"
            )
        periods.add(slot)

    warnings = []
    for goal in goals:
        total = contributed_total(contributions, goal.id)
        if total != goal.current_amount:
            warnings.append(
                f"Goal '{goal.name}' shows {goal.current_amount:.2f} saved "
                f"but its contributions add up to {total:.2f}"
            )
    return warnings


def parse_import_document(
    raw: Union[str, bytes, Mapping[str, Any]],
) -> tuple[BackupData, list[str]]:
    """
    Validate an import document.

    Returns:
        (data, warnings)

    Raises:
        BackupImportError: If the document must be rejected
    """
    document = _load_document(raw)

    data = BackupData(
        salary=_parse_salary(document),
        transactions=_parse_records(
            document, TRANSACTIONS_KEY, Transaction, upcast_transaction
        ),
        goals=_parse_records(document, GOALS_KEY, Goal, upcast_goal),
        contributions=_parse_records(
            document, CONTRIBUTIONS_KEY, GoalContribution, upcast_contribution
        ),
    )
    warnings = _check_contributions(data.goals, data.contributions)
    return data, warnings
