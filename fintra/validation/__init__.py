"""Validation package."""

from fintra.validation.validator import FinanceValidator, parse_amount

__all__ = ["FinanceValidator", "parse_amount"]
