"""Input builders shared by the store, scheduler and backup tests."""

import datetime as dt


TODAY = dt.date(2025, 3, 15)
NOW = dt.datetime(2025, 3, 15, 12, 0, tzinfo=dt.timezone.utc)


def debit(description: str, amount: str, day: dt.date = TODAY) -> dict:
    return {
        "description": description,
        "amount": amount,
        "date": day,
        "category": "expense",
        "type": "debit",
    }


def income(description: str, amount: str, day: dt.date = TODAY) -> dict:
    return {
        "description": description,
        "amount": amount,
        "date": day,
        "category": "income",
        "type": "income",
    }


def installments(
    description: str,
    amount: str,
    months: int,
    day: dt.date = TODAY,
    due_day: int = 10,
) -> dict:
    return {
        "description": description,
        "amount": amount,
        "date": day,
        "category": "expense",
        "type": "credit",
        "is_recurring": True,
        "due_day": due_day,
        "recurring_months": months,
    }


def fixed_goal(name: str, target: str, monthly: str) -> dict:
    return {
        "name": name,
        "total_target": target,
        "contribution_type": "fixed",
        "contribution_value": monthly,
    }


def percentage_goal(name: str, target: str, percent: str) -> dict:
    return {
        "name": name,
        "total_target": target,
        "contribution_type": "percentage",
        "contribution_value": percent,
    }
