"""
crudkit — Expenses Resource
=============================

What:  Purchase bills recorded by a user.
How:   Owner-scoped, soft-deleted (restorable), newest bill date first.

List filters on top of the standard ones:
    ?status=paid              exact status match (one of EXPENSE_STATUSES)
    ?from=2024-01-01          date >= from
    ?to=2024-03-31            date <= to
"""

from datetime import datetime, time, timezone
from typing import Any, Dict, List, Mapping, Optional, Type

from sqlalchemy.sql.elements import ColumnElement

from crudkit.auth import Principal
from crudkit.controller import ResourceController, ResourceOptions, SoftDelete, ValidationResult
from crudkit.database import Database
from crudkit.exceptions import ValidationError
from crudkit.models import Expense
from crudkit.models.expense import EXPENSE_STATUSES


def _parse_bound(value: str, name: str, end_of_day: bool = False) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(message=f"'{name}' must be an ISO 8601 date", field=name)
    if len(value) == 10 and end_of_day:
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ExpenseQueryAugmenter:
    def augment(
        self,
        model: Type[Any],
        params: Mapping[str, Any],
        principal: Optional[Principal],
    ) -> List[ColumnElement]:
        clauses: List[ColumnElement] = []
        status = params.get("status")
        if status:
            if status not in EXPENSE_STATUSES:
                raise ValidationError(message=f"Unknown status '{status}'", field="status")
            clauses.append(model.status == status)
        if params.get("from"):
            clauses.append(model.date >= _parse_bound(params["from"], "from"))
        if params.get("to"):
            clauses.append(model.date <= _parse_bound(params["to"], "to", end_of_day=True))
        return clauses


class ExpenseValidator:
    async def validate(self, payload: Dict[str, Any]) -> ValidationResult:
        status = payload.get("status")
        if status is not None and status not in EXPENSE_STATUSES:
            return ValidationResult.reject(f"Status must be one of: {', '.join(EXPENSE_STATUSES)}")
        for amount in ("subtotal", "total"):
            value = payload.get(amount)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
                return ValidationResult.reject(f"{amount} cannot be negative")
        return ValidationResult.accept()


def build_expenses_controller(database: Database) -> ResourceController:
    validator = ExpenseValidator()
    return ResourceController(
        Expense,
        database,
        ResourceOptions(
            ownership_field="user_id",
            delete_policy=SoftDelete(),
            search_fields=("invoice_number", "vendor"),
            default_sort=(("date", "desc"),),
            query_augmenter=ExpenseQueryAugmenter(),
            create_validator=validator,
            update_validator=validator,
            resource_name="Expense",
        ),
    )
