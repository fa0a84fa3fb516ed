"""Customers resource: owner-scoped, searchable by name, email and company."""

from typing import Any, Dict

from crudkit.controller import ResourceController, ResourceOptions, ValidationResult
from crudkit.database import Database
from crudkit.models import Customer


class CustomerCreateValidator:
    async def validate(self, payload: Dict[str, Any]) -> ValidationResult:
        if not payload.get("name"):
            return ValidationResult.reject("Customer name is required")
        if not payload.get("email"):
            return ValidationResult.reject("Customer email is required")
        return ValidationResult.accept()


def build_customers_controller(database: Database) -> ResourceController:
    return ResourceController(
        Customer,
        database,
        ResourceOptions(
            ownership_field="user_id",
            search_fields=("name", "email", "company"),
            populate_fields=("user",),
            default_sort=(("created_at", "desc"),),
            create_validator=CustomerCreateValidator(),
            resource_name="Customer",
        ),
    )
