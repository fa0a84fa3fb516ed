"""
crudkit — Users Resource
==========================

What:  CRUD over platform accounts.
How:   Email is required, must look like an address and is stored lowercase;
       `name` defaults to "first last". Duplicate emails fail at the unique
       index and come back as 409 "email already exists". Only the account
       itself may update or delete it, and role/is_active are fixed after
       creation.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.sql.elements import ColumnElement

from crudkit.auth import Principal
from crudkit.controller import ResourceController, ResourceOptions, ValidationResult, coerce_value
from crudkit.database import Database
from crudkit.exceptions import UnauthorizedError
from crudkit.models import User

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserCreateValidator:
    async def validate(self, payload: Dict[str, Any]) -> ValidationResult:
        email = payload.get("email")
        if not email:
            return ValidationResult.reject("Email is required")
        if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
            return ValidationResult.reject("Email is not a valid address")
        if not payload.get("first_name"):
            return ValidationResult.reject("First name is required")
        if not payload.get("last_name"):
            return ValidationResult.reject("Last name is required")
        return ValidationResult.accept()


class UserUpdateValidator:
    async def validate(self, payload: Dict[str, Any]) -> ValidationResult:
        if "email" in payload:
            email = payload["email"]
            if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
                return ValidationResult.reject("Email is not a valid address")
        return ValidationResult.accept()


class UserResponseShaper:
    def shape(self, record: User) -> Mapping[str, Any]:
        return {"email": record.email, "name": record.name}


class UsersController(ResourceController):
    """
    ResourceController that normalizes email and derives the display name.

    An account is owned by itself: update and delete only match the row whose
    id is the principal's, so one user cannot edit or remove another.
    """

    def _owner_clauses(self, principal: Optional[Principal], *, read: bool) -> List[ColumnElement]:
        if read or principal is None:
            return []
        try:
            own_id = coerce_value(self._pk, principal.id)
        except (TypeError, ValueError):
            raise UnauthorizedError(message="Principal cannot own this resource")
        return [self._pk == own_id]

    def _writable(self, payload: Mapping[str, Any], *, extra_protected: Sequence[str] = ()) -> Dict[str, Any]:
        data = super()._writable(payload, extra_protected=extra_protected)
        if isinstance(data.get("email"), str):
            data["email"] = data["email"].strip().lower()
        if not data.get("name") and data.get("first_name") and data.get("last_name"):
            data["name"] = f"{data['first_name']} {data['last_name']}"
        return data


def build_users_controller(database: Database) -> UsersController:
    return UsersController(
        User,
        database,
        ResourceOptions(
            search_fields=("email", "name", "company"),
            create_validator=UserCreateValidator(),
            update_validator=UserUpdateValidator(),
            create_response_shaper=UserResponseShaper(),
            immutable_fields=("role", "is_active"),
            resource_name="User",
        ),
    )
