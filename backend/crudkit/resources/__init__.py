"""
crudkit — Platform Resources
==============================

Each module pairs a model with its ResourceOptions and validators and
exposes a `build_*_controller(database)` factory.

    users.py      → /users      (unique email, hard delete, no owner scoping)
    customers.py  → /customers  (owner-scoped, searchable, hard delete)
    expenses.py   → /expenses   (owner-scoped, status/date filters, soft delete)
"""

from crudkit.resources.customers import build_customers_controller
from crudkit.resources.expenses import build_expenses_controller
from crudkit.resources.users import build_users_controller

__all__ = [
    "build_customers_controller",
    "build_expenses_controller",
    "build_users_controller",
]
