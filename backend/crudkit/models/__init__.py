"""ORM models. Importing this package registers every table on Base.metadata."""

from crudkit.models.customer import Customer
from crudkit.models.expense import Expense
from crudkit.models.user import User

__all__ = ["Customer", "Expense", "User"]
