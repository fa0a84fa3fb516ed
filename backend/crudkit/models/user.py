"""
crudkit — User Model
======================

What:  ORM model for the `users` table (accounts registered on the platform).
Who:   Users resource controller; referenced by customers and expenses.

Uniqueness:
    email is unique and stored lowercase. A second registration with the same
    address fails at flush time and surfaces as 409 "email already exists".
"""

from typing import Optional

from sqlalchemy import Boolean, String, text
from sqlalchemy.orm import Mapped, mapped_column

from crudkit.database import Base
from crudkit.models.base import BookkeepingMixin, IdentifierMixin


class User(IdentifierMixin, BookkeepingMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(201), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="user",
        server_default=text("'user'"),
    )
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
