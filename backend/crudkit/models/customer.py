"""
crudkit — Customer Model
==========================

What:  ORM model for the `customers` table.
Who:   Customers resource controller.

Ownership:
    user_id references the principal that created the customer. Every query
    the controller issues for customers is scoped by it.
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crudkit.database import Base
from crudkit.models.base import BookkeepingMixin, IdentifierMixin
from crudkit.models.user import User


class Customer(IdentifierMixin, BookkeepingMixin, Base):
    __tablename__ = "customers"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gst_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Loaded only when the controller populates it
    user: Mapped[Optional[User]] = relationship(lazy="raise")

    __table_args__ = (
        Index("idx_customers_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name='{self.name}')>"
