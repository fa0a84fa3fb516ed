"""
crudkit — Expense Model
=========================

What:  ORM model for the `expenses` table (purchase bills recorded by a user).
Who:   Expenses resource controller.

Lifecycle:
    Expenses are soft-deleted: DELETE stamps deleted_at/deleted_by and the
    row disappears from list/get until POST /expenses/{id}/restore.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crudkit.database import Base
from crudkit.models.base import BookkeepingMixin, IdentifierMixin, SoftDeleteMixin, utcnow
from crudkit.models.user import User

EXPENSE_STATUSES = ("pending", "paid", "overdue", "cancelled")


class Expense(IdentifierMixin, BookkeepingMixin, SoftDeleteMixin, Base):
    __tablename__ = "expenses"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    vendor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    subtotal: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[Optional[User]] = relationship(lazy="raise")

    __table_args__ = (
        Index("idx_expenses_user_date", "user_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Expense(id={self.id}, status='{self.status}', total={self.total})>"
