"""
crudkit — Shared Model Mixins
===============================

What:  Columns every Resource table shares: identifier, bookkeeping, soft delete.
How:   Plain mixins combined with `Base` in each model module.

    IdentifierMixin   id            UUID, generated on insert, never updated
    BookkeepingMixin  created_at    set on create
                      updated_at    refreshed on every update/restore
                      created_by    principal id (or "anonymous")
                      updated_by    principal id (or "anonymous")
    SoftDeleteMixin   deleted_at    NULL while the row is live
                      deleted_by    set and cleared together with deleted_at

The ResourceController assigns every one of these itself; values supplied by
callers are discarded.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

# Matches the longest principal id decode_token accepts
ACTOR_LENGTH = 255


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp helper."""
    return datetime.now(timezone.utc)


class IdentifierMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class BookkeepingMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(ACTOR_LENGTH), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(ACTOR_LENGTH), nullable=True)


class SoftDeleteMixin:
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        index=True,
    )
    deleted_by: Mapped[Optional[str]] = mapped_column(String(ACTOR_LENGTH), nullable=True)
