"""
crudkit — Generic Resource Controller
=======================================

What:  CRUD operations and an HTTP router for one SQLAlchemy model, configured
       by a typed ResourceOptions instead of per-resource hand-written handlers.
How:   Operations (create/list/get/update/delete/restore) take an AsyncSession
       and the acting Principal and raise ResourceError subclasses. router()
       wraps each one in a thin FastAPI handler that opens a unit of work on
       the injected Database and returns the uniform envelope.
Who:   Instantiated once per resource by the service modules in
       crudkit.resources; mounted by ServiceBootstrap.

Query Composition (list):
    WHERE  owner_field = principal.id           (unless allow_public_read)
      AND  deleted_at IS NULL                   (SoftDelete, unless includeDeleted=true)
      AND  (f1 ILIKE %q% OR f2 ILIKE %q% ...)   (search over search_fields)
      AND  <augmenter clauses>                  (status/date filters, ...)
    ORDER BY <sort param | default_sort>, id
    OFFSET (page - 1) * limit  LIMIT limit

Scoping on writes:
    update/delete/restore always scope by owner when a principal is present,
    regardless of allow_public_read; a record owned by A is a 404 for B.

Error Recovery:
    ValidationError / ConfigurationError / NotFoundError / ConflictError are
    turned into {"success": false, "message": ...} by EnvelopeRoute. Anything
    else (database down, bugs) propagates to the service's central handler.
"""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Type,
    runtime_checkable,
)

from fastapi import APIRouter, Body, Depends, Request
from fastapi.routing import APIRoute
from sqlalchemy import delete as sa_delete
from sqlalchemy import func, or_, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement
from starlette.responses import Response

from crudkit.auth import Principal, get_principal
from crudkit.config import settings
from crudkit.database import Database
from crudkit.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ResourceError,
    UnauthorizedError,
    ValidationError,
)
from crudkit.middleware.request_id import request_id_var
from crudkit.models.base import utcnow
from crudkit.responses import build_pagination, created, fail, format_pagination, ok

logger = logging.getLogger(__name__)

ANONYMOUS_ACTOR = "anonymous"

IDENTIFIER_FIELDS = frozenset({"id", "_id"})
BOOKKEEPING_FIELDS = frozenset({"created_at", "updated_at", "created_by", "updated_by"})
DELETION_FIELDS = frozenset({"deleted_at", "deleted_by"})
PROTECTED_FIELDS = IDENTIFIER_FIELDS | BOOKKEEPING_FIELDS | DELETION_FIELDS

TRUE_VALUES = {"true", "1", "yes", "on"}


# ══════════════════════════════════════════════════════════════════════════
# Strategies
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    message: Optional[str] = None

    @classmethod
    def accept(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, message: str) -> "ValidationResult":
        return cls(valid=False, message=message)


@runtime_checkable
class Validator(Protocol):
    """Business-rule check run before a create or update is persisted."""

    async def validate(self, payload: Dict[str, Any]) -> ValidationResult:
        ...


@runtime_checkable
class QueryAugmenter(Protocol):
    """Extra WHERE clauses for list requests (status, date range, ...)."""

    def augment(
        self,
        model: Type[Any],
        params: Mapping[str, Any],
        principal: Optional[Principal],
    ) -> Sequence[ColumnElement]:
        ...


@runtime_checkable
class ResponseShaper(Protocol):
    """Extra fields merged into the 201 body next to the new id."""

    def shape(self, record: Any) -> Mapping[str, Any]:
        ...


# ══════════════════════════════════════════════════════════════════════════
# Delete policies
# ══════════════════════════════════════════════════════════════════════════


class DeletePolicy(ABC):
    """Chosen once per resource; decides what DELETE and restore mean."""

    soft: bool = False

    def live_clauses(self, model: Type[Any]) -> List[ColumnElement]:
        return []

    def list_clauses(self, model: Type[Any], include_deleted: bool) -> List[ColumnElement]:
        return []

    @abstractmethod
    async def delete(
        self,
        session: AsyncSession,
        model: Type[Any],
        clauses: List[ColumnElement],
        actor: str,
    ) -> int:
        """Remove or mark the rows matched by `clauses`; returns the affected row count."""

    async def restore(
        self,
        session: AsyncSession,
        model: Type[Any],
        clauses: List[ColumnElement],
        actor: str,
    ) -> int:
        raise ConfigurationError(message="Soft delete is not enabled for this resource")


class HardDelete(DeletePolicy):
    """DELETE removes the row."""

    async def delete(self, session, model, clauses, actor) -> int:
        result = await session.execute(
            sa_delete(model).where(*clauses).execution_options(synchronize_session=False)
        )
        return result.rowcount

    def __repr__(self) -> str:
        return "HardDelete()"


class SoftDelete(DeletePolicy):
    """DELETE stamps deleted_at/deleted_by; restore clears both."""

    soft = True

    def live_clauses(self, model):
        return [model.deleted_at.is_(None)]

    def list_clauses(self, model, include_deleted):
        return [] if include_deleted else self.live_clauses(model)

    async def delete(self, session, model, clauses, actor) -> int:
        result = await session.execute(
            sa_update(model)
            .where(*clauses, model.deleted_at.is_(None))
            .values(deleted_at=utcnow(), deleted_by=actor)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def restore(self, session, model, clauses, actor) -> int:
        values: Dict[str, Any] = {"deleted_at": None, "deleted_by": None}
        if hasattr(model, "updated_at"):
            values.update(updated_at=utcnow(), updated_by=actor)
        result = await session.execute(
            sa_update(model)
            .where(*clauses, model.deleted_at.is_not(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def __repr__(self) -> str:
        return "SoftDelete()"


# ══════════════════════════════════════════════════════════════════════════
# Options
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ResourceOptions:
    """
    Per-resource configuration, resolved once when the controller is built.

    Attributes:
        ownership_field:         Column holding the owning principal's id (None → unscoped)
        allow_public_read:       Skip owner scoping on get/list (writes stay scoped)
        delete_policy:           HardDelete() or SoftDelete()
        search_fields:           String columns matched by ?search= (OR, case-insensitive)
        populate_fields:         Relationships eager-loaded into get/list results
        default_sort:            (column, "asc"|"desc") pairs used when ?sort= is absent
        default_limit/max_limit: Page size bounds
        query_augmenter:         Extra list filters
        create_validator:        Checked before insert
        update_validator:        Checked before update
        create_response_shaper:  Extra fields in the 201 body
        immutable_fields:        Accepted on create, stripped from update payloads
        resource_name:           Used in not-found messages (defaults to the model name)
    """
    ownership_field: Optional[str] = None
    allow_public_read: bool = False
    delete_policy: DeletePolicy = field(default_factory=HardDelete)
    search_fields: Sequence[str] = ()
    populate_fields: Sequence[str] = ()
    default_sort: Sequence[Tuple[str, str]] = ()
    default_limit: int = field(default_factory=lambda: settings.default_page_size)
    max_limit: int = field(default_factory=lambda: settings.max_page_size)
    query_augmenter: Optional[QueryAugmenter] = None
    create_validator: Optional[Validator] = None
    update_validator: Optional[Validator] = None
    create_response_shaper: Optional[ResponseShaper] = None
    immutable_fields: Sequence[str] = ()
    resource_name: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════


def coerce_value(column: Any, value: Any) -> Any:
    """
    Convert a JSON value to the Python type a column stores.

    Raises:
        ValueError / TypeError: the value cannot represent that type
    """
    if value is None:
        return None
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value

    if python_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in TRUE_VALUES | {"false", "0", "no", "off"}:
            return value.lower() in TRUE_VALUES
        raise TypeError("expected a boolean")
    if python_type in (int, float):
        if isinstance(value, bool):
            raise TypeError("expected a number")
        if python_type is int and isinstance(value, float) and not value.is_integer():
            raise ValueError("expected a whole number")
        return python_type(value)
    if python_type is datetime:
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if not isinstance(value, datetime):
            raise TypeError("expected an ISO 8601 datetime")
        # Naive input into a timezone-aware column is read as UTC
        if value.tzinfo is None and getattr(column.type, "timezone", False):
            value = value.replace(tzinfo=timezone.utc)
        return value
    if python_type is date:
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return date.fromisoformat(value[:10])
        raise TypeError("expected an ISO 8601 date")
    if python_type is uuid.UUID:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    if python_type is str:
        if isinstance(value, (dict, list)):
            raise TypeError("expected a string")
        return value if isinstance(value, str) else str(value)
    return value


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the search term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_UNIQUE_FIELD_PATTERNS = (
    re.compile(r"UNIQUE constraint failed: \w+\.(\w+)"),
    re.compile(r"Key \((\w+)[^)]*\)=\(.*?\) already exists"),
    re.compile(r"Duplicate entry .* for key '(?:\w+\.)?(\w+)'"),
)
_UNIQUE_MARKERS = ("unique constraint", "duplicate key", "duplicate entry")


def unique_violation_field(exc: IntegrityError) -> Tuple[bool, Optional[str]]:
    """(is_unique_violation, offending_field) for a driver IntegrityError."""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if getattr(exc.orig, "sqlstate", None) != "23505" and not any(
        marker in message.lower() for marker in _UNIQUE_MARKERS
    ):
        return False, None
    for pattern in _UNIQUE_FIELD_PATTERNS:
        match = pattern.search(message)
        if match:
            return True, match.group(1)
    return True, None


def serialize(record: Any, populate: Sequence[str] = ()) -> Dict[str, Any]:
    """Plain dict of a row's columns, plus the requested loaded relationships."""
    mapper = sa_inspect(record).mapper
    data = {attr.key: getattr(record, attr.key) for attr in mapper.column_attrs}
    for name in populate:
        related = getattr(record, name)
        if related is None:
            data[name] = None
        elif isinstance(related, (list, tuple, set)):
            data[name] = [serialize(item) for item in related]
        else:
            data[name] = serialize(related)
    return data


def _actor(principal: Optional[Principal]) -> str:
    return principal.id if principal is not None else ANONYMOUS_ACTOR


# ══════════════════════════════════════════════════════════════════════════
# Route class
# ══════════════════════════════════════════════════════════════════════════


class EnvelopeRoute(APIRoute):
    """
    APIRoute that answers ResourceError with the failure envelope itself.

    Anything that is not a ResourceError keeps propagating to the app-level
    exception handlers.
    """

    def get_route_handler(self) -> Callable:
        original_route_handler = super().get_route_handler()

        async def envelope_route_handler(request: Request) -> Response:
            try:
                return await original_route_handler(request)
            except ResourceError as exc:
                logger.info(
                    "[%s] %s %s rejected: %d %s",
                    request_id_var.get(""),
                    request.method,
                    request.url.path,
                    exc.status_code,
                    exc.message,
                )
                return fail(exc.status_code, exc.message)

        return envelope_route_handler


# ══════════════════════════════════════════════════════════════════════════
# Controller
# ══════════════════════════════════════════════════════════════════════════


class ResourceController:
    """
    CRUD for one model.

    Responsibilities:
        - create():  insert with ownership/bookkeeping stamped, 409 on duplicates
        - list():    scoped, searched, augmented, sorted, paginated
        - get():     one scoped record with populated relations
        - update():  partial update of writable columns
        - delete():  hard or soft, per delete_policy
        - restore(): undo a soft delete
        - router():  FastAPI router exposing the above
    """

    def __init__(self, model: Type[Any], database: Database, options: Optional[ResourceOptions] = None):
        self.model = model
        self.database = database
        self.options = options or ResourceOptions()
        self.resource_name = self.options.resource_name or model.__name__

        mapper = sa_inspect(model)
        self._columns = {attr.key: attr.columns[0] for attr in mapper.column_attrs}
        self._relationships = {rel.key for rel in mapper.relationships}
        primary_keys = mapper.primary_key
        if len(primary_keys) != 1:
            raise ValueError(f"{model.__name__} must have exactly one primary key column")
        self._pk = primary_keys[0]
        self._check_options()

    def _check_options(self) -> None:
        opts = self.options
        unknown = [
            name
            for name in (
                opts.ownership_field,
                *opts.search_fields,
                *opts.immutable_fields,
                *(f for f, _ in opts.default_sort),
            )
            if name is not None and name not in self._columns
        ]
        if unknown:
            raise ValueError(f"{self.model.__name__} has no column(s): {', '.join(unknown)}")
        bad_relations = [name for name in opts.populate_fields if name not in self._relationships]
        if bad_relations:
            raise ValueError(f"{self.model.__name__} has no relationship(s): {', '.join(bad_relations)}")
        if opts.delete_policy.soft and not DELETION_FIELDS <= self._columns.keys():
            raise ValueError(f"{self.model.__name__} needs deleted_at/deleted_by columns for soft delete")
        for _, direction in opts.default_sort:
            if direction not in ("asc", "desc"):
                raise ValueError(f"Sort direction must be 'asc' or 'desc', got '{direction}'")
        if opts.default_limit < 1 or opts.max_limit < 1:
            raise ValueError("Page sizes must be positive")

    # ── Query pieces ──────────────────────────────────────────────────────

    def _parse_id(self, record_id: Any) -> Any:
        try:
            return coerce_value(self._pk, record_id)
        except (TypeError, ValueError):
            raise ValidationError(message="Invalid ID format", field="id")

    def _owner_value(self, principal: Principal) -> Any:
        column = self._columns[self.options.ownership_field]
        try:
            return coerce_value(column, principal.id)
        except (TypeError, ValueError):
            logger.warning("Principal id %r does not fit %s", principal.id, self.options.ownership_field)
            raise UnauthorizedError(message="Principal cannot own this resource")

    def _owner_clauses(self, principal: Optional[Principal], *, read: bool) -> List[ColumnElement]:
        field_name = self.options.ownership_field
        if field_name is None or principal is None:
            return []
        if read and self.options.allow_public_read:
            return []
        return [self._columns[field_name] == self._owner_value(principal)]

    def _search_clauses(self, search: Any) -> List[ColumnElement]:
        term = str(search or "").strip()
        if not term or not self.options.search_fields:
            return []
        pattern = f"%{escape_like(term)}%"
        return [or_(*[
            self._columns[name].ilike(pattern, escape="\\")
            for name in self.options.search_fields
        ])]

    def _ordering(self, sort: Any) -> List[ColumnElement]:
        sort_keys: List[Tuple[str, str]] = []
        if sort:
            for token in str(sort).split(","):
                token = token.strip()
                if not token:
                    continue
                direction = "desc" if token.startswith("-") else "asc"
                name = token.lstrip("-+")
                if name not in self._columns:
                    raise ValidationError(message=f"Cannot sort by '{name}'", field="sort")
                sort_keys.append((name, direction))
        if not sort_keys:
            sort_keys = list(self.options.default_sort)
        if not sort_keys and "created_at" in self._columns:
            sort_keys = [("created_at", "desc")]

        ordering = [
            self._columns[name].desc() if direction == "desc" else self._columns[name].asc()
            for name, direction in sort_keys
        ]
        ordering.append(self._pk.asc())
        return ordering

    def _with_populate(self, stmt):
        for name in self.options.populate_fields:
            stmt = stmt.options(selectinload(getattr(self.model, name)))
        return stmt

    # ── Payload handling ──────────────────────────────────────────────────

    def _writable(self, payload: Mapping[str, Any], *, extra_protected: Sequence[str] = ()) -> Dict[str, Any]:
        protected = PROTECTED_FIELDS | set(extra_protected) | {self._pk.key}
        return {
            key: value
            for key, value in payload.items()
            if key in self._columns and key not in protected
        }

    def _coerce(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = {}
        for key, value in data.items():
            column = self._columns[key]
            try:
                values[key] = coerce_value(column, value)
            except (TypeError, ValueError):
                raise ValidationError(message=f"Invalid value for '{key}'", field=key)
            if values[key] is None and not column.nullable:
                raise ValidationError(message=f"{key} is required", field=key)
        return values

    def _check_required(self, values: Mapping[str, Any]) -> None:
        for key, column in self._columns.items():
            if key in PROTECTED_FIELDS or column.primary_key:
                continue
            if column.nullable or column.default is not None or column.server_default is not None:
                continue
            if values.get(key) is None:
                raise ValidationError(message=f"{key} is required", field=key)

    async def _run_validator(self, validator: Optional[Validator], payload: Dict[str, Any]) -> None:
        if validator is None:
            return
        result = await validator.validate(dict(payload))
        if not result.valid:
            raise ValidationError(message=result.message or "Validation failed")

    async def _translate_integrity_error(self, session: AsyncSession, exc: IntegrityError) -> ResourceError:
        await session.rollback()
        is_unique, field_name = unique_violation_field(exc)
        if is_unique:
            logger.info("%s uniqueness conflict on %s", self.resource_name, field_name or "unknown field")
            return ConflictError(field=field_name)
        logger.warning("%s constraint violation: %s", self.resource_name, str(exc.orig))
        return ValidationError(message="Record violates a database constraint")

    # ── Operations ────────────────────────────────────────────────────────

    async def create(
        self,
        session: AsyncSession,
        payload: Mapping[str, Any],
        principal: Optional[Principal] = None,
    ) -> Dict[str, Any]:
        """
        Insert a new record.

        Returns:
            {"id": <new id>, **shaper fields}

        Raises:
            ValidationError: validator rejection, missing required column, bad value
            ConflictError:   unique constraint violated (names the field)
        """
        data = self._writable(payload)
        if self.options.ownership_field and principal is not None:
            data[self.options.ownership_field] = self._owner_value(principal)

        await self._run_validator(self.options.create_validator, data)

        values = self._coerce(data)
        self._check_required(values)

        now = utcnow()
        actor = _actor(principal)
        for key, value in (("created_at", now), ("updated_at", now), ("created_by", actor), ("updated_by", actor)):
            if key in self._columns:
                values[key] = value

        record = self.model(**values)
        session.add(record)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise await self._translate_integrity_error(session, exc) from exc

        response: Dict[str, Any] = {"id": getattr(record, self._pk.key)}
        if self.options.create_response_shaper is not None:
            response.update(self.options.create_response_shaper.shape(record))

        logger.info("%s %s created by %s", self.resource_name, response["id"], actor)
        return response

    async def list(
        self,
        session: AsyncSession,
        params: Mapping[str, Any],
        principal: Optional[Principal] = None,
    ) -> Dict[str, Any]:
        """
        One page of matching records.

        Recognized params: page, limit, search, sort, includeDeleted, plus
        whatever the query augmenter reads.

        Returns:
            {"data": [...], "pagination": {page, limit, total, total_pages, has_next, has_prev}}
        """
        pagination = build_pagination(
            params.get("page"),
            params.get("limit"),
            default_limit=self.options.default_limit,
            max_limit=self.options.max_limit,
        )
        include_deleted = str(params.get("includeDeleted", "")).lower() == "true"

        clauses = self._owner_clauses(principal, read=True)
        clauses += self.options.delete_policy.list_clauses(self.model, include_deleted)
        clauses += self._search_clauses(params.get("search"))
        if self.options.query_augmenter is not None:
            clauses += list(self.options.query_augmenter.augment(self.model, params, principal))

        ordering = self._ordering(params.get("sort"))

        count_result = await session.execute(
            select(func.count()).select_from(self.model).where(*clauses)
        )
        total = count_result.scalar_one()

        stmt = (
            select(self.model)
            .where(*clauses)
            .order_by(*ordering)
            .offset(pagination.skip)
            .limit(pagination.limit)
        )
        result = await session.execute(self._with_populate(stmt))
        records = [serialize(row, self.options.populate_fields) for row in result.scalars().all()]

        return format_pagination(records, pagination, total)

    async def get(
        self,
        session: AsyncSession,
        record_id: Any,
        principal: Optional[Principal] = None,
    ) -> Dict[str, Any]:
        """
        One record by id.

        Raises:
            ValidationError: id is not a valid identifier
            NotFoundError:   no record visible to this principal
        """
        pk = self._parse_id(record_id)
        clauses = [
            self._pk == pk,
            *self._owner_clauses(principal, read=True),
            *self.options.delete_policy.live_clauses(self.model),
        ]
        result = await session.execute(self._with_populate(select(self.model).where(*clauses)))
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(resource=self.resource_name, resource_id=str(record_id))
        return serialize(record, self.options.populate_fields)

    async def update(
        self,
        session: AsyncSession,
        record_id: Any,
        payload: Mapping[str, Any],
        principal: Optional[Principal] = None,
    ) -> Dict[str, Any]:
        """
        Partial update of writable columns.

        The identifier, bookkeeping, deletion, ownership and immutable fields
        are dropped from the payload before validation.
        """
        pk = self._parse_id(record_id)
        extra = [*self.options.immutable_fields]
        if self.options.ownership_field:
            extra.append(self.options.ownership_field)
        data = self._writable(payload, extra_protected=extra)

        await self._run_validator(self.options.update_validator, data)

        values = self._coerce(data)
        if "updated_at" in self._columns:
            values["updated_at"] = utcnow()
        if "updated_by" in self._columns:
            values["updated_by"] = _actor(principal)

        clauses = [
            self._pk == pk,
            *self._owner_clauses(principal, read=False),
            *self.options.delete_policy.live_clauses(self.model),
        ]
        stmt = (
            sa_update(self.model)
            .where(*clauses)
            .values({self._columns[key]: value for key, value in values.items()})
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(stmt)
        except IntegrityError as exc:
            raise await self._translate_integrity_error(session, exc) from exc

        if result.rowcount == 0:
            raise NotFoundError(resource=self.resource_name, resource_id=str(record_id))
        return {"updated": True}

    async def delete(
        self,
        session: AsyncSession,
        record_id: Any,
        principal: Optional[Principal] = None,
    ) -> Dict[str, Any]:
        """Delete (or soft-delete) one record; a second call is a 404."""
        pk = self._parse_id(record_id)
        clauses = [self._pk == pk, *self._owner_clauses(principal, read=False)]
        count = await self.options.delete_policy.delete(session, self.model, clauses, _actor(principal))
        if count == 0:
            raise NotFoundError(resource=self.resource_name, resource_id=str(record_id))
        logger.info("%s %s deleted (%r)", self.resource_name, record_id, self.options.delete_policy)
        return {"deleted": True}

    async def restore(
        self,
        session: AsyncSession,
        record_id: Any,
        principal: Optional[Principal] = None,
    ) -> Dict[str, Any]:
        """
        Reinstate a soft-deleted record.

        Raises:
            ConfigurationError: the resource uses hard delete
            NotFoundError:      no deleted record visible to this principal
        """
        if not self.options.delete_policy.soft:
            raise ConfigurationError(message="Soft delete is not enabled for this resource")
        pk = self._parse_id(record_id)
        clauses = [self._pk == pk, *self._owner_clauses(principal, read=False)]
        count = await self.options.delete_policy.restore(session, self.model, clauses, _actor(principal))
        if count == 0:
            raise NotFoundError(
                resource=self.resource_name,
                resource_id=str(record_id),
                message=f"Deleted {self.resource_name} not found",
            )
        return {"restored": True}

    # ── HTTP ──────────────────────────────────────────────────────────────

    def router(self, resource_name: str = "") -> APIRouter:
        """
        Build the CRUD router.

        Routes (R = resource_name):
            POST   /R               → 201 {"id": ...}
            GET    /R               → 200 {"data": [...], "pagination": {...}}
            GET    /R/{id}          → 200 record
            PUT    /R/{id}          → 200 {"updated": true}
            PATCH  /R/{id}          → 200 {"updated": true}
            DELETE /R/{id}          → 200 {"deleted": true}
            POST   /R/{id}/restore  → 200 {"restored": true} (400 unless soft delete)
        """
        name = resource_name.strip("/")
        base = f"/{name}" if name else ""
        collection_path = base or "/"
        item_path = f"{base}/{{record_id}}"

        router = APIRouter(route_class=EnvelopeRoute, tags=[name or self.resource_name])
        database = self.database

        @router.post(collection_path, status_code=201, summary=f"Create {self.resource_name}")
        async def create_record(
            payload: Dict[str, Any] = Body(...),
            principal: Optional[Principal] = Depends(get_principal),
        ) -> Response:
            async with database.session() as session:
                data = await self.create(session, payload, principal)
            return created(data)

        @router.get(collection_path, summary=f"List {self.resource_name} records")
        async def list_records(
            request: Request,
            principal: Optional[Principal] = Depends(get_principal),
        ) -> Response:
            async with database.session() as session:
                data = await self.list(session, request.query_params, principal)
            return ok(data)

        @router.get(item_path, summary=f"Get one {self.resource_name}")
        async def get_record(
            record_id: str,
            principal: Optional[Principal] = Depends(get_principal),
        ) -> Response:
            async with database.session() as session:
                data = await self.get(session, record_id, principal)
            return ok(data)

        async def update_record(
            record_id: str,
            payload: Dict[str, Any] = Body(...),
            principal: Optional[Principal] = Depends(get_principal),
        ) -> Response:
            async with database.session() as session:
                data = await self.update(session, record_id, payload, principal)
            return ok(data)

        router.add_api_route(item_path, update_record, methods=["PUT"], summary=f"Replace fields of a {self.resource_name}")
        router.add_api_route(item_path, update_record, methods=["PATCH"], summary=f"Update a {self.resource_name}")

        @router.delete(item_path, summary=f"Delete a {self.resource_name}")
        async def delete_record(
            record_id: str,
            principal: Optional[Principal] = Depends(get_principal),
        ) -> Response:
            async with database.session() as session:
                data = await self.delete(session, record_id, principal)
            return ok(data)

        @router.post(f"{item_path}/restore", summary=f"Restore a deleted {self.resource_name}")
        async def restore_record(
            record_id: str,
            principal: Optional[Principal] = Depends(get_principal),
        ) -> Response:
            async with database.session() as session:
                data = await self.restore(session, record_id, principal)
            return ok(data)

        return router
