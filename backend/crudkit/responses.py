"""
crudkit — Response Envelope & Pagination Helpers
==================================================

What:  The uniform JSON envelope and the page arithmetic shared by every resource.
How:   ok()/created()/fail() build JSONResponses; build_pagination() and
       format_pagination() turn query parameters and a total count into the
       `{data, pagination}` list payload.
Who:   Used by controller routes and the centralized error handlers.

Envelope:
    success → {"success": true,  "data": ..., "meta"?: ...}
    failure → {"success": false, "message": "..."}
"""

import math
from dataclasses import dataclass
from typing import Any, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# OFFSET and LIMIT are signed 64-bit integers in SQL
MAX_OFFSET = 2**63 - 1


# ══════════════════════════════════════════════════════════════════════════
# Envelope builders
# ══════════════════════════════════════════════════════════════════════════


def ok(data: Any = None, meta: Any = None, status_code: int = 200) -> JSONResponse:
    content = {"success": True, "data": data}
    if meta is not None:
        content["meta"] = meta
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def created(data: Any = None) -> JSONResponse:
    return ok(data, status_code=201)


def fail(status_code: int = 400, message: str = "Bad Request", headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


# ══════════════════════════════════════════════════════════════════════════
# Pagination
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    skip: int


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_pagination(
    page: Any = None,
    limit: Any = None,
    default_limit: int = 10,
    max_limit: int = 100,
) -> Pagination:
    """
    Turn raw `page`/`limit` query values into a bounded Pagination.

    Rules:
        - absent or non-numeric page  → 1; otherwise at least 1
        - absent or non-numeric limit → default_limit
        - limit is clamped to [1, max_limit]
        - page is capped so that skip + limit never exceeds MAX_OFFSET
        - skip = (page - 1) * limit
    """
    parsed_page = _parse_int(page)
    parsed_limit = _parse_int(limit)

    limit_value = parsed_limit if parsed_limit is not None else default_limit
    limit_value = min(max(1, limit_value), max(1, max_limit))
    page_value = max(1, parsed_page if parsed_page is not None else 1)
    page_value = min(page_value, (MAX_OFFSET - limit_value) // limit_value + 1)

    return Pagination(page=page_value, limit=limit_value, skip=(page_value - 1) * limit_value)


def format_pagination(records: List[Any], pagination: Pagination, total: int) -> dict:
    """Wrap a page of records with the pagination metadata clients render."""
    return {
        "data": records,
        "pagination": {
            "page": pagination.page,
            "limit": pagination.limit,
            "total": total,
            "total_pages": math.ceil(total / pagination.limit),
            "has_next": pagination.page * pagination.limit < total,
            "has_prev": pagination.page > 1,
        },
    }
