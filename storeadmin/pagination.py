"""Shared listing contract: paging, free-text search and whitelisted sorting."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping

from flask import request
from sqlalchemy import Select, func, inspect, select

from .errors import BadRequest
from .extensions import db

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
SORT_ORDERS = ("asc", "desc")


@dataclass(frozen=True)
class ListParams:
    page: int
    page_size: int
    search: str
    sort_by: str
    sort_order: str

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def _int_arg(name: str, raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise BadRequest(f"{name} must be an integer") from exc


def list_params(sort_keys, default_sort: str, default_order: str = "asc") -> ListParams:
    """Parse ``page``, ``pageSize``, ``search``, ``sortBy`` and ``sortOrder``."""
    args = request.args

    page = _int_arg("page", args.get("page", "1"))
    if page < 1:
        raise BadRequest("page must be greater than or equal to 1")

    raw_size = args.get("pageSize", args.get("limit", str(DEFAULT_PAGE_SIZE)))
    page_size = _int_arg("pageSize", raw_size)
    if page_size < 1:
        raise BadRequest("pageSize must be greater than or equal to 1")
    page_size = min(page_size, MAX_PAGE_SIZE)

    sort_by = args.get("sortBy") or default_sort
    if sort_by not in sort_keys:
        allowed = ", ".join(sorted(sort_keys))
        raise BadRequest(f"Invalid sortBy value. Allowed values: {allowed}")

    sort_order = (args.get("sortOrder") or default_order).lower()
    if sort_order not in SORT_ORDERS:
        raise BadRequest("sortOrder must be 'asc' or 'desc'")

    return ListParams(
        page=page,
        page_size=page_size,
        search=(args.get("search") or "").strip(),
        sort_by=sort_by,
        sort_order=sort_order,
    )


def like_pattern(term: str) -> str:
    """Escape LIKE wildcards so ``term`` is matched literally as a substring."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def csv_arg(name: str, allowed: tuple[str, ...] | None = None) -> list[str]:
    """Split a comma-separated query argument, validating against ``allowed``."""
    raw = request.args.get(name, "")
    values = [part.strip() for part in raw.split(",") if part.strip()]
    if allowed is not None:
        invalid = [value for value in values if value not in allowed]
        if invalid:
            raise BadRequest(f"Invalid {name} value: {', '.join(invalid)}")
    return values


def int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return _int_arg(name, raw)


def _primary_key(stmt: Select) -> tuple:
    # Tiebreaker for non-unique sort columns.
    entity = stmt.column_descriptions[0]["entity"]
    return tuple(inspect(entity).primary_key) if entity is not None else ()


def paginate(
    stmt: Select,
    params: ListParams,
    sort_columns: Mapping[str, object],
    serialize: Callable,
    scalars: bool = True,
) -> dict[str, object]:
    """Run ``stmt`` as one page and build the listing response body."""
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = db.session.execute(count_stmt).scalar_one()

    columns = [sort_columns[params.sort_by], *_primary_key(stmt)]
    ordering = [column.desc() if params.sort_order == "desc" else column.asc() for column in columns]
    page_stmt = stmt.order_by(*ordering).limit(params.page_size).offset(params.offset)

    result = db.session.execute(page_stmt)
    rows = result.scalars().all() if scalars else result.all()
    return {
        "items": [serialize(row) for row in rows],
        "totalCount": total,
        "currentPage": params.page,
        "pageSize": params.page_size,
    }
