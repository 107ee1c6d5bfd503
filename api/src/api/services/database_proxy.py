"""Generic table query proxy.

Translates a declarative descriptor (table, method, filters, ordering,
limit, response shape) into a SQLAlchemy statement and returns a
PostgREST-shaped result: ``{data, error, count, status, statusText}``.

Row-level access is enforced here: staff profiles may read and write every
registered table, client profiles may only read rows belonging to their
client memberships.
"""

from __future__ import annotations

import logging
import math
import operator
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from http import HTTPStatus
from typing import Any

import sqlalchemy as sa
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from twinmind.models import (
    Brief,
    Client,
    ClientMember,
    Comment,
    Contact,
    Invite,
    Invoice,
    Profile,
    Project,
    ProjectFile,
    ProjectStageEvent,
)
from twinmind.models.project_detail import OWNER_ONLY_VISIBILITY

from api.services.access import AccessContext
from api.services.errors import (
    AccessDenied,
    InvalidPayload,
    QueryProxyError,
    UnknownColumn,
    UnknownTable,
    UnsupportedFilter,
    UnsupportedMethod,
)

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("select", "insert", "update", "upsert", "delete")
WRITE_METHODS = ("insert", "update", "upsert", "delete")
NO_CONTENT = 204


class DatabaseFilter(BaseModel):
    type: str
    column: str
    value: Any = None
    operator: str | None = None


class DatabaseOrder(BaseModel):
    column: str
    ascending: bool | None = None
    nulls_first: bool | None = Field(default=None, alias="nullsFirst")

    model_config = {"populate_by_name": True}


class DatabaseQueryRequest(BaseModel):
    table: str
    method: str = "select"
    columns: str | None = None
    payload: Any = None
    filters: list[DatabaseFilter] = Field(default_factory=list)
    order_by: list[DatabaseOrder] = Field(default_factory=list, alias="orderBy")
    limit: Any = None
    response: str | None = None

    model_config = {"populate_by_name": True}

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> str:
        return str(value or "").strip() or "select"


@dataclass(frozen=True)
class TablePolicy:
    model: type
    # Row filter applied for client profiles; None means no client access.
    client_scope: Callable[[AccessContext], Any] | None = None

    @property
    def table(self) -> sa.Table:
        return self.model.__table__


def _client_uuids(ctx: AccessContext) -> list[uuid.UUID]:
    return [uuid.UUID(str(client_id)) for client_id in ctx.client_ids]


def _client_projects(model: type, ctx: AccessContext):
    return model.project_id.in_(
        sa.select(Project.id).where(Project.client_id.in_(_client_uuids(ctx)))
    )


def _shared_with_client(model: type, ctx: AccessContext):
    return sa.and_(
        _client_projects(model, ctx), model.visibility != OWNER_ONLY_VISIBILITY
    )


TABLE_POLICIES: dict[str, TablePolicy] = {
    "clients": TablePolicy(Client, lambda ctx: Client.id.in_(_client_uuids(ctx))),
    "contacts": TablePolicy(Contact, lambda ctx: Contact.client_id.in_(_client_uuids(ctx))),
    "projects": TablePolicy(Project, lambda ctx: Project.client_id.in_(_client_uuids(ctx))),
    "invoices": TablePolicy(Invoice, lambda ctx: _client_projects(Invoice, ctx)),
    "briefs": TablePolicy(Brief, lambda ctx: _client_projects(Brief, ctx)),
    "project_stage_events": TablePolicy(
        ProjectStageEvent, lambda ctx: _client_projects(ProjectStageEvent, ctx)
    ),
    "comments": TablePolicy(Comment, lambda ctx: _shared_with_client(Comment, ctx)),
    "files": TablePolicy(ProjectFile, lambda ctx: _shared_with_client(ProjectFile, ctx)),
    "invites": TablePolicy(Invite),
    "client_members": TablePolicy(
        ClientMember, lambda ctx: ClientMember.profile_id == ctx.profile_id
    ),
    "profiles": TablePolicy(Profile, lambda ctx: Profile.id == ctx.profile_id),
}


def _policy_for(table_name: str) -> TablePolicy:
    policy = TABLE_POLICIES.get(str(table_name or "").strip())
    if policy is None:
        raise UnknownTable(f'relation "public.{table_name}" does not exist')
    return policy


def _column(table: sa.Table, name: str) -> sa.Column:
    column = table.c.get(str(name or "").strip())
    if column is None:
        raise UnknownColumn(f"column {table.name}.{name} does not exist")
    return column


def _select_columns(table: sa.Table, columns: str | None) -> list[sa.Column]:
    if columns is None or columns.strip() in ("", "*"):
        return list(table.c)
    return [_column(table, name) for name in columns.split(",") if name.strip()]


def _coerce_value(column: sa.Column, value: Any) -> Any:
    """Convert JSON scalars into the Python types the column expects."""
    if value is None or not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return value
    column_type = column.type
    try:
        if isinstance(column_type, sa.Uuid) and isinstance(value, str):
            return uuid.UUID(value)
        if isinstance(column_type, sa.DateTime) and isinstance(value, str):
            return datetime.fromisoformat(value)
        if isinstance(column_type, sa.Date) and isinstance(value, str):
            return date.fromisoformat(value)
        if isinstance(column_type, sa.Numeric):
            return Decimal(str(value))
    except (ValueError, InvalidOperation):
        raise InvalidPayload(
            f'invalid input syntax for column "{column.name}": "{value}"'
        )
    return value


def _operands(column: sa.Column, value: Any) -> tuple[Any, Any]:
    """Column/value pair for a comparison filter.

    Values that do not parse as the column's type are compared against the
    column's text form, so they simply match nothing.
    """
    try:
        return column, _coerce_value(column, value)
    except InvalidPayload:
        return sa.cast(column, sa.Text), str(value)


def _list_operands(column: sa.Column, value: Any) -> tuple[Any, list[Any]]:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("(") and stripped.endswith(")"):
            value = [part.strip() for part in stripped[1:-1].split(",") if part.strip()]
    if not isinstance(value, list):
        raise UnsupportedFilter(f"filter on {column.name} expects a list of values")
    try:
        return column, [_coerce_value(column, item) for item in value]
    except InvalidPayload:
        return sa.cast(column, sa.Text), [str(item) for item in value]


def _is_clause(column: sa.Column, value: Any):
    normalized = value.strip().lower() if isinstance(value, str) else value
    if normalized is None or normalized == "null":
        return column.is_(None)
    if normalized is True or normalized == "true":
        return column.is_(sa.true())
    if normalized is False or normalized == "false":
        return column.is_(sa.false())
    raise UnsupportedFilter(f"is filter on {column.name} expects null, true or false")


COMPARISON_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}


def _operator_clause(column: sa.Column, op_name: str | None, value: Any):
    op = str(op_name or "").strip().lower()
    if op in COMPARISON_OPERATORS:
        lhs, rhs = _operands(column, value)
        return COMPARISON_OPERATORS[op](lhs, rhs)
    if op == "like":
        return column.like(str(value))
    if op == "ilike":
        return column.ilike(str(value))
    if op == "is":
        return _is_clause(column, value)
    if op == "in":
        lhs, values = _list_operands(column, value)
        return lhs.in_(values)
    raise UnsupportedFilter(f"Unsupported operator for not filter: {op_name}")


def build_filter_clause(table: sa.Table, db_filter: DatabaseFilter):
    column = _column(table, db_filter.column)
    filter_type = str(db_filter.type or "").strip()
    if filter_type == "eq":
        return _operator_clause(column, "eq", db_filter.value)
    if filter_type == "in":
        return _operator_clause(column, "in", db_filter.value)
    if filter_type == "ilike":
        return column.ilike(str(db_filter.value))
    if filter_type == "not":
        return sa.not_(_operator_clause(column, db_filter.operator, db_filter.value))
    raise UnsupportedFilter(f"Unsupported filter type: {db_filter.type}")


def _finite_limit(limit: Any) -> int | None:
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        return None
    if isinstance(limit, float) and not math.isfinite(limit):
        return None
    return max(int(limit), 0)


def _payload_rows(table: sa.Table, payload: Any, *, many: bool) -> list[dict[str, Any]]:
    """Coerced rows sharing one column set; keys missing from a row are null."""
    rows = payload if many and isinstance(payload, list) else [payload]
    if not rows:
        raise InvalidPayload("Empty payload")
    coerced = []
    keys: list[str] = []
    for row in rows:
        if not isinstance(row, dict) or not row:
            raise InvalidPayload("Payload must be a non-empty object")
        values = {}
        for key, value in row.items():
            column = _column(table, key)
            values[column.name] = _coerce_value(column, value)
            if column.name not in keys:
                keys.append(column.name)
        coerced.append(values)
    return [{key: values.get(key) for key in keys} for values in coerced]


def build_statement(request: DatabaseQueryRequest, ctx: AccessContext):
    """Compile a request into a statement; returns (statement, returns_rows, status)."""
    method = request.method
    if method not in SUPPORTED_METHODS:
        raise UnsupportedMethod(f"Unsupported method: {request.method}")

    policy = _policy_for(request.table)
    table = policy.table

    if ctx.is_client:
        if method in WRITE_METHODS or policy.client_scope is None:
            raise AccessDenied(f"permission denied for table {table.name}")
    elif not ctx.is_staff:
        raise AccessDenied(f"permission denied for table {table.name}")

    clauses = [build_filter_clause(table, db_filter) for db_filter in request.filters]
    if ctx.is_client and policy.client_scope is not None:
        clauses.append(policy.client_scope(ctx))
    returning = _select_columns(table, request.columns) if request.columns else None

    if method == "select":
        stmt = sa.select(*_select_columns(table, request.columns)).select_from(table)
        if clauses:
            stmt = stmt.where(*clauses)
        for order in request.order_by:
            column = _column(table, order.column)
            ordered = column.asc() if order.ascending is not False else column.desc()
            if order.nulls_first is True:
                ordered = ordered.nulls_first()
            elif order.nulls_first is False:
                ordered = ordered.nulls_last()
            stmt = stmt.order_by(ordered)
        limit = _finite_limit(request.limit)
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt, True, HTTPStatus.OK

    if method == "insert":
        stmt = sa.insert(table).values(_payload_rows(table, request.payload, many=True))
        status = HTTPStatus.CREATED
    elif method == "upsert":
        rows = _payload_rows(table, request.payload, many=True)
        stmt = pg_insert(table).values(rows)
        primary_keys = {column.name for column in table.primary_key.columns}
        update_keys = [key for key in rows[0] if key not in primary_keys]
        if update_keys:
            stmt = stmt.on_conflict_do_update(
                index_elements=list(table.primary_key.columns),
                set_={key: stmt.excluded[key] for key in update_keys},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(table.primary_key.columns))
        status = HTTPStatus.CREATED
    else:
        if not clauses:
            raise InvalidPayload(f"{method.upper()} requires a WHERE clause")
        if method == "update":
            values = _payload_rows(table, request.payload, many=False)[0]
            stmt = sa.update(table).where(*clauses).values(**values)
        else:
            stmt = sa.delete(table).where(*clauses)
        status = HTTPStatus.OK if returning else HTTPStatus(NO_CONTENT)

    if returning:
        stmt = stmt.returning(*returning)
    return stmt, returning is not None, status


def _result(data: Any, status: int, error: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "data": data,
        "error": error,
        "count": None,
        "status": int(status),
        "statusText": HTTPStatus(status).phrase,
    }


def _shape_rows(rows: list[dict[str, Any]], response: str | None, status: int) -> dict[str, Any]:
    if response not in ("single", "maybeSingle"):
        return _result(rows, status)
    if len(rows) == 1:
        return _result(rows[0], status)
    if response == "maybeSingle" and not rows:
        return _result(None, status)
    return _result(
        None,
        HTTPStatus.NOT_ACCEPTABLE,
        {
            "message": "JSON object requested, multiple (or no) rows returned",
            "details": f"The result contains {len(rows)} rows",
            "hint": None,
            "code": "PGRST116",
        },
    )


def _database_error(exc: SQLAlchemyError) -> dict[str, Any]:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if isinstance(exc, IntegrityError):
        status = HTTPStatus.CONFLICT
        message = "Query violates a table constraint"
    elif isinstance(exc, DataError):
        status = HTTPStatus.BAD_REQUEST
        message = "Query contains invalid data"
    else:
        status = HTTPStatus.INTERNAL_SERVER_ERROR
        message = "Database query failed"
    return _result(None, status, {"message": message, "details": None, "hint": None, "code": code})


async def execute_query(
    db: AsyncSession,
    request: DatabaseQueryRequest,
    ctx: AccessContext,
) -> dict[str, Any]:
    try:
        stmt, returns_rows, status = build_statement(request, ctx)
    except QueryProxyError as exc:
        return _result(None, exc.status_code, exc.to_error())

    try:
        result = await db.execute(stmt)
        rows = [dict(row) for row in result.mappings().all()] if returns_rows else None
        if request.method in WRITE_METHODS:
            await db.flush()
    except SQLAlchemyError as exc:
        logger.warning(
            "Database proxy %s on %s failed: %s", request.method, request.table, exc
        )
        await db.rollback()
        return _database_error(exc)

    if rows is None:
        return _result(None, status)
    return _shape_rows(rows, request.response, status)


def response_status(result: dict[str, Any]) -> int:
    """HTTP status for a proxy result; 204 is reported as 200."""
    status = result.get("status")
    if not status or status == NO_CONTENT:
        return HTTPStatus.OK
    return int(status)
