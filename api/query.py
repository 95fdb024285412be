# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

"""Incremental builder for parameterized SELECT statements.

Filters are collected as ``(template, value)`` pairs where ``{0}`` marks every
spot the value is referenced. Positional ``$n`` placeholders are only assigned
in :meth:`QueryBuilder.build`, so the rendered SQL and the parameter tuple are
always aligned no matter which optional filters were supplied.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

from db.connection import QueryDescriptor


def is_present(value: Any) -> bool:
    return value is not None and value != ""


def contains_pattern(value: str) -> str:
    return f"%{value}%"


class QueryBuilder:
    def __init__(self, select_sql: str):
        self._select = select_sql.strip()
        self._filters: List[Tuple[str, Any]] = []
        self._group_by: List[str] = []
        self._order_by: List[str] = []
        self._page: Optional[Tuple[int, int]] = None

    def where(self, template: str, value: Any) -> "QueryBuilder":
        self._filters.append((template, value))
        return self

    def where_present(self, template: str, value: Any) -> "QueryBuilder":
        if is_present(value):
            self._filters.append((template, value))
        return self

    def group_by(self, *columns: str) -> "QueryBuilder":
        self._group_by.extend(columns)
        return self

    def order_by(self, *columns: str) -> "QueryBuilder":
        self._order_by.extend(columns)
        return self

    def paginate(self, limit: int, offset: int) -> "QueryBuilder":
        self._page = (limit, offset)
        return self

    @property
    def filter_count(self) -> int:
        return len(self._filters)

    def build(self) -> QueryDescriptor:
        params: List[Any] = []
        clauses: List[str] = []
        for template, value in self._filters:
            params.append(value)
            clauses.append(template.format(f"${len(params)}"))

        parts = [self._select]
        if clauses:
            parts.append("WHERE " + " AND ".join(clauses))
        if self._group_by:
            parts.append("GROUP BY " + ", ".join(self._group_by))
        if self._order_by:
            parts.append("ORDER BY " + ", ".join(self._order_by))
        if self._page is not None:
            limit, offset = self._page
            params.extend((limit, offset))
            parts.append(f"LIMIT ${len(params) - 1} OFFSET ${len(params)}")

        return QueryDescriptor(sql="\n".join(parts), params=tuple(params))


def resolve_sort(
    sort_by: Optional[str],
    sort_dir: Optional[str],
    columns: Mapping[str, str],
    default: str,
) -> Tuple[str, str]:
    """Map an external sort key onto an allow-listed column reference.

    Unknown keys fall back to ``default``; anything but ``desc`` sorts ascending.
    """
    column = columns.get(sort_by, default) if sort_by else default
    direction = "DESC" if str(sort_dir or "ASC").upper() == "DESC" else "ASC"
    return column, direction
