"""
SQL composition helpers shared by the storage and positioning plugins.

Identifiers always go through `psycopg.sql.Identifier`; values are always
bound parameters.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Tuple

from psycopg import sql


def table_identifier(table: str) -> sql.Identifier:
    """``"items"`` -> "items", ``"app.items"`` -> "app"."items"."""
    return sql.Identifier(*table.split("."))


def build_where(conditions: Iterable[Tuple[str, Any]]) -> Tuple[sql.Composable, List[Any]]:
    """
    Conjunctive predicate over ``(field, value)`` pairs.

    A None value becomes ``IS NULL``, anything else an equality with a bound
    parameter. No pairs gives ``TRUE``.
    """
    terms: List[sql.Composable] = []
    params: List[Any] = []
    for field, value in conditions:
        if value is None:
            terms.append(sql.SQL("{} IS NULL").format(sql.Identifier(field)))
        else:
            terms.append(sql.SQL("{} = %s").format(sql.Identifier(field)))
            params.append(value)
    if not terms:
        return sql.SQL("TRUE"), params
    return sql.SQL(" AND ").join(terms), params


def build_order_by(sort: Mapping[str, int]) -> sql.Composable:
    """``{"position": 1, "name": -1}`` -> ``ORDER BY "position" ASC, "name" DESC``."""
    if not sort:
        return sql.SQL("")
    parts = [
        sql.SQL("{} {}").format(sql.Identifier(field), sql.SQL("DESC" if direction < 0 else "ASC"))
        for field, direction in sort.items()
    ]
    return sql.SQL(" ORDER BY ") + sql.SQL(", ").join(parts)


__all__ = ["build_order_by", "build_where", "table_identifier"]
