"""
Positioning plugin: keeps a user-visible ordering column consistent.

Records are ordered within a *group*, the set of rows sharing the same values
for every ``position_filter`` field (NULL included). A request may carry a
placement directive in ``body[before_id_field]``:

- key absent: inserts go last, updates keep their position
- ``None``: place last
- an identifier: place immediately before that record

Placing before a record shifts it and every later row of the group down by
one in a single set-based UPDATE, then takes the vacated slot. A reference to
a missing record, or to one in another group, places last instead.

Usage:
    executor = SqlExecutor()
    store = Store("items", "1.0.0")
    store.use(PositioningPlugin(executor, "items", position_filter=["category_id"]))
    store.use(SqlStoragePlugin(executor, "items"))

Concurrency: the max-read, the shift and the final write of one request run in
one transaction, and each group is serialized with a transaction-scoped
PostgreSQL advisory lock. A unique index on ``(group fields, position)`` must
be ``DEFERRABLE INITIALLY DEFERRED`` to accept the set-based shift.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
from dataclasses import dataclass
from typing import Any, ContextManager, Mapping, Optional, Protocol, Sequence, Tuple, Union

from psycopg import sql

from recordstore.core.context import HookContext
from recordstore.core.hooks import StorePlugin
from recordstore.errors import ConfigurationError
from recordstore.infrastructure.executor import Executor, Row
from recordstore.plugins.conditions import build_where, table_identifier
from recordstore.utils.logging import get_logger

log = get_logger(__name__)


# Directives


@dataclass(frozen=True)
class Absent:
    """No placement instruction in the request."""


@dataclass(frozen=True)
class PlaceLast:
    """Explicit request to go to the end of the group."""


@dataclass(frozen=True)
class BeforeId:
    """Place immediately before the record with this identifier."""

    identifier: Any


Directive = Union[Absent, PlaceLast, BeforeId]

ABSENT = Absent()
PLACE_LAST = PlaceLast()


def parse_directive(body: Mapping[str, Any], before_id_field: str) -> Directive:
    if before_id_field not in body:
        return ABSENT
    value = body[before_id_field]
    if value is None:
        return PLACE_LAST
    return BeforeId(value)


# Condition builder


@dataclass(frozen=True)
class GroupCondition:
    """
    Predicate selecting one group.

    ``key`` holds the resolved ``(field, value)`` pairs in filter order,
    ``clause``/``params`` the composed SQL and its bound values.
    """

    key: Tuple[Tuple[str, Any], ...]
    clause: sql.Composable
    params: Tuple[Any, ...]

    def matches(self, row: Mapping[str, Any]) -> bool:
        return all(row.get(field) == value for field, value in self.key)


def build_group_condition(
    fields: Sequence[str],
    body: Mapping[str, Any],
    record: Optional[Mapping[str, Any]] = None,
) -> GroupCondition:
    """
    Build the group predicate for a request.

    Each field is read from the body when the body has the key, otherwise from
    the previously stored record. A missing or None value matches NULL; it is
    never dropped from the predicate. No fields matches the whole table.
    """
    key = []
    for field in fields:
        if field in body:
            value = body[field]
        elif record is not None:
            value = record.get(field)
        else:
            value = None
        key.append((field, value))
    clause, params = build_where(key)
    return GroupCondition(key=tuple(key), clause=clause, params=tuple(params))


# Storage access


class PositionRepository(Protocol):
    """Reads and writes the positioning engine needs from storage."""

    def lock_group(self, group: GroupCondition) -> None:
        ...

    def max_position(self, group: GroupCondition) -> Optional[int]:
        ...

    def fetch_prior(self, id_property: str, record_id: Any) -> Optional[Row]:
        ...

    def find_in_group(self, id_property: str, record_id: Any, group: GroupCondition) -> Optional[Row]:
        ...

    def shift(self, from_position: int, group: GroupCondition) -> None:
        ...


def group_lock_key(table: str, group: GroupCondition) -> int:
    """
    Stable signed 64-bit advisory lock key for one group of one table.

    Values are keyed by their text form so that 5, "5" and Decimal("5"), which
    SQL compares equal, take the same lock. None stays distinct from "None".
    """
    key = [[field, None if value is None else str(value)] for field, value in group.key]
    payload = json.dumps([table, key])
    digest = hashlib.blake2b(payload.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class SqlPositionRepository:
    """`PositionRepository` over a PostgreSQL table through an `Executor`."""

    def __init__(
        self,
        executor: Executor,
        table: str,
        position_field: str = "position",
        position_filter: Sequence[str] = (),
    ) -> None:
        self.executor = executor
        self.table = table
        self.position_field = position_field
        self.position_filter = tuple(position_filter)
        self._table = table_identifier(table)
        self._position = sql.Identifier(position_field)

    def lock_group(self, group: GroupCondition) -> None:
        self.executor.execute(
            "SELECT pg_advisory_xact_lock(%s)", [group_lock_key(self.table, group)]
        )

    def max_position(self, group: GroupCondition) -> Optional[int]:
        rows = self.executor.execute(
            sql.SQL("SELECT MAX({}) AS max_position FROM {} WHERE {}").format(
                self._position, self._table, group.clause
            ),
            group.params,
        )
        return rows[0]["max_position"] if rows else None

    def fetch_prior(self, id_property: str, record_id: Any) -> Optional[Row]:
        columns = [id_property, self.position_field, *self.position_filter]
        rows = self.executor.execute(
            sql.SQL("SELECT {} FROM {} WHERE {} = %s").format(
                sql.SQL(", ").join(sql.Identifier(column) for column in dict.fromkeys(columns)),
                self._table,
                sql.Identifier(id_property),
            ),
            [record_id],
        )
        return rows[0] if rows else None

    def find_in_group(self, id_property: str, record_id: Any, group: GroupCondition) -> Optional[Row]:
        rows = self.executor.execute(
            sql.SQL("SELECT {}, {} FROM {} WHERE {} = %s AND {}").format(
                sql.Identifier(id_property),
                self._position,
                self._table,
                sql.Identifier(id_property),
                group.clause,
            ),
            [record_id, *group.params],
        )
        return rows[0] if rows else None

    def shift(self, from_position: int, group: GroupCondition) -> None:
        # One set-based statement: every qualifying row moves at once.
        self.executor.execute(
            sql.SQL("UPDATE {} SET {} = {} + 1 WHERE {} >= %s AND {}").format(
                self._table, self._position, self._position, self._position, group.clause
            ),
            [from_position, *group.params],
        )


# Resolver


class PositionResolver:
    """
    Decide the position a record is written with.

    Every branch that cannot honour the directive falls through to "place
    last"; resolution itself never fails. Storage errors propagate.
    """

    def __init__(
        self,
        repository: PositionRepository,
        position_field: str = "position",
        position_filter: Sequence[str] = (),
        lock_groups: bool = True,
    ) -> None:
        self.repository = repository
        self.position_field = position_field
        self.position_filter = tuple(position_filter)
        self.lock_groups = lock_groups

    def resolve(
        self,
        directive: Directive,
        body: Mapping[str, Any],
        *,
        is_insert: bool,
        record: Optional[Mapping[str, Any]] = None,
        record_id: Any = None,
        id_property: str = "id",
    ) -> int:
        prior = None
        if not is_insert:
            prior = record
            if (prior is None or prior.get(self.position_field) is None) and record_id is not None:
                prior = self.repository.fetch_prior(id_property, record_id) or prior

        group = build_group_condition(self.position_filter, body, prior)
        old_position = prior.get(self.position_field) if prior is not None else None

        if isinstance(directive, Absent):
            if is_insert or old_position is None:
                return self._place_last(group)
            if self._group_changed(body, prior):
                return self._place_last(group)
            return old_position

        if isinstance(directive, PlaceLast):
            return self._place_last(group)

        if (
            not is_insert
            and record_id is not None
            and directive.identifier == record_id
            and not self._group_changed(body, prior or {})
        ):
            # Placing a record before itself inside its own group is a no-op.
            return old_position if old_position is not None else self._place_last(group)

        return self._insert_before(directive.identifier, group, id_property)

    def _group_changed(self, body: Mapping[str, Any], prior: Mapping[str, Any]) -> bool:
        return any(
            field in body and field in prior and body[field] != prior[field]
            for field in self.position_filter
        )

    def _lock(self, group: GroupCondition) -> None:
        if self.lock_groups:
            self.repository.lock_group(group)

    def _place_last(self, group: GroupCondition, locked: bool = False) -> int:
        if not locked:
            self._lock(group)
        max_position = self.repository.max_position(group)
        position = 1 if max_position is None else int(max_position) + 1
        log.debug("Placing record last", extra={"group": dict(group.key), "position": position})
        return position

    def _insert_before(self, target_id: Any, group: GroupCondition, id_property: str) -> int:
        self._lock(group)
        target = self.repository.find_in_group(id_property, target_id, group)
        if target is None:
            log.debug(
                "Placement target not in group, placing last",
                extra={"before_id": target_id, "group": dict(group.key)},
            )
            return self._place_last(group, locked=True)

        position = int(target.get(self.position_field) or 0)
        self.repository.shift(position, group)
        log.debug(
            "Shifted group to place record",
            extra={"before_id": target_id, "group": dict(group.key), "position": position},
        )
        return position


# Hook adapter


class PositioningPlugin(StorePlugin):
    """
    Store plugin writing the resolved position into the request body.

    Parameters
    ----------
    executor : Executor
        Must be the executor the storage plugin writes through, so the shift
        and the final write share a transaction.
    table : str
        Backing table.
    position_field : str
        Ordering column.
    position_filter : sequence of str
        Fields partitioning the table into groups; empty means one global order.
    before_id_field : str
        Body field carrying the placement directive; never persisted.
    lock_groups : bool
        Serialize each group with an advisory lock. Turn off only for a
        single-writer deployment.
    repository : PositionRepository | None
        Storage access override; built from executor and table when omitted.
    """

    name: str = "positioning"

    def __init__(
        self,
        executor: Optional[Executor],
        table: str,
        *,
        position_field: str = "position",
        position_filter: Sequence[str] = (),
        before_id_field: str = "beforeId",
        lock_groups: bool = True,
        repository: Optional[PositionRepository] = None,
    ) -> None:
        if executor is None and repository is None:
            raise ConfigurationError("Positioning plugin requires an executor")
        if not table:
            raise ConfigurationError("Positioning plugin requires a table name")
        self.executor = executor
        self.table = table
        self.position_field = position_field
        self.position_filter = tuple(position_filter)
        self.before_id_field = before_id_field
        if repository is None:
            repository = SqlPositionRepository(executor, table, position_field, self.position_filter)
        self.resolver = PositionResolver(
            repository,
            position_field=position_field,
            position_filter=self.position_filter,
            lock_groups=lock_groups,
        )

    def install(self, store: Any) -> None:
        log.info(
            f'Positioning plugin installed for table "{self.table}", using field "{self.position_field}"',
            extra={"plugin": self.name, "table": self.table, "position_filter": list(self.position_filter)},
        )

    def transaction(self, context: HookContext) -> ContextManager[Any]:
        if self.executor is None:
            return contextlib.nullcontext()
        return self.executor.transaction()

    def on_before_insert(self, context: HookContext) -> None:
        self._apply(context, is_insert=True)

    def on_before_put(self, context: HookContext) -> None:
        self._apply(context, is_insert=False)

    def _apply(self, context: HookContext, is_insert: bool) -> None:
        request = context.request
        id_property = context.store.id_property
        directive = parse_directive(request.body, self.before_id_field)
        position = self.resolver.resolve(
            directive,
            request.body,
            is_insert=is_insert,
            record=request.record,
            record_id=None if is_insert else request.params.get(id_property),
            id_property=id_property,
        )
        request.body[self.position_field] = position
        request.body.pop(self.before_id_field, None)
        log.debug(
            "Position resolved",
            extra={"table": self.table, "position": position, "directive": type(directive).__name__},
        )


__all__ = [
    "ABSENT",
    "PLACE_LAST",
    "Absent",
    "BeforeId",
    "Directive",
    "GroupCondition",
    "PlaceLast",
    "PositionRepository",
    "PositionResolver",
    "PositioningPlugin",
    "SqlPositionRepository",
    "build_group_condition",
    "group_lock_key",
    "parse_directive",
]
