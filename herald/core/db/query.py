"""
Parameterized SQL generation from entity column descriptors.

Design:
- Functions are *pure*: they take an entity (and a table name from the
  registry) and return a `Statement`. No connection, no I/O.
- A field takes part in a WHERE/INSERT/SET clause only when its wrapper is
  valid. An entity with no valid field selects every row.
- Parameters use SQLite's numbered placeholders (`?1`, `?2`, ...), numbered
  sequentially across the whole statement.

Important:
- Table names come from the registry, column names from the descriptors.
  Nothing user supplied is ever interpolated: ORDER BY and RETURNING columns
  are checked against the entity's columns first.
- "Set this column to NULL" cannot be expressed through `update`; a NULL
  wrapper means "leave this column alone".
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, NamedTuple

from herald.core import InvalidTagError
from herald.core.db.models import Column, Entity


class Statement(NamedTuple):
    sql: str
    params: tuple[Any, ...]


def selection(entity_type: type[Entity]) -> str:
    """Comma separated column list in declaration order."""
    return ", ".join(c.column for c in entity_type.COLUMNS)


def _check_columns(entity_type: type[Entity], columns: Sequence[str], what: str) -> None:
    known = {c.column for c in entity_type.COLUMNS}
    for name in columns:
        if name not in known:
            raise InvalidTagError(f"{what}: {name!r} is not a column of {entity_type.__name__}")


def _assignments(
    pairs: list[tuple[Column, Any]], start: int
) -> tuple[list[str], list[Any], int]:
    """`column = ?N` fragments for `pairs`, numbered from `start`."""
    fragments: list[str] = []
    params: list[Any] = []
    n = start
    for column, value in pairs:
        fragments.append(f"{column.column} = ?{n}")
        params.append(value.sql_value())
        n += 1
    return fragments, params, n


def select(entity: Entity, table: str, order_by: Sequence[str] = ()) -> Statement:
    """
    SELECT every column of `table`, filtered on the entity's non-NULL fields.

    `order_by` holds column names (already translated from external names).
    """
    entity_type = type(entity)
    _check_columns(entity_type, order_by, "order by")

    fragments, params, _ = _assignments(entity.present(), 1)
    sql = f"SELECT {selection(entity_type)} FROM {table}"
    if fragments:
        sql += " WHERE " + " AND ".join(fragments)
    if order_by:
        sql += " ORDER BY " + ", ".join(order_by)
    return Statement(sql + ";", tuple(params))


def select_unique(entity: Entity, table: str) -> Statement:
    """SELECT by identity only, whatever else is set on the entity."""
    entity_type = type(entity)
    if entity_type.IDENTITY is None:
        raise InvalidTagError(f"{entity_type.__name__} has no identity column")
    identity = next(c for c in entity_type.COLUMNS if c.attr == entity_type.IDENTITY)
    sql = f"SELECT {selection(entity_type)} FROM {table} WHERE {identity.column} = ?1;"
    return Statement(sql, (entity.get_identity(),))


def insert(entity: Entity, table: str, returning: Sequence[str] = ()) -> Statement:
    """
    INSERT the entity's non-NULL fields; NULL fields fall back to the column default.

    `returning` lists the column names to read back (e.g. the generated id).
    """
    entity_type = type(entity)
    _check_columns(entity_type, returning, "returning")

    pairs = entity.present()
    if pairs:
        columns = ", ".join(c.column for c, _ in pairs)
        placeholders = ", ".join(f"?{i}" for i in range(1, len(pairs) + 1))
        sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
    else:
        sql = f"INSERT INTO {table} DEFAULT VALUES"
    if returning:
        sql += " RETURNING " + ", ".join(returning)
    return Statement(sql + ";", tuple(v.sql_value() for _, v in pairs))


def update(set_: Entity, where: Entity, table: str) -> Statement:
    """
    UPDATE `table` SET <set_'s non-NULL fields> WHERE <where's non-NULL fields>.

    Numbering is shared: the WHERE parameters continue after the SET ones.
    An empty `where` matches every row, consistent with `select`.
    """
    set_fragments, set_params, n = _assignments(set_.present(), 1)
    if not set_fragments:
        raise ValueError("update needs at least one non-NULL field to set")
    where_fragments, where_params, _ = _assignments(where.present(), n)

    sql = f"UPDATE {table} SET " + ", ".join(set_fragments)
    if where_fragments:
        sql += " WHERE " + " AND ".join(where_fragments)
    return Statement(sql + ";", tuple(set_params + where_params))
