"""
Translation between the names a field is known by.

Each column has three names: the SQL column name and two external names
(JSON and EDN). The REST layer receives external names (e.g. in `orderby`)
and must turn them into column names before they reach the query builder.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from herald.core import InvalidTagError
from herald.core.db.models import Entity

NameKind = Literal["column", "json", "edn"]

_KINDS: frozenset[str] = frozenset({"column", "json", "edn"})


def _name(column: object, kind: str) -> str:
    if kind not in _KINDS:
        raise ValueError(f"unknown name kind: {kind!r}")
    return getattr(column, kind)


def tag_converter(entity_type: type[Entity], source: NameKind, target: NameKind) -> dict[str, str]:
    """Map every `source` name of the entity's columns to its `target` name."""
    return {_name(c, source): _name(c, target) for c in entity_type.COLUMNS}


def convert_tags(tags: Iterable[str], converter: dict[str, str]) -> list[str]:
    """Translate `tags` in order; any unknown name raises `InvalidTagError`."""
    out: list[str] = []
    for tag in tags:
        try:
            out.append(converter[tag])
        except KeyError:
            raise InvalidTagError(f"invalid field name: {tag!r}") from None
    return out


def external_names(entity_type: type[Entity], encoding: NameKind) -> frozenset[str]:
    """Every valid name of `entity_type` for the given encoding."""
    return frozenset(_name(c, encoding) for c in entity_type.COLUMNS)
