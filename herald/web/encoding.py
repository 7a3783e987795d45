"""
Wire encodings for catalogue records: JSON and EDN.

Records are marshalled field by field through their null-safe wrappers, so a
NULL field is written as the encoding's null token (`null` / `nil`) and the
external field names come from the column descriptors.

Decoding accepts a map with any subset of the external names. Unknown names
raise `InvalidTagError`, badly typed values raise `ValueError`, and null
values leave the field absent.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import edn_format

from herald.core import InvalidTagError
from herald.core.db.models import Entity
from herald.core.db.tags import NameKind, convert_tags, external_names, tag_converter

E = TypeVar("E", bound=Entity)


def check_names(entity_type: type[Entity], encoding: NameKind) -> None:
    """Every column must have its own non-empty external name for `encoding`."""
    names = external_names(entity_type, encoding)
    if len(names) != len(entity_type.COLUMNS) or any(not n.lstrip(":") for n in names):
        raise InvalidTagError(f"{entity_type.__name__} lacks distinct {encoding} names for its columns")


def _wrap(column: Any, value: Any) -> Any:
    if isinstance(value, edn_format.Keyword | edn_format.Symbol):
        raise ValueError(f"{column.json}: unexpected literal {value!r}")
    try:
        return column.kind(value)
    except TypeError as e:
        raise ValueError(f"{column.json}: {e}") from e


def _fill(entity_type: type[E], items: Mapping[str, Any], encoding: NameKind) -> E:
    by_name = {getattr(c, encoding): c for c in entity_type.COLUMNS}
    record = entity_type()
    for name, value in items.items():
        column = by_name.get(name)
        if column is None:
            raise InvalidTagError(f"invalid field name: {name!r}")
        setattr(record, column.attr, _wrap(column, value))
    return record


@dataclass(frozen=True, slots=True)
class Encoding:
    """One wire format; `name` is also the URL prefix and the name kind of the columns."""

    name: NameKind
    media_type: str

    def encode(self, entity: Entity) -> str:
        if self.name == "json":
            fields = (f"{json.dumps(c.json)}: {getattr(entity, c.attr).to_json()}" for c in entity.COLUMNS)
            return "{" + ", ".join(fields) + "}"
        fields = (f"{c.edn} {getattr(entity, c.attr).to_edn()}" for c in entity.COLUMNS)
        return "{" + ", ".join(fields) + "}"

    def encode_results(self, results: Sequence[Sequence[Entity]]) -> str:
        """A list (one per query) of lists of records."""
        sep = ", " if self.name == "json" else " "
        inner = ("[" + sep.join(self.encode(e) for e in rows) + "]" for rows in results)
        return "[" + sep.join(inner) + "]"

    def decode(self, entity_type: type[E], text: str) -> E:
        """A query record from a map literal; `{}` selects everything."""
        if self.name == "json":
            # json.JSONDecodeError is a ValueError
            parsed = json.loads(text)
            if not isinstance(parsed, dict):
                raise ValueError("data must be a JSON object")
            return _fill(entity_type, parsed, "json")

        try:
            parsed = edn_format.loads(text)
        except Exception as e:
            raise ValueError(f"invalid EDN: {text!r}") from e
        if not isinstance(parsed, Mapping):
            raise ValueError("data must be an EDN map")
        items: dict[str, Any] = {}
        for key, value in parsed.items():
            if not isinstance(key, edn_format.Keyword):
                raise InvalidTagError(f"invalid field name: {key!r}")
            items[":" + key.name] = value
        return _fill(entity_type, items, "edn")

    def order_columns(self, entity_type: type[Entity], names: Sequence[str]) -> list[str]:
        """Translate external `orderby` names to column names."""
        return convert_tags(names, tag_converter(entity_type, self.name, "column"))


JSON = Encoding(name="json", media_type="application/json")
EDN = Encoding(name="edn", media_type="application/edn")

ENCODINGS: tuple[Encoding, ...] = (EDN, JSON)
