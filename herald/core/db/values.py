"""
Null-safe value wrappers for nullable SQL columns.

Every persisted entity field is one of these wrappers. A wrapper carries a
value plus a `valid` flag; an invalid wrapper is SQL NULL and, for the query
builder, an *absent* field (it is left out of WHERE/INSERT/SET clauses).

Each wrapper marshals to and from two text encodings:
- JSON (null token: ``null``), via the stdlib `json` module
- EDN  (null token: ``nil``), via `edn_format`

Design notes:
- `NullInt(5)` is always valid; `NullInt()` / `NullInt(None)` is always invalid.
- Equality is structural: two invalid wrappers are equal whatever they store.
- Decoding never guesses: a literal of the wrong type is a `ValueError`.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, Generic, Self, TypeVar

import edn_format

JSON_NULL = "null"
EDN_NULL = "nil"

T = TypeVar("T")


class NullValue(Generic[T]):
    """Base class for the nullable wrappers. Subclasses only define `_coerce`."""

    __slots__ = ("value", "valid")

    ZERO: ClassVar[Any] = None

    def __init__(self, value: T | NullValue[T] | None = None) -> None:
        if isinstance(value, NullValue):
            if type(value) is not type(self):
                raise TypeError(f"cannot build {type(self).__name__} from {type(value).__name__}")
            self.value = value.value
            self.valid = value.valid
            return
        if value is None:
            self.value = self.ZERO
            self.valid = False
        else:
            self.value = self._coerce(value)
            self.valid = True

    @classmethod
    def _coerce(cls, value: Any) -> T:
        raise NotImplementedError

    # ---- accessors ----

    def get(self, default: T | None = None) -> T | None:
        """Return the value, or `default` when the wrapper is NULL."""
        return self.value if self.valid else default

    def sql_value(self) -> T | None:
        """Value to bind as a query parameter (None for NULL)."""
        return self.value if self.valid else None

    # ---- JSON ----

    def to_json(self) -> str:
        if not self.valid:
            return JSON_NULL
        return json.dumps(self.value)

    @classmethod
    def from_json(cls, text: str | bytes) -> Self:
        s = _as_text(text)
        if s == JSON_NULL:
            return cls()
        # json.JSONDecodeError is a ValueError
        return cls._from_parsed(json.loads(s), s)

    # ---- EDN ----

    def to_edn(self) -> str:
        if not self.valid:
            return EDN_NULL
        return edn_format.dumps(self.value)

    @classmethod
    def from_edn(cls, text: str | bytes) -> Self:
        s = _as_text(text)
        if s == EDN_NULL:
            return cls()
        try:
            parsed = edn_format.loads(s)
        except Exception as e:
            raise ValueError(f"{cls.__name__}: invalid EDN literal {s!r}") from e
        return cls._from_parsed(parsed, s)

    @classmethod
    def _from_parsed(cls, parsed: Any, source: str) -> Self:
        if parsed is None:
            raise ValueError(f"{cls.__name__}: empty literal {source!r}")
        try:
            return cls(parsed)
        except TypeError as e:
            raise ValueError(f"{cls.__name__}: cannot decode {source!r}") from e

    # ---- dunder ----

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NullValue) or type(other) is not type(self):
            return NotImplemented
        if not self.valid and not other.valid:
            return True
        return self.valid == other.valid and self.value == other.value

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.valid, self.value if self.valid else None))

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})" if self.valid else f"{type(self).__name__}()"

    def __str__(self) -> str:
        return str(self.value) if self.valid else JSON_NULL


class NullInt(NullValue[int]):
    __slots__ = ()

    ZERO = 0

    @classmethod
    def _coerce(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"expected int, got {type(value).__name__}")
        return int(value)


class NullFloat(NullValue[float]):
    __slots__ = ()

    ZERO = 0.0

    @classmethod
    def _coerce(cls, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise TypeError(f"expected float, got {type(value).__name__}")
        return float(value)


class NullString(NullValue[str]):
    __slots__ = ()

    ZERO = ""

    @classmethod
    def _coerce(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        return value


class NullBool(NullValue[bool]):
    __slots__ = ()

    ZERO = False

    @classmethod
    def _coerce(cls, value: Any) -> bool:
        # SQLite stores booleans as 0/1
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise TypeError(f"expected bool, got {value!r}")


def _as_text(text: str | bytes) -> str:
    if isinstance(text, bytes):
        text = text.decode("utf-8")
    return text.strip()
