# src/table_cutover/equality.py
"""
Order-independent structural equality used by boundary reconciliation.

Values are lifted into one of three shapes and compared polymorphically:
maps ignore key order, lists respect element order, scalars compare exactly
(same Python type and equal value).
"""
from abc import ABC, abstractmethod
from functools import singledispatch
from typing import Any, Dict, List, Sequence

from .types import Row, Value, ValueKind


class Structure(ABC):
    """A value lifted into a comparable shape."""

    @abstractmethod
    def equals(self, other: "Structure") -> bool:
        ...

    def __eq__(self, other):
        if not isinstance(other, Structure):
            return NotImplemented
        return self.equals(other)

    __hash__ = None


class Scalar(Structure):
    def __init__(self, value: Any):
        self.value = value

    def equals(self, other: Structure) -> bool:
        if not isinstance(other, Scalar):
            return False
        return type(self.value) is type(other.value) and self.value == other.value

    def __repr__(self):
        return f"Scalar({self.value!r})"


class OrderedList(Structure):
    def __init__(self, items: Sequence[Structure]):
        self.items = list(items)

    def equals(self, other: Structure) -> bool:
        if not isinstance(other, OrderedList) or len(self.items) != len(other.items):
            return False
        return all(a.equals(b) for a, b in zip(self.items, other.items))

    def __repr__(self):
        return f"OrderedList({self.items!r})"


class UnorderedMap(Structure):
    def __init__(self, entries: Dict[Any, Structure]):
        self.entries = dict(entries)

    def equals(self, other: Structure) -> bool:
        if not isinstance(other, UnorderedMap) or len(self.entries) != len(other.entries):
            return False
        for key, value in self.entries.items():
            if key not in other.entries:
                return False
            if not value.equals(other.entries[key]):
                return False
        return True

    def __repr__(self):
        return f"UnorderedMap({self.entries!r})"


@singledispatch
def structure_of(value: Any) -> Structure:
    return Scalar(value)


@structure_of.register(Structure)
def _(value: Structure) -> Structure:
    return value


@structure_of.register(list)
@structure_of.register(tuple)
def _(value) -> Structure:
    return OrderedList([structure_of(v) for v in value])


@structure_of.register(dict)
def _(value: dict) -> Structure:
    return UnorderedMap({k: structure_of(v) for k, v in value.items()})


@structure_of.register(Value)
def _(value: Value) -> Structure:
    if value.kind in (ValueKind.LIST, ValueKind.MAP):
        return structure_of(value.raw)
    return Scalar(value.raw)


@structure_of.register(Row)
def _(row: Row) -> Structure:
    return UnorderedMap({c.name: structure_of(v) for c, v in zip(row.columns, row.values)})


def structurally_equal(a: Any, b: Any) -> bool:
    return structure_of(a).equals(structure_of(b))


def missing_rows(expected: Sequence[Row], present: Sequence[Row]) -> List[Row]:
    """Rows of `expected` without a structurally equal partner in `present`.

    Each row in `present` can satisfy at most one expected row, so duplicates
    are counted as a multiset.
    """
    remaining: List[Structure] = [structure_of(r) for r in present]
    missing = []
    for row in expected:
        shape = structure_of(row)
        match = next((pos for pos, candidate in enumerate(remaining) if shape.equals(candidate)), None)
        if match is None:
            missing.append(row)
        else:
            remaining.pop(match)
    return missing
