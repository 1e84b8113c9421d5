# tests/test_equality.py
from datetime import datetime
from decimal import Decimal

from table_cutover.equality import missing_rows, structurally_equal
from table_cutover.types import ColumnInfo, Row

COLUMNS = [ColumnInfo("id", "UInt64"), ColumnInfo("attrs", "Map(String, Array(UInt8))")]


def row(id_, attrs):
    return Row.from_raw(COLUMNS, [id_, attrs])


def test_maps_ignore_key_order():
    assert structurally_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})


def test_map_missing_key_is_unequal_both_ways():
    small, large = {"a": 1}, {"a": 1, "b": 2}
    assert not structurally_equal(small, large)
    assert not structurally_equal(large, small)
    assert not structurally_equal({"a": 1}, {"b": 1})


def test_lists_respect_order():
    assert structurally_equal([1, 2, 3], [1, 2, 3])
    assert not structurally_equal([1, 2, 3], [3, 2, 1])


def test_scalars_compare_type_and_value():
    assert structurally_equal(Decimal("1.50"), Decimal("1.5"))
    assert not structurally_equal(1, 1.0)
    assert not structurally_equal("1", 1)
    assert structurally_equal(datetime(2024, 1, 1), datetime(2024, 1, 1))


def test_rows_with_reordered_map_are_equal():
    a = row(1, {"x": [1], "y": [2, 3]})
    b = row(1, {"y": [2, 3], "x": [1]})
    assert structurally_equal(a, b)
    assert structurally_equal(b, a)


def test_missing_rows_is_a_multiset_match():
    expected = [row(1, {}), row(1, {}), row(2, {"k": [1]})]
    present = [row(1, {}), row(2, {"k": [1]})]

    assert missing_rows(expected, present) == [row(1, {})]


def test_missing_rows_when_destination_empty():
    expected = [row(1, {}), row(2, {})]
    assert missing_rows(expected, []) == expected
