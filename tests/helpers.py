# tests/helpers.py
from table_cutover.types import ColumnInfo

EVENT_COLUMNS = [
    ColumnInfo("id", "UInt64"),
    ColumnInfo("event_time", "DateTime"),
    ColumnInfo("payload", "String"),
    ColumnInfo("tags", "Map(String, String)"),
]


def event(id_, ts, payload="x", tags=None):
    """Raw row tuple in EVENT_COLUMNS order."""
    return (id_, ts, payload, tags or {})
