# src/table_cutover/schema.py
"""
Column extraction from `SHOW CREATE TABLE` output.

This is a pattern-matching contract, not a SQL grammar. It expects the
layout ClickHouse prints: one column per line between the opening `(` and the
closing `)` / `ENGINE` clause. Types may nest parameters to any depth
(`Decimal(10, 2)`, `Nullable(DateTime)`, `Map(String, Array(UInt8))`) as long
as the parentheses balance on the line. A column line that does not fit the
pattern raises SchemaParseError rather than being skipped or mis-read.
"""
import logging
import re
from typing import List, Optional, Tuple

from .errors import SchemaParseError
from .types import ColumnInfo

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^\s*(?:`((?:[^`\\]|\\.)+)`|\"([^\"]+)\"|([A-Za-z_][A-Za-z0-9_.]*))\s+(.*)$")

# Clauses that may follow a column's type on the same line.
_TRAILING_CLAUSES = ("DEFAULT", "MATERIALIZED", "ALIAS", "EPHEMERAL", "CODEC", "TTL", "COMMENT", "NOT", "NULL")

# Definition lines inside the column block that are not columns.
_SKIPPED_KEYWORDS = ("INDEX", "PROJECTION", "CONSTRAINT", "PRIMARY", "ORDER", "SETTINGS")

# Anything after the column block.
_BLOCK_END_PREFIXES = (")", "ENGINE")


def parse_create_table(ddl: str) -> List[ColumnInfo]:
    """Extract the ordered column list from a CREATE TABLE statement."""
    columns: List[ColumnInfo] = []
    in_columns = False

    for raw_line in ddl.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if not in_columns:
            # The column block starts on a line of its own or at the end of the CREATE line.
            if line.startswith("("):
                in_columns = True
                line = line[1:].strip()
                if not line:
                    continue
            elif line.upper().startswith("CREATE") and line.endswith("("):
                in_columns = True
                continue
            else:
                continue

        if line.startswith(_BLOCK_END_PREFIXES):
            break

        if line.split(None, 1)[0].upper() in _SKIPPED_KEYWORDS:
            logger.debug(f"Skipping non-column definition: {line}")
            continue

        columns.append(parse_column_line(line))

    if not columns:
        raise SchemaParseError("No columns found in table definition")
    return columns


def parse_column_line(line: str) -> ColumnInfo:
    """Parse a single `name Type [clauses],` line."""
    match = _NAME_RE.match(line)
    if not match:
        raise SchemaParseError(f"Cannot parse column definition: {line!r}", line=line)

    name = match.group(1) or match.group(2) or match.group(3)
    type_text, rest = _scan_type(match.group(4), line)
    if not type_text:
        raise SchemaParseError(f"Column '{name}' has no type: {line!r}", line=line)

    leftover = rest.strip().rstrip(",").strip()
    if leftover and not leftover.upper().startswith(_TRAILING_CLAUSES):
        raise SchemaParseError(f"Unexpected text after type of column '{name}': {leftover!r}", line=line)

    return ColumnInfo(name=name, type=type_text)


def _scan_type(text: str, line: str) -> Tuple[str, str]:
    """Read a type expression with balanced parentheses and quoted literals."""
    depth = 0
    quote: Optional[str] = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            if depth == 0:
                break
            depth -= 1
        elif depth == 0 and (ch == "," or ch.isspace()):
            break
        i += 1

    if quote or depth:
        raise SchemaParseError(f"Unbalanced type expression: {line!r}", line=line)
    return text[:i].strip(), text[i:]


_TIME_TYPE_PREFIXES = ("datetime", "date", "timestamp")
_WRAPPER_RE = re.compile(r"^(?:nullable|lowcardinality)\((.*)\)$", re.IGNORECASE)


def unwrap_type(type_text: str) -> str:
    """Strip Nullable(...) / LowCardinality(...) wrappers."""
    inner = type_text.strip()
    while True:
        match = _WRAPPER_RE.match(inner)
        if not match:
            return inner
        inner = match.group(1).strip()


def is_time_type(type_text: str) -> bool:
    return unwrap_type(type_text).lower().startswith(_TIME_TYPE_PREFIXES)
