# src/table_cutover/schema_validator.py
from typing import Iterable, List, Optional, Sequence
from pydantic import BaseModel
import logging

from .errors import SchemaMismatchError, TimeColumnError
from .schema import is_time_type
from .types import ColumnInfo

logger = logging.getLogger(__name__)


class ColumnIssue(BaseModel):
    """Single positional difference between two column lists"""
    position: int
    issue: str  # 'count_mismatch', 'name_mismatch', 'type_mismatch'
    expected: Optional[str] = None
    actual: Optional[str] = None

    def format(self) -> str:
        """Return a human-readable string."""
        base = f"Position {self.position}: {self.issue.replace('_', ' ').title()}"
        if self.expected or self.actual:
            base += f" (source: {self.expected or 'n/a'}, destination: {self.actual or 'n/a'})"
        return base


class ValidationReport(BaseModel):
    """Result of a positional schema comparison"""
    is_valid: bool
    issues: List[ColumnIssue] = []

    def has_errors(self) -> bool:
        return len(self.issues) > 0

    def format_errors(self) -> str:
        if not self.issues:
            return "No errors."
        return "\n".join(i.format() for i in self.issues)


def projection(columns: Sequence[ColumnInfo], ignored: Iterable[str] = ()) -> List[ColumnInfo]:
    """Columns that are validated, read and written: everything not ignored."""
    ignored = set(ignored)
    return [c for c in columns if c.name not in ignored]


class SchemaValidator:
    """Pre-flight check that source and destination tables line up column by column."""

    def __init__(self, ignored_columns: Iterable[str] = ()):
        self.ignored_columns = tuple(ignored_columns)

    def compare_columns(
        self,
        source: Sequence[ColumnInfo],
        destination: Sequence[ColumnInfo],
    ) -> ValidationReport:
        """
        Compare (name, type) pairs position by position.

        A differing column count is reported once; otherwise every differing
        position is reported.
        """
        source = projection(source, self.ignored_columns)
        destination = projection(destination, self.ignored_columns)

        if len(source) != len(destination):
            issue = ColumnIssue(
                position=min(len(source), len(destination)),
                issue="count_mismatch",
                expected=str(len(source)),
                actual=str(len(destination)),
            )
            return ValidationReport(is_valid=False, issues=[issue])

        issues: List[ColumnIssue] = []
        for i, (src, dst) in enumerate(zip(source, destination)):
            if src.name != dst.name:
                issues.append(ColumnIssue(position=i, issue="name_mismatch", expected=src.name, actual=dst.name))
            elif src.type != dst.type:
                issues.append(ColumnIssue(
                    position=i,
                    issue="type_mismatch",
                    expected=f"{src.name} {src.type}",
                    actual=f"{dst.name} {dst.type}",
                ))

        return ValidationReport(is_valid=not issues, issues=issues)

    def validate(self, source: Sequence[ColumnInfo], destination: Sequence[ColumnInfo]) -> None:
        """Raise SchemaMismatchError unless both column lists match."""
        report = self.compare_columns(source, destination)
        if report.is_valid:
            logger.info(f"Schema check passed: {len(projection(source, self.ignored_columns))} columns match")
            return

        first = report.issues[0]
        if first.issue == "count_mismatch":
            message = f"Column count differs: source has {first.expected}, destination has {first.actual}"
        else:
            message = f"Columns differ:\n{report.format_errors()}"
        raise SchemaMismatchError(message, position=first.position, source=first.expected, destination=first.actual)

    def check_time_column(self, columns: Sequence[ColumnInfo], time_column: str) -> ColumnInfo:
        """Return the time column, or raise if it is missing, ignored or not a date/time type."""
        if time_column in self.ignored_columns:
            raise TimeColumnError(f"Time column '{time_column}' cannot be an ignored column")

        for column in columns:
            if column.name == time_column:
                if not is_time_type(column.type):
                    raise TimeColumnError(
                        f"Time column '{time_column}' has type {column.type}, expected a Date/DateTime type"
                    )
                return column

        raise TimeColumnError(f"Time column '{time_column}' does not exist")
