# src/table_cutover/errors.py

from typing import Optional


class MigrationError(Exception):
    """Base class for all table-cutover errors."""
    pass


class ConnectionError(MigrationError):
    """Raised when a store cannot be reached."""
    pass


class ConfigurationError(MigrationError):
    """Raised when the job configuration cannot be honoured."""
    pass


class SchemaParseError(MigrationError):
    """Raised when a table definition line cannot be parsed into a column."""

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(message)
        self.line = line


class SchemaMismatchError(MigrationError):
    """Raised when source and destination columns differ."""

    def __init__(self, message: str, position: Optional[int] = None, source=None, destination=None):
        super().__init__(message)
        self.position = position
        self.source = source
        self.destination = destination


class TimeColumnError(MigrationError):
    """Raised when the time column is missing, ignored or not a date/time type."""
    pass


class TimeRangeError(MigrationError):
    """Raised when the time range probe fails."""
    pass


class CutoverError(MigrationError):
    """Raised when a cutover step fails. Manual recovery is required."""

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state


class MigrationAbortedError(MigrationError):
    """Raised by the engine when a fatal error stops the run."""

    def __init__(self, phase: str, cause: Exception):
        super().__init__(f"Migration aborted during {phase}: {cause}")
        self.phase = phase
        self.cause = cause
