# src/table_cutover/config.py

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .checkpoint import default_checkpoint_path
from .errors import ConfigurationError
from .types import parse_timestamp

DEFAULT_DSN = "clickhouse://default:@localhost:9000/default"
DEFAULT_START_TIME = "1970-01-01 08:00:01"

SOURCE_DSN_ENV = "TABLE_CUTOVER_SOURCE_DSN"
DESTINATION_DSN_ENV = "TABLE_CUTOVER_DESTINATION_DSN"


class JobConfig(BaseModel):
    """Everything a migration run needs. Immutable once built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_dsn: str = DEFAULT_DSN
    destination_dsn: str = DEFAULT_DSN
    source_table: str
    destination_table: str
    time_column: str

    parallelism: int = Field(default=4, ge=1)
    start_time: datetime = parse_timestamp(DEFAULT_START_TIME)

    # Cutover
    source_distributed: bool = False
    destination_distributed: bool = False
    cluster_name: Optional[str] = None
    cutover: bool = True

    ignored_columns: Tuple[str, ...] = ()

    # Persisted state
    checkpoint_file: Optional[Path] = None
    audit_log: Path = Path("log.json")

    # Batching and retries
    extract_batch_size: int = Field(default=10000, ge=1)
    write_batch_size: int = Field(default=1000, ge=1)
    insert_max_attempts: int = Field(default=3, ge=1)
    insert_retry_delay: float = Field(default=2.0, ge=0)

    # Bounds the catch-up loop on a source that never goes quiet
    max_incremental_passes: int = Field(default=100, ge=0)

    @field_validator('start_time', mode='before')
    @classmethod
    def parse_start_time(cls, v):
        try:
            return parse_timestamp(v)
        except ValueError as e:
            raise ValueError(f"start_time must look like 'YYYY-MM-DD HH:MM:SS': {e}")

    @field_validator('ignored_columns', mode='before')
    @classmethod
    def split_ignored_columns(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return tuple(c.strip() for c in v.split(",") if c.strip())
        return tuple(v)

    @field_validator('cluster_name', mode='before')
    @classmethod
    def blank_cluster_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def validate_tables(self):
        """Source and destination must be distinct tables when they share a store."""
        if self.source_dsn == self.destination_dsn and self.source_table == self.destination_table:
            raise ValueError("source_table and destination_table must differ when both DSNs are the same")
        if self.time_column in self.ignored_columns:
            raise ValueError(f"time_column '{self.time_column}' cannot also be an ignored column")
        return self

    @property
    def checkpoint_path(self) -> Path:
        return self.checkpoint_file or default_checkpoint_path(self.source_table, self.destination_table)

    @property
    def backup_table(self) -> str:
        return f"{self.source_table}_bak"


def _read_yaml(filepath: Union[str, Path]) -> Dict[str, Any]:
    with open(filepath, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{filepath}: expected a mapping at the top level")
    return data


def build_config(
    filepath: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> JobConfig:
    """
    Build a JobConfig from an optional YAML file plus explicit overrides.

    Overrides whose value is None are ignored, so CLI options that were not
    given fall through to the file, then to the environment (.env is loaded),
    then to the defaults.

    Raises:
        ConfigurationError: when the merged values do not form a valid job
    """
    load_dotenv()

    values: Dict[str, Any] = _read_yaml(filepath) if filepath else {}
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key == "ignored_columns" and not value:
            continue
        values[key] = value

    if "source_dsn" not in values and os.getenv(SOURCE_DSN_ENV):
        values["source_dsn"] = os.getenv(SOURCE_DSN_ENV)
    if "destination_dsn" not in values and os.getenv(DESTINATION_DSN_ENV):
        values["destination_dsn"] = os.getenv(DESTINATION_DSN_ENV)

    try:
        return JobConfig(**values)
    except ValueError as e:
        raise ConfigurationError(f"Invalid job configuration:\n{e}") from e


def load_config(filepath: Union[str, Path]) -> JobConfig:
    """Load and validate a job config from a YAML file."""
    return build_config(filepath)
