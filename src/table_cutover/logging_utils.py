# src/table_cutover/logging_utils.py

import logging
import time
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route stdlib logging through rich. Module loggers stay at WARNING unless verbose."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


class MigrationLogger:
    """dbt-style progress lines for one migration job."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        self.start_time: Optional[float] = None

    def _line(self) -> Text:
        text = Text()
        text.append(f"{datetime.now().strftime('%H:%M:%S')} ", style="dim")
        return text

    def start_job(self):
        self.start_time = time.time()
        text = self._line()
        text.append("START ", style="bold cyan")
        text.append(f"migration {self.job_name}", style="bold")
        console.print(text)

    def phase(self, name: str):
        """Marks the beginning of a phase (schema check, backfill, cutover...)."""
        text = self._line()
        text.append("PHASE ", style="bold magenta")
        text.append(name)
        console.print(text)

    def info(self, message: str):
        text = self._line()
        text.append(message)
        console.print(text)

    def success(self, message: str, timing: Optional[float] = None):
        text = self._line()
        text.append("OK ", style="bold green")
        text.append(message)
        if timing:
            text.append(f" [in {timing:.2f}s]", style="dim green")
        console.print(text)

    def warning(self, message: str):
        text = self._line()
        text.append("WARN ", style="bold yellow")
        text.append(message, style="yellow")
        console.print(text)

    def error(self, message: str, exc_info: bool = False):
        text = self._line()
        text.append("ERROR ", style="bold red")
        text.append(message, style="red")
        console.print(text)
        if exc_info:
            # Only valid inside an except block
            console.print_exception(show_locals=False)

    def segment_progress(self, label: str, key: str, processed: int, total: int, rows_written: int, error: Optional[str] = None):
        """One line per finished segment with the running percentage of the pass."""
        percent = processed / total * 100 if total else 100.0
        text = self._line()
        text.append(f"{label} ", style="cyan")
        text.append(f"{percent:5.1f}% ", style="bold")
        text.append(f"({processed}/{total}) ", style="dim")
        text.append(f"segment {key} ")
        if error:
            text.append(f"FAILED: {error}", style="red")
        else:
            text.append(f"{rows_written} rows", style="white")
        console.print(text)

    def complete_job(self, rows_written: int, rows_dropped: int, failed_segments: int):
        """Logs completion of the whole job."""
        elapsed = time.time() - self.start_time if self.start_time else 0.0
        text = self._line()
        if failed_segments or rows_dropped:
            text.append("[WARN] DONE ", style="bold yellow")
        else:
            text.append("[OK] DONE ", style="bold green")
        text.append(f"migration {self.job_name} ", style="bold")
        text.append(f"[in {elapsed:.2f}s]", style="dim")
        console.print(text)

        summary = self._line()
        summary.append("      → ", style="dim")
        summary.append(f"{rows_written} written, ", style="white")
        summary.append(f"{rows_dropped} dropped, ", style="red" if rows_dropped else "dim")
        summary.append(f"{failed_segments} failed segment(s)", style="red" if failed_segments else "dim")
        console.print(summary)
        console.print()
