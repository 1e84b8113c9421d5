# tests/test_incremental.py
from datetime import datetime
from unittest.mock import MagicMock

from table_cutover.checkpoint import CheckpointStore
from table_cutover.incremental import IncrementalLoop
from table_cutover.types import PassSummary, TimeRange


def summary(label, rows):
    return PassSummary(label=label, rows_written=rows)


def test_quiescent_source_launches_no_pass(tmp_path):
    run_pass = MagicMock()
    probe = MagicMock(return_value=None)
    loop = IncrementalLoop(probe, run_pass, CheckpointStore(tmp_path / "done.txt"))

    outcome = loop.run(datetime(2024, 1, 1, 2, 50))

    run_pass.assert_not_called()
    probe.assert_called_once_with(datetime(2024, 1, 1, 2, 50))
    assert outcome.last_max == datetime(2024, 1, 1, 2, 50)
    assert outcome.passes == []


def test_probe_max_not_after_last_max_is_quiescent(tmp_path):
    last = datetime(2024, 1, 1, 2, 50)
    run_pass = MagicMock()
    loop = IncrementalLoop(lambda start: TimeRange(last, last), run_pass, CheckpointStore(tmp_path / "done.txt"))

    loop.run(last)
    run_pass.assert_not_called()


def test_passes_until_quiescent_with_boundary_hour_reopened(tmp_path):
    checkpoint = CheckpointStore(tmp_path / "done.txt")
    for key in ("2024-01-01 01:00:00", "2024-01-01 02:00:00"):
        checkpoint.mark_done(key)

    probes = iter([
        TimeRange(datetime(2024, 1, 1, 2, 50), datetime(2024, 1, 1, 3, 10)),
        TimeRange(datetime(2024, 1, 1, 3, 10), datetime(2024, 1, 1, 3, 20)),
        None,
    ])
    calls = []

    def run_pass(label, time_range, window, done):
        calls.append((label, time_range, window, set(done)))
        checkpoint.mark_done("2024-01-01 03:00:00")
        return summary(label, 1)

    outcome = IncrementalLoop(lambda start: next(probes), run_pass, checkpoint).run(datetime(2024, 1, 1, 2, 50))

    assert [c[0] for c in calls] == ["incremental #1", "incremental #2"]
    first_window, second_window = calls[0][2], calls[1][2]
    assert (first_window.after, first_window.until) == (datetime(2024, 1, 1, 2, 50), datetime(2024, 1, 1, 3, 10))
    assert (second_window.after, second_window.until) == (datetime(2024, 1, 1, 3, 10), datetime(2024, 1, 1, 3, 20))
    # the hour holding the previous watermark is planned again
    assert calls[0][3] == {"2024-01-01 01:00:00"}
    assert calls[1][3] == {"2024-01-01 01:00:00", "2024-01-01 02:00:00"}
    assert outcome.last_max == datetime(2024, 1, 1, 3, 20)
    assert outcome.rows_written == 2
    assert not outcome.hit_pass_limit


def test_pass_limit_stops_a_busy_source(tmp_path):
    ticks = iter(range(1, 100))

    def probe(start):
        return TimeRange(start, start.replace(minute=next(ticks)))

    run_pass = MagicMock(side_effect=lambda label, *args: summary(label, 1))
    loop = IncrementalLoop(probe, run_pass, CheckpointStore(tmp_path / "done.txt"), max_passes=3)

    outcome = loop.run(datetime(2024, 1, 1, 5, 0))

    assert run_pass.call_count == 3
    assert outcome.hit_pass_limit
    assert outcome.last_max == datetime(2024, 1, 1, 5, 3)
