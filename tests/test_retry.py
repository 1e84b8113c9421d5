# tests/test_retry.py

import pytest
from table_cutover.utils.retry import retry_with_backoff


def test_retry_succeeds_on_second_attempt():
    attempts = []

    @retry_with_backoff(max_attempts=3, initial_delay=0)
    def flaky_function():
        attempts.append(1)
        if len(attempts) < 2:
            raise ConnectionError("Temporary failure")
        return "success"

    assert flaky_function() == "success"
    assert len(attempts) == 2


def test_retry_fails_after_max_attempts():
    attempts = []

    @retry_with_backoff(max_attempts=3, initial_delay=0)
    def always_fails():
        attempts.append(1)
        raise ConnectionError("Always fails")

    with pytest.raises(ConnectionError):
        always_fails()
    assert len(attempts) == 3


def test_fixed_delay_between_attempts():
    """backoff_factor=1.0 keeps the same delay before every retry."""
    delays = []

    @retry_with_backoff(max_attempts=3, initial_delay=2.0, backoff_factor=1.0, sleep=delays.append)
    def always_fails():
        raise ConnectionError("Fail")

    with pytest.raises(ConnectionError):
        always_fails()
    assert delays == [2.0, 2.0]


def test_exponential_backoff_delays():
    delays = []

    @retry_with_backoff(max_attempts=4, initial_delay=0.5, backoff_factor=2.0, sleep=delays.append)
    def always_fails():
        raise ConnectionError("Fail")

    with pytest.raises(ConnectionError):
        always_fails()
    assert delays == [0.5, 1.0, 2.0]


def test_retry_specific_exceptions():
    """Only the listed exception types are retried."""
    attempts = []

    @retry_with_backoff(max_attempts=3, exceptions=(ValueError,))
    def raises_type_error():
        attempts.append(1)
        raise TypeError("Wrong exception")

    with pytest.raises(TypeError):
        raises_type_error()
    assert len(attempts) == 1


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        retry_with_backoff(max_attempts=0)
