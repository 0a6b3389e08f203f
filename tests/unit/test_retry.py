"""Unit tests for conflict retries"""

import pytest
from coop_ledger.domain.exceptions import ConcurrencyConflict, DataIntegrityFault
from coop_ledger.services.retry import run_with_retries


def test_retries_until_success():
    calls = []
    sleeps = []

    def operation():
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrencyConflict("lost race")
        return "done"

    result = run_with_retries(operation, max_retries=3, backoff_base=0.1, sleep=sleeps.append)

    assert result == "done"
    assert len(calls) == 3
    assert sleeps == [0.1, 0.2]


def test_gives_up_after_max_retries():
    calls = []

    def operation():
        calls.append(1)
        raise ConcurrencyConflict("lost race")

    with pytest.raises(ConcurrencyConflict):
        run_with_retries(operation, max_retries=3, backoff_base=0, sleep=lambda _: None)

    assert len(calls) == 3


def test_integrity_fault_not_retried():
    calls = []

    def operation():
        calls.append(1)
        raise DataIntegrityFault("no loan start date")

    with pytest.raises(DataIntegrityFault):
        run_with_retries(operation, max_retries=3, sleep=lambda _: None)

    assert len(calls) == 1
