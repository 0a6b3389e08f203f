"""Unit tests for the accrual job command line"""

from datetime import datetime
from coop_ledger.jobs.accrue import parse_args


def test_parse_args():
    args = parse_args(["--as-of", "2025-03-10", "--workers", "4"])

    assert args.as_of == datetime(2025, 3, 10)
    assert args.workers == 4


def test_parse_args_defaults():
    args = parse_args([])

    assert args.as_of is None
    assert args.workers == 1
