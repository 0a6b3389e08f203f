"""Prometheus metrics for ledger postings, workflow transitions and interest accrual"""

from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_transaction_counter = Counter(
    "coop_ledger_transactions_total",
    "Ledger transactions appended",
    ["type"],
)

ledger_rejection_counter = Counter(
    "coop_ledger_rejections_total",
    "Ledger appends rejected before any write",
    ["reason"],  # invalid_amount | insufficient_balance | duplicate_reference | backdated
)

# Workflow metrics
workflow_transition_counter = Counter(
    "coop_workflow_transitions_total",
    "Application status transitions",
    ["workflow", "status"],  # loan | membership
)

eligibility_counter = Counter(
    "coop_eligibility_decisions_total",
    "Loan eligibility evaluations",
    ["outcome"],  # eligible | ineligible
)

# Accrual metrics
interest_charged_counter = Counter(
    "coop_interest_charged_minor_total",
    "Interest posted by the accrual engine, in minor currency units",
)

accrual_fault_counter = Counter(
    "coop_accrual_faults_total",
    "Members skipped by the accrual engine",
    ["kind"],  # data_integrity | conflict | database
)

accrual_duration_histogram = Histogram(
    "coop_accrual_run_seconds",
    "Accrual run duration",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

# Concurrency
concurrency_conflict_counter = Counter(
    "coop_concurrency_conflicts_total",
    "Units of work rolled back after losing an optimistic version check",
)


def record_eligibility(eligible: bool) -> None:
    """Record eligibility outcome for monitoring refusal rates"""
    eligibility_counter.labels(outcome="eligible" if eligible else "ineligible").inc()


def record_transition(workflow: str, status: str) -> None:
    workflow_transition_counter.labels(workflow=workflow, status=status).inc()
