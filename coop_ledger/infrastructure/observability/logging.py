"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from coop_ledger.config import settings
from coop_ledger.utils.date_utils import utcnow

logger = logging.getLogger("coop_ledger")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_posting(
    member_id: str,
    txn_type: str,
    amount: int,
    balance_after: Optional[int],
    processed_by: Optional[str],
) -> None:
    """Log a ledger append"""
    logger.info(
        "Transaction posted",
        extra={
            "member_id": member_id,
            "step": "ledger_append",
            "transaction_type": txn_type,
            "amount": amount,
            "balance_after": balance_after,
            "processed_by": processed_by,
        },
    )


def log_transition(
    workflow: str,
    application_id: str,
    from_status: str,
    to_status: str,
    actor_id: str,
) -> None:
    """Log a workflow status change for the audit trail"""
    logger.info(
        "Application status changed",
        extra={
            "step": f"{workflow}_transition",
            "application_id": application_id,
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
        },
    )


def log_integrity_fault(member_id: str, detail: str) -> None:
    """Surface a data-integrity fault to operators"""
    logger.error(
        "Data integrity fault, member skipped",
        extra={"member_id": member_id, "step": "accrual", "detail": detail},
    )


def log_accrual_run(
    as_of: str,
    processed_members: int,
    total_interest_charged: int,
    faults: int,
    failures: int,
    duration_ms: float,
) -> None:
    """Log structured accrual outcome for analysis"""
    logger.info(
        "Interest accrual completed",
        extra={
            "step": "accrual_complete",
            "as_of": as_of,
            "processed_members": processed_members,
            "total_interest_charged": total_interest_charged,
            "faults": faults,
            "failures": failures,
            "duration_ms": duration_ms,
        },
    )
