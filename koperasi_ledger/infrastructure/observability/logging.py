"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from koperasi_ledger.config import settings
from koperasi_ledger.domain.models import TransactionRecord, TransactionStatus
from koperasi_ledger.utils.date_utils import utcnow

logger = logging.getLogger("koperasi_ledger.transactions")


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


def log_transaction_outcome(
    transaction: TransactionRecord,
    duration_ms: float,
    request_id: Optional[str] = None,
) -> None:
    """Log one line per processed transaction; rejections are normal outcomes, hence INFO"""
    outcome = "approved" if transaction.status == TransactionStatus.APPROVED else "rejected"
    logger.info(
        "Transaction processed",
        extra={
            "request_id": request_id,
            "transaction_id": transaction.id,
            "kind": transaction.kind.value,
            "member_id": transaction.member_id,
            "step": "transaction_processed",
            "outcome": outcome,
            "reason": transaction.note if outcome == "rejected" else None,
            "amount": transaction.amount.serialize(),
            "duration_ms": duration_ms,
        },
    )
