"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List
from pythonjsonlogger import jsonlogger

from allocation_planner.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_snapshot(
    request_id: str,
    user_id: str,
    transactions_analyzed: int,
    months_analyzed: int,
    overall_confidence: float,
    transactions_needing_review: int,
    rejected_records: int,
    duration_ms: float,
) -> None:
    """Log aggregate analysis outcome; no transaction-level detail"""
    logging.info(
        "Snapshot computed",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "snapshot_complete",
            "transactions_analyzed": transactions_analyzed,
            "months_analyzed": months_analyzed,
            "overall_confidence": round(overall_confidence, 3),
            "transactions_needing_review": transactions_needing_review,
            "rejected_records": rejected_records,
            "duration_ms": duration_ms,
        },
    )


def log_plan_outcome(
    request_id: str,
    user_id: str,
    outcomes: List[str],
    bucket_count: int,
    duration_ms: float,
) -> None:
    """Log structured plan outcome for analysis"""
    logging.info(
        "Plan requested",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "plan_complete",
            "plan_outcome": outcomes,
            "bucket_count": bucket_count,
            "duration_ms": duration_ms,
        },
    )


def log_edit(
    request_id: str,
    user_id: str,
    bucket_type: str,
    status: str,
    requested_cents: int,
    applied_cents: int,
    adjusted_buckets: int,
) -> None:
    logging.info(
        "Bucket edited",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "edit_complete",
            "bucket_type": bucket_type,
            "edit_status": status,
            "requested_cents": requested_cents,
            "applied_cents": applied_cents,
            "adjusted_buckets": adjusted_buckets,
        },
    )
