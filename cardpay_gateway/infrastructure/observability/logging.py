"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from cardpay_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat()
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


def log_payment_created(
    request_id: str,
    payment_id: str,
    user_id: str,
    card_id: Optional[int],
    amount_cents: int,
    method: str,
    replayed: bool,
) -> None:
    """Log payment creation (or idempotent replay) for analysis"""
    logging.info(
        "Payment replayed" if replayed else "Payment created",
        extra={
            "request_id": request_id,
            "payment_id": payment_id,
            "user_id": user_id,
            "card_id": card_id,
            "step": "payment_replayed" if replayed else "payment_created",
            "amount_cents": amount_cents,
            "method": method,
        },
    )


def log_settlement(
    payment_id: str,
    status: str,
    transitioned: bool,
    applied_cents: int,
    discarded_cents: int,
    duration_ms: float,
) -> None:
    """Log settlement outcome"""
    logging.info(
        "Settlement completed" if transitioned else "Settlement skipped, payment already terminal",
        extra={
            "payment_id": payment_id,
            "step": "settlement_complete" if transitioned else "settlement_noop",
            "settlement_outcome": status.lower(),
            "applied_cents": applied_cents,
            "discarded_cents": discarded_cents,
            "duration_ms": duration_ms,
        },
    )
