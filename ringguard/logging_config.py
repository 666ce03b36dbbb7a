"""
Logging configuration for RingGuard.

Structured JSON logs plus an audit logger for the events a regulator needs to
reconstruct: submissions, analyses, reveal requests, reveals, reviews and
security rejections. Audit records carry ids, sizes and digests only, never
ciphertext or plaintext payloads.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per record, suitable for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """Audit events for the ledger, the engine and the reveal protocol."""

    def __init__(self, name: str = "ringguard.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def transaction_submitted(self, record_id: int) -> None:
        self._log(
            logging.INFO,
            "TRANSACTION_SUBMITTED",
            record_id=record_id,
            message=f"Transaction {record_id} appended"
        )

    def matrix_initialized(self, size: int) -> None:
        self._log(
            logging.INFO,
            "MATRIX_INITIALIZED",
            size=size,
            message=f"Adjacency matrix reset to {size}x{size}"
        )

    def ledger_ingested(self, record_count: int, size: int) -> None:
        self._log(
            logging.INFO,
            "LEDGER_INGESTED",
            record_count=record_count,
            size=size,
            message=f"{record_count} records folded into the matrix"
        )

    def analysis_complete(self, analysis_id: str, rounds: int) -> None:
        self._log(
            logging.INFO,
            "ANALYSIS_COMPLETE",
            analysis_id=analysis_id,
            rounds=rounds,
            message=f"Ring detection {analysis_id} finished in {rounds} rounds"
        )

    def reveal_requested(self, analysis_id: str, request_id: str, batch_size: int, batch_digest: str) -> None:
        self._log(
            logging.INFO,
            "REVEAL_REQUESTED",
            analysis_id=analysis_id,
            oracle_request_id=request_id,
            batch_size=batch_size,
            batch_digest=batch_digest,
            message=f"Decryption requested for {analysis_id}"
        )

    def reveal_completed(self, analysis_id: str, request_id: str, member_count: int) -> None:
        self._log(
            logging.INFO,
            "REVEAL_COMPLETED",
            analysis_id=analysis_id,
            oracle_request_id=request_id,
            member_count=member_count,
            message=f"Analysis {analysis_id} revealed"
        )

    def review_recorded(self, analysis_id: str, status: str) -> None:
        self._log(
            logging.INFO,
            "REVIEW_RECORDED",
            analysis_id=analysis_id,
            status=status,
            message=f"Ring {analysis_id} marked {status}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure root logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID for the current context, generating one if needed."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = AuditLogger()
