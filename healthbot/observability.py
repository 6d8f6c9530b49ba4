"""
Observability module for the Health ERP chatbot.

This module provides structured logging, metrics collection, and operation
tracing for monitoring and debugging chat turns and remote API calls.
"""

import logging
import re
import time
from collections import Counter
from datetime import datetime
from threading import Lock
from typing import Optional
from contextlib import contextmanager

import structlog
from structlog.processors import JSONRenderer

from . import __version__
from .settings import settings


# Configure structured logging
def setup_logging(log_level: str = settings.LOG_LEVEL) -> structlog.BoundLogger:
    """
    Setup structured logging with JSON output.

    Returns configured logger instance for the application.
    """
    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=None,
        level=getattr(logging, log_level.upper())
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("healthbot")


# Global logger instance
logger = setup_logging()


class RequestMetrics:
    """
    In-memory counters for chat turns and healthcare API calls.

    Chat handlers run in the server's threadpool, so every update and read
    goes through one lock.
    """

    def __init__(self):
        self._lock = Lock()
        self.turns = 0
        self.failed_turns = 0
        self.total_latency_ms = 0
        self.actions: Counter = Counter()
        self.api_calls: Counter = Counter()
        self.api_failures: Counter = Counter()

    def record_request(self, action: str, latency_ms: int, success: bool):
        with self._lock:
            self.turns += 1
            self.total_latency_ms += latency_ms
            self.failed_turns += 0 if success else 1
            self.actions[action] += 1

    def record_api_call(self, operation: str, success: bool):
        with self._lock:
            self.api_calls[operation] += 1
            if not success:
                self.api_failures[operation] += 1

    def get_metrics(self) -> dict:
        """Snapshot of the counters."""
        with self._lock:
            turns = self.turns
            return {
                "request_count": turns,
                "error_count": self.failed_turns,
                "success_rate_percent": round((turns - self.failed_turns) / turns * 100, 2) if turns else 0,
                "average_latency_ms": round(self.total_latency_ms / turns, 2) if turns else 0,
                "action_counts": dict(self.actions.most_common(20)),
                "api_calls": dict(self.api_calls),
                "api_failures": dict(self.api_failures),
                "timestamp": datetime.utcnow().isoformat(),
            }


# Global metrics instance
metrics = RequestMetrics()


def log_request(
    user_id: str,
    action: str,
    response: str,
    latency_ms: int,
    success: bool,
    has_external_session: bool = False,
    additional_context: Optional[dict] = None
) -> None:
    """
    Log a chat turn with its context.

    Free-text symptoms travel in the same field as option actions, so the
    action is masked like the reply.
    """
    log_context = {
        "user_id": user_id,
        "action": mask_pii(action)[:100],
        "response_length": len(response),
        "latency_ms": latency_ms,
        "success": success,
        "has_external_session": has_external_session,
        "timestamp": datetime.utcnow().isoformat()
    }

    if additional_context:
        log_context.update(additional_context)

    if success:
        logger.info(
            "Chat request processed",
            **log_context,
            masked_response=mask_pii(response)[:200]
        )
    else:
        logger.error(
            "Chat request failed",
            **log_context,
            error_response=mask_pii(response)[:200]
        )

    metrics.record_request(action if success else "error", latency_ms, success)


def mask_pii(text: str) -> str:
    """
    Mask personally identifiable information in text.

    Covers phone numbers, e-mail addresses and dates; names are left alone.
    """
    if not text:
        return text

    # Phone numbers
    text = re.sub(r'\+?\d{2}-\d{10}\b', '[PHONE]', text)
    text = re.sub(r'\b\d{10,11}\b', '[PHONE]', text)
    text = re.sub(r'\(\d{3}\)\s*\d{3}-\d{4}', '[PHONE]', text)

    # Email addresses
    text = re.sub(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b', '[EMAIL]', text)

    # Dates
    text = re.sub(r'\b\d{1,2}/\d{1,2}/\d{4}\b', '[DATE]', text)
    text = re.sub(r'\b\d{4}-\d{2}-\d{2}\b', '[DATE]', text)

    return text


def mask_secret(value: Optional[str]) -> str:
    """Show only the first characters of a credential."""
    if not value:
        return "NOT SET"
    return f"{value[:6]}..."


@contextmanager
def trace_operation(operation_name: str, **context):
    """
    Context manager for tracing operations with timing and logging.

    Usage:
        with trace_operation("book_appointment", patient_id="42"):
            # Your operation here
            pass
    """
    start_time = time.time()
    operation_id = f"{operation_name}_{int(start_time * 1000)}"

    logger.debug(
        f"Starting operation: {operation_name}",
        operation_id=operation_id,
        **context
    )

    try:
        yield operation_id

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Completed operation: {operation_name}",
            operation_id=operation_id,
            duration_ms=duration_ms,
            success=True,
            **context
        )
        metrics.record_api_call(operation_name, True)

    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.warning(
            f"Failed operation: {operation_name}",
            operation_id=operation_id,
            duration_ms=duration_ms,
            success=False,
            error=str(e),
            **context
        )
        metrics.record_api_call(operation_name, False)
        raise


def get_observability_summary() -> dict:
    """
    Get observability summary for the status endpoint.
    """
    return {
        "metrics": metrics.get_metrics(),
        "system_info": {
            "timestamp": datetime.utcnow().isoformat(),
            "version": __version__
        }
    }
